class PlugPollError(Exception):
    """Base class for plugpoll errors."""


class ConfigurationError(PlugPollError):
    """Device record cannot be polled: bad address or missing pin code."""


class TransportError(PlugPollError):
    """A request to the plug failed at the network or protocol level."""
