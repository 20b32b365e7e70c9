"""
Unit tests for reading validation, normalization and change detection.
"""
import pytest

from plugpoll.domain.models import BinaryState, ChannelKind
from plugpoll.domain.readings import (
    Rejected,
    Valid,
    has_changed,
    normalize,
    normalize_last_value,
)


class TestSentinels:
    """Sentinel markers are rejected for every channel kind."""

    @pytest.mark.parametrize("kind", list(ChannelKind))
    @pytest.mark.parametrize("raw", ["undefined", "ERROR", " ERROR "])
    def test_sentinel_rejected(self, kind, raw):
        assert isinstance(normalize(kind, raw), Rejected)

    def test_none_rejected(self):
        assert normalize(ChannelKind.POWER, None) == Rejected("no value")

    def test_binary_sentinel_is_not_mapped_to_off(self):
        outcome = normalize(ChannelKind.BINARY, "ERROR")
        assert isinstance(outcome, Rejected)
        assert "sentinel" in outcome.reason


class TestBinary:
    def test_true_is_on(self):
        assert normalize(ChannelKind.BINARY, "true") == Valid(BinaryState.ON)

    @pytest.mark.parametrize("raw", ["false", "0", "True", "on", ""])
    def test_anything_else_is_off(self, raw):
        assert normalize(ChannelKind.BINARY, raw) == Valid(BinaryState.OFF)

    @pytest.mark.parametrize("last, expected", [
        (1, BinaryState.ON),
        (1.0, BinaryState.ON),
        ("0", BinaryState.OFF),
        (BinaryState.OFF, BinaryState.OFF),
        (None, None),
        (0.5, None),
    ])
    def test_last_value(self, last, expected):
        assert normalize_last_value(ChannelKind.BINARY, last) == expected


class TestNumeric:
    def test_power_rounds_to_nearest_watt(self):
        assert normalize(ChannelKind.POWER, "42.6") == Valid(43)
        assert normalize(ChannelKind.POWER, "41.8") == Valid(42)

    def test_power_half_rounds_up(self):
        assert normalize(ChannelKind.POWER, "42.5") == Valid(43)

    def test_energy_rounds_to_three_decimals(self):
        assert normalize(ChannelKind.ENERGY, "1.2345") == Valid(1.235)
        assert normalize(ChannelKind.ENERGY, "1.23449") == Valid(1.234)

    def test_temperature_truncates(self):
        assert normalize(ChannelKind.TEMPERATURE, "23.9") == Valid(23)
        assert normalize(ChannelKind.TEMPERATURE, "-3.7") == Valid(-3)

    @pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity", "12W"])
    def test_unparseable_rejected(self, raw):
        outcome = normalize(ChannelKind.POWER, raw)
        assert isinstance(outcome, Rejected)
        assert "unparseable" in outcome.reason

    @pytest.mark.parametrize("kind", [ChannelKind.POWER, ChannelKind.TEMPERATURE, ChannelKind.ENERGY])
    @pytest.mark.parametrize("raw", ["1e99999999", "1e30", "-1e20"])
    def test_huge_magnitude_rejected(self, kind, raw):
        outcome = normalize(kind, raw)
        assert isinstance(outcome, Rejected)
        assert "out of range" in outcome.reason

    def test_largest_accepted_magnitude(self):
        assert normalize(ChannelKind.ENERGY, "9.5e15") == Valid(9.5e15)
        assert normalize(ChannelKind.POWER, "1e-99999999") == Valid(0)

    def test_huge_last_value_counts_as_change(self):
        assert normalize_last_value(ChannelKind.TEMPERATURE, "1e99999999") is None
        assert has_changed(ChannelKind.POWER, 42, 1e30)

    def test_value_types(self):
        assert isinstance(normalize(ChannelKind.POWER, "12.2").value, int)
        assert isinstance(normalize(ChannelKind.TEMPERATURE, "12.2").value, int)
        assert isinstance(normalize(ChannelKind.ENERGY, "12.2").value, float)


class TestHasChanged:
    """Comparison happens on the rounded representation of both sides."""

    def test_power_scenarios(self):
        assert has_changed(ChannelKind.POWER, 43, 42) is True
        assert has_changed(ChannelKind.POWER, 42, 42.0) is False

    def test_power_last_value_is_rounded_too(self):
        # A stored raw float must not cause an emit loop
        assert has_changed(ChannelKind.POWER, 42, 41.6) is False

    def test_energy_scenario(self):
        assert has_changed(ChannelKind.ENERGY, 1.235, 1.234) is True
        assert has_changed(ChannelKind.ENERGY, 1.234, 1.234) is False

    def test_temperature_compares_integers(self):
        assert has_changed(ChannelKind.TEMPERATURE, 24, 24.0) is False
        assert has_changed(ChannelKind.TEMPERATURE, 24, "24.8") is False
        assert has_changed(ChannelKind.TEMPERATURE, 25, 24) is True

    def test_binary(self):
        assert has_changed(ChannelKind.BINARY, BinaryState.ON, 0) is True
        assert has_changed(ChannelKind.BINARY, BinaryState.OFF, 0) is False
        assert has_changed(ChannelKind.BINARY, BinaryState.ON, BinaryState.ON) is False

    @pytest.mark.parametrize("kind, value", [
        (ChannelKind.BINARY, BinaryState.OFF),
        (ChannelKind.POWER, 0),
        (ChannelKind.ENERGY, 0.0),
    ])
    def test_missing_last_value_counts_as_change(self, kind, value):
        assert has_changed(kind, value, None) is True
