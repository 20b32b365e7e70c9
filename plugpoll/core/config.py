from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="PLUGPOLL_", extra="ignore")

    app_name: str = "Plug Poller"

    # Mode: "sim" for development, "hnap" to talk to real DSP-W215 plugs
    mode: str = Field(default="sim")

    # HNAP session
    hnap_username: str = "admin"
    hnap_url_template: str = "http://{address}/HNAP1"
    hnap_timeout_seconds: float = 5.0

    # Scheduler tick
    poll_seconds: int = 30

    # Storage
    sqlite_path: str = Field(default="plugpoll.db")

    # Logging
    log_level: str = "INFO"
    log_file: str = "plugpoll.log"

    # Device registered at startup when not already known
    seed_external_id: str = "w215:192.168.0.50"
    seed_pin: str = "123456"
    seed_name: str = "Living room plug"


settings = Settings()
