from typing import List, Optional

from pydantic_settings import BaseSettings

DEFAULT_DISCOVERY_TYPE_PREFIXES = [
    "Number",
    "Number:Temperature",
    "Number:Pressure",
    "Number:Dimensionless",
]


class Settings(BaseSettings):
    database_url: str = "sqlite:///./twinsync.db"
    user_id: str = "local-admin"  # single-tenant; multi-tenant: swap for JWT claim
    openhab_timeout_seconds: float = 10.0
    sync_max_concurrency: int = 1
    discovery_type_prefixes: List[str] = DEFAULT_DISCOVERY_TYPE_PREFIXES
    auto_sync_token: str = ""
    allow_private_endpoints: bool = False
    scheduler_poll_seconds: int = 60

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
