"""Application settings and configuration schema."""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiCfg(BaseModel):
    """Remote crawl service connection."""
    base_url: str = "http://localhost:8000/api/v1"
    timeout_s: float = Field(default=30.0, gt=0)  # crawling endpoints can be slow
    token: Optional[str] = None


class PollCfg(BaseModel):
    """Job tracker timing and refresh behaviour."""
    interval_s: float = Field(default=0.5, gt=0)
    single_site_refresh: bool = False


class LogCfg(BaseModel):
    """Logging output."""
    level: str = "INFO"
    json_logs: bool = True


class Settings(BaseSettings):
    """Main application settings.

    Values come from ``CRAWL_SYNC_*`` environment variables, nested sections
    use a double underscore (``CRAWL_SYNC_POLL__INTERVAL_S=1.0``).
    """
    api: ApiCfg = ApiCfg()
    poll: PollCfg = PollCfg()
    log: LogCfg = LogCfg()

    model_config = SettingsConfigDict(
        env_prefix="CRAWL_SYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )
