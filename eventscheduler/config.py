"""Client settings, read from SCHEDULER_-prefixed environment variables or .env."""
from pydantic import AnyUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal


class SchedulerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", env_file=".env", extra="ignore")

    # Full base URL; wins over HOST/PORT when set
    ENDPOINT: AnyUrl | None = None
    HOST: str = "localhost"
    PORT: int = 5665
    TIMEOUT_SECONDS: float = 10.0
    LOG_JSON: bool = True
    # Canonical request descriptor shape: "host" (host/port/path) or "href"
    REQUEST_FORMAT: Literal["host", "href"] = "host"
    # What a failing undo callback does: report and swallow, or report and raise
    COMPENSATION_POLICY: Literal["best_effort", "raise"] = "best_effort"

    @property
    def base_url(self) -> str:
        if self.ENDPOINT:
            return str(self.ENDPOINT).rstrip("/")
        return f"http://{self.HOST}:{self.PORT}"


@lru_cache(maxsize=1)
def get_settings() -> SchedulerSettings:
    return SchedulerSettings()
