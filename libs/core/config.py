"""Configuration management for the Perplexity tool server."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
    "--window-size=1920,1080",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--disable-web-security",
    "--disable-features=IsolateOrigins,site-per-process",
]


class TimeoutProfile(BaseModel):
    """Per-phase duration budgets in seconds. Read-only once built."""

    model_config = ConfigDict(frozen=True)

    navigation: float = 45.0
    selector: float = 15.0
    generation: float = 120.0
    recovery: float = 15.0

    def ms(self, phase: str) -> int:
        """Budget for a phase in milliseconds (Playwright's unit)."""
        return int(getattr(self, phase) * 1000)


class BrowserSettings(BaseModel):
    """Browser automation settings (nested env: PERPLEXITY_BROWSER__HEADLESS=false)."""

    headless: bool = True
    viewport_width: int = 1920
    viewport_height: int = 1080
    user_agent: str = DEFAULT_USER_AGENT
    launch_args: list[str] = Field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))
    screenshot_dir: Path = Path(".")
    typing_delay_ms: int = 20

    @property
    def viewport(self) -> dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}


class SearchSettings(BaseModel):
    """Search pipeline settings."""

    target_url: str = "https://www.perplexity.ai/"
    target_domain: str = "perplexity.ai"
    cooldown_seconds: float = 5.0
    max_retries: int = 10
    settle_seconds: float = 7.0
    candidate_timeout_seconds: float = 5.0
    generation_poll_interval_seconds: float = 1.0
    idle_timeout_seconds: float = 5 * 60


class StoreSettings(BaseModel):
    """Conversation history store settings."""

    db_path: Path = Path("data/chat_history.db")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PERPLEXITY_",
        extra="ignore",
        env_nested_delimiter="__",  # PERPLEXITY_SEARCH__MAX_RETRIES=3
        populate_by_name=True,
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    service_name: str = "perplexity"

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    timeouts: TimeoutProfile = Field(default_factory=TimeoutProfile)
    search: SearchSettings = Field(default_factory=SearchSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
