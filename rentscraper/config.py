"""
Scraper configuration and settings management.
"""
import os
import random
from dataclasses import dataclass, field, fields, replace
from typing import Dict, List, Tuple


DEFAULT_BASE_URL = "https://www.yad2.co.il"
DEFAULT_SEARCH_URL = (
    "https://www.yad2.co.il/realestate/rent?maxPrice=10000&minRooms=3&maxRooms=4"
    "&zoom=14&topArea=2&area=1&city=5000&neighborhood=1520"
)

USER_AGENTS: List[str] = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Safari/605.1.15",
]

VIEWPORTS: List[Tuple[int, int]] = [
    (1920, 1080),
    (1680, 1050),
    (1536, 864),
    (1440, 900),
]

EXTRA_HEADERS: Dict[str, str] = {
    "Accept-Language": "en-US,en;q=0.9,he;q=0.8",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8",
    "Upgrade-Insecure-Requests": "1",
    "Cache-Control": "max-age=0",
}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class DelayRange:
    """Bounded random wait, in seconds."""
    low: float
    high: float

    def pick(self) -> float:
        if self.high <= self.low:
            return max(self.low, 0.0)
        return random.uniform(self.low, self.high)


@dataclass
class Timings:
    """Every deliberate wait of a run. Seconds."""

    # Renderer
    pre_navigation: DelayRange = field(default_factory=lambda: DelayRange(5.0, 10.0))
    mouse_move: DelayRange = field(default_factory=lambda: DelayRange(0.5, 1.5))
    first_scroll: DelayRange = field(default_factory=lambda: DelayRange(2.0, 4.0))
    second_scroll: DelayRange = field(default_factory=lambda: DelayRange(3.0, 6.0))
    inert_click: DelayRange = field(default_factory=lambda: DelayRange(1.0, 3.0))
    content_settle: DelayRange = field(default_factory=lambda: DelayRange(5.0, 5.0))
    probe_settle: DelayRange = field(default_factory=lambda: DelayRange(3.0, 3.0))

    # Guard evasion attempt
    evasion_click: DelayRange = field(default_factory=lambda: DelayRange(2.0, 4.0))
    evasion_scroll: DelayRange = field(default_factory=lambda: DelayRange(3.0, 6.0))
    evasion_typing: DelayRange = field(default_factory=lambda: DelayRange(1.0, 3.0))
    evasion_wait: DelayRange = field(default_factory=lambda: DelayRange(15.0, 25.0))

    # Paginator
    between_pages: DelayRange = field(default_factory=lambda: DelayRange(5.0, 8.0))

    @classmethod
    def instant(cls) -> "Timings":
        """All waits set to zero."""
        zero = DelayRange(0.0, 0.0)
        return cls(**{f.name: zero for f in fields(cls)})


@dataclass
class ScraperSettings:
    """Settings for one pipeline run."""
    base_url: str = DEFAULT_BASE_URL
    max_pages: int = 5
    headless: bool = True
    navigation_timeout_ms: int = 45_000
    probe_timeout_ms: int = 30_000
    min_text_length: int = 50
    locale: str = "en-US"
    user_agents: List[str] = field(default_factory=lambda: list(USER_AGENTS))
    viewports: List[Tuple[int, int]] = field(default_factory=lambda: list(VIEWPORTS))
    extra_headers: Dict[str, str] = field(default_factory=lambda: dict(EXTRA_HEADERS))
    timings: Timings = field(default_factory=Timings)

    @classmethod
    def from_env(cls, **overrides) -> "ScraperSettings":
        """Build settings from environment variables, then apply overrides."""
        settings = cls(
            base_url=os.getenv("RENT_BASE_URL", DEFAULT_BASE_URL),
            max_pages=int(os.getenv("MAX_PAGES", "5")),
            headless=_env_bool("HEADLESS", True),
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(settings, key, value)
        if settings.headless and "timings" not in overrides:
            # Headless Chromium needs longer for the results feed to hydrate
            settings.timings = replace(settings.timings, probe_settle=DelayRange(8.0, 8.0))
        return settings


class Config:
    """Application configuration."""

    # Database
    DB_PATH: str = os.getenv("RENT_DB", "./data/db/rentals.db")

    # Scraping
    DEFAULT_URL: str = os.getenv("RENT_URL", DEFAULT_SEARCH_URL)
    RETENTION_DAYS: int = int(os.getenv("RETENTION_DAYS", "30"))
    TOP_LOCATIONS: int = int(os.getenv("TOP_LOCATIONS", "10"))

    # Logging
    LOG_CONSOLE: str = os.getenv("LOG_CONSOLE", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "DEBUG")
    LOG_FILE_PATH: str = os.getenv("LOG_FILE_PATH", "rentscraper.log")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration on startup."""
        if cls.RETENTION_DAYS < 1:
            raise ValueError(f"RETENTION_DAYS must be positive, got {cls.RETENTION_DAYS}")
        if cls.TOP_LOCATIONS < 1:
            raise ValueError(f"TOP_LOCATIONS must be positive, got {cls.TOP_LOCATIONS}")


# Global config instance
config = Config()
