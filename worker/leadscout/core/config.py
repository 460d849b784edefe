"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class ConfigError(RuntimeError):
    """Raised when an environment variable holds an unusable value."""


@dataclass(frozen=True)
class Settings:
    database_url: str = ""
    worker_port: int = 9000
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1920
    viewport_height: int = 1080
    navigation_timeout_ms: int = 60000
    page_settle_s: float = 3.0
    consent_settle_s: float = 1.5
    scroll_count: int = 5
    scroll_pause_s: float = 1.5
    detail_settle_s: float = 2.5
    candidate_delay_s: Tuple[float, float] = (0.8, 1.5)
    category_delay_s: Tuple[float, float] = (2.0, 4.0)
    good_site_threshold: int = 25
    analyzer_timeout_s: float = 10.0
    analyzer_request_timeout_s: float = 8.0
    default_max_results: int = 10
    run_timeout_s: float = 300.0


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes"}


def _env_range(name: str, default: Tuple[float, float]) -> Tuple[float, float]:
    """Parse a ``"low,high"`` pair of seconds."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    parts = [part.strip() for part in raw.split(",")]
    try:
        low, high = (float(part) for part in parts)
    except ValueError as exc:
        raise ConfigError(f"{name} must look like 'low,high', got {raw!r}") from exc
    if low < 0 or high < low:
        raise ConfigError(f"{name} must satisfy 0 <= low <= high, got {raw!r}")
    return low, high


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    database_url = os.getenv("DATABASE_URL", "")
    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")

    return Settings(
        database_url=database_url,
        worker_port=_env_int("WORKER_PORT", 9000),
        headless=_env_bool("SCRAPER_HEADLESS", True),
        user_agent=os.getenv("SCRAPER_USER_AGENT") or DEFAULT_USER_AGENT,
        navigation_timeout_ms=_env_int("SCRAPER_NAV_TIMEOUT_MS", 60000),
        page_settle_s=_env_float("SCRAPER_PAGE_SETTLE_S", 3.0),
        consent_settle_s=_env_float("SCRAPER_CONSENT_SETTLE_S", 1.5),
        scroll_count=_env_int("SCRAPER_SCROLL_COUNT", 5),
        scroll_pause_s=_env_float("SCRAPER_SCROLL_PAUSE_S", 1.5),
        detail_settle_s=_env_float("SCRAPER_DETAIL_SETTLE_S", 2.5),
        candidate_delay_s=_env_range("SCRAPER_CANDIDATE_DELAY_S", (0.8, 1.5)),
        category_delay_s=_env_range("SCRAPER_CATEGORY_DELAY_S", (2.0, 4.0)),
        good_site_threshold=_env_int("GOOD_SITE_THRESHOLD", 25),
        analyzer_timeout_s=_env_float("ANALYZER_TIMEOUT_S", 10.0),
        analyzer_request_timeout_s=_env_float("ANALYZER_REQUEST_TIMEOUT_S", 8.0),
        default_max_results=_env_int("SCRAPE_DEFAULT_MAX_RESULTS", 10),
        run_timeout_s=_env_float("SCRAPE_RUN_TIMEOUT_S", 300.0),
    )
