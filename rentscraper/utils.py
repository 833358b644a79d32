"""
Utility functions for text processing, URLs, timing and logging.
"""
import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from urllib.parse import parse_qs, urlencode, urljoin, urlparse, urlunparse

from .config import DelayRange

Sleeper = Callable[[float], Awaitable[None]]


def init_logger(
    name: str = "rentscraper",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    log_file: Optional[str] = "rentscraper.log"
) -> logging.Logger:
    """Initialize logger with console and optional file handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    console_level_num = getattr(logging, console_level.upper(), logging.INFO)
    ch = logging.StreamHandler()
    ch.setLevel(console_level_num)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    if log_file:  # Create file handler only if log_file is provided
        file_level_num = getattr(logging, file_level.upper(), logging.DEBUG)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level_num)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger


def to_iso(dt: datetime) -> str:
    """Format a datetime as a sortable UTC ISO string."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return to_iso(now_utc())


def clean_text(s: Optional[str]) -> str:
    """Clean and normalize text by removing extra whitespace."""
    if not s:
        return ""
    s = re.sub(r"\s+", " ", s)
    return s.strip()


def truncate(text: str, limit: int) -> str:
    """Cut text to `limit` characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def absolute_url(href: Optional[str], base_url: str) -> str:
    """Resolve a possibly relative href against the site origin."""
    href = (href or "").strip()
    if not href:
        return ""
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(base_url.rstrip("/") + "/", href)


def with_page_param(url: str, page: int) -> str:
    """Return `url` with its `page` query parameter set to `page`."""
    parts = urlparse(url)
    if not parts.scheme:
        sep = "&" if "?" in url else "?"
        return f"{url}{sep}page={page}"
    query = parse_qs(parts.query, keep_blank_values=True)
    query["page"] = [str(page)]
    return urlunparse(parts._replace(query=urlencode(query, doseq=True)))


def page_number_from_url(url: str, default: int = 1) -> int:
    """Read the `page` query parameter, falling back to `default`."""
    m = re.search(r"[?&]page=(\d+)", url or "")
    if m:
        return int(m.group(1))
    return default


def price_digits(price_text: Optional[str]) -> Optional[int]:
    """
    Numeric value of a price string, keeping digits only.

    "5,000 ₪" -> 5000. Returns None when the text holds no digit.
    """
    if not price_text:
        return None
    digits = re.sub(r"\D", "", price_text)
    if not digits:
        return None
    return int(digits)


async def random_delay(delay: DelayRange, sleep: Sleeper = asyncio.sleep) -> float:
    """Sleep for a random duration drawn from `delay`; returns the seconds slept."""
    seconds = delay.pick()
    await sleep(seconds)
    return seconds
