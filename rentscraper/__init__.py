"""
Rental listings scraper package
"""
from .models import ListingRecord, PageResult, RenderedPage
from .core import run_scrape, scrape_and_save
from .database import (
    db_connect,
    db_init,
    open_database,
    db_save_records,
    db_purge_older_than,
    db_statistics,
    db_fetch_all,
    db_fetch_unnotified,
    db_mark_all_notified,
)
from .extractor import Extractor
from .guard import check, fetch_page
from .paginator import Paginator
from .renderer import BrowserSession
from .schemas import RunReport, RunResult, SaveResult, Statistics
from .utils import init_logger, now_iso

__version__ = "1.0.0"

__all__ = [
    "ListingRecord",
    "PageResult",
    "RenderedPage",
    "run_scrape",
    "scrape_and_save",
    "db_connect",
    "db_init",
    "open_database",
    "db_save_records",
    "db_purge_older_than",
    "db_statistics",
    "db_fetch_all",
    "db_fetch_unnotified",
    "db_mark_all_notified",
    "Extractor",
    "check",
    "fetch_page",
    "Paginator",
    "BrowserSession",
    "RunReport",
    "RunResult",
    "SaveResult",
    "Statistics",
    "init_logger",
    "now_iso",
]
