"""
Pydantic models for pipeline and storage results handed to callers.
"""
from typing import List, Optional

from pydantic import BaseModel

from .models import ListingRecord


class SaveResult(BaseModel):
    """Counts from one save batch."""
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    skipped_no_link: int = 0
    skipped_no_price: int = 0


class LocationCount(BaseModel):
    location: str
    count: int


class Statistics(BaseModel):
    """Aggregate statistics over stored listings."""
    total_listings: int
    today_listings: int
    avg_price: int
    top_locations: List[LocationCount]


class RunResult(BaseModel):
    """Outcome of one scrape run, partial records included."""
    success: bool
    records: List[ListingRecord]
    error_reason: Optional[str] = None
    total_count: int
    pages_scraped: int = 0
    stop_reason: Optional[str] = None


class RunReport(BaseModel):
    """Scrape run plus what happened in storage."""
    run: RunResult
    initial_count: int = 0
    purged: int = 0
    saved: Optional[SaveResult] = None
    statistics: Optional[Statistics] = None
