"""
Data models for the rental listings scraper.
"""
from dataclasses import dataclass, field
from typing import List, Optional


# Sentinels for fields that were looked for but not found on the page
TITLE_NOT_FOUND = "Title not found"
PRICE_NOT_FOUND = "Price not found"
LOCATION_NOT_FOUND = "Location not specified"
ROOMS_NOT_FOUND = "Rooms not specified"
AREA_NOT_FOUND = "Area not specified"
FLOOR_NOT_FOUND = "Floor not specified"
DESCRIPTION_NOT_FOUND = "Description not found"
CONTACT_NOT_FOUND = "Contact info not available"

SKIP_NO_LINK = "no_link"
SKIP_NO_PRICE = "no_price"


@dataclass
class ListingRecord:
    """A single rental listing observed on a results page."""

    # Dedup key, parsed from the detail link when possible
    external_id: str

    # Free text, each defaulted independently
    title: str = TITLE_NOT_FOUND
    price_text: str = PRICE_NOT_FOUND
    location_text: str = LOCATION_NOT_FOUND
    rooms_text: str = ROOMS_NOT_FOUND
    floor_text: str = FLOOR_NOT_FOUND
    description: str = DESCRIPTION_NOT_FOUND
    area_text: str = AREA_NOT_FOUND
    contact_info: str = CONTACT_NOT_FOUND

    # Absolute URLs
    image_url: str = ""
    detail_link: str = ""

    # Owned by storage
    message_sent: bool = False
    first_seen_at: Optional[str] = None
    last_updated_at: Optional[str] = None

    def skip_reason(self) -> Optional[str]:
        """Return why this record cannot be stored, or None if it can."""
        if not (self.detail_link or "").strip():
            return SKIP_NO_LINK
        if self.price_text == PRICE_NOT_FOUND:
            return SKIP_NO_PRICE
        return None

    @property
    def is_persistable(self) -> bool:
        return self.skip_reason() is None


@dataclass
class RenderedPage:
    """Snapshot of one rendered browser tab."""
    url: str
    page_index: int
    title: str
    html: str


@dataclass
class PageResult:
    """Outcome of scraping a single results page."""
    page_index: int
    url: str
    records: List[ListingRecord] = field(default_factory=list)
    ok: bool = True
    error_reason: Optional[str] = None
