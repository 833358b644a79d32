"""
Listing extraction from rendered results pages.

The results feed markup changes often and labels its pieces inconsistently,
so extraction walks ordered fallbacks at two levels: which (container, item)
selector pair finds the listings, and which selector or pattern finds each
field inside a listing. Site-specific selectors come first; generic ones
trade precision for still finding something after a redesign.
"""
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag

from .config import DEFAULT_BASE_URL
from .models import (
    AREA_NOT_FOUND,
    CONTACT_NOT_FOUND,
    DESCRIPTION_NOT_FOUND,
    FLOOR_NOT_FOUND,
    LOCATION_NOT_FOUND,
    PRICE_NOT_FOUND,
    ROOMS_NOT_FOUND,
    TITLE_NOT_FOUND,
    ListingRecord,
)
from .utils import absolute_url, clean_text, truncate

logger = logging.getLogger(__name__)


CONTAINER_SELECTORS = [
    '[data-testid="feed-list"]',
    ".feeditem",
    ".item-card",
    ".property-card",
    "article",
    ".listing",
    ".feed-item",
    '[class*="item"]',
    '[class*="card"]',
    ".item",
    ".result-item",
]

ITEM_SELECTORS = [
    'div[class*="item"]',
    'div[class*="card"]',
    "article",
    "li",
    'div[data-testid*="item"]',
    'div[data-testid*="card"]',
    'div[class*="property"]',
    'div[class*="listing"]',
]

PRICE_SELECTORS = [".feed-item-price_price__ygoeF", '[data-testid="price"]', ".price"]
LOCATION_SELECTORS = [".item-data-content_heading__tphH4", '[data-testid="location"]', ".location", ".address"]
CONTACT_SELECTORS = ['[data-testid="contact"]', ".contact", ".phone"]
INFO_LINE_SELECTOR = ".item-data-content_itemInfoLine__AeoPP"

ROOMS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*חדר")
FLOOR_RE = re.compile(r"קומה\s*\u200e?(\d+)\u200f?")
AREA_RE = re.compile(r"(\d+)\s*מ[\"'״]ר|(\d+)\s*מטר|(\d+)\s*sqm", re.I)
ITEM_ID_RE = re.compile(r"/realestate/item/([^?/#]+)")

TITLE_LIMIT = 100
DESCRIPTION_LIMIT = 200


@dataclass(frozen=True)
class ExtractionStrategy:
    """Where to look for listings: a container, then item elements inside it."""
    container_selector: str
    item_selector: str

    def __str__(self) -> str:
        return f"{self.container_selector} >> {self.item_selector}"


def build_strategies(
    containers: Sequence[str] = CONTAINER_SELECTORS,
    items: Sequence[str] = ITEM_SELECTORS,
) -> List[ExtractionStrategy]:
    """Every container tried with every item selector, most specific first."""
    return [ExtractionStrategy(c, i) for c in containers for i in items]


def first_text(element: Tag, selectors: Iterable[str]) -> str:
    """Text of the first selector that matches a non-empty element."""
    for sel in selectors:
        node = element.select_one(sel)
        if node is None:
            continue
        text = clean_text(node.get_text(" "))
        if text:
            return text
    return ""


def extract_rooms(text: str) -> str:
    m = ROOMS_RE.search(text)
    return f"{m.group(1)} rooms" if m else ""


def extract_area(text: str) -> str:
    m = AREA_RE.search(text)
    if not m:
        return ""
    value = next(g for g in m.groups() if g)
    return f'{value} מ"ר'


def extract_floor(element: Tag) -> str:
    """Floor lives in the second info line; the first one is the property type."""
    lines = element.select(INFO_LINE_SELECTOR)
    if len(lines) < 2:
        return ""
    m = FLOOR_RE.search(clean_text(lines[1].get_text(" ")))
    return f"קומה {m.group(1)}" if m else ""


def extract_image(element: Tag, base_url: str) -> str:
    img = element.find("img")
    if img is None:
        return ""
    src = img.get("src") or img.get("data-src") or ""
    return absolute_url(src, base_url)


def extract_link(element: Tag, base_url: str) -> str:
    anchor = element.select_one("a[href]")
    if anchor is None:
        return ""
    return absolute_url(anchor.get("href"), base_url)


def external_id_from_link(link: str) -> Optional[str]:
    m = ITEM_ID_RE.search(link or "")
    return m.group(1) if m else None


class Extractor:
    """Turns a results page snapshot into listing records. Never raises."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        strategies: Optional[List[ExtractionStrategy]] = None,
        min_text_length: int = 50,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url
        self.strategies = strategies if strategies is not None else build_strategies()
        self.min_text_length = min_text_length
        self._clock = clock

    def extract(self, html: Optional[str]) -> List[ListingRecord]:
        try:
            soup = BeautifulSoup(html or "", "html.parser")
        except Exception:
            logger.exception("Could not parse page snapshot")
            return []

        stamp = int(self._clock() * 1000)
        for strategy in self.strategies:
            container = soup.select_one(strategy.container_selector)
            if container is None:
                continue
            elements = container.select(strategy.item_selector)
            if not elements:
                continue
            records = self._extract_items(elements, stamp)
            if records:
                logger.info(f">>> Extracted {len(records)} listings with: {strategy}")
                return records

        logger.info(">>> No listings matched any extraction strategy")
        return []

    def _extract_items(self, elements: List[Tag], stamp: int) -> List[ListingRecord]:
        records: List[ListingRecord] = []
        seen_ids = set()
        for index, element in enumerate(elements):
            try:
                record = self.extract_item(element, index, stamp)
            except Exception as e:
                logger.warning(f"Error extracting listing {index}: {e}")
                continue
            if record is None or record.external_id in seen_ids:
                continue
            seen_ids.add(record.external_id)
            records.append(record)
            logger.debug(f"Found item: {record.external_id} | {record.price_text} | {record.location_text} | {record.detail_link}")
        return records

    def extract_item(self, element: Tag, index: int, stamp: int) -> Optional[ListingRecord]:
        """Build one record from an item element, or None if it fails the quality gate."""
        text = clean_text(element.get_text(" "))
        price = first_text(element, PRICE_SELECTORS)
        rooms = extract_rooms(text)
        area = extract_area(text)

        # Decorative nodes also match the generic selectors
        if not (len(text) > self.min_text_length or price or rooms or area):
            return None

        link = extract_link(element, self.base_url)
        external_id = external_id_from_link(link) or f"property-{stamp}-{index}"

        return ListingRecord(
            external_id=external_id,
            title=truncate(text, TITLE_LIMIT) or TITLE_NOT_FOUND,
            price_text=price or PRICE_NOT_FOUND,
            location_text=first_text(element, LOCATION_SELECTORS) or LOCATION_NOT_FOUND,
            rooms_text=rooms or ROOMS_NOT_FOUND,
            floor_text=extract_floor(element) or FLOOR_NOT_FOUND,
            description=truncate(text, DESCRIPTION_LIMIT) or DESCRIPTION_NOT_FOUND,
            area_text=area or AREA_NOT_FOUND,
            contact_info=first_text(element, CONTACT_SELECTORS) or CONTACT_NOT_FOUND,
            image_url=extract_image(element, self.base_url),
            detail_link=link,
        )
