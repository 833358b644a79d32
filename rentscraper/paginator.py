"""
Multi-page orchestration: render, guard, extract, decide whether to go on.
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from bs4 import BeautifulSoup

from .config import ScraperSettings
from .errors import RenderError
from .extractor import Extractor
from .guard import FetchState, PageRenderer, fetch_page
from .models import ListingRecord, PageResult
from .utils import Sleeper, clean_text, page_number_from_url, random_delay, with_page_param

logger = logging.getLogger(__name__)


PAGE_OF_TOTAL_RE = re.compile(r"עמוד\s*(\d+)\s*מתוך\s*(\d+)")
RESULT_CONTAINER_SELECTOR = '[class*="item"], [class*="card"], article'


class StopReason(str, Enum):
    EMPTY = "empty"
    LAST_PAGE = "last_page"
    PAGE_CAP = "page_cap"
    NETWORK_ERROR = "network_error"
    BLOCKED = "blocked"


def has_next_page(html: str, url: str) -> bool:
    """
    Decide from a rendered page whether another results page follows.

    Checked in order:
    1. "עמוד X מתוך Y" text, authoritative when present.
    2. A link to the next page number.
    3. Fallback: on page 1 with at least one result container.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    current = page_number_from_url(url)

    m = PAGE_OF_TOTAL_RE.search(clean_text(soup.get_text(" ")))
    if m:
        page_no, total = int(m.group(1)), int(m.group(2))
        logger.debug(f"Pagination text: page {page_no} of {total}")
        return page_no < total

    next_link = soup.select_one(f'a[href*="page={current + 1}"]')
    if next_link is not None:
        logger.debug(f"Found next page link: {next_link.get('href')}")
        return True

    has_results = soup.select_one(RESULT_CONTAINER_SELECTOR) is not None
    return current == 1 and has_results


@dataclass
class PaginationResult:
    records: List[ListingRecord] = field(default_factory=list)
    pages: List[PageResult] = field(default_factory=list)
    stop_reason: Optional[StopReason] = None
    error_reason: Optional[str] = None

    @property
    def pages_scraped(self) -> int:
        return sum(1 for p in self.pages if p.ok and p.records)

    @property
    def success(self) -> bool:
        """Partial results count as success, except when the site blocked us."""
        if self.stop_reason is StopReason.BLOCKED:
            return False
        if self.stop_reason is StopReason.NETWORK_ERROR and not self.records:
            return False
        return True


class Paginator:
    """Walks results pages one at a time until a stop condition fires."""

    def __init__(
        self,
        renderer: PageRenderer,
        extractor: Extractor,
        settings: ScraperSettings,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.renderer = renderer
        self.extractor = extractor
        self.settings = settings
        self._sleep = sleep
        self.result = PaginationResult()

    @property
    def accumulated(self) -> List[ListingRecord]:
        return self.result.records

    async def run(self, start_url: str) -> PaginationResult:
        result = self.result = PaginationResult()
        page_index = 1
        logger.info(">>> Starting multi-page scraping...")

        while True:
            if page_index > self.settings.max_pages:
                result.stop_reason = StopReason.PAGE_CAP
                logger.info(f">>> Page cap reached ({self.settings.max_pages})")
                break

            page_url = with_page_param(start_url, page_index)
            logger.info(f">>> Scraping page {page_index}...")
            page = await self.scrape_page(page_url, page_index)
            result.pages.append(page)

            if not page.ok:
                result.error_reason = page.error_reason
                break

            if not page.records:
                result.stop_reason = StopReason.EMPTY
                logger.info(f">>> No listings on page {page_index}, stopping pagination")
                break

            result.records.extend(page.records)
            logger.info(f">>> Page {page_index}: {len(page.records)} listings (total: {len(result.records)})")

            # Pagination controls on the first page are unreliable, always try page 2.
            # On the last allowed page the cap stops the run whatever a probe says.
            probe = 1 < page_index < self.settings.max_pages
            if probe and not await self.probe_next_page(page_url, page_index):
                result.stop_reason = StopReason.LAST_PAGE
                logger.info(f">>> Reached last page ({page_index})")
                break

            page_index += 1
            if page_index <= self.settings.max_pages:
                await random_delay(self.settings.timings.between_pages, self._sleep)

        logger.info(f">>> Pagination finished: {len(result.records)} listings, stop={result.stop_reason}")
        return result

    async def scrape_page(self, url: str, page_index: int) -> PageResult:
        outcome = await fetch_page(self.renderer, url, page_index)
        if outcome.state is FetchState.BLOCKED:
            self.result.stop_reason = StopReason.BLOCKED
            return PageResult(page_index, url, ok=False, error_reason=outcome.error_reason)
        if not outcome.ok:
            self.result.stop_reason = StopReason.NETWORK_ERROR
            return PageResult(page_index, url, ok=False, error_reason=outcome.error_reason)
        records = self.extractor.extract(outcome.page.html)
        return PageResult(page_index, url, records=records)

    async def probe_next_page(self, url: str, page_index: int) -> bool:
        try:
            rendered = await self.renderer.probe(url, page_index)
        except RenderError as e:
            logger.warning(f"Error checking for next page: {e}")
            return page_number_from_url(url) == 1
        return has_next_page(rendered.html, rendered.url)
