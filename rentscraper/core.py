"""
Core scraping orchestration and browser lifecycle.
"""
import logging
from typing import Callable, Optional

from .config import Config, ScraperSettings
from .database import (
    db_count,
    db_purge_older_than,
    db_save_records,
    db_statistics,
    open_database,
    statistics_summary,
)
from .extractor import Extractor
from .paginator import Paginator
from .renderer import BrowserSession
from .schemas import RunReport, RunResult

logger = logging.getLogger(__name__)

SessionFactory = Callable[[ScraperSettings], BrowserSession]


async def run_scrape(
    url: str,
    settings: Optional[ScraperSettings] = None,
    session_factory: SessionFactory = BrowserSession,
) -> RunResult:
    """
    Scrape every results page reachable from `url`.

    The browser lives exactly as long as this call. Scraping failures never
    escape: they come back as success=False with an error reason and the
    listings gathered before the failure.
    """
    settings = settings or ScraperSettings.from_env()
    extractor = Extractor(base_url=settings.base_url, min_text_length=settings.min_text_length)

    async with session_factory(settings) as session:
        paginator = Paginator(session, extractor, settings)
        try:
            outcome = await paginator.run(url)
        except Exception as e:
            logger.exception(f"Multi-page scraping failed: {e}")
            records = list(paginator.accumulated)
            return RunResult(
                success=False,
                records=records,
                error_reason=str(e) or type(e).__name__,
                total_count=len(records),
                pages_scraped=paginator.result.pages_scraped,
            )

    return RunResult(
        success=outcome.success,
        records=outcome.records,
        error_reason=outcome.error_reason,
        total_count=len(outcome.records),
        pages_scraped=outcome.pages_scraped,
        stop_reason=outcome.stop_reason.value if outcome.stop_reason else None,
    )


async def scrape_and_save(
    url: str,
    db_path: str,
    clean_old_days: Optional[int] = None,
    settings: Optional[ScraperSettings] = None,
    session_factory: SessionFactory = BrowserSession,
    top_locations: int = Config.TOP_LOCATIONS,
) -> RunReport:
    """
    Scrape `url` and store the results with dedup against earlier runs.

    Partial results from a failed run are stored too. Storage errors are
    raised after the batch is rolled back.
    """
    with open_database(db_path) as conn:
        purged = 0
        if clean_old_days:
            purged = db_purge_older_than(conn, clean_old_days)

        initial_count = db_count(conn)
        logger.info(f">>> Initial database count: {initial_count} listings")

        run = await run_scrape(url, settings=settings, session_factory=session_factory)
        if run.success:
            logger.info(f">>> Scraping completed: {run.total_count} listings")
        else:
            logger.warning(f">>> Scraping failed ({run.error_reason}); {run.total_count} listings gathered before failure")

        report = RunReport(run=run, initial_count=initial_count, purged=purged)
        if not run.records:
            return report

        report.saved = db_save_records(conn, run.records)
        report.statistics = db_statistics(conn, top_n=top_locations)

    summary = statistics_summary(report.statistics)
    logger.info(f">>> Total listings: {summary['total']}, today: {summary['today']}, average price: ₪{summary['avg_price']}")
    for i, (location, count) in enumerate(summary["top_locations"], 1):
        logger.info(f"     {i}. {location}: {count} listings")
    return report
