"""
Command-line entry point: scrape, store, report.
"""
import argparse
import asyncio
import json
import sys

from .config import Config, ScraperSettings, config
from .core import scrape_and_save
from .database import db_purge_older_than, db_statistics, open_database, statistics_summary
from .errors import PersistenceError
from .utils import init_logger, now_iso


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Rental listings scraper with SQLite dedup storage")
    ap.add_argument("--url", type=str, default=Config.DEFAULT_URL, help="Search results URL to scrape")
    ap.add_argument("--db", type=str, default=Config.DB_PATH, help="Path to SQLite DB")
    ap.add_argument("--max-pages", type=int, default=None, help="Maximum results pages to visit (default from env MAX_PAGES or 5)")
    ap.add_argument("--headless", action="store_true", help="Run without UI")
    ap.add_argument("--headed", action="store_true", help="Show the browser window")
    ap.add_argument("--clean-old-days", type=int, default=Config.RETENTION_DAYS,
                    help="Delete listings first seen more than N days ago before scraping")
    ap.add_argument("--no-clean", action="store_true", help="Skip the retention cleanup")
    ap.add_argument("--stats", action="store_true", help="Print database statistics and exit")
    ap.add_argument("--purge-days", type=int, default=None, help="Only delete listings older than N days, then exit")
    ap.add_argument("--json", action="store_true", help="Print the run report as JSON")
    # Logging
    lvl_choices = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    ap.add_argument("--log-level", choices=lvl_choices, default=None,
                    help="Global log level for both console and file (overrides --log-console/--log-file).")
    ap.add_argument("--log-console", choices=lvl_choices, default=Config.LOG_CONSOLE,
                    help="Console log level (default from env LOG_CONSOLE or INFO).")
    ap.add_argument("--log-file", choices=lvl_choices, default=Config.LOG_FILE,
                    help="File log level (default from env LOG_FILE or DEBUG).")
    ap.add_argument("--log-file-path", default=Config.LOG_FILE_PATH,
                    help="Path to log file (default from env LOG_FILE_PATH or rentscraper.log).")
    ap.add_argument("--no-file-log", action="store_true",
                    help="Disable file logging (only console output).")
    return ap.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    eff_console = args.log_level or args.log_console
    eff_file = args.log_level or args.log_file
    logger = init_logger(
        console_level=eff_console,
        file_level=eff_file,
        log_file=None if args.no_file_log else args.log_file_path
    )
    logger.info(
        f"Logger initialized: console={eff_console}, "
        f"file={'DISABLED' if args.no_file_log else eff_file}, "
        f"path={'N/A' if args.no_file_log else args.log_file_path}"
    )
    config.validate()

    if args.stats or args.purge_days is not None:
        with open_database(args.db) as conn:
            if args.purge_days is not None:
                deleted = db_purge_older_than(conn, args.purge_days)
                print(json.dumps({"deleted": deleted}))
            else:
                stats = db_statistics(conn, top_n=Config.TOP_LOCATIONS)
                print(json.dumps(statistics_summary(stats, top=Config.TOP_LOCATIONS), ensure_ascii=False, indent=2))
        return 0

    headless = None
    if args.headless:
        headless = True
    elif args.headed:
        headless = False
    settings = ScraperSettings.from_env(max_pages=args.max_pages, headless=headless)

    logger.info(f">>> Run started at {now_iso()}")
    logger.info(f">>> Target URL: {args.url}")
    try:
        report = asyncio.run(scrape_and_save(
            args.url,
            args.db,
            clean_old_days=None if args.no_clean else args.clean_old_days,
            settings=settings,
        ))
    except PersistenceError:
        logger.exception("Saving listings failed")
        return 2

    if args.json:
        print(report.model_dump_json(indent=2))

    if not report.run.success:
        logger.error(f">>> Scraping failed: {report.run.error_reason}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
