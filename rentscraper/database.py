"""
SQLite storage for scraped listings: dedup upserts, retention and statistics.
"""
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional

import pandas as pd

from .errors import PersistenceError
from .models import CONTACT_NOT_FOUND, LOCATION_NOT_FOUND, SKIP_NO_LINK, ListingRecord
from .schemas import LocationCount, SaveResult, Statistics
from .utils import now_utc, price_digits, to_iso

logger = logging.getLogger(__name__)


# Schema definitions
# Same shape as utils.to_iso: UTC, microseconds, explicit offset
SQL_NOW_ISO = "strftime('%Y-%m-%dT%H:%M:%f000+00:00', 'now')"

DDL_LISTINGS = f"""
CREATE TABLE IF NOT EXISTS rental_listings (
  external_id TEXT PRIMARY KEY,
  title TEXT,
  price_text TEXT,
  location TEXT,
  rooms TEXT,
  floor TEXT,
  description TEXT,
  image_url TEXT NOT NULL,
  detail_link TEXT NOT NULL,
  message_sent INTEGER NOT NULL DEFAULT 0,
  first_seen_at TEXT NOT NULL DEFAULT ({SQL_NOW_ISO}),
  last_updated_at TEXT NOT NULL DEFAULT ({SQL_NOW_ISO})
);
"""

DDL_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_listings_location ON rental_listings(location);",
    "CREATE INDEX IF NOT EXISTS idx_listings_price ON rental_listings(price_text);",
    "CREATE INDEX IF NOT EXISTS idx_listings_rooms ON rental_listings(rooms);",
    "CREATE INDEX IF NOT EXISTS idx_listings_first_seen ON rental_listings(first_seen_at);",
    "CREATE INDEX IF NOT EXISTS idx_listings_link ON rental_listings(detail_link);",
    "CREATE INDEX IF NOT EXISTS idx_listings_message_sent ON rental_listings(message_sent);",
]

# Writers that leave last_updated_at untouched still get it bumped
DDL_TRIGGERS = [
    f"""
    CREATE TRIGGER IF NOT EXISTS trg_listings_touch
    AFTER UPDATE ON rental_listings
    FOR EACH ROW WHEN NEW.last_updated_at = OLD.last_updated_at
    BEGIN
      UPDATE rental_listings SET last_updated_at = {SQL_NOW_ISO}
      WHERE external_id = NEW.external_id;
    END;
    """,
]

SELECT_COLUMNS = """
  external_id, title, price_text, location, rooms, floor, description,
  image_url, detail_link, message_sent, first_seen_at, last_updated_at
"""


def db_connect(path: str) -> sqlite3.Connection:
    """Create database connection with optimized settings."""
    if path != ":memory:":
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def db_init(conn: sqlite3.Connection):
    """Initialize database schema with tables and indexes."""
    conn.execute(DDL_LISTINGS)
    for ddl in DDL_INDEXES + DDL_TRIGGERS:
        conn.execute(ddl)
    conn.commit()


@contextmanager
def open_database(path: str) -> Iterator[sqlite3.Connection]:
    """Connection with the schema in place, closed on exit."""
    conn = db_connect(path)
    try:
        db_init(conn)
        yield conn
    finally:
        conn.close()


def row_to_record(row: sqlite3.Row) -> ListingRecord:
    """Convert a stored row back to a ListingRecord."""
    return ListingRecord(
        external_id=row["external_id"],
        title=row["title"],
        price_text=row["price_text"],
        location_text=row["location"],
        rooms_text=row["rooms"],
        floor_text=row["floor"],
        description=row["description"],
        contact_info=CONTACT_NOT_FOUND,
        image_url=row["image_url"],
        detail_link=row["detail_link"],
        message_sent=bool(row["message_sent"]),
        first_seen_at=row["first_seen_at"],
        last_updated_at=row["last_updated_at"],
    )


def db_count(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM rental_listings").fetchone()[0]


def _exists(cur: sqlite3.Cursor, external_id: str) -> bool:
    cur.execute("SELECT 1 FROM rental_listings WHERE external_id = ?", (external_id,))
    return cur.fetchone() is not None


def _insert(cur: sqlite3.Cursor, rec: ListingRecord, ts: str):
    cur.execute("""
    INSERT INTO rental_listings (
      external_id, title, price_text, location, rooms, floor, description,
      image_url, detail_link, message_sent, first_seen_at, last_updated_at
    ) VALUES (?,?,?,?,?,?,?,?,?,0,?,?)
    """, (
        rec.external_id, rec.title, rec.price_text, rec.location_text, rec.rooms_text,
        rec.floor_text, rec.description, rec.image_url, rec.detail_link.strip(), ts, ts
    ))


def _update(cur: sqlite3.Cursor, rec: ListingRecord, ts: str):
    cur.execute("""
    UPDATE rental_listings SET
      title=?, price_text=?, location=?, rooms=?, floor=?, description=?,
      image_url=?, detail_link=?, last_updated_at=?
    WHERE external_id=?
    """, (
        rec.title, rec.price_text, rec.location_text, rec.rooms_text, rec.floor_text,
        rec.description, rec.image_url, rec.detail_link.strip(), ts, rec.external_id
    ))


def db_save_records(
    conn: sqlite3.Connection,
    records: List[ListingRecord],
    now: Optional[datetime] = None,
) -> SaveResult:
    """
    Insert new listings and update known ones, all in one transaction.

    Records without a detail link or without a price are counted as skipped
    and never reach the database. Whether a record is new is decided inside
    the same transaction as the write. Any failure rolls back the whole batch
    and is raised as PersistenceError.
    """
    result = SaveResult()
    valid: List[ListingRecord] = []
    for rec in records:
        reason = rec.skip_reason()
        if reason is None:
            valid.append(rec)
            continue
        result.skipped += 1
        if reason == SKIP_NO_LINK:
            result.skipped_no_link += 1
        else:
            result.skipped_no_price += 1
        logger.debug(f"Skipping listing {rec.external_id} ({reason})")

    logger.info(f">>> Saving {len(valid)} listings to database ({result.skipped} skipped)")
    ts = to_iso(now or now_utc())

    cur = conn.cursor()
    try:
        cur.execute("BEGIN IMMEDIATE")
        for rec in valid:
            if _exists(cur, rec.external_id):
                _update(cur, rec, ts)
                result.updated += 1
            else:
                _insert(cur, rec, ts)
                result.inserted += 1
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        logger.error(f"Failed to save listings, batch rolled back: {e}")
        raise PersistenceError(f"save batch of {len(valid)} listings rolled back: {e}") from e

    logger.info(
        f">>> Database save completed: {result.inserted} new, "
        f"{result.updated} updated, {result.skipped} skipped"
    )
    return result


def db_purge_older_than(conn: sqlite3.Connection, days: int, now: Optional[datetime] = None) -> int:
    """Delete listings first seen more than `days` days ago. Returns rows removed."""
    cutoff = to_iso((now or now_utc()) - timedelta(days=days))
    cur = conn.execute("DELETE FROM rental_listings WHERE first_seen_at < ?", (cutoff,))
    conn.commit()
    deleted = cur.rowcount
    if deleted > 0:
        logger.info(f">>> Deleted {deleted} old listings (older than {days} days)")
    return deleted


def db_statistics(conn: sqlite3.Connection, top_n: int = 10, now: Optional[datetime] = None) -> Statistics:
    """Total, first seen today, mean numeric price and most frequent locations."""
    today = to_iso(now or now_utc())[:10]
    total = db_count(conn)
    today_count = conn.execute(
        "SELECT COUNT(*) FROM rental_listings WHERE substr(first_seen_at, 1, 10) = ?", (today,)
    ).fetchone()[0]

    df = pd.read_sql_query("SELECT price_text, location FROM rental_listings", conn)

    prices = df["price_text"].fillna("").astype(str).map(price_digits).dropna()
    avg_price = int(round(prices.astype(float).mean())) if not prices.empty else 0

    locations = df["location"].fillna("").astype(str).str.strip()
    locations = locations[(locations != "") & (locations != LOCATION_NOT_FOUND)]
    counts = (
        locations.value_counts()
        .rename_axis("location")
        .reset_index(name="count")
        .sort_values(["count", "location"], ascending=[False, True])
        .head(top_n)
    )
    top_locations = [
        LocationCount(location=loc, count=int(n))
        for loc, n in zip(counts["location"], counts["count"])
    ]

    return Statistics(
        total_listings=total,
        today_listings=today_count,
        avg_price=avg_price,
        top_locations=top_locations,
    )


def db_fetch_all(conn: sqlite3.Connection) -> List[ListingRecord]:
    """All stored listings, newest first."""
    cur = conn.execute(f"SELECT {SELECT_COLUMNS} FROM rental_listings ORDER BY first_seen_at DESC")
    return [row_to_record(r) for r in cur.fetchall()]


def db_fetch_unnotified(conn: sqlite3.Connection) -> List[ListingRecord]:
    """Listings the notifier has not sent yet, newest first."""
    cur = conn.execute(
        f"SELECT {SELECT_COLUMNS} FROM rental_listings WHERE message_sent = 0 ORDER BY first_seen_at DESC"
    )
    return [row_to_record(r) for r in cur.fetchall()]


def db_mark_all_notified(conn: sqlite3.Connection, now: Optional[datetime] = None) -> int:
    """Flag every pending listing as sent. Returns rows changed."""
    cur = conn.execute(
        "UPDATE rental_listings SET message_sent = 1, last_updated_at = ? WHERE message_sent = 0",
        (to_iso(now or now_utc()),),
    )
    conn.commit()
    logger.info(f">>> Marked {cur.rowcount} listings as notified")
    return cur.rowcount


def statistics_summary(stats: Statistics, top: int = 5) -> Dict[str, object]:
    """Flat dict for logging and JSON output."""
    return {
        "total": stats.total_listings,
        "today": stats.today_listings,
        "avg_price": stats.avg_price,
        "top_locations": [(loc.location, loc.count) for loc in stats.top_locations[:top]],
    }
