"""
Tests for SQLite storage: dedup saves, retention, statistics and notifier queries.
"""
from datetime import datetime, timedelta, timezone

import pytest

from rentscraper.database import (
    db_count,
    db_fetch_all,
    db_fetch_unnotified,
    db_mark_all_notified,
    db_purge_older_than,
    db_save_records,
    db_statistics,
    open_database,
    statistics_summary,
)
from rentscraper.errors import PersistenceError
from rentscraper.models import LOCATION_NOT_FOUND, PRICE_NOT_FOUND, ListingRecord
from rentscraper.utils import to_iso

NOW = datetime(2024, 5, 20, 12, 0, 0, tzinfo=timezone.utc)


def make_record(external_id, price="5,000 ₪", location="תל אביב", link=None, **kwargs):
    if link is None:
        link = f"https://www.yad2.co.il/realestate/item/{external_id}"
    return ListingRecord(
        external_id=external_id,
        title=f"Apartment {external_id}",
        price_text=price,
        location_text=location,
        image_url=f"https://img.yad2.co.il/Pic/{external_id}.jpg",
        detail_link=link,
        **kwargs,
    )


@pytest.fixture
def conn(tmp_path):
    with open_database(str(tmp_path / "db" / "rentals.db")) as c:
        yield c


def test_schema_created(conn):
    tables = [r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")]
    assert "rental_listings" in tables
    assert db_count(conn) == 0


def test_save_skips_unusable_records(conn):
    records = [
        make_record("ok1"),
        make_record("nolink", link="   "),
        make_record("noprice", price=PRICE_NOT_FOUND),
    ]
    result = db_save_records(conn, records, now=NOW)

    assert result.inserted == 1
    assert result.updated == 0
    assert result.skipped == 2
    assert result.skipped_no_link == 1
    assert result.skipped_no_price == 1
    assert db_count(conn) == 1


def test_save_updates_known_listing(conn):
    db_save_records(conn, [make_record("abc", price="5,000 ₪")], now=NOW)
    later = NOW + timedelta(hours=3)
    result = db_save_records(conn, [make_record("abc", price="4,800 ₪")], now=later)

    assert result.inserted == 0
    assert result.updated == 1
    assert db_count(conn) == 1

    stored = db_fetch_all(conn)[0]
    assert stored.price_text == "4,800 ₪"
    assert stored.first_seen_at == to_iso(NOW)
    assert stored.last_updated_at == to_iso(later)


def test_update_keeps_notified_flag(conn):
    db_save_records(conn, [make_record("abc")], now=NOW)
    db_mark_all_notified(conn, now=NOW)
    db_save_records(conn, [make_record("abc", price="4,500 ₪")], now=NOW + timedelta(days=1))
    assert db_fetch_all(conn)[0].message_sent is True
    assert db_fetch_unnotified(conn) == []


def test_failed_batch_rolls_back(conn):
    records = [make_record("good"), make_record("bad")]
    # image_url is NOT NULL in the schema
    records[1].image_url = None

    with pytest.raises(PersistenceError):
        db_save_records(conn, records, now=NOW)
    assert db_count(conn) == 0

    # Connection stays usable after the rollback
    result = db_save_records(conn, [make_record("good")], now=NOW)
    assert result.inserted == 1


def test_purge_older_than(conn):
    db_save_records(conn, [make_record("old")], now=NOW - timedelta(days=31))
    db_save_records(conn, [make_record("edge")], now=NOW - timedelta(days=30))
    db_save_records(conn, [make_record("fresh")], now=NOW - timedelta(days=1))

    deleted = db_purge_older_than(conn, 30, now=NOW)

    assert deleted == 1
    assert sorted(r.external_id for r in db_fetch_all(conn)) == ["edge", "fresh"]
    assert db_purge_older_than(conn, 30, now=NOW) == 0


def test_statistics(conn):
    db_save_records(conn, [
        make_record("a", price="5,000₪", location="תל אביב"),
        make_record("b", price="7,000₪", location="תל אביב"),
        make_record("c", price="Call for price", location="חיפה"),
        make_record("d", price="6,000₪", location=LOCATION_NOT_FOUND),
    ], now=NOW)
    db_save_records(conn, [make_record("e", price="6,000₪", location="חיפה")], now=NOW - timedelta(days=2))

    stats = db_statistics(conn, now=NOW)

    assert stats.total_listings == 5
    assert stats.today_listings == 4
    assert stats.avg_price == 6000
    assert [(l.location, l.count) for l in stats.top_locations] == [("חיפה", 2), ("תל אביב", 2)]


def test_statistics_top_n(conn):
    db_save_records(conn, [
        make_record(f"id{i}", location=loc)
        for i, loc in enumerate(["A", "A", "A", "B", "B", "C"])
    ], now=NOW)
    stats = db_statistics(conn, top_n=2, now=NOW)
    assert [(l.location, l.count) for l in stats.top_locations] == [("A", 3), ("B", 2)]

    summary = statistics_summary(stats, top=1)
    assert summary == {"total": 6, "today": 6, "avg_price": 5000, "top_locations": [("A", 3)]}


def test_statistics_empty_database(conn):
    stats = db_statistics(conn, now=NOW)
    assert stats.total_listings == 0
    assert stats.today_listings == 0
    assert stats.avg_price == 0
    assert stats.top_locations == []


def test_notifier_queries(conn):
    db_save_records(conn, [make_record("n1"), make_record("n2")], now=NOW)
    db_save_records(conn, [make_record("n3")], now=NOW + timedelta(minutes=5))

    pending = db_fetch_unnotified(conn)
    assert pending[0].external_id == "n3"
    assert sorted(r.external_id for r in pending) == ["n1", "n2", "n3"]

    assert db_mark_all_notified(conn, now=NOW + timedelta(hours=1)) == 3
    assert db_fetch_unnotified(conn) == []
    stored = db_fetch_all(conn)
    assert all(r.message_sent for r in stored)
    assert all(r.last_updated_at == to_iso(NOW + timedelta(hours=1)) for r in stored)
    assert db_mark_all_notified(conn) == 0


def test_timestamps_default_to_now(conn):
    before = to_iso(datetime.now(timezone.utc))
    conn.execute(
        "INSERT INTO rental_listings (external_id, image_url, detail_link) VALUES (?, ?, ?)",
        ("raw1", "", "https://www.yad2.co.il/realestate/item/raw1"),
    )
    conn.commit()

    stored = db_fetch_all(conn)[0]
    # Same ISO shape as the values the scraper writes, so string comparisons still order
    assert len(stored.first_seen_at) == len(before)
    assert stored.first_seen_at.endswith("+00:00")
    assert stored.first_seen_at[:10] in (before[:10], to_iso(datetime.now(timezone.utc))[:10])
    assert stored.last_updated_at == stored.first_seen_at


def test_direct_update_bumps_last_updated(conn):
    db_save_records(conn, [make_record("t1")], now=NOW)
    conn.execute("UPDATE rental_listings SET price_text = ? WHERE external_id = ?", ("4,900 ₪", "t1"))
    conn.commit()

    stored = db_fetch_all(conn)[0]
    assert stored.price_text == "4,900 ₪"
    assert stored.first_seen_at == to_iso(NOW)
    assert stored.last_updated_at > to_iso(NOW)


def test_statistics_ignores_prices_without_digits(conn):
    db_save_records(conn, [make_record("p1", price="5,000 ₪"), make_record("p2", price="מחיר לא צוין")], now=NOW)
    conn.execute(
        "INSERT INTO rental_listings (external_id, price_text, image_url, detail_link) VALUES (?, NULL, ?, ?)",
        ("p3", "", "https://www.yad2.co.il/realestate/item/p3"),
    )
    conn.commit()

    stats = db_statistics(conn, now=NOW)
    assert stats.total_listings == 3
    assert stats.avg_price == 5000
