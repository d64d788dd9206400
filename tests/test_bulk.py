"""
Tests for CSV bulk import: row parsing, per-row results and import permissions.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from backend_listguard.core.exceptions import PolicyDenied
from backend_listguard.intake.bulk import BulkImporter, parse_csv_rows
from conftest import NOW

CSV_TEXT = (
    "name,price,unit,category,description,image\n"
    "Unga Pembe,120,kg,,,\n"
    "X,50,kg,,,\n"
    "Mchele,abc,kg,,,\n"
    "\n"
    "Sukari,150,KILO,,Sukari nyeupe,https://img.example.com/sukari.jpg\n"
)


@pytest.fixture
def importer(db, accounts, pipeline, policies, clock):
    pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="test-bulk")
    yield BulkImporter(db, pipeline, policies, executor=pool, clock=clock)
    pool.shutdown(wait=True)


def test_parse_csv_rows_skips_header_and_blank_lines():
    rows = parse_csv_rows(CSV_TEXT)
    assert [row_no for row_no, _ in rows] == [2, 3, 4, 6]
    assert rows[3][1] == {
        "name": "Sukari",
        "price": "150",
        "unit": "KILO",
        "category": "",
        "description": "Sukari nyeupe",
        "image": "https://img.example.com/sukari.jpg",
    }


def test_parse_csv_rows_without_header_pads_short_rows():
    rows = parse_csv_rows("Nyanya,80\n")
    assert rows == [(1, {"name": "Nyanya", "price": "80", "unit": "", "category": "", "description": "", "image": ""})]


def test_import_reports_each_row(db, importer):
    report = importer.import_csv("agg-1", CSV_TEXT, now_ts=NOW)
    assert report.success == 2
    assert report.failed == 2
    assert report.errors == [
        "Row 3: Product name must be at least 2 characters",
        "Row 4: Price must be a number, got 'abc'",
    ]
    ok = [r for r in report.rows if r.ok]
    assert [r.row for r in ok] == [2, 6]
    listing = db.get_listing(ok[1].listing_id)
    assert listing.channel == "batch"
    assert listing.unit == "kg"
    assert [img.url for img in listing.images] == ["https://img.example.com/sukari.jpg"]


def test_supplier_without_bulk_permission(importer):
    with pytest.raises(PolicyDenied, match="Bulk upload permissions denied"):
        importer.import_csv("sup-1", CSV_TEXT, now_ts=NOW)


def test_denied_account(importer):
    with pytest.raises(PolicyDenied, match="does not have product upload permissions"):
        importer.import_csv("mod-1", CSV_TEXT, now_ts=NOW)


def test_daily_bulk_import_limit(db, accounts, pipeline, policies, clock):
    pool = ThreadPoolExecutor(max_workers=2)
    try:
        importer = BulkImporter(db, pipeline, policies, max_imports_per_day=1, executor=pool, clock=clock)
        importer.import_csv("agg-1", "Unga Pembe,120,kg\n", now_ts=NOW)
        with pytest.raises(PolicyDenied, match=r"Daily bulk import limit reached \(1\)"):
            importer.import_csv("agg-1", "Sukari,150,kg\n", now_ts=NOW)
    finally:
        pool.shutdown(wait=True)


def test_non_finite_prices_fail_before_admission(db, importer):
    report = importer.import_csv("agg-1", "Unga Pembe,nan,kg\nSukari,inf,kg\n", now_ts=NOW)
    assert report.success == 0
    assert report.errors == [
        "Row 1: Price must be a number, got 'nan'",
        "Row 2: Price must be a number, got 'inf'",
    ]
    assert db.get_counter("agg-1", "listing", "2025-06-15") == 0
