from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from app.services.feeds import (
    DataUnavailableError,
    fetch_demand_feed,
    fetch_sequence_feed,
    normalize_tool_code,
    parse_number,
)
from tests.test_utils import add_demand_order, add_sequence


@pytest.mark.parametrize(
    "raw, expected",
    [
        (1200, 1200.0),
        (12.5, 12.5),
        ("1500", 1500.0),
        ("1.234,56", 1234.56),
        ("12.500,5", 12500.5),
        ("1,234.56", 1234.56),
        ("12,5", 12.5),
        (" 2 500 ", 2500.0),
        ("-40", -40.0),
    ],
)
def test_parse_number_accepts_feed_notations(raw, expected):
    assert parse_number(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", [None, "", "  ", "n/a", True, float("nan"), "inf"])
def test_parse_number_rejects_non_numbers(raw):
    assert parse_number(raw) is None


def test_normalize_tool_code():
    assert normalize_tool_code("  tr-0100 ") == "TR-0100"
    assert normalize_tool_code(None) == ""


def test_fetch_sequence_feed_filters_and_orders(db_session):
    add_sequence(db_session, "TR-0200", "1", 1000)
    add_sequence(db_session, "TR-0100", "2", 2000, active=False)
    add_sequence(db_session, "TR-0100", "1", None, total_capacity_kg=None)

    rows = fetch_sequence_feed(db_session)
    assert [(r.tool_code, r.seq) for r in rows] == [
        ("TR-0100", "1"),
        ("TR-0100", "2"),
        ("TR-0200", "1"),
    ]
    assert rows[0].produced_kg is None
    assert rows[1].active is False

    filtered = fetch_sequence_feed(db_session, tool_filter="tr-02")
    assert [r.tool_code for r in filtered] == ["TR-0200"]


def test_fetch_demand_feed_applies_date_range_and_filters(db_session):
    add_demand_order(db_session, "TR-0100", 100, date(2024, 12, 31))
    add_demand_order(db_session, "TR-0100", 200, date(2025, 1, 1), client="Acme Metals")
    add_demand_order(db_session, "TR-0200", 300, date(2025, 3, 31))
    add_demand_order(db_session, "TR-0100", 400, date(2025, 4, 1))

    rows = fetch_demand_feed(db_session, date(2025, 1, 1), date(2025, 3, 31))
    assert [r.volume_kg for r in rows] == [200, 300]

    by_client = fetch_demand_feed(db_session, date(2024, 1, 1), date(2025, 12, 31), client_filter="acme")
    assert [r.volume_kg for r in by_client] == [200]

    by_tool = fetch_demand_feed(db_session, date(2024, 1, 1), date(2025, 12, 31), tool_filter="TR-01")
    assert [r.volume_kg for r in by_tool] == [100, 200, 400]


class _BrokenQuery:
    def filter(self, *args, **kwargs):
        return self

    def order_by(self, *args):
        return self

    def all(self):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))


class _BrokenSession:
    def __init__(self):
        self.rolled_back = False

    def query(self, *args):
        return _BrokenQuery()

    def rollback(self):
        self.rolled_back = True


def test_store_failure_raises_data_unavailable():
    session = _BrokenSession()

    with pytest.raises(DataUnavailableError) as exc_info:
        fetch_sequence_feed(session)
    assert exc_info.value.feed == "sequences"
    assert session.rolled_back is True

    with pytest.raises(DataUnavailableError) as exc_info:
        fetch_demand_feed(session, date(2025, 1, 1), date(2025, 6, 30))
    assert exc_info.value.feed == "demand"
