from datetime import datetime, timedelta, timezone

import pytest

from receipt_filter import filter_receipts, is_empty
from schemas import Receipt, ReceiptFilter


@pytest.fixture
def receipts():
    return [
        Receipt(id="r1", amount=200, status="Completed", type="General",
                razorpay_order_id="order_AAA", created_at=datetime(2024, 5, 1, 10, 0)),
        Receipt(id="r2", amount=600, status="Pending", type="Building",
                razorpay_order_id="order_BBB", created_at=datetime(2024, 5, 2, 10, 0)),
        Receipt(id="r3", amount=100, status="Completed", type="Campaign",
                created_at=datetime(2024, 5, 2, 18, 0)),
        Receipt(id="r4", amount=500, status="Pending", type="General Fund",
                created_at=datetime(2024, 5, 3, 9, 0)),
        Receipt(id="r5", amount=None, status="Completed", type="Box"),
    ]


def ids(result):
    return [r.id for r in result]


def test_empty_filter_is_identity(receipts):
    assert filter_receipts(receipts) == receipts
    assert filter_receipts(receipts, "all", "", ReceiptFilter()) == receipts
    assert filter_receipts(receipts, "all", "   ", ReceiptFilter(min_amount="", max_amount="")) == receipts


def test_completed_tab_keeps_only_completed(receipts):
    result = filter_receipts(receipts, active_tab="completed")
    assert ids(result) == ["r1", "r3", "r5"]
    assert all(r.status == "Completed" for r in result)


def test_pending_tab_keeps_only_pending(receipts):
    result = filter_receipts(receipts, active_tab="pending")
    assert ids(result) == ["r2", "r4"]


def test_unknown_tab_is_rejected(receipts):
    with pytest.raises(ValueError):
        filter_receipts(receipts, active_tab="refunded")


def test_amount_bounds_are_inclusive(receipts):
    result = filter_receipts(receipts, criteria=ReceiptFilter(min_amount=100, max_amount=500))
    assert ids(result) == ["r1", "r3", "r4"]
    assert all(100 <= r.amount <= 500 for r in result)


def test_receipt_without_amount_is_excluded_once_a_bound_is_set(receipts):
    assert "r5" not in ids(filter_receipts(receipts, criteria=ReceiptFilter(max_amount=1000)))


def test_non_numeric_bound_is_ignored(receipts):
    assert filter_receipts(receipts, criteria=ReceiptFilter(min_amount="abc")) == receipts


def test_search_is_case_insensitive(receipts):
    assert ids(filter_receipts(receipts, search_query="GEN")) == ["r1", "r4"]


def test_search_matches_receipt_id_and_order_id(receipts):
    assert ids(filter_receipts(receipts, search_query="r3")) == ["r3"]
    assert ids(filter_receipts(receipts, search_query="order_bbb")) == ["r2"]


def test_type_criteria_is_substring_match(receipts):
    assert ids(filter_receipts(receipts, criteria=ReceiptFilter(type="general"))) == ["r1", "r4"]


def test_status_criteria_matches_whole_value_ignoring_case(receipts):
    assert ids(filter_receipts(receipts, criteria=ReceiptFilter(status="pending"))) == ["r2", "r4"]
    assert filter_receipts(receipts, criteria=ReceiptFilter(status="Pend")) == []


def test_date_criteria_compares_utc_day(receipts):
    assert ids(filter_receipts(receipts, criteria=ReceiptFilter(date="2024-05-02"))) == ["r2", "r3"]

    late_evening = datetime(2024, 5, 1, 23, 30, tzinfo=timezone(timedelta(hours=-2)))
    shifted = [Receipt(id="tz", amount=10, status="Completed", created_at=late_evening)]
    assert ids(filter_receipts(shifted, criteria=ReceiptFilter(date="2024-05-02"))) == ["tz"]


def test_filters_combine(receipts):
    criteria = ReceiptFilter(min_amount=150)
    result = filter_receipts(receipts, active_tab="pending", search_query="gen", criteria=criteria)
    assert ids(result) == ["r4"]


def test_filter_is_idempotent(receipts):
    criteria = ReceiptFilter(type="g", min_amount="150")
    once = filter_receipts(receipts, "all", "o", criteria)
    assert filter_receipts(once, "all", "o", criteria) == once


def test_completed_status_and_min_amount_scenario():
    receipts = [
        Receipt(amount=200, status="Completed", type="General"),
        Receipt(amount=600, status="Pending", type="Building"),
    ]
    assert filter_receipts(receipts, criteria=ReceiptFilter(status="Completed")) == [receipts[0]]
    assert filter_receipts(receipts, criteria=ReceiptFilter(min_amount=300)) == [receipts[1]]


def test_is_empty():
    assert is_empty(None)
    assert is_empty(ReceiptFilter())
    assert is_empty(ReceiptFilter(min_amount="  ", date=""))
    assert not is_empty(ReceiptFilter(status="Completed"))
    assert not is_empty(ReceiptFilter(max_amount=0))
