"""
Receipt filtering for the donor receipt list and the admin dashboards.

Filters apply to one already-fetched page of receipts; nothing here performs
I/O. The output keeps the input's relative order, so applying the same
criteria to a filtered list returns it unchanged.
"""
import math
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Union

from schemas import Receipt, ReceiptFilter

TAB_STATUSES = {
    "all": None,
    "completed": "Completed",
    "pending": "Pending",
}


def _as_number(value: Union[float, int, str, None]) -> Optional[float]:
    """Parse a bound; blanks and non-numeric text count as unset."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return None if math.isnan(number) else number


def _utc_day(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date().isoformat()


def _normalize_day(value: Union[str, date, None]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _utc_day(value)
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    return text[:10] if text else None


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


def filter_by_tab(receipts: Iterable[Receipt], active_tab: str = "all") -> List[Receipt]:
    if active_tab not in TAB_STATUSES:
        raise ValueError(f"Unknown receipt tab '{active_tab}'")
    wanted = TAB_STATUSES[active_tab]
    if wanted is None:
        return list(receipts)
    return [r for r in receipts if r.status == wanted]


def search_receipts(receipts: Iterable[Receipt], query: str) -> List[Receipt]:
    """Case-insensitive substring match on type, receipt id and gateway order id."""
    query = (query or "").strip().lower()
    if not query:
        return list(receipts)
    return [
        r for r in receipts
        if _contains(r.type, query) or _contains(r.id, query) or _contains(r.razorpay_order_id, query)
    ]


def apply_criteria(receipts: Iterable[Receipt], criteria: Optional[ReceiptFilter]) -> List[Receipt]:
    result = list(receipts)
    if criteria is None:
        return result

    day = _normalize_day(criteria.date)
    if day:
        result = [r for r in result if _utc_day(r.created_at) == day]

    if criteria.type:
        wanted_type = criteria.type.lower()
        result = [r for r in result if _contains(r.type, wanted_type)]

    if criteria.status:
        wanted_status = criteria.status.lower()
        result = [r for r in result if r.status is not None and r.status.lower() == wanted_status]

    min_amount = _as_number(criteria.min_amount)
    if min_amount is not None:
        result = [r for r in result if r.amount is not None and r.amount >= min_amount]

    max_amount = _as_number(criteria.max_amount)
    if max_amount is not None:
        result = [r for r in result if r.amount is not None and r.amount <= max_amount]

    return result


def filter_receipts(
    receipts: Iterable[Receipt],
    active_tab: str = "all",
    search_query: str = "",
    criteria: Optional[ReceiptFilter] = None,
) -> List[Receipt]:
    """Tab, then free text, then date/type/status/amount criteria."""
    result = filter_by_tab(receipts, active_tab)
    result = search_receipts(result, search_query)
    return apply_criteria(result, criteria)


def is_empty(criteria: Optional[ReceiptFilter]) -> bool:
    if criteria is None:
        return True
    return not any([
        _normalize_day(criteria.date),
        criteria.type,
        criteria.status,
        _as_number(criteria.min_amount) is not None,
        _as_number(criteria.max_amount) is not None,
    ])
