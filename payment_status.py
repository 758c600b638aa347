from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple, Union

# A payment keeps a subscription "paid" for this many days
PERIOD_WINDOW_DAYS = {
    "daily": 1,
    "weekly": 7,
    "monthly": 30,
    "yearly": 360,
}


def _parse_datetime(value: Union[datetime, str, None]) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    # stored dates are naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def get_payment_status(
    period: Optional[str],
    last_payment_at: Union[datetime, str, None],
    now: Optional[datetime] = None,
) -> Tuple[str, Optional[datetime]]:
    """Return ("paid" | "pending", next due date) for a subscription."""
    last_payment = _parse_datetime(last_payment_at)
    window = PERIOD_WINDOW_DAYS.get(period or "")
    if last_payment is None or window is None:
        return "pending", None

    now = _parse_datetime(now) or datetime.utcnow()
    days_elapsed = (now - last_payment) // timedelta(days=1)
    payment_status = "paid" if days_elapsed < window else "pending"
    return payment_status, last_payment + timedelta(days=window)


def enrich_subscription(doc: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Copy of a stored subscription with paymentStatus and nextDueDate added."""
    payment_status, next_due = get_payment_status(doc.get("period"), doc.get("lastPaymentAt"), now)
    enriched = dict(doc)
    enriched["paymentStatus"] = payment_status
    enriched["nextDueDate"] = next_due.isoformat() if next_due else None
    return enriched
