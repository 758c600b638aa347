"""
Dashboard statistics for social statuses.

Usage numbers come from the `status_usage` event collection (one document per
recorded use), so the weekly engagement series reflects real activity per day.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pymongo.database import Database

STATUSES = "statuses"
USAGE_EVENTS = "status_usage"
HIGH_USAGE_THRESHOLD = 50


def record_usage(db: Database, status_doc: Dict[str, Any], at: Optional[datetime] = None) -> None:
    db[USAGE_EVENTS].insert_one({
        "statusId": status_doc["_id"],
        "type": status_doc.get("type"),
        "category": status_doc.get("category"),
        "at": at or datetime.utcnow(),
    })


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def usage_between(db: Database, start: datetime, end: Optional[datetime] = None) -> int:
    window: Dict[str, Any] = {"$gte": start}
    if end is not None:
        window["$lt"] = end
    return db[USAGE_EVENTS].count_documents({"at": window})


def weekly_engagement(db: Database, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Usage events per UTC day for the last 7 days, oldest first."""
    today = _start_of_day(now or datetime.utcnow())
    series = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        series.append({
            "day": day.strftime("%a"),
            "date": day.date().isoformat(),
            "usage": usage_between(db, day, day + timedelta(days=1)),
        })
    return series


def category_counts(db: Database) -> List[Dict[str, Any]]:
    rows = db[STATUSES].aggregate([
        {"$group": {"_id": "$category", "count": {"$sum": 1}}},
    ])
    counts = [{"category": row["_id"], "count": row["count"]} for row in rows]
    return sorted(counts, key=lambda c: (-c["count"], str(c["category"])))


def type_distribution(db: Database) -> List[Dict[str, Any]]:
    rows = db[STATUSES].aggregate([
        {"$group": {"_id": "$type", "count": {"$sum": 1}, "usage": {"$sum": "$usageCount"}}},
    ])
    return sorted(
        ({"type": row["_id"], "count": row["count"], "usage": row["usage"]} for row in rows),
        key=lambda t: str(t["type"]),
    )


def build_status_stats(db: Database, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    statuses = db[STATUSES]

    usage_rows = list(statuses.aggregate([
        {"$group": {"_id": None, "totalUsage": {"$sum": "$usageCount"}}},
    ]))
    total_usage = usage_rows[0]["totalUsage"] if usage_rows else 0

    top_statuses = list(
        statuses.find({}, {"content": 1, "usageCount": 1, "category": 1})
        .sort([("usageCount", -1), ("content", 1)])
        .limit(5)
    )

    recent = statuses.find(
        {}, {"content": 1, "type": 1, "category": 1, "usageCount": 1, "updatedAt": 1}
    ).sort("updatedAt", -1).limit(10)
    recent_activity = [
        {
            "id": doc["_id"],
            "type": "high_usage" if doc.get("usageCount", 0) > HIGH_USAGE_THRESHOLD else "update",
            "content": doc.get("content"),
            "category": doc.get("category"),
            "statusType": doc.get("type"),
            "usageCount": doc.get("usageCount", 0),
            "timestamp": doc.get("updatedAt"),
        }
        for doc in recent
    ]

    return {
        "totalStatuses": statuses.count_documents({}),
        "activeStatuses": statuses.count_documents({"isActive": True}),
        "totalUsage": total_usage,
        "topStatuses": top_statuses,
        "categoryCounts": category_counts(db),
        "typeDistribution": type_distribution(db),
        "todayUsage": usage_between(db, _start_of_day(now)),
        "weeklyEngagement": weekly_engagement(db, now),
        "recentActivity": recent_activity,
    }
