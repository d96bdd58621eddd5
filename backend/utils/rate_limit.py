from datetime import datetime, timedelta
from fastapi import HTTPException

# ===============================
# FIXED-WINDOW LIMITER (rate_limits)
# ===============================
# One document per key. A record older than the window is discarded and
# the count starts again; stale records are also reaped by a TTL index.


async def rate_limit(db, key: str, max_requests: int, window_seconds: int) -> int:
    now = datetime.utcnow()
    record = await db.rate_limits.find_one({"key": key})

    if record and record["created_at"] < now - timedelta(seconds=window_seconds):
        await db.rate_limits.delete_one({"_id": record["_id"]})
        record = None

    if record and record["count"] >= max_requests:
        raise HTTPException(
            status_code=429,
            detail="Demasiados intentos. Inténtalo más tarde.",
        )

    await db.rate_limits.update_one(
        {"key": key},
        {"$inc": {"count": 1}, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )
    return (record["count"] if record else 0) + 1


async def reset_rate_limit(db, key: str) -> None:
    await db.rate_limits.delete_one({"key": key})
