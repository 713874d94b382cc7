"""Append-only review log and a simple "most overdue" picker.

The halflife stored with each event is a fixed placeholder, not a fitted
memory model. Picking the next sentence divides the time elapsed since a
sentence's latest review by that halflife and takes the largest ratio.
"""
from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from tamachi.db import now_ms

if TYPE_CHECKING:
    from tamachi.db import Database

# One day, in milliseconds like the event timestamps.
DEFAULT_HALFLIFE_MS = 24 * 60 * 60 * 1000


def record_review(
    db: Database,
    user_id: int,
    sentence_id: int,
    result: Any,
    timestamp: int | None = None,
    halflife: float = DEFAULT_HALFLIFE_MS,
) -> int:
    """Append one review event.

    result: anything JSON-serializable, e.g. ``True`` or ``{"grade": 3}``.
    timestamp: epoch milliseconds, defaults to now.
    """
    if halflife <= 0:
        raise ValueError(f"halflife must be positive, got {halflife}")
    epoch = now_ms() if timestamp is None else timestamp
    return db.insert_review(user_id, sentence_id, epoch, json.dumps(result), halflife)


def next_review(db: Database, user_id: int, now: int | None = None) -> dict | None:
    """The user's most overdue sentence, or None if they have never reviewed."""
    row = db.get_most_overdue(user_id, now_ms() if now is None else now)
    if row is None:
        return None
    return {
        "sentence_id": row["sentence_id"],
        "last_review": row["epoch"],
        "last_results": json.loads(row["results"]),
        "halflife": row["halflife"],
        "overdue_ratio": row["ratio"],
    }
