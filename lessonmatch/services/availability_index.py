"""
availability_index.py - Read-only view over teacher availability slots

Answers "which teachers are free for level L on day D at time T" and gathers
the metadata the scorers need (declared levels, current load). Every call
reads the store; nothing is cached between requests.

Days of week follow the platform convention 0 = Sunday ... 6 = Saturday.
"""

import json
import logging
from datetime import date
from typing import List, Dict, Any

from lessonmatch.db import scheduling as sched

logger = logging.getLogger(__name__)

def day_of_week(d: date) -> int:
    """Platform day number for a date (Sunday = 0)."""
    return (d.weekday() + 1) % 7


def normalize_time(value: str) -> str:
    """Zero-pad an H:MM / HH:MM[:SS] string to HH:MM so string comparison orders correctly."""
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time: {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid time: {value!r}")
    return f"{hours:02d}:{minutes:02d}"


async def candidates(db, level: str, day: int, time: str) -> List[int]:
    """Teachers with an available slot for ``level`` on ``day`` whose range contains ``time``.

    Both range ends are inclusive. Each teacher appears once, ordered by
    their earliest matching slot; callers should not depend on the order.
    """
    at = normalize_time(time)
    cursor = await db.execute(
        """SELECT teacher_id, MIN(id) AS first_slot
           FROM teacher_availability
           WHERE level = ?
             AND day_of_week = ?
             AND is_available = 1
             AND start_time <= ?
             AND end_time >= ?
           GROUP BY teacher_id
           ORDER BY first_slot""",
        (level, day, at, at),
    )
    teacher_ids = [row["teacher_id"] for row in await cursor.fetchall()]
    logger.debug("candidates level=%s day=%s time=%s -> %s", level, day, at, teacher_ids)
    return teacher_ids


async def candidate_profiles(db, teacher_ids: List[int]) -> List[Dict[str, Any]]:
    """``{teacher_id, name, levels}`` for each id, in the given order."""
    if not teacher_ids:
        return []
    placeholders = ", ".join("?" for _ in teacher_ids)
    cursor = await db.execute(
        f"SELECT id, name, teacher_levels FROM users WHERE id IN ({placeholders})",
        tuple(teacher_ids),
    )
    by_id = {}
    for row in await cursor.fetchall():
        levels = row["teacher_levels"]
        try:
            levels = json.loads(levels) if levels else []
        except json.JSONDecodeError:
            levels = [levels]
        by_id[row["id"]] = {"teacher_id": row["id"], "name": row["name"] or "Unknown", "levels": levels}

    return [
        by_id.get(tid, {"teacher_id": tid, "name": "Unknown", "levels": []})
        for tid in teacher_ids
    ]


async def upcoming_load(db, teacher_ids: List[int], since: str) -> Dict[int, int]:
    """Current count of upcoming lessons per candidate, recomputed from the store."""
    return await sched.count_upcoming_lessons(db, teacher_ids, since)
