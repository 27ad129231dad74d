"""
goals.py - Database helper queries for group goals and progress metrics

Provides:
- group_goals lookup
- student_goal_progress upserts keyed by (group_goal_id, student_id)
- raw metric aggregates (attendance, homework, reviews, conversation confidence)
"""

from typing import Optional, Dict, Any

import aiosqlite

from lessonmatch.db.scheduling import utc_now_iso, _row_to_dict


# ══════════════════════════════════════════════════════════════════════════════
# GOALS
# ══════════════════════════════════════════════════════════════════════════════

async def get_group_goal(db: aiosqlite.Connection, group_goal_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        """SELECT gg.*, g.name AS group_name
           FROM group_goals gg
           LEFT JOIN groups g ON g.id = gg.group_id
           WHERE gg.id = ?""",
        (group_goal_id,)
    )
    row = await cursor.fetchone()
    return _row_to_dict(row)


async def get_goal_progress(
    db: aiosqlite.Connection,
    group_goal_id: int,
    student_id: int
) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        """SELECT * FROM student_goal_progress
           WHERE group_goal_id = ? AND student_id = ?""",
        (group_goal_id, student_id)
    )
    row = await cursor.fetchone()
    return _row_to_dict(row)


async def upsert_goal_progress_value(
    db: aiosqlite.Connection,
    group_goal_id: int,
    student_id: int,
    current_value: int
) -> None:
    """Insert or overwrite current_value for the pair. Last write wins."""
    await db.execute(
        """INSERT INTO student_goal_progress (group_goal_id, student_id, current_value, last_updated)
           VALUES (?, ?, ?, ?)
           ON CONFLICT (group_goal_id, student_id)
           DO UPDATE SET current_value = excluded.current_value,
                         last_updated = excluded.last_updated""",
        (group_goal_id, student_id, current_value, utc_now_iso())
    )


async def upsert_goal_description(
    db: aiosqlite.Connection,
    group_goal_id: int,
    student_id: int,
    personalized_description: str
) -> None:
    """Insert or overwrite the personalized narrative, leaving current_value alone."""
    await db.execute(
        """INSERT INTO student_goal_progress
               (group_goal_id, student_id, current_value, personalized_description, last_updated)
           VALUES (?, ?, 0, ?, ?)
           ON CONFLICT (group_goal_id, student_id)
           DO UPDATE SET personalized_description = excluded.personalized_description,
                         last_updated = excluded.last_updated""",
        (group_goal_id, student_id, personalized_description, utc_now_iso())
    )


# ══════════════════════════════════════════════════════════════════════════════
# METRICS
# ══════════════════════════════════════════════════════════════════════════════

async def count_attended_lessons(db: aiosqlite.Connection, student_id: int) -> int:
    cursor = await db.execute(
        "SELECT COUNT(*) AS n FROM lessons WHERE student_id = ? AND status = 'completed'",
        (student_id,)
    )
    row = await cursor.fetchone()
    return row["n"] if row else 0


async def homework_counts(db: aiosqlite.Connection, student_id: int) -> tuple[int, int]:
    """(completed, total) homework assignments for a student."""
    cursor = await db.execute(
        """SELECT COUNT(*) AS total,
                  COALESCE(SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END), 0) AS completed
           FROM homework_assignments
           WHERE student_id = ?""",
        (student_id,)
    )
    row = await cursor.fetchone()
    if not row:
        return 0, 0
    return int(row["completed"]), int(row["total"])


async def average_review_score(db: aiosqlite.Connection, student_id: int) -> float:
    """Mean AI-assessed review score (0-100). Reviews without a score count as 0."""
    cursor = await db.execute(
        "SELECT AVG(COALESCE(ai_score, 0)) AS avg_score FROM lesson_reviews WHERE student_id = ?",
        (student_id,)
    )
    row = await cursor.fetchone()
    return float(row["avg_score"]) if row and row["avg_score"] is not None else 0.0


async def average_confidence(db: aiosqlite.Connection, student_id: int) -> float:
    """Mean conversation confidence (0-100). Missing scores count as 0."""
    cursor = await db.execute(
        """SELECT AVG(COALESCE(confidence_score, 0)) AS avg_conf
           FROM conversation_analysis WHERE student_id = ?""",
        (student_id,)
    )
    row = await cursor.fetchone()
    return float(row["avg_conf"]) if row and row["avg_conf"] is not None else 0.0
