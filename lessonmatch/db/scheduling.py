"""
scheduling.py - Database helper queries for lesson assignment

Provides insert/fetch/update functions for:
- teacher_availability (recurring teacher slots)
- student_availability (one-off student requests)
- lessons / video_lessons
- homework_assignments

None of these helpers commit. Callers wrap writes in ``atomic(db)`` so that
multi-row changes land together.
"""

import json
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

import aiosqlite

REQUEST_PENDING = "pending"
REQUEST_MATCHED = "matched"
REQUEST_EXPIRED = "expired"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


# ══════════════════════════════════════════════════════════════════════════════
# USERS
# ══════════════════════════════════════════════════════════════════════════════

async def get_user(db: aiosqlite.Connection, user_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        "SELECT id, name, email, role, current_level, teacher_levels FROM users WHERE id = ?",
        (user_id,)
    )
    row = await cursor.fetchone()
    return _row_to_dict(row, parse_json_fields=["teacher_levels"])


# ══════════════════════════════════════════════════════════════════════════════
# TEACHER AVAILABILITY SLOTS
# ══════════════════════════════════════════════════════════════════════════════

async def create_slot(
    db: aiosqlite.Connection,
    teacher_id: int,
    day_of_week: int,
    start_time: str,
    end_time: str,
    level: str,
    is_available: bool = True
) -> int:
    """Insert a recurring weekly slot. Returns the new slot ID."""
    cursor = await db.execute(
        """INSERT INTO teacher_availability
           (teacher_id, day_of_week, start_time, end_time, level, is_available)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (teacher_id, day_of_week, start_time, end_time, level, 1 if is_available else 0)
    )
    return cursor.lastrowid


async def get_slot(db: aiosqlite.Connection, slot_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute("SELECT * FROM teacher_availability WHERE id = ?", (slot_id,))
    row = await cursor.fetchone()
    return _row_to_dict(row)


async def list_teacher_slots(db: aiosqlite.Connection, teacher_id: int) -> List[Dict[str, Any]]:
    """All slots for a teacher, ordered by day then start time."""
    cursor = await db.execute(
        """SELECT id, day_of_week, start_time, end_time, level, is_available
           FROM teacher_availability
           WHERE teacher_id = ?
           ORDER BY day_of_week, start_time""",
        (teacher_id,)
    )
    slots = []
    for row in await cursor.fetchall():
        slot = dict(row)
        slot["is_available"] = bool(slot["is_available"])
        slots.append(slot)
    return slots


async def update_slot(
    db: aiosqlite.Connection,
    slot_id: int,
    teacher_id: int,
    **fields: Any
) -> bool:
    """Update the given columns of a slot owned by ``teacher_id``. Returns False if no such slot."""
    allowed = {"day_of_week", "start_time", "end_time", "level", "is_available"}
    updates = {k: v for k, v in fields.items() if k in allowed and v is not None}
    if "is_available" in updates:
        updates["is_available"] = 1 if updates["is_available"] else 0
    if not updates:
        return await get_slot(db, slot_id) is not None

    assignments = ", ".join(f"{column} = ?" for column in updates)
    cursor = await db.execute(
        f"UPDATE teacher_availability SET {assignments} WHERE id = ? AND teacher_id = ?",
        (*updates.values(), slot_id, teacher_id)
    )
    return cursor.rowcount > 0


async def delete_slot(db: aiosqlite.Connection, slot_id: int, teacher_id: int) -> bool:
    cursor = await db.execute(
        "DELETE FROM teacher_availability WHERE id = ? AND teacher_id = ?",
        (slot_id, teacher_id)
    )
    return cursor.rowcount > 0


# ══════════════════════════════════════════════════════════════════════════════
# STUDENT AVAILABILITY REQUESTS
# ══════════════════════════════════════════════════════════════════════════════

async def create_availability_request(
    db: aiosqlite.Connection,
    student_id: int,
    preferred_date: str,
    preferred_time: str,
    preferred_level: str,
    duration_minutes: int = 50,
    notes: Optional[str] = None
) -> int:
    """Create a pending request. Returns the new request ID."""
    now = utc_now_iso()
    cursor = await db.execute(
        """INSERT INTO student_availability
           (student_id, preferred_date, preferred_time, preferred_level,
            duration_minutes, notes, status, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (student_id, preferred_date, preferred_time, preferred_level,
         duration_minutes, notes, REQUEST_PENDING, now, now)
    )
    return cursor.lastrowid


async def get_availability_request(db: aiosqlite.Connection, request_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute("SELECT * FROM student_availability WHERE id = ?", (request_id,))
    row = await cursor.fetchone()
    return _row_to_dict(row)


async def list_student_requests(db: aiosqlite.Connection, student_id: int) -> List[Dict[str, Any]]:
    cursor = await db.execute(
        """SELECT id, preferred_date, preferred_time, preferred_level,
                  duration_minutes, notes, status, created_at
           FROM student_availability
           WHERE student_id = ?
           ORDER BY preferred_date DESC, preferred_time DESC""",
        (student_id,)
    )
    return [dict(row) for row in await cursor.fetchall()]


async def mark_request_matched(db: aiosqlite.Connection, request_id: int) -> bool:
    """Flip pending -> matched. Returns False if the request was no longer pending."""
    cursor = await db.execute(
        """UPDATE student_availability
           SET status = ?, updated_at = ?
           WHERE id = ? AND status = ?""",
        (REQUEST_MATCHED, utc_now_iso(), request_id, REQUEST_PENDING)
    )
    return cursor.rowcount == 1


async def expire_request(db: aiosqlite.Connection, request_id: int) -> bool:
    cursor = await db.execute(
        """UPDATE student_availability
           SET status = ?, updated_at = ?
           WHERE id = ? AND status = ?""",
        (REQUEST_EXPIRED, utc_now_iso(), request_id, REQUEST_PENDING)
    )
    return cursor.rowcount == 1


async def list_pending_requests_before(
    db: aiosqlite.Connection,
    cutoff_date: str,
    cutoff_time: str
) -> List[Dict[str, Any]]:
    """Pending requests whose preferred slot is strictly before (cutoff_date, cutoff_time)."""
    cursor = await db.execute(
        """SELECT id, preferred_date, preferred_time
           FROM student_availability
           WHERE status = ?
             AND (preferred_date < ? OR (preferred_date = ? AND preferred_time < ?))
           ORDER BY id""",
        (REQUEST_PENDING, cutoff_date, cutoff_date, cutoff_time)
    )
    return [dict(row) for row in await cursor.fetchall()]


# ══════════════════════════════════════════════════════════════════════════════
# LESSONS & VIDEO LESSONS
# ══════════════════════════════════════════════════════════════════════════════

async def insert_lesson(
    db: aiosqlite.Connection,
    student_id: int,
    teacher_id: Optional[int],
    scheduled_at: str,
    duration_minutes: int,
    lesson_type: str,
    status: str,
    is_video_lesson: bool = True,
    availability_request_id: Optional[int] = None,
    notes: Optional[str] = None
) -> int:
    now = utc_now_iso()
    cursor = await db.execute(
        """INSERT INTO lessons
           (student_id, teacher_id, scheduled_at, duration_minutes, lesson_type,
            status, is_video_lesson, availability_request_id, notes, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (student_id, teacher_id, scheduled_at, duration_minutes, lesson_type,
         status, 1 if is_video_lesson else 0, availability_request_id, notes, now, now)
    )
    return cursor.lastrowid


async def insert_video_lesson(
    db: aiosqlite.Connection,
    status: str,
    lesson_id: Optional[int] = None,
    group_id: Optional[int] = None,
    student_id: Optional[int] = None,
    teacher_id: Optional[int] = None,
    meeting_link: Optional[str] = None
) -> int:
    now = utc_now_iso()
    cursor = await db.execute(
        """INSERT INTO video_lessons
           (lesson_id, group_id, student_id, teacher_id, status, meeting_link, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (lesson_id, group_id, student_id, teacher_id, status, meeting_link, now, now)
    )
    return cursor.lastrowid


async def get_lesson(db: aiosqlite.Connection, lesson_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute("SELECT * FROM lessons WHERE id = ?", (lesson_id,))
    row = await cursor.fetchone()
    return _row_to_dict(row)


async def get_lesson_for_request(db: aiosqlite.Connection, request_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        "SELECT * FROM lessons WHERE availability_request_id = ?", (request_id,)
    )
    row = await cursor.fetchone()
    return _row_to_dict(row)


async def get_video_lesson(db: aiosqlite.Connection, video_lesson_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute("SELECT * FROM video_lessons WHERE id = ?", (video_lesson_id,))
    row = await cursor.fetchone()
    return _row_to_dict(row, parse_json_fields=["ai_insights"])


async def set_lesson_status(
    db: aiosqlite.Connection,
    lesson_id: int,
    expected_status: str,
    new_status: str
) -> bool:
    """Compare-and-set the lesson status. Returns False if it changed underneath us."""
    cursor = await db.execute(
        """UPDATE lessons SET status = ?, updated_at = ?
           WHERE id = ? AND status = ?""",
        (new_status, utc_now_iso(), lesson_id, expected_status)
    )
    return cursor.rowcount == 1


async def set_video_lesson_status(
    db: aiosqlite.Connection,
    lesson_id: int,
    new_status: str,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None
) -> None:
    """Mirror a lesson status onto its video lesson. A video session that already ended stays ended."""
    await db.execute(
        """UPDATE video_lessons
           SET status = ?,
               start_time = COALESCE(?, start_time),
               end_time = COALESCE(?, end_time),
               updated_at = ?
           WHERE lesson_id = ?
             AND status NOT IN ('completed', 'cancelled')""",
        (new_status, start_time, end_time, utc_now_iso(), lesson_id)
    )


async def set_meeting_link(db: aiosqlite.Connection, lesson_id: int, meeting_link: str) -> None:
    now = utc_now_iso()
    await db.execute(
        "UPDATE lessons SET meeting_link = ?, updated_at = ? WHERE id = ?",
        (meeting_link, now, lesson_id)
    )
    await db.execute(
        "UPDATE video_lessons SET meeting_link = ?, updated_at = ? WHERE lesson_id = ?",
        (meeting_link, now, lesson_id)
    )


async def set_video_insights(
    db: aiosqlite.Connection,
    video_lesson_id: int,
    insights: Dict[str, Any]
) -> None:
    await db.execute(
        "UPDATE video_lessons SET ai_insights = ?, updated_at = ? WHERE id = ?",
        (json.dumps(insights), utc_now_iso(), video_lesson_id)
    )


async def count_upcoming_lessons(
    db: aiosqlite.Connection,
    teacher_ids: List[int],
    since: str
) -> Dict[int, int]:
    """Upcoming (scheduled / in progress) lesson count per teacher. Missing teachers count 0."""
    if not teacher_ids:
        return {}
    placeholders = ", ".join("?" for _ in teacher_ids)
    cursor = await db.execute(
        f"""SELECT teacher_id, COUNT(*) AS upcoming
            FROM lessons
            WHERE teacher_id IN ({placeholders})
              AND status IN ('scheduled', 'in_progress')
              AND scheduled_at >= ?
            GROUP BY teacher_id""",
        (*teacher_ids, since)
    )
    counts = {tid: 0 for tid in teacher_ids}
    for row in await cursor.fetchall():
        counts[row["teacher_id"]] = row["upcoming"]
    return counts


# ══════════════════════════════════════════════════════════════════════════════
# HOMEWORK
# ══════════════════════════════════════════════════════════════════════════════

async def create_homework_assignment(
    db: aiosqlite.Connection,
    student_id: int,
    title: str,
    lesson_id: Optional[int] = None,
    teacher_id: Optional[int] = None,
    description: Optional[str] = None,
    due_date: Optional[str] = None
) -> int:
    cursor = await db.execute(
        """INSERT INTO homework_assignments
           (lesson_id, student_id, teacher_id, title, description, due_date, status)
           VALUES (?, ?, ?, ?, ?, ?, 'assigned')""",
        (lesson_id, student_id, teacher_id, title, description, due_date)
    )
    return cursor.lastrowid


# ══════════════════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ══════════════════════════════════════════════════════════════════════════════

def _row_to_dict(row, parse_json_fields: List[str] = None) -> Optional[Dict[str, Any]]:
    """Convert a database row to a dictionary, optionally parsing JSON fields."""
    if row is None:
        return None

    result = dict(row)

    if parse_json_fields:
        for field in parse_json_fields:
            if field in result and isinstance(result[field], str):
                try:
                    result[field] = json.loads(result[field])
                except json.JSONDecodeError:
                    pass  # Keep original value if JSON parsing fails

    return result
