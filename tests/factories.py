"""Row builders and bearer tokens for tests. Each row helper commits so reads see the data."""

import json
from datetime import datetime, timedelta, timezone

import jwt

from lessonmatch.config import settings
from lessonmatch.routes.auth import JWT_ALGORITHM


async def add_user(db, name, role="student", levels=None, email=None):
    cursor = await db.execute(
        "INSERT INTO users (name, email, role, teacher_levels) VALUES (?, ?, ?, ?)",
        (name, email or f"{name.lower().replace(' ', '.')}@school.test", role,
         json.dumps(levels) if levels is not None else None),
    )
    await db.commit()
    return cursor.lastrowid


async def add_slot(db, teacher_id, day, start, end, level="beginner", available=True):
    cursor = await db.execute(
        """INSERT INTO teacher_availability
           (teacher_id, day_of_week, start_time, end_time, level, is_available)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (teacher_id, day, start, end, level, 1 if available else 0),
    )
    await db.commit()
    return cursor.lastrowid


async def add_request(db, student_id, preferred_date, preferred_time, level="beginner",
                      duration=50, status="pending"):
    cursor = await db.execute(
        """INSERT INTO student_availability
           (student_id, preferred_date, preferred_time, preferred_level, duration_minutes, status)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (student_id, preferred_date, preferred_time, level, duration, status),
    )
    await db.commit()
    return cursor.lastrowid


async def add_lesson(db, student_id, teacher_id, scheduled_at="2030-01-07T10:00",
                     status="scheduled", lesson_type="beginner", with_video=True):
    cursor = await db.execute(
        """INSERT INTO lessons (student_id, teacher_id, scheduled_at, lesson_type, status)
           VALUES (?, ?, ?, ?, ?)""",
        (student_id, teacher_id, scheduled_at, lesson_type, status),
    )
    lesson_id = cursor.lastrowid
    video_id = None
    if with_video:
        cursor = await db.execute(
            """INSERT INTO video_lessons (lesson_id, student_id, teacher_id, status)
               VALUES (?, ?, ?, ?)""",
            (lesson_id, student_id, teacher_id, status),
        )
        video_id = cursor.lastrowid
    await db.commit()
    return lesson_id, video_id


async def add_group_goal(db, teacher_id, unit, target, title="Spring goal"):
    cursor = await db.execute(
        "INSERT INTO groups (name, teacher_id, level, meeting_link) VALUES (?, ?, ?, ?)",
        ("Evening B1", teacher_id, "intermediate", "https://meet.example.com/b1"),
    )
    group_id = cursor.lastrowid
    cursor = await db.execute(
        """INSERT INTO group_goals (group_id, title, description, unit, target_value)
           VALUES (?, ?, ?, ?, ?)""",
        (group_id, title, "Keep up steady practice", unit, target),
    )
    await db.commit()
    return group_id, cursor.lastrowid


async def add_homework(db, student_id, completed, total):
    for i in range(total):
        await db.execute(
            "INSERT INTO homework_assignments (student_id, title, status) VALUES (?, ?, ?)",
            (student_id, f"Task {i + 1}", "completed" if i < completed else "assigned"),
        )
    await db.commit()


async def count_rows(db, table, where="1 = 1", params=()):
    cursor = await db.execute(f"SELECT COUNT(*) AS n FROM {table} WHERE {where}", params)
    row = await cursor.fetchone()
    return row["n"]


def create_token(user_id, email, role="student", hours=72):
    """Bearer token shaped like the ones the identity service issues."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "exp": now + timedelta(hours=hours),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)
