"""
lesson_lifecycle.py - Lesson and video lesson state machine

States: scheduled → in_progress → completed, with cancelled reachable from
scheduled or in_progress. Only forward, single-step moves are valid, except
that an external completion signal (the post-lesson summary) may complete a
lesson from any non-terminal state. The companion video lesson mirrors every
lesson transition. Lessons are never deleted.

Provides:
- create_lesson(db, ...) - insert lesson + video lesson (caller commits)
- transition(db, lesson_id, target) - validated, committed status change
- start_lesson / cancel_lesson / complete_lesson / complete_externally
- set_meeting_link(db, lesson_id, link) - teacher updates the meeting link
- close_video_session(db, video_lesson_id) - teacher ends the video session early
- create_group_video_session(db, group_id) - video session for a recurring group
"""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from lessonmatch.db import scheduling as sched
from lessonmatch.db.database import atomic
from lessonmatch.services.errors import InvalidTransition, RecordNotFound

logger = logging.getLogger(__name__)

SCHEDULED = "scheduled"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"

LESSON_STATES = (SCHEDULED, IN_PROGRESS, COMPLETED, CANCELLED)
TERMINAL_STATES = frozenset({COMPLETED, CANCELLED})

_NEXT_STATES = {
    SCHEDULED: frozenset({IN_PROGRESS, CANCELLED}),
    IN_PROGRESS: frozenset({COMPLETED, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}


@dataclass
class CreatedLesson:
    lesson_id: int
    video_lesson_id: Optional[int]


def can_transition(current: str, target: str, external: bool = False) -> bool:
    if current in TERMINAL_STATES:
        return False
    if external and target == COMPLETED:
        return True
    return target in _NEXT_STATES.get(current, frozenset())


async def create_lesson(
    db,
    *,
    student_id: int,
    teacher_id: Optional[int],
    scheduled_at: str,
    duration_minutes: int,
    lesson_type: str,
    is_video_lesson: bool = True,
    availability_request_id: Optional[int] = None,
) -> CreatedLesson:
    """Insert a scheduled lesson and, if video-enabled, its video lesson. Does not commit."""
    lesson_id = await sched.insert_lesson(
        db,
        student_id=student_id,
        teacher_id=teacher_id,
        scheduled_at=scheduled_at,
        duration_minutes=duration_minutes,
        lesson_type=lesson_type,
        status=SCHEDULED,
        is_video_lesson=is_video_lesson,
        availability_request_id=availability_request_id,
    )
    video_lesson_id = None
    if is_video_lesson:
        video_lesson_id = await sched.insert_video_lesson(
            db,
            status=SCHEDULED,
            lesson_id=lesson_id,
            student_id=student_id,
            teacher_id=teacher_id,
        )
    return CreatedLesson(lesson_id=lesson_id, video_lesson_id=video_lesson_id)


async def apply_transition(
    db,
    lesson: Dict[str, Any],
    target: str,
    *,
    external: bool = False,
) -> None:
    """Validate and write a status change inside the caller's transaction."""
    current = lesson["status"]
    if target not in LESSON_STATES or not can_transition(current, target, external):
        raise InvalidTransition(lesson["id"], current, target)

    if not await sched.set_lesson_status(db, lesson["id"], current, target):
        # Someone else moved the lesson between our read and write
        raise InvalidTransition(lesson["id"], current, target)

    now = sched.utc_now_iso()
    await sched.set_video_lesson_status(
        db,
        lesson["id"],
        target,
        start_time=now if target == IN_PROGRESS else None,
        end_time=now if target in TERMINAL_STATES else None,
    )


async def _load_lesson(db, lesson_id: int) -> Dict[str, Any]:
    lesson = await sched.get_lesson(db, lesson_id)
    if not lesson:
        raise RecordNotFound("Lesson", lesson_id)
    return lesson


async def transition(db, lesson_id: int, target: str, *, external: bool = False) -> Dict[str, Any]:
    """Move a lesson to ``target`` and commit. Returns the updated lesson."""
    lesson = await _load_lesson(db, lesson_id)
    async with atomic(db):
        await apply_transition(db, lesson, target, external=external)
    logger.info("Lesson %s: %s -> %s%s", lesson_id, lesson["status"], target,
                " (external)" if external else "")
    return await sched.get_lesson(db, lesson_id)


async def start_lesson(db, lesson_id: int) -> Dict[str, Any]:
    return await transition(db, lesson_id, IN_PROGRESS)


async def cancel_lesson(db, lesson_id: int) -> Dict[str, Any]:
    return await transition(db, lesson_id, CANCELLED)


async def complete_lesson(db, lesson_id: int) -> Dict[str, Any]:
    return await transition(db, lesson_id, COMPLETED)


async def complete_externally(db, lesson_id: int) -> Dict[str, Any]:
    """Completion driven by an outside signal; allowed from any non-terminal state."""
    return await transition(db, lesson_id, COMPLETED, external=True)


async def set_meeting_link(db, lesson_id: int, meeting_link: str) -> Dict[str, Any]:
    lesson = await _load_lesson(db, lesson_id)
    if lesson["status"] in TERMINAL_STATES:
        raise InvalidTransition(lesson_id, lesson["status"], "meeting_link_update")
    async with atomic(db):
        await sched.set_meeting_link(db, lesson_id, meeting_link)
    return await sched.get_lesson(db, lesson_id)


async def close_video_session(db, video_lesson_id: int) -> Dict[str, Any]:
    """End a video session on the teacher's word, independent of the lesson status."""
    video = await sched.get_video_lesson(db, video_lesson_id)
    if not video:
        raise RecordNotFound("VideoLesson", video_lesson_id)
    if video["status"] in TERMINAL_STATES:
        raise InvalidTransition(video_lesson_id, video["status"], COMPLETED)
    async with atomic(db):
        await db.execute(
            """UPDATE video_lessons SET status = ?, end_time = ?, updated_at = ?
               WHERE id = ?""",
            (COMPLETED, sched.utc_now_iso(), sched.utc_now_iso(), video_lesson_id),
        )
    return await sched.get_video_lesson(db, video_lesson_id)


async def create_group_video_session(db, group_id: int) -> int:
    """Video session for a recurring group, carrying the group's teacher and link."""
    cursor = await db.execute(
        "SELECT id, teacher_id, meeting_link FROM groups WHERE id = ?", (group_id,)
    )
    group = await cursor.fetchone()
    if not group:
        raise RecordNotFound("Group", group_id)
    async with atomic(db):
        video_lesson_id = await sched.insert_video_lesson(
            db,
            status=SCHEDULED,
            group_id=group_id,
            teacher_id=group["teacher_id"],
            meeting_link=group["meeting_link"],
        )
    return video_lesson_id
