"""Lesson lifecycle endpoints: transitions, meeting links, video sessions, summaries."""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from lessonmatch.db import scheduling as sched
from lessonmatch.db.database import get_db
from lessonmatch.models.scheduling import LessonSummaryIn, MeetingLinkIn
from lessonmatch.routes.auth import get_current_user, require_role
from lessonmatch.routes.common import http_error
from lessonmatch.services import lesson_lifecycle as lifecycle
from lessonmatch.services.errors import EngineError
from lessonmatch.services.lesson_summary import summarize_video_lesson

logger = logging.getLogger(__name__)

router = APIRouter(tags=["lessons"])


# -- Helpers --------------------------------------------------------------

async def _require_lesson_party(request: Request, db, lesson_id: int, *, allow_student: bool) -> dict:
    """The lesson's teacher, an admin, or (when allowed) the lesson's student."""
    user = await get_current_user(request, db)
    if user["role"] == "admin":
        return user
    lesson = await sched.get_lesson(db, lesson_id)
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    if user["role"] == "teacher" and lesson["teacher_id"] == user["id"]:
        return user
    if allow_student and user["role"] == "student" and lesson["student_id"] == user["id"]:
        return user
    raise HTTPException(status_code=403, detail="Access denied")


async def _require_video_teacher(request: Request, db, video_lesson_id: int) -> dict:
    user = await require_role("teacher", "admin")(request, db)
    video = await sched.get_video_lesson(db, video_lesson_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video lesson not found")
    if user["role"] == "teacher" and video["teacher_id"] != user["id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    return user


# -- Lesson transitions ---------------------------------------------------

@router.post("/api/lessons/{lesson_id}/start")
async def start_lesson(lesson_id: int, request: Request, db=Depends(get_db)):
    await _require_lesson_party(request, db, lesson_id, allow_student=False)
    try:
        return await lifecycle.start_lesson(db, lesson_id)
    except EngineError as e:
        raise http_error(e)


@router.post("/api/lessons/{lesson_id}/cancel")
async def cancel_lesson(lesson_id: int, request: Request, db=Depends(get_db)):
    await _require_lesson_party(request, db, lesson_id, allow_student=True)
    try:
        return await lifecycle.cancel_lesson(db, lesson_id)
    except EngineError as e:
        raise http_error(e)


@router.post("/api/lessons/{lesson_id}/complete")
async def complete_lesson(lesson_id: int, request: Request, db=Depends(get_db)):
    await _require_lesson_party(request, db, lesson_id, allow_student=False)
    try:
        return await lifecycle.complete_lesson(db, lesson_id)
    except EngineError as e:
        raise http_error(e)


@router.put("/api/lessons/{lesson_id}/meeting-link")
async def update_meeting_link(lesson_id: int, body: MeetingLinkIn, request: Request, db=Depends(get_db)):
    await _require_lesson_party(request, db, lesson_id, allow_student=False)
    try:
        return await lifecycle.set_meeting_link(db, lesson_id, body.meeting_link.strip())
    except EngineError as e:
        raise http_error(e)


# -- Video sessions -------------------------------------------------------

@router.post("/api/video-lessons/{video_lesson_id}/close")
async def close_video_session(video_lesson_id: int, request: Request, db=Depends(get_db)):
    await _require_video_teacher(request, db, video_lesson_id)
    try:
        return await lifecycle.close_video_session(db, video_lesson_id)
    except EngineError as e:
        raise http_error(e)


@router.post("/api/video-lessons/{video_lesson_id}/summary")
async def summarize_lesson(video_lesson_id: int, body: LessonSummaryIn, request: Request, db=Depends(get_db)):
    await _require_video_teacher(request, db, video_lesson_id)
    try:
        summary = await summarize_video_lesson(db, video_lesson_id, body.live_tips, body.transcript_snippets)
    except EngineError as e:
        raise http_error(e)
    return {"success": True, "summary": summary}


@router.post("/api/groups/{group_id}/video-sessions")
async def create_group_session(group_id: int, request: Request, db=Depends(get_db)):
    await require_role("teacher", "admin")(request, db)
    try:
        video_lesson_id = await lifecycle.create_group_video_session(db, group_id)
    except EngineError as e:
        raise http_error(e)
    return await sched.get_video_lesson(db, video_lesson_id)
