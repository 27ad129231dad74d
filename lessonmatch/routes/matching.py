"""Matching endpoints: scheduled requests, instant lessons, stale-request expiry."""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from lessonmatch.db import scheduling as sched
from lessonmatch.db.database import get_db
from lessonmatch.models.scheduling import InstantMatchIn
from lessonmatch.routes.auth import get_current_user, require_role
from lessonmatch.routes.common import http_error
from lessonmatch.services.errors import EngineError, NoCandidates
from lessonmatch.services.matching_engine import MatchingEngine, expire_stale_requests

logger = logging.getLogger(__name__)

router = APIRouter(tags=["matching"])


def _match_response(result) -> dict:
    return {
        "lessonId": result.lesson_id,
        "teacherId": result.teacher_id,
        "videoLessonId": result.video_lesson_id,
        "scheduledAt": result.scheduled_at,
    }


@router.post("/api/matching/requests/{request_id}/match")
async def match_request(request_id: int, request: Request, db=Depends(get_db)):
    user = await get_current_user(request, db)
    if user["role"] == "student":
        pending = await sched.get_availability_request(db, request_id)
        if pending and pending["student_id"] != user["id"]:
            raise HTTPException(status_code=403, detail="Access denied")

    try:
        result = await MatchingEngine(db).match_request(request_id)
    except NoCandidates:
        return JSONResponse(
            status_code=409,
            content={"error": "NoCandidates", "message": "No teachers available for this slot. Please try again later."},
        )
    except EngineError as e:
        raise http_error(e)
    return _match_response(result)


@router.post("/api/matching/instant")
async def match_instant(body: InstantMatchIn, request: Request, db=Depends(get_db)):
    user = await get_current_user(request, db)
    student_id = body.student_id or user["id"]
    if user["role"] == "student" and student_id != user["id"]:
        raise HTTPException(status_code=403, detail="Access denied")

    try:
        result = await MatchingEngine(db).match_instant(student_id, body.level)
    except NoCandidates:
        return {
            "available": False,
            "error": "No teachers available right now. Please try scheduling a lesson instead.",
        }
    except EngineError as e:
        raise http_error(e)
    return {"available": True, **_match_response(result)}


@router.post("/api/matching/expire")
async def expire_requests(request: Request, db=Depends(get_db)):
    await require_role("admin", "teacher")(request, db)
    expired = await expire_stale_requests(db)
    return {"expired": expired}
