"""Availability endpoints.

Teachers manage their recurring weekly slots (one level per slot).
Students file availability requests that the matching engine later turns
into lessons.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from lessonmatch.db import scheduling as sched
from lessonmatch.db.database import atomic, get_db
from lessonmatch.models.scheduling import AvailabilityRequestIn, SlotIn, SlotUpdate
from lessonmatch.routes.auth import get_current_user, require_role
from lessonmatch.routes.common import time_to_minutes, validate_date_format, validate_time_format
from lessonmatch.services.availability_index import normalize_time

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability"])


# ── Helpers ──────────────────────────────────────────────────────────

def _check_window(start_time: str, end_time: str) -> tuple[str, str]:
    for t in (start_time, end_time):
        if not validate_time_format(t):
            raise HTTPException(status_code=400, detail=f"Invalid time format: {t}. Use HH:MM")
    start, end = normalize_time(start_time), normalize_time(end_time)
    if time_to_minutes(start) >= time_to_minutes(end):
        raise HTTPException(status_code=400, detail=f"start_time ({start}) must be before end_time ({end})")
    return start, end


# ── Teacher slots ────────────────────────────────────────────────────

@router.get("/api/teacher/availability")
async def list_slots(request: Request, db=Depends(get_db)):
    teacher = await require_role("teacher")(request, db)
    return {"teacher_id": teacher["id"], "slots": await sched.list_teacher_slots(db, teacher["id"])}


@router.post("/api/teacher/availability")
async def create_slot(body: SlotIn, request: Request, db=Depends(get_db)):
    teacher = await require_role("teacher")(request, db)
    start, end = _check_window(body.start_time, body.end_time)

    async with atomic(db):
        slot_id = await sched.create_slot(
            db, teacher["id"], body.day_of_week, start, end, body.level, body.is_available
        )
    logger.info("Teacher %s added slot %s (day=%s %s-%s %s)",
                teacher["id"], slot_id, body.day_of_week, start, end, body.level)
    return await sched.get_slot(db, slot_id)


@router.put("/api/teacher/availability/{slot_id}")
async def update_slot(slot_id: int, body: SlotUpdate, request: Request, db=Depends(get_db)):
    teacher = await require_role("teacher")(request, db)
    slot = await sched.get_slot(db, slot_id)
    if not slot or slot["teacher_id"] != teacher["id"]:
        raise HTTPException(status_code=404, detail="Slot not found")

    fields = body.model_dump(exclude_none=True)
    if "start_time" in fields or "end_time" in fields:
        fields["start_time"], fields["end_time"] = _check_window(
            fields.get("start_time", slot["start_time"]),
            fields.get("end_time", slot["end_time"]),
        )

    async with atomic(db):
        await sched.update_slot(db, slot_id, teacher["id"], **fields)
    return await sched.get_slot(db, slot_id)


@router.delete("/api/teacher/availability/{slot_id}")
async def delete_slot(slot_id: int, request: Request, db=Depends(get_db)):
    teacher = await require_role("teacher")(request, db)
    async with atomic(db):
        deleted = await sched.delete_slot(db, slot_id, teacher["id"])
    if not deleted:
        raise HTTPException(status_code=404, detail="Slot not found")
    return {"status": "deleted", "id": slot_id}


# ── Student requests ─────────────────────────────────────────────────

@router.post("/api/student/availability-requests")
async def create_request(body: AvailabilityRequestIn, request: Request, db=Depends(get_db)):
    user = await get_current_user(request, db)
    student_id = body.student_id or user["id"]
    if user["role"] == "student" and student_id != user["id"]:
        raise HTTPException(status_code=403, detail="Access denied")

    if not validate_date_format(body.preferred_date):
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")
    if not validate_time_format(body.preferred_time):
        raise HTTPException(status_code=400, detail="Invalid time format. Use HH:MM")

    async with atomic(db):
        request_id = await sched.create_availability_request(
            db,
            student_id=student_id,
            preferred_date=body.preferred_date,
            preferred_time=normalize_time(body.preferred_time),
            preferred_level=body.preferred_level,
            duration_minutes=body.duration_minutes,
            notes=body.notes,
        )
    return await sched.get_availability_request(db, request_id)


@router.get("/api/student/availability-requests")
async def list_requests(request: Request, student_id: int | None = None, db=Depends(get_db)):
    user = await get_current_user(request, db)
    student_id = student_id or user["id"]
    if user["role"] == "student" and student_id != user["id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    return {"student_id": student_id, "requests": await sched.list_student_requests(db, student_id)}
