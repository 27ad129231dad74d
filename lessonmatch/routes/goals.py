"""Group goal endpoints: progress recompute and personalized descriptions."""

import logging
from fastapi import APIRouter, Depends, Request

from lessonmatch.db.database import get_db
from lessonmatch.models.scheduling import GoalRecomputeIn
from lessonmatch.routes.auth import require_student_owner
from lessonmatch.routes.common import http_error
from lessonmatch.services.errors import EngineError
from lessonmatch.services.goal_personalizer import personalize_goal
from lessonmatch.services.goal_progress import GoalProgressEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["goals"])


@router.post("/api/goals/recompute")
async def recompute_goal(body: GoalRecomputeIn, request: Request, db=Depends(get_db)):
    await require_student_owner(request, body.student_id, db)
    try:
        progress = await GoalProgressEngine(db).recompute(body.student_id, body.group_goal_id)
    except EngineError as e:
        raise http_error(e)
    return progress.to_response()


@router.post("/api/goals/{group_goal_id}/personalize")
async def personalize(group_goal_id: int, student_id: int, request: Request, db=Depends(get_db)):
    await require_student_owner(request, student_id, db)
    try:
        description = await personalize_goal(db, group_goal_id, student_id)
    except EngineError as e:
        raise http_error(e)
    return {"personalized": description is not None, "personalizedDescription": description}
