"""
goal_progress.py - Derive a student's progress toward a group goal

recompute(student_id, group_goal_id) pulls four raw metrics for the student
and maps the goal's unit onto a formula:

    lessons              → lessons attended
    assignments/homework → round(homework completion % × target / 100)
    points (and unknown) → round(performance score × target / 100)
    hours                → round(lessons attended × 1.5)

The performance score is the mean of homework completion %, average review
score and average conversation confidence, each on a 0-100 scale.

The result is upserted into student_goal_progress keyed by
(group_goal_id, student_id). Clamping to the target is optional
(GOAL_PROGRESS_CLAMP, default off).
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from lessonmatch.config import settings
from lessonmatch.db import goals as goals_db
from lessonmatch.db.database import atomic
from lessonmatch.services.errors import RecordNotFound

logger = logging.getLogger(__name__)

UNIT_LESSONS = "lessons"
UNIT_ASSIGNMENTS = "assignments"
UNIT_HOMEWORK = "homework"
UNIT_POINTS = "points"
UNIT_HOURS = "hours"

# Fixed lesson-length assumption for the hours unit (90 minutes)
HOURS_PER_LESSON = 1.5


@dataclass
class StudentMetrics:
    lessons_attended: int = 0
    homework_completion_rate: float = 0.0
    avg_review_score: float = 0.0
    avg_confidence: float = 0.0

    @property
    def performance_score(self) -> float:
        return (self.homework_completion_rate + self.avg_review_score + self.avg_confidence) / 3


@dataclass
class GoalProgress:
    current_value: int
    target_value: int
    unit: str

    def to_response(self) -> dict:
        return {
            "currentValue": self.current_value,
            "targetValue": self.target_value,
            "unit": self.unit,
        }


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_value(unit: str, metrics: StudentMetrics, target: int, clamp: bool = False) -> int:
    unit = (unit or "").lower()
    if unit == UNIT_LESSONS:
        value = metrics.lessons_attended
    elif unit in (UNIT_ASSIGNMENTS, UNIT_HOMEWORK):
        value = round_half_up(metrics.homework_completion_rate * target / 100)
    elif unit == UNIT_HOURS:
        value = round_half_up(metrics.lessons_attended * HOURS_PER_LESSON)
    else:
        # points, "other" and anything unrecognised
        value = round_half_up(metrics.performance_score * target / 100)

    if clamp:
        value = min(value, target)
    return value


async def collect_metrics(db, student_id: int) -> StudentMetrics:
    completed, total = await goals_db.homework_counts(db, student_id)
    return StudentMetrics(
        lessons_attended=await goals_db.count_attended_lessons(db, student_id),
        homework_completion_rate=(completed / total * 100) if total else 0.0,
        avg_review_score=await goals_db.average_review_score(db, student_id),
        avg_confidence=await goals_db.average_confidence(db, student_id),
    )


class GoalProgressEngine:
    def __init__(self, db, clamp: Optional[bool] = None):
        self.db = db
        self.clamp = settings.goal_progress_clamp if clamp is None else clamp

    async def recompute(self, student_id: int, group_goal_id: int) -> GoalProgress:
        goal = await goals_db.get_group_goal(self.db, group_goal_id)
        if not goal:
            raise RecordNotFound("GroupGoal", group_goal_id)

        metrics = await collect_metrics(self.db, student_id)
        target = int(goal["target_value"])
        value = compute_value(goal["unit"], metrics, target, clamp=self.clamp)

        async with atomic(self.db):
            await goals_db.upsert_goal_progress_value(self.db, group_goal_id, student_id, value)

        logger.info("Goal %s progress for student %s: %s/%s %s",
                    group_goal_id, student_id, value, target, goal["unit"])
        return GoalProgress(current_value=value, target_value=target, unit=goal["unit"])
