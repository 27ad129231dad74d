"""Personalized goal narratives.

Rewrites a teacher's group goal as a short, encouraging message addressed to
one student and stores it on the student's progress row. Failures are
fail-soft: the previous narrative (if any) is kept and None is returned.
"""

import logging
from typing import Optional

from lessonmatch.db import goals as goals_db
from lessonmatch.db import scheduling as sched
from lessonmatch.db.database import atomic
from lessonmatch.services.ai_client import ai_chat
from lessonmatch.services.errors import RecordNotFound

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a supportive language learning coach."


def _goal_prompt(goal: dict, student_name: str) -> str:
    return f"""A teacher has set the following group goal:

Title: {goal['title']}
Description: {goal.get('description') or ''}
Target: {goal['target_value']} {goal['unit']}
Duration: {goal.get('start_date') or '?'} to {goal.get('end_date') or '?'}

Create a personalized, encouraging version of this goal for student "{student_name}".
Keep it motivating, specific, and aligned with the original goal but personalized to make the student feel directly addressed.
Maximum 2-3 sentences. Be warm and supportive."""


async def personalize_goal(db, group_goal_id: int, student_id: int, chat=None) -> Optional[str]:
    goal = await goals_db.get_group_goal(db, group_goal_id)
    if not goal:
        raise RecordNotFound("GroupGoal", group_goal_id)
    student = await sched.get_user(db, student_id)
    if not student:
        raise RecordNotFound("Student", student_id)

    chat = chat or ai_chat
    try:
        text = await chat(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": _goal_prompt(goal, student["name"] or "Student")},
            ],
            use_case="cheap",
            temperature=0.8,
            max_tokens=300,
        )
    except Exception as e:
        logger.error(f"Goal personalization failed for goal {group_goal_id}, student {student_id}: {e}")
        return None

    text = (text or "").strip()
    if not text:
        logger.warning(f"Empty personalization for goal {group_goal_id}, student {student_id}")
        return None

    async with atomic(db):
        await goals_db.upsert_goal_description(db, group_goal_id, student_id, text)
    return text
