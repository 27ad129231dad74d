"""
lesson_summary.py - Post-lesson AI summary

summarize_video_lesson(db, video_lesson_id, live_tips, transcript_snippets):
1. Asks the AI client for a JSON summary (strengths, improvements, homework, next topics)
2. Stores it as the video lesson's ai_insights
3. Creates a homework assignment for each suggested task
4. Completes the lesson - this is the external completion signal the
   lifecycle accepts from any non-terminal state

Steps 2-4 commit together. If the AI call fails nothing is written.
"""

import json
import logging
from datetime import date, datetime, timedelta
from typing import Optional, List, Dict, Any

from lessonmatch.db import scheduling as sched
from lessonmatch.db.database import atomic
from lessonmatch.services import lesson_lifecycle as lifecycle
from lessonmatch.services.ai_client import ai_chat
from lessonmatch.services.errors import AIServiceError, RecordNotFound

logger = logging.getLogger(__name__)

DEFAULT_HOMEWORK_DAYS = 7

SYSTEM_PROMPT = """You are a language teaching assistant generating a post-lesson summary.
Analyze the lesson data and create:
1. Overall performance summary (2-3 sentences)
2. Top 3 strengths
3. Top 3 areas for improvement
4. 3-5 homework suggestions
5. Recommended next topics

Be specific, actionable, and encouraging.
Respond in JSON format:
{
  "summary": "string",
  "strengths": ["string", "string", "string"],
  "improvements": ["string", "string", "string"],
  "homework": [
    {"task": "string", "description": "string", "dueInDays": 7}
  ],
  "nextTopics": ["string", "string"]
}"""


def _duration_minutes(video: Dict[str, Any]) -> int:
    if not video.get("start_time") or not video.get("end_time"):
        return 0
    try:
        start = datetime.fromisoformat(video["start_time"])
        end = datetime.fromisoformat(video["end_time"])
    except ValueError:
        return 0
    return max(0, round((end - start).total_seconds() / 60))


def parse_summary(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    """Summary dict from model output, or None when it is not a JSON object."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _homework_items(summary: Dict[str, Any]) -> List[Dict[str, Any]]:
    items = summary.get("homework")
    if not isinstance(items, list):
        return []
    return [hw for hw in items if isinstance(hw, dict) and hw.get("task")]


async def summarize_video_lesson(
    db,
    video_lesson_id: int,
    live_tips: Optional[list] = None,
    transcript_snippets: Optional[list] = None,
    chat=None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    video = await sched.get_video_lesson(db, video_lesson_id)
    if not video:
        raise RecordNotFound("VideoLesson", video_lesson_id)
    lesson = await sched.get_lesson(db, video["lesson_id"]) if video.get("lesson_id") else None

    user_prompt = f"""Lesson type: {lesson['lesson_type'] if lesson else 'group session'}
Duration: {_duration_minutes(video)} minutes

Live tips during lesson:
{json.dumps(live_tips or [], indent=2)}

Key transcript moments:
{json.dumps(transcript_snippets or [], indent=2)}"""

    chat = chat or ai_chat
    try:
        raw = await chat(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            use_case="summary",
            temperature=0.8,
            json_mode=True,
            max_tokens=2048,
        )
    except Exception as exc:
        raise AIServiceError(f"Post-lesson summary failed for video lesson {video_lesson_id}") from exc

    summary = parse_summary(raw)
    if summary is None:
        raise AIServiceError(f"Post-lesson summary for video lesson {video_lesson_id} was not valid JSON")

    today = today or date.today()
    homework = _homework_items(summary)

    async with atomic(db):
        await sched.set_video_insights(db, video_lesson_id, summary)
        if video.get("student_id"):
            for hw in homework:
                days = hw.get("dueInDays")
                days = days if isinstance(days, int) and days > 0 else DEFAULT_HOMEWORK_DAYS
                await sched.create_homework_assignment(
                    db,
                    student_id=video["student_id"],
                    title=str(hw["task"]),
                    lesson_id=video.get("lesson_id"),
                    teacher_id=video.get("teacher_id"),
                    description=hw.get("description"),
                    due_date=(today + timedelta(days=days)).isoformat(),
                )
        # The lesson may have moved while the model was answering
        if lesson:
            lesson = await sched.get_lesson(db, lesson["id"])
        if lesson and lesson["status"] not in lifecycle.TERMINAL_STATES:
            await lifecycle.apply_transition(db, lesson, lifecycle.COMPLETED, external=True)
        elif lesson is None and video["status"] not in lifecycle.TERMINAL_STATES:
            await db.execute(
                "UPDATE video_lessons SET status = ?, end_time = ?, updated_at = ? WHERE id = ?",
                (lifecycle.COMPLETED, sched.utc_now_iso(), sched.utc_now_iso(), video_lesson_id),
            )

    logger.info("Video lesson %s summarized: %d homework items, lesson %s completed",
                video_lesson_id, len(homework), lesson["id"] if lesson else None)
    return summary
