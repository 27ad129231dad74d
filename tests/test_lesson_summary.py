"""Tests for the post-lesson AI summary."""

import asyncio
import json
from datetime import date

import pytest

from factories import add_group_goal, add_lesson, add_user, count_rows
from lessonmatch.db import scheduling as sched
from lessonmatch.services import lesson_lifecycle as lifecycle
from lessonmatch.services.errors import AIServiceError, RecordNotFound
from lessonmatch.services.lesson_summary import parse_summary, summarize_video_lesson

SUMMARY = {
    "summary": "Solid session on past tenses.",
    "strengths": ["pronunciation", "listening", "vocabulary"],
    "improvements": ["articles", "irregular verbs", "word order"],
    "homework": [
        {"task": "Irregular verbs drill", "description": "20 verbs, 3 forms each", "dueInDays": 3},
        {"task": "Write a diary entry", "description": "150 words about last weekend"},
        {"description": "no task name, skipped"},
    ],
    "nextTopics": ["present perfect"],
}


def _chat(reply, seen=None):
    async def chat(messages, **kwargs):
        if seen is not None:
            seen.append((messages, kwargs))
        return reply
    return chat


class TestParseSummary:

    def test_object_only(self):
        """Test that only JSON objects parse as summaries."""
        assert parse_summary('{"summary": "ok"}') == {"summary": "ok"}
        assert parse_summary("[1, 2]") is None
        assert parse_summary("not json") is None
        assert parse_summary(None) is None


class TestSummarizeVideoLesson:

    def test_stores_insights_creates_homework_and_completes_lesson(self, new_db):
        """Test the full summary flow."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                lesson_id, video_id = await add_lesson(db, student, teacher)
                await lifecycle.start_lesson(db, lesson_id)

                seen = []
                summary = await summarize_video_lesson(
                    db,
                    video_id,
                    live_tips=["Use 'went', not 'goed'"],
                    transcript_snippets=["Yesterday I goed to the park"],
                    chat=_chat(json.dumps(SUMMARY), seen),
                    today=date(2030, 1, 7),
                )
                assert summary["summary"] == "Solid session on past tenses."

                messages, kwargs = seen[0]
                assert kwargs["use_case"] == "summary"
                assert kwargs["json_mode"] is True
                assert "goed to the park" in messages[1]["content"]

                video = await sched.get_video_lesson(db, video_id)
                assert video["ai_insights"]["nextTopics"] == ["present perfect"]
                assert video["status"] == "completed"
                assert (await sched.get_lesson(db, lesson_id))["status"] == "completed"

                cursor = await db.execute(
                    "SELECT title, due_date, lesson_id, teacher_id FROM homework_assignments ORDER BY id"
                )
                rows = [dict(r) for r in await cursor.fetchall()]
                assert rows == [
                    {"title": "Irregular verbs drill", "due_date": "2030-01-10",
                     "lesson_id": lesson_id, "teacher_id": teacher},
                    {"title": "Write a diary entry", "due_date": "2030-01-14",
                     "lesson_id": lesson_id, "teacher_id": teacher},
                ]
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_summary_completes_a_lesson_that_never_started(self, new_db):
        """Test summary completion of a scheduled lesson."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                lesson_id, video_id = await add_lesson(db, student, teacher)

                await summarize_video_lesson(db, video_id, chat=_chat('{"summary": "short"}'))
                assert (await sched.get_lesson(db, lesson_id))["status"] == "completed"
                assert await count_rows(db, "homework_assignments") == 0
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_lesson_started_while_model_was_answering(self, new_db):
        """The completion uses the lesson status as it is at write time."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                lesson_id, video_id = await add_lesson(db, student, teacher)

                async def slow_chat(messages, **kwargs):
                    await lifecycle.start_lesson(db, lesson_id)
                    return json.dumps(SUMMARY)

                await summarize_video_lesson(db, video_id, chat=slow_chat, today=date(2030, 1, 7))
                assert (await sched.get_lesson(db, lesson_id))["status"] == "completed"
                video = await sched.get_video_lesson(db, video_id)
                assert video["ai_insights"]["summary"] == "Solid session on past tenses."
                assert await count_rows(db, "homework_assignments") == 2
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_already_completed_lesson_only_gets_insights(self, new_db):
        """Test summary on a completed lesson."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                lesson_id, video_id = await add_lesson(db, student, teacher, status="completed")

                await summarize_video_lesson(db, video_id, chat=_chat('{"summary": "again"}'))
                video = await sched.get_video_lesson(db, video_id)
                assert video["ai_insights"] == {"summary": "again"}
                assert (await sched.get_lesson(db, lesson_id))["status"] == "completed"
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_group_session_without_lesson_is_closed(self, new_db):
        """Test summary on a group session."""
        async def scenario():
            db = await new_db()
            try:
                teacher = await add_user(db, "Ana", role="teacher")
                group_id, _ = await add_group_goal(db, teacher, "lessons", 10)
                video_id = await lifecycle.create_group_video_session(db, group_id)

                await summarize_video_lesson(db, video_id, chat=_chat(json.dumps(SUMMARY)))
                video = await sched.get_video_lesson(db, video_id)
                assert video["status"] == "completed"
                # no single student to assign homework to
                assert await count_rows(db, "homework_assignments") == 0
            finally:
                await db.close()

        asyncio.run(scenario())

    @pytest.mark.parametrize("reply", ["Great lesson!", "", "[]"])
    def test_unusable_output_writes_nothing(self, new_db, reply):
        """Test that unusable output writes nothing."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                lesson_id, video_id = await add_lesson(db, student, teacher)

                with pytest.raises(AIServiceError):
                    await summarize_video_lesson(db, video_id, chat=_chat(reply))
                assert (await sched.get_video_lesson(db, video_id))["ai_insights"] is None
                assert (await sched.get_lesson(db, lesson_id))["status"] == "scheduled"
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_ai_error_is_chained(self, new_db):
        """Test that AI errors are chained."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                _, video_id = await add_lesson(db, student, teacher)

                async def down(messages, **kwargs):
                    raise TimeoutError("upstream")

                with pytest.raises(AIServiceError) as exc_info:
                    await summarize_video_lesson(db, video_id, chat=down)
                assert isinstance(exc_info.value.__cause__, TimeoutError)
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_unknown_video_lesson(self, new_db):
        """Test summary for an unknown video lesson."""
        async def scenario():
            db = await new_db()
            try:
                with pytest.raises(RecordNotFound):
                    await summarize_video_lesson(db, 5, chat=_chat("{}"))
            finally:
                await db.close()

        asyncio.run(scenario())
