"""Tests for goal progress formulas, recompute and personalization."""

import asyncio

import pytest

from factories import add_group_goal, add_homework, add_lesson, add_user, count_rows
from lessonmatch.db import goals as goals_db
from lessonmatch.services.errors import RecordNotFound
from lessonmatch.services.goal_personalizer import personalize_goal
from lessonmatch.services.goal_progress import (
    GoalProgressEngine,
    StudentMetrics,
    compute_value,
    round_half_up,
)


class TestFormulas:

    def test_lessons_is_raw_count_regardless_of_target(self):
        """Test the lessons formula."""
        metrics = StudentMetrics(lessons_attended=7)
        assert compute_value("lessons", metrics, target=5) == 7
        assert compute_value("lessons", metrics, target=100) == 7

    def test_homework_rate_scales_target(self):
        """Test the homework formula."""
        metrics = StudentMetrics(homework_completion_rate=50.0)
        assert compute_value("homework", metrics, target=10) == 5
        assert compute_value("assignments", metrics, target=10) == 5

    def test_hours_assume_ninety_minute_lessons(self):
        """Test the hours formula."""
        assert compute_value("hours", StudentMetrics(lessons_attended=4), target=50) == 6
        assert compute_value("hours", StudentMetrics(lessons_attended=3), target=50) == 5  # 4.5 rounds up

    def test_points_use_mean_of_three_scores(self):
        """Test the points formula."""
        metrics = StudentMetrics(homework_completion_rate=60, avg_review_score=90, avg_confidence=30)
        assert metrics.performance_score == 60
        assert compute_value("points", metrics, target=200) == 120

    def test_unknown_unit_behaves_like_points(self):
        """Test that unknown units use the points formula."""
        metrics = StudentMetrics(homework_completion_rate=60, avg_review_score=90, avg_confidence=30)
        assert compute_value("other", metrics, 200) == compute_value("points", metrics, 200)
        assert compute_value("", metrics, 200) == 120

    def test_clamp_is_optional(self):
        """Test optional clamping to the target."""
        metrics = StudentMetrics(lessons_attended=12)
        assert compute_value("lessons", metrics, target=10) == 12
        assert compute_value("lessons", metrics, target=10, clamp=True) == 10

    def test_round_half_up(self):
        """Test half-up rounding."""
        assert round_half_up(2.5) == 3
        assert round_half_up(7.5) == 8
        assert round_half_up(2.4999) == 2
        assert round_half_up(0) == 0


class TestRecompute:

    def test_lessons_goal_counts_completed_lessons(self, new_db):
        """Only completed lessons count toward a lessons goal."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                _, goal_id = await add_group_goal(db, teacher, "lessons", target=5)
                for _ in range(7):
                    await add_lesson(db, student, teacher, status="completed", with_video=False)
                await add_lesson(db, student, teacher, status="cancelled", with_video=False)

                progress = await GoalProgressEngine(db, clamp=False).recompute(student, goal_id)
                assert progress.current_value == 7
                assert progress.to_response() == {"currentValue": 7, "targetValue": 5, "unit": "lessons"}

                clamped = await GoalProgressEngine(db, clamp=True).recompute(student, goal_id)
                assert clamped.current_value == 5
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_homework_goal_and_single_progress_row(self, new_db):
        """Test homework recompute and the single progress row."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                _, goal_id = await add_group_goal(db, teacher, "homework", target=10)
                await add_homework(db, student, completed=2, total=4)

                engine = GoalProgressEngine(db)
                assert (await engine.recompute(student, goal_id)).current_value == 5

                await add_homework(db, student, completed=4, total=4)
                assert (await engine.recompute(student, goal_id)).current_value == 8  # 6 of 8 -> 7.5

                assert await count_rows(db, "student_goal_progress") == 1
                row = await goals_db.get_goal_progress(db, goal_id, student)
                assert row["current_value"] == 8
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_hours_goal(self, new_db):
        """Test an hours goal recompute."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                _, goal_id = await add_group_goal(db, teacher, "hours", target=20)
                for _ in range(4):
                    await add_lesson(db, student, teacher, status="completed", with_video=False)

                assert (await GoalProgressEngine(db).recompute(student, goal_id)).current_value == 6
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_points_goal_reads_reviews_and_confidence(self, new_db):
        """Test a points goal recompute."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                _, goal_id = await add_group_goal(db, teacher, "points", target=100)
                await add_homework(db, student, completed=1, total=2)
                await db.execute(
                    "INSERT INTO lesson_reviews (student_id, ai_score) VALUES (?, ?), (?, ?)",
                    (student, 80, student, 100),
                )
                await db.execute(
                    "INSERT INTO conversation_analysis (student_id, confidence_score) VALUES (?, ?)",
                    (student, 70),
                )
                await db.commit()

                # (50 + 90 + 70) / 3 = 70
                assert (await GoalProgressEngine(db).recompute(student, goal_id)).current_value == 70
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_student_with_no_history_scores_zero(self, new_db):
        """Test recompute for a student with no history."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                _, goal_id = await add_group_goal(db, teacher, "points", target=100)
                assert (await GoalProgressEngine(db).recompute(student, goal_id)).current_value == 0
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_missing_goal(self, new_db):
        """Test recompute for an unknown goal."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                with pytest.raises(RecordNotFound):
                    await GoalProgressEngine(db).recompute(student, 321)
            finally:
                await db.close()

        asyncio.run(scenario())


class TestPersonalizeGoal:

    def test_stores_personalized_text_without_touching_progress(self, new_db):
        """Test goal personalization."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam Rivera")
                teacher = await add_user(db, "Ana", role="teacher")
                _, goal_id = await add_group_goal(db, teacher, "lessons", target=10)
                await GoalProgressEngine(db).recompute(student, goal_id)

                prompts = []

                async def chat(messages, **kwargs):
                    prompts.append(messages[1]["content"])
                    return "  Sam Rivera, ten lessons this term will get you talking with ease!  "

                text = await personalize_goal(db, goal_id, student, chat=chat)
                assert text == "Sam Rivera, ten lessons this term will get you talking with ease!"
                assert 'student "Sam Rivera"' in prompts[0]

                row = await goals_db.get_goal_progress(db, goal_id, student)
                assert row["personalized_description"] == text
                assert row["current_value"] == 0
                assert await count_rows(db, "student_goal_progress") == 1
            finally:
                await db.close()

        asyncio.run(scenario())

    def test_ai_failure_is_soft(self, new_db):
        """Test that personalization failures are soft."""
        async def scenario():
            db = await new_db()
            try:
                student = await add_user(db, "Sam")
                teacher = await add_user(db, "Ana", role="teacher")
                _, goal_id = await add_group_goal(db, teacher, "lessons", target=10)

                async def down(messages, **kwargs):
                    raise ConnectionError("gateway unreachable")

                assert await personalize_goal(db, goal_id, student, chat=down) is None
                assert await count_rows(db, "student_goal_progress") == 0
            finally:
                await db.close()

        asyncio.run(scenario())
