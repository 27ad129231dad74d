"""
matching_engine.py - Assign a teacher to a lesson request

Two entry points:
- match_request(request_id): a student's scheduled availability request;
  day-of-week comes from the preferred date
- match_instant(student_id, level): "right now", using the wall clock in
  the configured timezone; no underlying request row

Flow: AvailabilityIndex candidates → CandidateScorer selection → one atomic
commit that marks the request matched and inserts the lesson and its video
lesson. Nothing is written before that commit, so an abandoned or failed
match leaves the request pending and a retry is safe.

Lesson timestamps are stored as local "YYYY-MM-DDTHH:MM" strings in the
platform timezone so they compare correctly as text.
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from lessonmatch.config import settings
from lessonmatch.db import scheduling as sched
from lessonmatch.db.database import atomic
from lessonmatch.services import availability_index as index
from lessonmatch.services import lesson_lifecycle as lifecycle
from lessonmatch.services.candidate_scorer import CandidateScorer, ScoringContext, build_scorer
from lessonmatch.services.errors import (
    EngineError,
    MatchingFailed,
    NoCandidates,
    PersistenceFailure,
    RecordNotFound,
    RequestNotPending,
)

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M"


@dataclass
class MatchResult:
    lesson_id: int
    teacher_id: int
    video_lesson_id: Optional[int]
    scheduled_at: str
    scorer: str

    def to_dict(self) -> dict:
        return asdict(self)


def platform_now() -> datetime:
    return datetime.now(ZoneInfo(settings.timezone))


class MatchingEngine:
    """Per-call orchestrator. Holds no state between calls beyond its collaborators."""

    def __init__(
        self,
        db,
        scorer: Optional[CandidateScorer] = None,
        clock: Optional[Callable[[], datetime]] = None,
        commit_timeout: Optional[float] = None,
    ):
        self.db = db
        self.scorer = scorer or build_scorer()
        self._clock = clock or platform_now
        self.commit_timeout = settings.commit_timeout_seconds if commit_timeout is None else commit_timeout

    # ── Entry points ─────────────────────────────────────────────────

    async def match_request(self, request_id: int) -> MatchResult:
        try:
            return await self._match_request(request_id)
        except EngineError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error matching request %s", request_id)
            raise MatchingFailed(f"Matching failed for request {request_id}") from exc

    async def match_instant(self, student_id: int, level: str) -> MatchResult:
        try:
            return await self._match_instant(student_id, level)
        except EngineError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error in instant match for student %s", student_id)
            raise MatchingFailed(f"Instant match failed for student {student_id}") from exc

    # ── Flows ────────────────────────────────────────────────────────

    async def _match_request(self, request_id: int) -> MatchResult:
        request = await sched.get_availability_request(self.db, request_id)
        if not request:
            raise RecordNotFound("AvailabilityRequest", request_id)
        if request["status"] != sched.REQUEST_PENDING:
            raise RequestNotPending(request_id, request["status"])

        preferred_date = date.fromisoformat(request["preferred_date"])
        preferred_time = index.normalize_time(request["preferred_time"])
        scheduled_at = f"{preferred_date.isoformat()}T{preferred_time}"
        now = self._clock().strftime(TIMESTAMP_FORMAT)

        if scheduled_at < now:
            async with atomic(self.db):
                await sched.expire_request(self.db, request_id)
            logger.info("Request %s expired before matching (slot %s, now %s)", request_id, scheduled_at, now)
            raise RequestNotPending(request_id, sched.REQUEST_EXPIRED)

        level = request["preferred_level"]
        teacher_id = await self._select(
            level,
            index.day_of_week(preferred_date),
            preferred_time,
            since=now,
            description=(
                f"Student needs a {level} level lesson on {preferred_date.isoformat()} "
                f"at {preferred_time} for {request['duration_minutes']} minutes."
            ),
        )
        created = await self._commit(
            student_id=request["student_id"],
            teacher_id=teacher_id,
            scheduled_at=scheduled_at,
            duration_minutes=request["duration_minutes"],
            level=level,
            request_id=request_id,
        )
        logger.info("Request %s matched: lesson %s with teacher %s", request_id, created.lesson_id, teacher_id)
        return MatchResult(created.lesson_id, teacher_id, created.video_lesson_id, scheduled_at, self.scorer.name)

    async def _match_instant(self, student_id: int, level: str) -> MatchResult:
        now = self._clock()
        scheduled_at = now.strftime(TIMESTAMP_FORMAT)
        current_time = now.strftime("%H:%M")

        teacher_id = await self._select(
            level,
            index.day_of_week(now.date()),
            current_time,
            since=scheduled_at,
            description=f"Student needs an INSTANT {level} level lesson right now.",
        )
        created = await self._commit(
            student_id=student_id,
            teacher_id=teacher_id,
            scheduled_at=scheduled_at,
            duration_minutes=settings.instant_lesson_minutes,
            level=level,
        )
        logger.info("Instant lesson %s for student %s with teacher %s", created.lesson_id, student_id, teacher_id)
        return MatchResult(created.lesson_id, teacher_id, created.video_lesson_id, scheduled_at, self.scorer.name)

    # ── Steps ────────────────────────────────────────────────────────

    async def _select(self, level: str, day: int, time: str, *, since: str, description: str) -> int:
        candidate_ids = await index.candidates(self.db, level, day, time)
        if not candidate_ids:
            raise NoCandidates(level, day, time)

        context = ScoringContext(
            level=level,
            profiles=await index.candidate_profiles(self.db, candidate_ids),
            load=await index.upcoming_load(self.db, candidate_ids, since),
            description=description,
        )
        return await self.scorer.select(candidate_ids, context)

    async def _commit(
        self,
        *,
        student_id: int,
        teacher_id: int,
        scheduled_at: str,
        duration_minutes: int,
        level: str,
        request_id: Optional[int] = None,
    ) -> lifecycle.CreatedLesson:
        """Request → matched plus lesson insert, all or nothing, within the commit timeout."""

        async def _write() -> lifecycle.CreatedLesson:
            async with atomic(self.db):
                if request_id is not None and not await sched.mark_request_matched(self.db, request_id):
                    current = await sched.get_availability_request(self.db, request_id)
                    raise RequestNotPending(request_id, current["status"] if current else "missing")
                return await lifecycle.create_lesson(
                    self.db,
                    student_id=student_id,
                    teacher_id=teacher_id,
                    scheduled_at=scheduled_at,
                    duration_minutes=duration_minutes,
                    lesson_type=level,
                    is_video_lesson=True,
                    availability_request_id=request_id,
                )

        try:
            return await asyncio.wait_for(_write(), timeout=self.commit_timeout)
        except RequestNotPending:
            raise
        except asyncio.TimeoutError as exc:
            logger.error("Lesson commit timed out after %ss (request=%s)", self.commit_timeout, request_id)
            raise PersistenceFailure("Lesson commit timed out") from exc
        except Exception as exc:
            logger.error("Lesson commit failed (request=%s): %s", request_id, exc)
            raise PersistenceFailure(f"Lesson commit failed: {exc}") from exc


async def expire_stale_requests(db, now: Optional[datetime] = None) -> int:
    """Mark pending requests whose slot has already passed as expired. Returns how many."""
    now = now or platform_now()
    stale = await sched.list_pending_requests_before(
        db, now.strftime("%Y-%m-%d"), now.strftime("%H:%M")
    )
    expired = 0
    async with atomic(db):
        for request in stale:
            if await sched.expire_request(db, request["id"]):
                expired += 1
    if expired:
        logger.info("Expired %d stale availability requests", expired)
    return expired
