"""
candidate_scorer.py - Pick one teacher from a candidate list

Two strategies share the CandidateScorer contract:
- DeterministicScorer: least upcoming lessons wins, ties go to the earlier candidate
- AssistedScorer: asks the AI client to rank candidates, and falls back to the
  deterministic scorer on timeout, rate limiting, exhausted quota, any other
  call failure, or output that does not name one of the candidates

Usage:
    scorer = build_scorer()            # honours SCORER_MODE
    teacher_id = await scorer.select(candidate_ids, context)
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from lessonmatch.config import settings
from lessonmatch.services.ai_client import (
    ai_chat,
    status_code_of,
    RATE_LIMIT_STATUS,
    QUOTA_EXHAUSTED_STATUS,
)
from lessonmatch.services.errors import ScorerUnavailable

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an intelligent lesson matching system. Select the best teacher for a student based on:
- Teacher availability
- Teacher experience with different proficiency levels
- Fair distribution of lessons among teachers

Return ONLY a JSON object of the form {"teacher_id": <id>} naming one of the listed teachers."""

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class ScoringContext:
    """What a scorer knows about the request and the candidates."""
    level: str
    profiles: List[Dict[str, Any]] = field(default_factory=list)
    load: Dict[int, int] = field(default_factory=dict)
    description: str = ""


class CandidateScorer(ABC):
    name = "base"

    @abstractmethod
    async def select(self, candidates: List[int], context: ScoringContext) -> int:
        """Return one teacher id from ``candidates`` (which must be non-empty)."""


class DeterministicScorer(CandidateScorer):
    name = "deterministic"

    async def select(self, candidates: List[int], context: ScoringContext) -> int:
        if not candidates:
            raise ValueError("select() needs at least one candidate")
        # min() keeps the first of equal keys, so ties resolve by candidate order
        return min(candidates, key=lambda tid: context.load.get(tid, 0))


class AssistedScorer(CandidateScorer):
    name = "assisted"

    def __init__(
        self,
        fallback: Optional[CandidateScorer] = None,
        timeout: Optional[float] = None,
        chat=None,
    ):
        self.fallback = fallback or DeterministicScorer()
        self.timeout = settings.scorer_timeout_seconds if timeout is None else timeout
        self._chat = chat or ai_chat

    async def select(self, candidates: List[int], context: ScoringContext) -> int:
        if not candidates:
            raise ValueError("select() needs at least one candidate")

        try:
            raw = await self._rank(candidates, context)
        except ScorerUnavailable as exc:
            logger.warning("Assisted scorer unavailable (%s), using %s", exc.reason, self.fallback.name)
            return await self.fallback.select(candidates, context)

        choice = parse_selection(raw, candidates)
        if choice is None:
            logger.warning("Assisted scorer returned unusable output %r, using %s",
                           (raw or "")[:200], self.fallback.name)
            return await self.fallback.select(candidates, context)

        logger.info("Assisted scorer selected teacher %s from %s", choice, candidates)
        return choice

    async def _rank(self, candidates: List[int], context: ScoringContext) -> str:
        """One bounded call to the AI client. Any failure surfaces as ScorerUnavailable."""
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(candidates, context)},
        ]
        try:
            return await asyncio.wait_for(
                self._chat(messages, use_case="matching", temperature=0.2, json_mode=True),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ScorerUnavailable("timeout") from exc
        except Exception as exc:
            code = status_code_of(exc)
            if code == RATE_LIMIT_STATUS:
                reason = "rate_limited"
            elif code == QUOTA_EXHAUSTED_STATUS:
                reason = "quota_exhausted"
            elif code is not None:
                reason = f"http_{code}"
            else:
                reason = type(exc).__name__
            raise ScorerUnavailable(reason, code) from exc


def build_user_prompt(candidates: List[int], context: ScoringContext) -> str:
    profiles = {p["teacher_id"]: p for p in context.profiles}
    teachers = [
        {
            "teacherId": tid,
            "name": profiles.get(tid, {}).get("name", "Unknown"),
            "levels": profiles.get(tid, {}).get("levels", []),
            "upcomingLessons": context.load.get(tid, 0),
        }
        for tid in candidates
    ]
    return (
        f"{context.description or f'Student needs a {context.level} level lesson.'}\n"
        f"Available teachers: {json.dumps(teachers)}"
    )


def parse_selection(raw: Optional[str], candidates: List[int]) -> Optional[int]:
    """Extract the chosen teacher id from model output, or None if it is unusable.

    Accepts the first {...} block in the text, keyed by ``teacher_id`` or
    ``teacherId``. Ids that are not among the candidates count as unusable.
    """
    if not isinstance(raw, str) or not raw.strip():
        return None

    match = _JSON_OBJECT_RE.search(raw)
    try:
        data = json.loads(match.group(0) if match else raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    value = data.get("teacher_id", data.get("teacherId"))
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value not in candidates:
        return None
    return value


def build_scorer(mode: Optional[str] = None) -> CandidateScorer:
    """Scorer for the configured SCORER_MODE (or an explicit ``mode``)."""
    mode = (mode or settings.scorer_mode).lower()
    if mode == "assisted":
        return AssistedScorer()
    if mode == "deterministic":
        return DeterministicScorer()
    raise ValueError(f"Unknown scorer mode: {mode}")
