"""Error taxonomy for matching, lesson lifecycle and goal progress.

Routes translate these into HTTP responses; services raise them.
"""


class EngineError(Exception):
    """Base class for every error the assignment engine raises on purpose."""


class RecordNotFound(EngineError):
    def __init__(self, kind: str, record_id):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class NoCandidates(EngineError):
    """No teacher covers the requested level/day/time. Retry later."""

    def __init__(self, level: str, day_of_week: int, time: str):
        self.level = level
        self.day_of_week = day_of_week
        self.time = time
        super().__init__(
            f"No available teachers for level={level} day={day_of_week} time={time}"
        )


class ScorerUnavailable(EngineError):
    """The external scorer failed. Always recovered by the deterministic scorer."""

    def __init__(self, reason: str, status_code: int | None = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"scorer unavailable: {reason}")


class InvalidTransition(EngineError):
    def __init__(self, lesson_id: int, current: str, target: str):
        self.lesson_id = lesson_id
        self.current = current
        self.target = target
        super().__init__(f"Lesson {lesson_id} cannot move from '{current}' to '{target}'")


class RequestNotPending(EngineError):
    """The availability request was already matched or has expired."""

    def __init__(self, request_id: int, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Availability request {request_id} is '{status}', not 'pending'")


class PersistenceFailure(EngineError):
    """The atomic commit failed. The originating request is still pending."""


class MatchingFailed(EngineError):
    """Unexpected failure; the original exception is chained as __cause__."""


class AIServiceError(EngineError):
    """An AI-backed step (other than teacher scoring) failed or returned unusable output."""
