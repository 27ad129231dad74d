from pydantic import BaseModel, Field
from typing import Optional


class SlotIn(BaseModel):
    """A recurring weekly slot a teacher is willing to teach (0 = Sunday)."""
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: str = Field(..., description="HH:MM (24h)")
    end_time: str = Field(..., description="HH:MM (24h)")
    level: str
    is_available: bool = True


class SlotUpdate(BaseModel):
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    level: Optional[str] = None
    is_available: Optional[bool] = None


class AvailabilityRequestIn(BaseModel):
    model_config = {"populate_by_name": True}

    student_id: Optional[int] = Field(None, alias="studentId")
    preferred_date: str = Field(..., alias="preferredDate", description="YYYY-MM-DD")
    preferred_time: str = Field(..., alias="preferredTime", description="HH:MM (24h)")
    preferred_level: str = Field(..., alias="preferredLevel")
    duration_minutes: int = Field(50, alias="durationMinutes", ge=15, le=180)
    notes: Optional[str] = None


class InstantMatchIn(BaseModel):
    model_config = {"populate_by_name": True}

    student_id: Optional[int] = Field(None, alias="studentId")
    level: str


class MeetingLinkIn(BaseModel):
    meeting_link: str = Field(..., min_length=1, alias="meetingLink")

    model_config = {"populate_by_name": True}


class LessonSummaryIn(BaseModel):
    model_config = {"populate_by_name": True}

    live_tips: list = Field(default_factory=list, alias="liveTips")
    transcript_snippets: list = Field(default_factory=list, alias="transcriptSnippets")


class GoalRecomputeIn(BaseModel):
    model_config = {"populate_by_name": True}

    student_id: int = Field(..., alias="studentId")
    group_goal_id: int = Field(..., alias="groupGoalId")
