from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Literal


Priority = Literal["low", "medium", "high"]
PeriodType = Literal["monthly", "weekly", "daily"]
Strategy = Literal["EvenDistribution", "FrontLoad", "Manual"]


class MetricSchema(BaseModel):
    """Embedded (label, target, current, unit) value."""
    label: str
    target: float = Field(ge=0)
    current: float = Field(default=0, ge=0)
    unit: str = "count"


# --- Goals ---

class GoalFilters(BaseModel):
    """Optional filters for a goal range read. Unset fields do not filter."""
    completed: Optional[bool] = None
    is_debt: Optional[bool] = None
    priority: Optional[Priority] = None
    urgent: Optional[bool] = None
    category: Optional[str] = None
    parent_goal_id: Optional[UUID] = None
    template_id: Optional[UUID] = None


class GoalCreate(BaseModel):
    text: str = Field(min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    due_date: Optional[date] = None  # user's local calendar day
    tz_offset: int = 0
    priority: Priority = "medium"
    urgent: bool = False
    metrics: Optional[List[MetricSchema]] = None
    problem_id: Optional[str] = None
    labels: Optional[List[str]] = None
    parent_goal_id: Optional[UUID] = None


class GoalUpdate(BaseModel):
    """Partial update. Only fields explicitly sent are written."""
    text: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[Priority] = None
    urgent: Optional[bool] = None
    metrics: Optional[List[MetricSchema]] = None
    problem_id: Optional[str] = None
    labels: Optional[List[str]] = None
    due_date: Optional[date] = None
    tz_offset: int = 0


class GoalResponse(BaseModel):
    id: UUID
    created_at: Optional[datetime] = None
    text: str
    description: Optional[str] = None
    category: Optional[str] = None
    completed: bool
    completed_at: Optional[datetime] = None
    verified: bool
    due_date: Optional[datetime] = None
    due_date_local: Optional[str] = None
    template_id: Optional[UUID] = None
    parent_goal_id: Optional[UUID] = None
    priority: str
    urgent: bool
    metrics: Optional[List[MetricSchema]] = None
    problem_id: Optional[str] = None
    labels: Optional[List[str]] = None
    linked_activity_ids: Optional[List[str]] = None
    is_debt: bool
    original_date: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LinkActivityRequest(BaseModel):
    activity_id: UUID


# --- Templates ---

class TemplateCreate(BaseModel):
    text: str = Field(min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    recurring_pattern: str = Field(min_length=1)
    priority: Priority = "medium"
    urgent: bool = False
    metrics: Optional[List[MetricSchema]] = None
    problem_id: Optional[str] = None
    labels: Optional[List[str]] = None


class TemplateUpdate(BaseModel):
    text: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    recurring_pattern: Optional[str] = Field(default=None, min_length=1)
    priority: Optional[Priority] = None
    urgent: Optional[bool] = None
    metrics: Optional[List[MetricSchema]] = None
    problem_id: Optional[str] = None
    labels: Optional[List[str]] = None
    is_active: Optional[bool] = None


class TemplateResponse(BaseModel):
    id: UUID
    created_at: Optional[datetime] = None
    text: str
    description: Optional[str] = None
    category: Optional[str] = None
    recurring_pattern: str
    priority: str
    urgent: bool
    metrics: Optional[List[MetricSchema]] = None
    problem_id: Optional[str] = None
    labels: Optional[List[str]] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# --- Debt ---

class DebtTransitionRequest(BaseModel):
    month: str  # YYYY-MM
    reason: Optional[str] = None


class DebtResetRequest(BaseModel):
    goal_ids: List[UUID]


class CountResponse(BaseModel):
    count: int


class DebtRecordResponse(BaseModel):
    id: UUID
    goal_id: UUID
    original_date: Optional[str] = None
    original_month: Optional[str] = None
    source: str
    reason: Optional[str] = None
    goal_text: str
    goal_data: Optional[dict] = None
    archived_at: datetime
    resolved_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DebtTrailDay(BaseModel):
    date: str
    count: int
    goals: List[GoalResponse]


class AccumulatedDebtResponse(BaseModel):
    before: str
    count: int
    goals: List[GoalResponse]


# --- Shadow ---

class ShadowInput(BaseModel):
    """One external submission, as delivered by a scraper."""
    occurred_at: datetime
    problem_id: str = Field(min_length=1)
    title: str
    platform: str = Field(min_length=1)
    # Minutes east of UTC for the activity's local date; falls back to settings.
    timezone_offset: Optional[int] = None

    @field_validator("occurred_at")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("occurred_at must include a timezone")
        return v


class ShadowEventResponse(BaseModel):
    activity_id: Optional[UUID] = None
    already_processed: bool


class ShadowBatchRequest(BaseModel):
    events: List[ShadowInput]


class ShadowBatchResponse(BaseModel):
    created: Optional[int] = None
    task_id: Optional[str] = None
    queued: bool = False


# --- Milestones ---

class MilestoneCreate(BaseModel):
    target_metric: str = Field(min_length=1)
    daily_amount: int = Field(gt=0)
    period_type: PeriodType = "monthly"
    period_start: date
    period_end: date
    strategy: Strategy = "EvenDistribution"
    recurring_pattern: Optional[str] = None
    problem_id: Optional[str] = None
    label: Optional[str] = None
    unit: Optional[str] = None
    # Offset used to date the seeded instances.
    tz_offset: int = 0


class MilestoneUpdate(BaseModel):
    target_metric: Optional[str] = Field(default=None, min_length=1)
    target_value: Optional[int] = Field(default=None, gt=0)
    strategy: Optional[Strategy] = None
    label: Optional[str] = None
    unit: Optional[str] = None
    problem_id: Optional[str] = None


class MilestoneResponse(BaseModel):
    id: UUID
    created_at: Optional[datetime] = None
    target_metric: str
    daily_amount: int
    target_value: int
    period_type: str
    period_start: date
    period_end: date
    strategy: str
    current_value: float
    recurring_pattern: Optional[str] = None
    problem_id: Optional[str] = None
    label: Optional[str] = None
    unit: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class MilestoneProgress(BaseModel):
    milestone_id: UUID
    target_value: int
    current_value: float
    remaining: float
    percent_complete: float
    total_days: int
    elapsed_days: int
    remaining_days: int
    daily_required: Optional[int] = None
    expected_by_now: int
    on_track: bool


class BalancerResult(BaseModel):
    milestone_id: UUID
    updated_count: int
    daily_required: int
    message: str


# --- Activities ---

class ActivityCreate(BaseModel):
    start_time: datetime
    end_time: datetime
    category: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: Optional[str] = None
    is_productive: bool = True
    goal_id: Optional[UUID] = None
    tz_offset: int = 0


class ActivityResponse(BaseModel):
    id: UUID
    date: str
    start_time: datetime
    end_time: datetime
    category: str
    title: str
    description: Optional[str] = None
    is_productive: bool
    is_shadow: bool
    goal_id: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)


class DailyActivities(BaseModel):
    date: str
    activities: List[ActivityResponse]
    total_minutes: int
    productive_minutes: int
    goal_directed_minutes: int
