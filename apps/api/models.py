from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint, Uuid, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
import uuid
from typing import List, Optional


PRIORITIES = ("low", "medium", "high")
PERIOD_TYPES = ("monthly", "weekly", "daily")
STRATEGIES = ("EvenDistribution", "FrontLoad", "Manual")


class GoalTemplate(Base):
    """
    A recurring intention ("do X every Mon/Wed/Fri").

    Templates generate GoalInstances; they never carry a due date and are
    never obligations themselves.
    """
    __tablename__ = "goal_template"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    text = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(Text, nullable=True)  # e.g. 'leetcode', 'fitness'
    recurring_pattern = Column(Text, nullable=False)  # "Mon,Wed,Fri" or "Daily"
    priority = Column(Text, default="medium", nullable=False)
    urgent = Column(Boolean, default=False, nullable=False)
    # [{"label": "Problems", "target": 3, "current": 0, "unit": "count"}, ...]
    metrics = Column(JSON, nullable=True)
    problem_id = Column(Text, nullable=True)
    labels = Column(JSON, nullable=True)

    # Inactive templates are kept for history but never expand.
    is_active = Column(Boolean, default=True, nullable=False)

    instances = relationship("GoalInstance", back_populates="template", lazy="dynamic")

    __table_args__ = (
        CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_goal_template_priority"),
        Index("ix_goal_template_active", "is_active"),
    )


class GoalInstance(Base):
    """
    A concrete, dated obligation.

    Created one-off by the user, generated from a GoalTemplate by the
    recurring expander, or seeded by a Milestone. `due_date_local` is the
    user's calendar day as plain text so equality checks never depend on
    the database session timezone.
    """
    __tablename__ = "goal_instance"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    text = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(Text, nullable=True)

    completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    verified = Column(Boolean, default=False, nullable=False)

    due_date = Column(DateTime(timezone=True), nullable=True)  # UTC instant of local midnight
    due_date_local = Column(Text, nullable=True)  # YYYY-MM-DD

    template_id = Column(Uuid, ForeignKey("goal_template.id", ondelete="SET NULL"), nullable=True)
    parent_goal_id = Column(Uuid, ForeignKey("milestone.id", ondelete="SET NULL"), nullable=True)

    priority = Column(Text, default="medium", nullable=False)
    urgent = Column(Boolean, default=False, nullable=False)
    metrics = Column(JSON, nullable=True)
    problem_id = Column(Text, nullable=True)
    labels = Column(JSON, nullable=True)
    linked_activity_ids = Column(JSON, nullable=True)

    # --- DEBT ---
    # Monotonic: only the explicit reset path moves this back to False.
    is_debt = Column(Boolean, default=False, nullable=False)
    original_date = Column(Text, nullable=True)  # due_date_local at the moment it became debt

    template = relationship("GoalTemplate", back_populates="instances")
    milestone = relationship("Milestone", back_populates="instances")

    # --- THE ARMOR: one instance per template per local day ---
    __table_args__ = (
        UniqueConstraint("template_id", "due_date_local", name="uq_goal_instance_template_day"),
        CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_goal_instance_priority"),
        Index("ix_goal_instance_due_date", "due_date"),
        Index("ix_goal_instance_due_date_local", "due_date_local"),
        Index("ix_goal_instance_is_debt", "is_debt"),
        Index("ix_goal_instance_parent", "parent_goal_id"),
        Index("ix_goal_instance_problem_id", "problem_id"),
    )

    @property
    def has_metrics(self) -> bool:
        return bool(self.metrics)

    def metrics_satisfied(self) -> bool:
        """True when every metric has reached its target."""
        return all(float(m.get("current") or 0) >= float(m.get("target") or 0) for m in (self.metrics or []))


class Milestone(Base):
    """
    A numeric target distributed across a period (a.k.a. goal period).

    `target_value` is derived once at creation from `daily_amount` and the
    inclusive day span; changing the period later does not recompute it.
    Only monthly periods are rebalanced, weekly/daily are analytics-only.
    """
    __tablename__ = "milestone"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    target_metric = Column(Text, nullable=False)  # e.g. "Pushups"
    daily_amount = Column(Integer, nullable=False)
    target_value = Column(Integer, nullable=False)
    period_type = Column(Text, default="monthly", nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    strategy = Column(Text, default="EvenDistribution", nullable=False)
    current_value = Column(Float, default=0, nullable=False)  # cached aggregate of linked instances

    recurring_pattern = Column(Text, nullable=True)
    problem_id = Column(Text, nullable=True)
    label = Column(Text, nullable=True)
    unit = Column(Text, nullable=True)

    instances = relationship("GoalInstance", back_populates="milestone", lazy="dynamic")

    __table_args__ = (
        CheckConstraint("period_type IN ('monthly', 'weekly', 'daily')", name="ck_milestone_period_type"),
        CheckConstraint("strategy IN ('EvenDistribution', 'FrontLoad', 'Manual')", name="ck_milestone_strategy"),
        CheckConstraint("period_end >= period_start", name="ck_milestone_period_order"),
        Index("ix_milestone_dates", "period_start", "period_end"),
    )


class Activity(Base):
    """
    A time-boxed log entry.

    Shadow activities are created by the system from external submissions;
    the rest are logged by the user.
    """
    __tablename__ = "activity"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    date = Column(Text, nullable=False)  # local YYYY-MM-DD of start_time
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    category = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    is_productive = Column(Boolean, default=True, nullable=False)
    is_shadow = Column(Boolean, default=False, nullable=False)

    goal_id = Column(Uuid, ForeignKey("goal_instance.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        CheckConstraint("end_time >= start_time", name="ck_activity_time_order"),
        Index("ix_activity_date", "date"),
        Index("ix_activity_goal_id", "goal_id"),
    )


# A shadow activity is identified by its end timestamp (stand-in for an
# external submission idempotency key).
Index(
    "uq_activity_shadow_end_time",
    Activity.end_time,
    unique=True,
    postgresql_where=Activity.is_shadow == True,  # noqa: E712
    sqlite_where=Activity.is_shadow == True,  # noqa: E712
)


class DebtRecord(Base):
    """
    Audit-only snapshot of a goal that went into debt.

    Written by the lazy sweep (source='sweep') and by monthly archival
    (source='monthly'). Resolved when the goal is completed or reset.
    """
    __tablename__ = "debt_record"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    goal_id = Column(Uuid, ForeignKey("goal_instance.id", ondelete="CASCADE"), nullable=False)
    original_date = Column(Text, nullable=True)  # YYYY-MM-DD
    original_month = Column(Text, nullable=True)  # YYYY-MM
    source = Column(Text, nullable=False)
    reason = Column(Text, nullable=True)
    goal_text = Column(Text, nullable=False)
    goal_data = Column(JSON, nullable=True)  # {description, priority, metrics, labels, problem_id}
    archived_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    goal = relationship("GoalInstance")

    __table_args__ = (
        CheckConstraint("source IN ('sweep', 'monthly')", name="ck_debt_record_source"),
        Index("ix_debt_record_goal_id", "goal_id"),
        Index("ix_debt_record_original_date", "original_date"),
        Index("ix_debt_record_original_month", "original_month"),
        Index("ix_debt_record_resolved_at", "resolved_at"),
    )


def snapshot_goal(goal: GoalInstance) -> dict:
    """Copy of the goal fields a DebtRecord keeps."""
    return {
        "description": goal.description,
        "priority": goal.priority,
        "metrics": list(goal.metrics or []),
        "labels": list(goal.labels or []),
        "problem_id": goal.problem_id,
    }


def clone_metrics(metrics: Optional[List[dict]]) -> Optional[List[dict]]:
    """Deep copy of an embedded metric list (metrics have no identity of their own)."""
    if metrics is None:
        return None
    return [dict(m) for m in metrics]
