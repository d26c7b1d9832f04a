"""
Milestone Service

Milestones (goal periods) spread a numeric target over a date range.

target_value = daily_amount * days in [period_start, period_end], counted
from the real date span so leap years come out right. It is derived at
creation only; later period or amount edits never recompute it.

When a recurring pattern is given at creation, one linked instance is
seeded for each matching day of the period, each carrying a single metric
whose target is the daily amount.
"""
from datetime import date, datetime
from typing import List, Optional
import logging
import math
import uuid

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from core.exceptions import InvalidInputError, NotFoundError, db_context
from models import GoalInstance, Milestone
from schemas import MilestoneCreate, MilestoneProgress, MilestoneUpdate
from services.balancer import aggregate_progress, even_share
from services.timeutils import (
    format_local_date,
    iter_days,
    local_date,
    local_day_start_utc,
    parse_recurring_pattern,
    utcnow,
    validate_tz_offset,
)
from services.update_builder import build_update_values

logger = logging.getLogger(__name__)

MILESTONE_UPDATE_FIELDS = {
    "target_metric": None,
    "target_value": None,
    "strategy": None,
    "label": None,
    "unit": None,
    "problem_id": None,
}


def period_days(period_start: date, period_end: date) -> int:
    """Whole days in the period, both endpoints included."""
    return (period_end - period_start).days + 1


def derive_target_value(daily_amount: int, period_start: date, period_end: date) -> int:
    return daily_amount * period_days(period_start, period_end)


class MilestoneService:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create_milestone(self, data: MilestoneCreate) -> Milestone:
        validate_tz_offset(data.tz_offset)
        if data.period_end < data.period_start:
            raise InvalidInputError("period_end must not be before period_start", field="period_end")

        seed_days: List[date] = []
        if data.recurring_pattern:
            weekdays = parse_recurring_pattern(data.recurring_pattern)
            if not weekdays:
                raise InvalidInputError(
                    f"Recurring pattern '{data.recurring_pattern}' names no weekday",
                    field="recurring_pattern",
                )
            seed_days = [d for d in iter_days(data.period_start, data.period_end) if d.weekday() in weekdays]

        milestone = Milestone(
            id=uuid.uuid4(),
            target_metric=data.target_metric,
            daily_amount=data.daily_amount,
            target_value=derive_target_value(data.daily_amount, data.period_start, data.period_end),
            period_type=data.period_type,
            period_start=data.period_start,
            period_end=data.period_end,
            strategy=data.strategy,
            current_value=0,
            recurring_pattern=data.recurring_pattern,
            problem_id=data.problem_id,
            label=data.label,
            unit=data.unit,
        )

        with self._session_factory() as db:
            try:
                db.add(milestone)
                db.flush()
                for day in seed_days:
                    db.add(
                        GoalInstance(
                            id=uuid.uuid4(),
                            text=data.label or data.target_metric,
                            due_date=local_day_start_utc(day, data.tz_offset),
                            due_date_local=format_local_date(day),
                            parent_goal_id=milestone.id,
                            problem_id=data.problem_id,
                            metrics=[
                                {
                                    "label": data.label or data.target_metric,
                                    "target": data.daily_amount,
                                    "current": 0,
                                    "unit": data.unit or "count",
                                }
                            ],
                            linked_activity_ids=[],
                        )
                    )
                db.commit()
                db.refresh(milestone)
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("create milestone", e)

        logger.info(
            f"Created milestone {milestone.id} for {milestone.target_metric} "
            f"(target {milestone.target_value}, {len(seed_days)} seeded goals)"
        )
        return milestone

    def list_milestones(
        self, active_only: bool = False, tz_offset: int = 0, now: Optional[datetime] = None
    ) -> List[Milestone]:
        """All milestones, or only those whose period has not ended on the caller's local day."""
        validate_tz_offset(tz_offset)
        with self._session_factory() as db:
            query = db.query(Milestone)
            if active_only:
                today = local_date(now or utcnow(), tz_offset)
                query = query.filter(Milestone.period_end >= today)
            try:
                return query.order_by(Milestone.period_start.desc(), Milestone.created_at).all()
            except SQLAlchemyError as e:
                raise db_context("get milestones", e)

    def get_milestone(self, milestone_id: uuid.UUID) -> Milestone:
        with self._session_factory() as db:
            milestone = db.get(Milestone, milestone_id)
            if milestone is None:
                raise NotFoundError("Milestone", str(milestone_id))
            return milestone

    def update_milestone(self, milestone_id: uuid.UUID, data: MilestoneUpdate) -> Milestone:
        values = build_update_values(
            data, MILESTONE_UPDATE_FIELDS, non_nullable=("target_metric", "target_value", "strategy")
        )
        with self._session_factory() as db:
            if db.get(Milestone, milestone_id) is None:
                raise NotFoundError("Milestone", str(milestone_id))
            try:
                db.execute(
                    update(Milestone)
                    .where(Milestone.id == milestone_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("update milestone", e)
            db.expire_all()
            logger.info(f"Updated milestone {milestone_id}: {sorted(values)}")
            return db.get(Milestone, milestone_id)

    def delete_milestone(self, milestone_id: uuid.UUID) -> None:
        """Delete a milestone. Its linked goals survive, detached."""
        with self._session_factory() as db:
            milestone = db.get(Milestone, milestone_id)
            if milestone is None:
                raise NotFoundError("Milestone", str(milestone_id))
            try:
                db.execute(
                    update(GoalInstance)
                    .where(GoalInstance.parent_goal_id == milestone_id)
                    .values(parent_goal_id=None)
                    .execution_options(synchronize_session=False)
                )
                db.delete(milestone)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("delete milestone", e)
        logger.info(f"Deleted milestone {milestone_id}")

    def get_progress(
        self, milestone_id: uuid.UUID, tz_offset: int = 0, now: Optional[datetime] = None
    ) -> MilestoneProgress:
        """
        Live progress from linked instances.

        On track means current >= floor(target * elapsed_days / total_days),
        where elapsed_days counts today.
        """
        validate_tz_offset(tz_offset)
        today = local_date(now or utcnow(), tz_offset)

        with self._session_factory() as db:
            milestone = db.get(Milestone, milestone_id)
            if milestone is None:
                raise NotFoundError("Milestone", str(milestone_id))
            try:
                linked = db.query(GoalInstance).filter(GoalInstance.parent_goal_id == milestone.id).all()
            except SQLAlchemyError as e:
                raise db_context("milestone progress", e)

        current = aggregate_progress(linked)
        total_days = period_days(milestone.period_start, milestone.period_end)
        elapsed_days = min(max((today - milestone.period_start).days + 1, 0), total_days)
        remaining_days = min(max((milestone.period_end - today).days + 1, 0), total_days)
        remaining = max(milestone.target_value - current, 0)
        expected_by_now = int(math.floor(milestone.target_value * elapsed_days / total_days))

        daily_required: Optional[int]
        if remaining <= 0:
            daily_required = 0
        elif remaining_days > 0:
            daily_required = even_share(remaining, remaining_days)
        else:
            daily_required = None

        percent = (current / milestone.target_value * 100) if milestone.target_value else 0.0
        return MilestoneProgress(
            milestone_id=milestone.id,
            target_value=milestone.target_value,
            current_value=current,
            remaining=remaining,
            percent_complete=round(min(percent, 100.0), 1),
            total_days=total_days,
            elapsed_days=elapsed_days,
            remaining_days=remaining_days,
            daily_required=daily_required,
            expected_by_now=expected_by_now,
            on_track=current >= expected_by_now,
        )
