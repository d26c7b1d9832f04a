"""
Balancer

Re-derives the even per-day share of what is left of a monthly milestone
and writes it into the first metric of every future, incomplete linked
instance. Instances without metrics are left alone.

    completed      = sum of metric.current over every linked instance
                     (completed or not: recorded progress is what counts)
    remaining      = target_value - completed
    remaining_days = period_end - local today + 1
    daily_required = ceil(remaining / remaining_days)

The result depends only on stored progress, never on a previous run, so
running it twice in a row yields the same numbers.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import List, Optional
import logging
import math
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from core.exceptions import InvalidInputError, NotFoundError, db_context
from models import GoalInstance, Milestone, clone_metrics
from services.timeutils import local_date, local_today_start_utc, utcnow, validate_tz_offset

logger = logging.getLogger(__name__)

MSG_ALREADY_COMPLETE = "Milestone already complete!"
MSG_MANUAL = "Manual strategy - no auto-redistribution"


@dataclass
class BalancerResult:
    milestone_id: uuid.UUID
    updated_count: int
    daily_required: int
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


def aggregate_progress(instances: List[GoalInstance]) -> float:
    """Sum of `current` across every metric of every instance."""
    total = 0.0
    for instance in instances:
        for metric in instance.metrics or []:
            total += float(metric.get("current") or 0)
    return total


def even_share(remaining: float, remaining_days: int) -> int:
    """Per-day amount that never undershoots `remaining`."""
    return int(math.ceil(remaining / remaining_days))


class Balancer:
    """Redistributes a monthly milestone's remaining target."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def run_balancer(
        self,
        milestone_id: uuid.UUID,
        tz_offset: int,
        now: Optional[datetime] = None,
    ) -> BalancerResult:
        validate_tz_offset(tz_offset)
        now = now or utcnow()

        with self._session_factory() as db:
            try:
                milestone = db.get(Milestone, milestone_id)
            except SQLAlchemyError as e:
                raise db_context("fetch milestone", e)
            if milestone is None:
                raise NotFoundError("Milestone", str(milestone_id))
            if milestone.period_type != "monthly":
                raise InvalidInputError(
                    f"Only monthly milestones are balanced (got '{milestone.period_type}')",
                    field="period_type",
                )

            try:
                linked = (
                    db.query(GoalInstance)
                    .filter(GoalInstance.parent_goal_id == milestone.id)
                    .all()
                )
            except SQLAlchemyError as e:
                raise db_context("aggregate completed", e)

            completed = aggregate_progress(linked)
            remaining = milestone.target_value - completed
            if remaining <= 0:
                self._store_progress(db, milestone, completed)
                logger.info(f"Milestone {milestone.id} already complete ({completed}/{milestone.target_value})")
                return BalancerResult(milestone.id, 0, 0, MSG_ALREADY_COMPLETE)

            today = local_date(now, tz_offset)
            if today > milestone.period_end:
                raise InvalidInputError("Milestone period has ended", field="period_end")
            remaining_days = (milestone.period_end - today).days + 1
            if remaining_days <= 0:
                raise InvalidInputError("No remaining days in period", field="period_end")

            if milestone.strategy == "Manual":
                self._store_progress(db, milestone, completed)
                return BalancerResult(milestone.id, 0, 0, MSG_MANUAL)

            # FrontLoad is accepted but distributes evenly for now.
            daily_required = even_share(remaining, remaining_days)

            threshold = local_today_start_utc(now, tz_offset)
            try:
                future = (
                    db.query(GoalInstance)
                    .filter(
                        GoalInstance.parent_goal_id == milestone.id,
                        GoalInstance.completed == False,  # noqa: E712
                        GoalInstance.due_date.isnot(None),
                        GoalInstance.due_date >= threshold,
                    )
                    .order_by(GoalInstance.due_date, GoalInstance.id)
                    .with_for_update()
                    .all()
                )
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("fetch future goals", e)

            updated_count = 0
            for goal in future:
                if not goal.metrics:
                    continue
                try:
                    with db.begin_nested():
                        goal.metrics = self._retarget(goal.metrics, daily_required)
                    updated_count += 1
                except SQLAlchemyError as e:
                    logger.error(f"Balancer failed to update goal {goal.id}: {e}", exc_info=True)

            milestone.current_value = completed
            try:
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("commit balancer", e)

            logger.info(
                f"Balancer redistributed {milestone.target_metric} across {updated_count} "
                f"future goals ({remaining} left over {remaining_days} days, {daily_required}/day)"
            )
            return BalancerResult(
                milestone.id,
                updated_count,
                daily_required,
                f"Redistributed to {updated_count} goals, {daily_required} per day",
            )

    @staticmethod
    def _retarget(metrics: list, daily_required: int) -> list:
        """Copy of `metrics` with the first entry's target set to `daily_required`."""
        updated = clone_metrics(metrics)
        updated[0]["target"] = daily_required
        return updated

    @staticmethod
    def _store_progress(db: Session, milestone: Milestone, completed: float) -> None:
        milestone.current_value = completed
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise db_context("store milestone progress", e)
