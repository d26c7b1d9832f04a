"""
Goal Service

User-facing goal and template operations.

`get_goals_for_range` is the read path that drives reconciliation: it
expands recurring templates over the requested window, runs the lazy debt
sweep, and only then returns the rows. Everything else is plain CRUD with
typed partial updates.
"""
from datetime import date, datetime
from typing import List, Optional, Union
import logging
import uuid

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from core.exceptions import ConflictError, InvalidInputError, NotFoundError, db_context
from models import Activity, DebtRecord, GoalInstance, GoalTemplate, Milestone
from schemas import GoalCreate, GoalFilters, GoalUpdate, TemplateCreate, TemplateUpdate
from services.debt_transitioner import DebtTransitioner, resolve_open_records
from services.recurring_expander import RecurringExpander
from services.timeutils import (
    format_local_date,
    local_date,
    local_day_start_utc,
    parse_recurring_pattern,
    utcnow,
    validate_tz_offset,
)
from services.update_builder import build_update_values

logger = logging.getLogger(__name__)


def _metrics_value(value, payload):
    return {"metrics": [m.model_dump() for m in value] if value is not None else None}


def _due_date_value(value, payload):
    if value is None:
        return {"due_date": None, "due_date_local": None}
    return {
        "due_date": local_day_start_utc(value, payload.tz_offset),
        "due_date_local": format_local_date(value),
    }


GOAL_UPDATE_FIELDS = {
    "text": None,
    "description": None,
    "category": None,
    "priority": None,
    "urgent": None,
    "metrics": _metrics_value,
    "problem_id": None,
    "labels": None,
    "due_date": _due_date_value,
}

TEMPLATE_UPDATE_FIELDS = {
    "text": None,
    "description": None,
    "category": None,
    "recurring_pattern": None,
    "priority": None,
    "urgent": None,
    "metrics": _metrics_value,
    "problem_id": None,
    "labels": None,
    "is_active": None,
}


def _apply_filters(query, filters: Optional[GoalFilters]):
    if filters is None:
        return query
    if filters.completed is not None:
        query = query.filter(GoalInstance.completed == filters.completed)
    if filters.is_debt is not None:
        query = query.filter(GoalInstance.is_debt == filters.is_debt)
    if filters.priority is not None:
        query = query.filter(GoalInstance.priority == filters.priority)
    if filters.urgent is not None:
        query = query.filter(GoalInstance.urgent == filters.urgent)
    if filters.category is not None:
        query = query.filter(GoalInstance.category == filters.category)
    if filters.parent_goal_id is not None:
        query = query.filter(GoalInstance.parent_goal_id == filters.parent_goal_id)
    if filters.template_id is not None:
        query = query.filter(GoalInstance.template_id == filters.template_id)
    return query


def _get_goal_or_404(db: Session, goal_id: uuid.UUID) -> GoalInstance:
    goal = db.get(GoalInstance, goal_id)
    if goal is None:
        raise NotFoundError("Goal", str(goal_id))
    return goal


def verify_with_activity(db: Session, goal: GoalInstance, activity: Activity, now: datetime) -> None:
    """
    Link `activity` to `goal` and mark the goal verified. A goal without
    metrics is completed too, resolving its open debt records. Caller commits.
    """
    linked = list(goal.linked_activity_ids or [])
    if str(activity.id) not in linked:
        linked.append(str(activity.id))
    goal.linked_activity_ids = linked
    activity.goal_id = goal.id
    goal.verified = True
    if not goal.metrics and not goal.completed:
        goal.completed = True
        goal.completed_at = now
        if goal.is_debt:
            resolve_open_records(db, [goal.id], now)


class GoalService:
    def __init__(
        self,
        session_factory: sessionmaker,
        expander: RecurringExpander,
        transitioner: DebtTransitioner,
    ):
        self._session_factory = session_factory
        self._expander = expander
        self._transitioner = transitioner

    # ------------------------------------------------------------------
    # Range read (reconciliation entry point)
    # ------------------------------------------------------------------

    def get_goals_for_range(
        self,
        start: Union[date, datetime],
        end: Union[date, datetime],
        tz_offset: int,
        filters: Optional[GoalFilters] = None,
        now: Optional[datetime] = None,
    ) -> List[GoalInstance]:
        """
        Goals due within [start, end] (local days), after reconciliation.

        Runs the recurring expansion for the window and the lazy debt sweep
        before reading, so the result reflects both.
        """
        validate_tz_offset(tz_offset)
        first_day = local_date(start, tz_offset) if isinstance(start, datetime) else start
        last_day = local_date(end, tz_offset) if isinstance(end, datetime) else end
        if last_day < first_day:
            raise InvalidInputError(f"Range end {last_day} is before start {first_day}", field="end")

        self._expander.expand(first_day, last_day, tz_offset)
        self._transitioner.sweep(tz_offset, now=now)

        with self._session_factory() as db:
            query = db.query(GoalInstance).filter(
                GoalInstance.due_date_local >= format_local_date(first_day),
                GoalInstance.due_date_local <= format_local_date(last_day),
            )
            query = _apply_filters(query, filters)
            try:
                return query.order_by(
                    GoalInstance.due_date_local, GoalInstance.created_at, GoalInstance.id
                ).all()
            except SQLAlchemyError as e:
                raise db_context("fetch goals for range", e)

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def get_goal(self, goal_id: uuid.UUID) -> GoalInstance:
        with self._session_factory() as db:
            return _get_goal_or_404(db, goal_id)

    def create_goal(self, data: GoalCreate) -> GoalInstance:
        """Create a one-off goal instance."""
        validate_tz_offset(data.tz_offset)
        with self._session_factory() as db:
            if data.parent_goal_id is not None and db.get(Milestone, data.parent_goal_id) is None:
                raise NotFoundError("Milestone", str(data.parent_goal_id))

            goal = GoalInstance(
                id=uuid.uuid4(),
                text=data.text,
                description=data.description,
                category=data.category,
                priority=data.priority,
                urgent=data.urgent,
                metrics=[m.model_dump() for m in data.metrics] if data.metrics is not None else None,
                problem_id=data.problem_id,
                labels=data.labels,
                parent_goal_id=data.parent_goal_id,
                linked_activity_ids=[],
            )
            if data.due_date is not None:
                goal.due_date = local_day_start_utc(data.due_date, data.tz_offset)
                goal.due_date_local = format_local_date(data.due_date)

            try:
                db.add(goal)
                db.commit()
                db.refresh(goal)
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("create goal", e)

            logger.info(f"Created one-off goal {goal.id} (date: {goal.due_date_local})")
            return goal

    def update_goal(self, goal_id: uuid.UUID, data: GoalUpdate) -> GoalInstance:
        validate_tz_offset(data.tz_offset)
        values = build_update_values(
            data, GOAL_UPDATE_FIELDS, non_nullable=("text", "priority", "urgent")
        )
        with self._session_factory() as db:
            _get_goal_or_404(db, goal_id)
            try:
                db.execute(
                    update(GoalInstance)
                    .where(GoalInstance.id == goal_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("update goal", e)
            db.expire_all()
            return _get_goal_or_404(db, goal_id)

    def toggle_goal(self, goal_id: uuid.UUID, now: Optional[datetime] = None) -> GoalInstance:
        """
        Flip completion. Completing a debt goal resolves its open DebtRecords;
        the debt flag itself stays set.
        """
        now = now or utcnow()
        with self._session_factory() as db:
            goal = _get_goal_or_404(db, goal_id)
            try:
                if goal.completed:
                    goal.completed = False
                    goal.completed_at = None
                else:
                    goal.completed = True
                    goal.completed_at = now
                    if goal.is_debt:
                        resolve_open_records(db, [goal.id], now)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("toggle goal", e)
            logger.info(f"Goal {goal.id} completed={goal.completed}")
            return goal

    def link_activity(
        self, goal_id: uuid.UUID, activity_id: uuid.UUID, now: Optional[datetime] = None
    ) -> GoalInstance:
        """Link an activity to a goal and verify it (completing it when it has no metrics)."""
        now = now or utcnow()
        with self._session_factory() as db:
            goal = _get_goal_or_404(db, goal_id)
            activity = db.get(Activity, activity_id)
            if activity is None:
                raise NotFoundError("Activity", str(activity_id))

            if str(activity.id) in (goal.linked_activity_ids or []):
                raise ConflictError(f"Activity {activity_id} is already linked to goal {goal_id}")

            try:
                verify_with_activity(db, goal, activity, now)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("link activity", e)
            logger.info(f"Linked activity {activity.id} to goal {goal.id}")
            return goal

    def delete_goal(self, goal_id: uuid.UUID) -> None:
        """User-initiated delete. Linked activities are kept and unlinked."""
        with self._session_factory() as db:
            goal = _get_goal_or_404(db, goal_id)
            try:
                db.execute(
                    update(Activity)
                    .where(Activity.goal_id == goal.id)
                    .values(goal_id=None)
                    .execution_options(synchronize_session=False)
                )
                db.execute(delete(DebtRecord).where(DebtRecord.goal_id == goal.id))
                db.delete(goal)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("delete goal", e)
            logger.info(f"Deleted goal {goal_id}")

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def list_templates(self, active_only: bool = False) -> List[GoalTemplate]:
        with self._session_factory() as db:
            query = db.query(GoalTemplate)
            if active_only:
                query = query.filter(GoalTemplate.is_active == True)  # noqa: E712
            return query.order_by(GoalTemplate.created_at, GoalTemplate.id).all()

    def create_template(self, data: TemplateCreate) -> GoalTemplate:
        if not parse_recurring_pattern(data.recurring_pattern):
            raise InvalidInputError(
                f"Recurring pattern '{data.recurring_pattern}' names no weekday",
                field="recurring_pattern",
            )
        with self._session_factory() as db:
            template = GoalTemplate(
                id=uuid.uuid4(),
                text=data.text,
                description=data.description,
                category=data.category,
                recurring_pattern=data.recurring_pattern,
                priority=data.priority,
                urgent=data.urgent,
                metrics=[m.model_dump() for m in data.metrics] if data.metrics is not None else None,
                problem_id=data.problem_id,
                labels=data.labels,
                is_active=True,
            )
            try:
                db.add(template)
                db.commit()
                db.refresh(template)
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("create template", e)
            logger.info(f"Created recurring template {template.id} ({template.recurring_pattern})")
            return template

    def update_template(self, template_id: uuid.UUID, data: TemplateUpdate) -> GoalTemplate:
        """Changes apply to future generation only; existing instances keep their copy."""
        values = build_update_values(
            data,
            TEMPLATE_UPDATE_FIELDS,
            non_nullable=("text", "recurring_pattern", "priority", "urgent", "is_active"),
        )
        if "recurring_pattern" in values and not parse_recurring_pattern(values["recurring_pattern"]):
            raise InvalidInputError(
                f"Recurring pattern '{values['recurring_pattern']}' names no weekday",
                field="recurring_pattern",
            )
        with self._session_factory() as db:
            if db.get(GoalTemplate, template_id) is None:
                raise NotFoundError("Template", str(template_id))
            try:
                db.execute(
                    update(GoalTemplate)
                    .where(GoalTemplate.id == template_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("update template", e)
            db.expire_all()
            return db.get(GoalTemplate, template_id)
