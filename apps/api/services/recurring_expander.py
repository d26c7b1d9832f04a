"""
Recurring Expander

Materializes dated GoalInstances from active GoalTemplates.

For each local calendar day in the requested window, every active template
whose weekday pattern covers that day gets exactly one instance. The
(template_id, due_date_local) unique constraint is the idempotency key:
conflicting inserts are discarded by the store (ON CONFLICT DO NOTHING), so
the expander can be called redundantly or concurrently without locks.

A failed insert only loses that (template, day) attempt; the scan goes on.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import FrozenSet, List, Optional, Union
import logging
import uuid

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from core.config import settings
from core.exceptions import InvalidInputError, db_context
from models import GoalInstance, GoalTemplate, clone_metrics
from services.timeutils import (
    format_local_date,
    iter_days,
    local_date,
    local_day_start_utc,
    parse_recurring_pattern,
    validate_tz_offset,
    weekday_name,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _TemplatePlan:
    """Detached copy of the template fields an instance is generated from."""
    id: uuid.UUID
    text: str
    description: Optional[str]
    category: Optional[str]
    priority: str
    urgent: bool
    metrics: Optional[list]
    problem_id: Optional[str]
    labels: Optional[list]
    weekdays: FrozenSet[int] = field(default_factory=frozenset)


@dataclass
class ExpansionResult:
    days_scanned: int = 0
    created: int = 0
    failed: int = 0
    created_ids: List[uuid.UUID] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "days_scanned": self.days_scanned,
            "created": self.created,
            "failed": self.failed,
        }


def dialect_insert(db: Session, table):
    """INSERT construct with ON CONFLICT support for the bound dialect."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(table)
    return pg_insert(table)


def _as_local_day(value: Union[date, datetime], tz_offset: int) -> date:
    if isinstance(value, datetime):
        return local_date(value, tz_offset)
    return value


class RecurringExpander:
    """Generates missing GoalInstances for active templates."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def expand(
        self,
        start: Union[date, datetime],
        end: Union[date, datetime],
        tz_offset: int,
    ) -> ExpansionResult:
        """
        Ensure one instance per matching (template, local day) in [start, end].

        `start`/`end` may be UTC instants (converted with `tz_offset`) or local
        calendar dates. The scan is capped at RECURRING_MAX_SCAN_DAYS days.
        """
        validate_tz_offset(tz_offset)
        first_day = _as_local_day(start, tz_offset)
        last_day = _as_local_day(end, tz_offset)
        if last_day < first_day:
            raise InvalidInputError(
                f"Range end {last_day} is before start {first_day}", field="end"
            )

        max_days = settings.RECURRING_MAX_SCAN_DAYS
        scan_end = min(last_day, first_day + timedelta(days=max_days - 1))
        if scan_end < last_day:
            logger.warning(
                f"Expansion window {first_day}..{last_day} exceeds {max_days} days, "
                f"scanning only up to {scan_end}"
            )

        result = ExpansionResult()
        with self._session_factory() as db:
            plans = self._load_plans(db)

            for day in iter_days(first_day, scan_end):
                result.days_scanned += 1
                for plan in plans:
                    if day.weekday() not in plan.weekdays:
                        continue
                    try:
                        new_id = self._insert_instance(db, plan, day, tz_offset)
                    except SQLAlchemyError as e:
                        db.rollback()
                        result.failed += 1
                        logger.error(
                            f"Failed to generate instance for template {plan.id} on {day}: {e}",
                            exc_info=True,
                        )
                        continue
                    if new_id is not None:
                        result.created += 1
                        result.created_ids.append(new_id)
                        logger.info(
                            f"Generated instance {new_id} from template {plan.id} "
                            f"for {format_local_date(day)} ({weekday_name(day)})"
                        )

        if result.created or result.failed:
            logger.info(
                f"Recurring expansion {first_day}..{scan_end}: "
                f"created={result.created} failed={result.failed}"
            )
        return result

    def _load_plans(self, db: Session) -> List[_TemplatePlan]:
        try:
            templates = (
                db.query(GoalTemplate)
                .filter(GoalTemplate.is_active == True)  # noqa: E712
                .order_by(GoalTemplate.created_at, GoalTemplate.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise db_context("load active templates", e)

        plans = []
        for t in templates:
            weekdays = parse_recurring_pattern(t.recurring_pattern)
            if not weekdays:
                logger.debug(f"Template {t.id} has no expandable days in '{t.recurring_pattern}'")
                continue
            plans.append(
                _TemplatePlan(
                    id=t.id,
                    text=t.text,
                    description=t.description,
                    category=t.category,
                    priority=t.priority,
                    urgent=t.urgent,
                    metrics=clone_metrics(t.metrics),
                    problem_id=t.problem_id,
                    labels=list(t.labels) if t.labels is not None else None,
                    weekdays=weekdays,
                )
            )
        return plans

    def _insert_instance(
        self, db: Session, plan: _TemplatePlan, day: date, tz_offset: int
    ) -> Optional[uuid.UUID]:
        """Insert one instance; returns its id, or None if it already existed."""
        row = {
            "id": uuid.uuid4(),
            "text": plan.text,
            "description": plan.description,
            "category": plan.category,
            "completed": False,
            "verified": False,
            "due_date": local_day_start_utc(day, tz_offset),
            "due_date_local": format_local_date(day),
            "template_id": plan.id,
            "priority": plan.priority,
            "urgent": plan.urgent,
            # Each instance gets its own copy; later template edits never leak in.
            "metrics": clone_metrics(plan.metrics),
            "problem_id": plan.problem_id,
            "labels": list(plan.labels) if plan.labels is not None else None,
            "linked_activity_ids": [],
            "is_debt": False,
        }
        stmt = (
            dialect_insert(db, GoalInstance.__table__)
            .values(row)
            .on_conflict_do_nothing(index_elements=["template_id", "due_date_local"])
            .returning(GoalInstance.__table__.c.id)
        )
        inserted = db.execute(stmt).scalar_one_or_none()
        db.commit()
        return inserted
