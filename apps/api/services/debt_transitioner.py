"""
Debt Transitioner

Two mechanisms move goals into debt:

1. Lazy sweep: runs before every goal range read. One bulk UPDATE flags
   every incomplete, non-debt goal whose due instant is strictly before the
   start of the user's local today. Re-running it flags nothing new.
2. Monthly archival: explicit command for a closed YYYY-MM month. Snapshots
   each unresolved goal of that month into a DebtRecord and flags it, all in
   one transaction. Partial archival is never committed.

`is_debt` only ever goes back to False through `reset_debt`.

The read side (open debt list, archive, trail, accumulated debt) lives here
too so that every DebtRecord query shares one ordering.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional
import logging
import uuid

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from core.config import settings
from core.exceptions import InvalidInputError, db_context
from models import DebtRecord, GoalInstance, snapshot_goal
from services.timeutils import (
    format_local_date,
    local_date,
    local_today_start_utc,
    month_bounds,
    parse_local_date,
    parse_month,
    utcnow,
    validate_tz_offset,
)

logger = logging.getLogger(__name__)

SOURCE_SWEEP = "sweep"
SOURCE_MONTHLY = "monthly"


@dataclass
class DebtTrailDay:
    date: str
    goals: List[GoalInstance] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.goals)


def resolve_open_records(db: Session, goal_ids: Iterable[uuid.UUID], now: datetime) -> int:
    """Stamp resolved_at on every open DebtRecord of the given goals (caller commits)."""
    ids = list(goal_ids)
    if not ids:
        return 0
    result = db.execute(
        update(DebtRecord)
        .where(DebtRecord.goal_id.in_(ids), DebtRecord.resolved_at.is_(None))
        .values(resolved_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def _monthly_candidates(db: Session, first_day: date, last_day: date):
    """Incomplete, non-debt, dated goals whose local due day falls in [first_day, last_day]."""
    return (
        db.query(GoalInstance)
        .filter(
            GoalInstance.completed == False,  # noqa: E712
            GoalInstance.is_debt == False,  # noqa: E712
            GoalInstance.due_date.isnot(None),
            GoalInstance.due_date_local >= format_local_date(first_day),
            GoalInstance.due_date_local <= format_local_date(last_day),
        )
        .order_by(GoalInstance.due_date_local, GoalInstance.created_at, GoalInstance.id)
    )


class DebtTransitioner:
    """Flags overdue goals as debt and keeps the DebtRecord audit trail."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def sweep(self, tz_offset: int, now: Optional[datetime] = None) -> int:
        """
        Flag overdue goals as debt. Returns how many goals were flagged.

        The UPDATE and the matching DebtRecord inserts commit together.
        """
        validate_tz_offset(tz_offset)
        now = now or utcnow()
        threshold = local_today_start_utc(now, tz_offset)

        stmt = (
            update(GoalInstance)
            .where(
                GoalInstance.completed == False,  # noqa: E712
                GoalInstance.is_debt == False,  # noqa: E712
                GoalInstance.due_date.isnot(None),
                GoalInstance.due_date < threshold,
            )
            .values(is_debt=True, original_date=GoalInstance.due_date_local)
            .returning(
                GoalInstance.id,
                GoalInstance.text,
                GoalInstance.description,
                GoalInstance.priority,
                GoalInstance.metrics,
                GoalInstance.labels,
                GoalInstance.problem_id,
                GoalInstance.due_date_local,
            )
            .execution_options(synchronize_session=False)
        )

        with self._session_factory() as db:
            try:
                flagged = db.execute(stmt).all()
                for row in flagged:
                    db.add(
                        DebtRecord(
                            goal_id=row.id,
                            original_date=row.due_date_local,
                            original_month=row.due_date_local[:7] if row.due_date_local else None,
                            source=SOURCE_SWEEP,
                            goal_text=row.text,
                            goal_data={
                                "description": row.description,
                                "priority": row.priority,
                                "metrics": list(row.metrics or []),
                                "labels": list(row.labels or []),
                                "problem_id": row.problem_id,
                            },
                            archived_at=now,
                        )
                    )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("update debt status", e)

        if flagged:
            logger.info(f"Debt sweep flagged {len(flagged)} goals (due before {threshold.isoformat()})")
        return len(flagged)

    def transition_monthly_debt(
        self, month: str, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> int:
        """
        Archive every unresolved goal of `month` (YYYY-MM) as debt.

        Returns the number of goals archived. Either every goal of the month
        is archived or none is.
        """
        first_day, last_day = month_bounds(parse_month(month))
        now = now or utcnow()

        with self._session_factory() as db:
            try:
                goals = _monthly_candidates(db, first_day, last_day).with_for_update().all()

                for goal in goals:
                    db.add(
                        DebtRecord(
                            goal_id=goal.id,
                            original_date=goal.due_date_local,
                            original_month=month,
                            source=SOURCE_MONTHLY,
                            reason=reason,
                            goal_text=goal.text,
                            goal_data=snapshot_goal(goal),
                            archived_at=now,
                        )
                    )
                    goal.is_debt = True
                    goal.original_date = goal.due_date_local

                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("transition monthly debt", e)

        logger.info(f"Archived {len(goals)} goals from month {month}")
        return len(goals)

    def preview_monthly_debt(self, month: str) -> List[GoalInstance]:
        """Goals `transition_monthly_debt(month)` would archive right now. Writes nothing."""
        first_day, last_day = month_bounds(parse_month(month))
        with self._session_factory() as db:
            try:
                return _monthly_candidates(db, first_day, last_day).all()
            except SQLAlchemyError as e:
                raise db_context("preview monthly debt", e)

    def reset_debt(self, goal_ids: List[uuid.UUID], now: Optional[datetime] = None) -> int:
        """
        Clear the debt flag for the given goals. Returns how many were reset.

        Open DebtRecords of those goals are marked resolved. A goal that is
        still overdue will be flagged again by the next sweep.
        """
        if not goal_ids:
            return 0
        now = now or utcnow()
        ids = list(dict.fromkeys(goal_ids))

        with self._session_factory() as db:
            try:
                result = db.execute(
                    update(GoalInstance)
                    .where(GoalInstance.id.in_(ids), GoalInstance.is_debt == True)  # noqa: E712
                    .values(is_debt=False)
                    .execution_options(synchronize_session=False)
                )
                reset_count = result.rowcount or 0
                resolve_open_records(db, ids, now)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("reset debt", e)

        logger.info(f"Reset {reset_count} goals from debt status")
        return reset_count

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_debt_goals(self) -> List[DebtRecord]:
        """Unresolved DebtRecords, oldest original date first."""
        with self._session_factory() as db:
            try:
                return (
                    db.query(DebtRecord)
                    .filter(DebtRecord.resolved_at.is_(None))
                    .order_by(DebtRecord.original_date, DebtRecord.archived_at, DebtRecord.id)
                    .all()
                )
            except SQLAlchemyError as e:
                raise db_context("fetch debt goals", e)

    def get_debt_archive(self, month: Optional[str] = None, limit: Optional[int] = None) -> List[DebtRecord]:
        """Monthly archive rows, newest first. Without a month, the latest `limit` rows."""
        if month is not None:
            parse_month(month)
        with self._session_factory() as db:
            query = db.query(DebtRecord).filter(DebtRecord.source == SOURCE_MONTHLY)
            if month is not None:
                query = query.filter(DebtRecord.original_month == month)
            query = query.order_by(DebtRecord.archived_at.desc(), DebtRecord.id)
            if month is None or limit is not None:
                query = query.limit(limit or settings.DEBT_ARCHIVE_LIMIT)
            try:
                return query.all()
            except SQLAlchemyError as e:
                raise db_context("get debt archive", e)

    def get_debt_trail(
        self,
        end_date: Optional[str] = None,
        days_back: Optional[int] = None,
        tz_offset: int = 0,
        now: Optional[datetime] = None,
    ) -> List[DebtTrailDay]:
        """
        Open debt goals grouped by original date over a look-back window.

        The window is [end_date - days_back, end_date]; `end_date` defaults
        to the user's local today.
        """
        validate_tz_offset(tz_offset)
        days = settings.DEBT_TRAIL_DEFAULT_DAYS if days_back is None else days_back
        if days < 0:
            raise InvalidInputError("days_back must not be negative", field="days_back")
        if end_date is None:
            end = local_date(now or utcnow(), tz_offset)
        else:
            end = parse_local_date(end_date, field="end_date")
        start = end - timedelta(days=days)

        with self._session_factory() as db:
            try:
                goals = (
                    db.query(GoalInstance)
                    .filter(
                        GoalInstance.is_debt == True,  # noqa: E712
                        GoalInstance.completed == False,  # noqa: E712
                        GoalInstance.original_date.isnot(None),
                        GoalInstance.original_date >= format_local_date(start),
                        GoalInstance.original_date <= format_local_date(end),
                    )
                    .order_by(GoalInstance.original_date, GoalInstance.created_at)
                    .all()
                )
            except SQLAlchemyError as e:
                raise db_context("get debt trail", e)

        trail: Dict[str, DebtTrailDay] = {}
        for goal in goals:
            trail.setdefault(goal.original_date, DebtTrailDay(date=goal.original_date)).goals.append(goal)
        return [trail[d] for d in sorted(trail)]

    def get_accumulated_debt(self, before: str) -> List[GoalInstance]:
        """Open debt goals whose original date is strictly before `before` (YYYY-MM-DD)."""
        parse_local_date(before, field="date")
        with self._session_factory() as db:
            try:
                return (
                    db.query(GoalInstance)
                    .filter(
                        GoalInstance.is_debt == True,  # noqa: E712
                        GoalInstance.completed == False,  # noqa: E712
                        GoalInstance.original_date.isnot(None),
                        GoalInstance.original_date < before,
                    )
                    .order_by(GoalInstance.original_date, GoalInstance.created_at)
                    .all()
                )
            except SQLAlchemyError as e:
                raise db_context("get accumulated debt", e)
