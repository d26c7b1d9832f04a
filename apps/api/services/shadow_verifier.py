"""
Shadow Verifier

Turns an external submission (LeetCode, Codeforces, ...) into a "shadow"
Activity and opportunistically verifies a matching goal.

Per event:
    1. Window = [occurred_at - SHADOW_ACTIVITY_MINUTES, occurred_at]; the
       activity's local date comes from the window start.
    2. A shadow activity with the same end timestamp means the event was
       already processed: nothing else happens. The partial unique index on
       shadow end_time closes the race between two deliveries.
    3. In one transaction: insert the activity, then
       a. exact match: open goal on that date with the same problem_id ->
          link + verify (+ complete when the goal has no metrics);
       b. otherwise generic match: open goal on that date mentioning the
          platform keyword, with a metric below target -> link, bump the
          metric with the largest gap by one, verify/complete once every
          metric is satisfied.
    4. No match is fine: the activity stays as an unlinked log entry.

Candidate goal rows are read FOR UPDATE so a concurrent balancer rewrite of
the same metrics list is serialized rather than overwritten.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple
import logging
import uuid

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from core.config import settings
from core.exceptions import APIException, db_context
from models import Activity, GoalInstance, clone_metrics
from schemas import ShadowInput
from services.debt_transitioner import resolve_open_records
from services.timeutils import ensure_utc, format_local_date, local_date, utcnow, validate_tz_offset

logger = logging.getLogger(__name__)

PLATFORM_CATEGORIES = {
    "leetcode": "coding_leetcode",
    "codeforces": "coding_codeforces",
}
DEFAULT_CATEGORY = "coding"

_LATEST = datetime.max.replace(tzinfo=timezone.utc)


def category_for_platform(platform: str) -> str:
    return PLATFORM_CATEGORIES.get(platform.strip().lower(), DEFAULT_CATEGORY)


def keyword_for_category(category: str) -> str:
    """'coding_leetcode' -> 'leetcode'; categories without '_' are their own keyword."""
    return category.rsplit("_", 1)[-1]


@dataclass
class GenericMatch:
    goal: GoalInstance
    metric_index: int
    gap: float


def pick_generic_match(candidates: Iterable[GoalInstance]) -> Optional[GenericMatch]:
    """
    Choose the (goal, metric) with the largest remaining gap.

    Ties go to the goal created first, then the lowest id; within a goal,
    to the first metric with that gap.
    """
    best: Optional[Tuple[tuple, GenericMatch]] = None
    for goal in candidates:
        for index, metric in enumerate(goal.metrics or []):
            gap = float(metric.get("target") or 0) - float(metric.get("current") or 0)
            if gap <= 0:
                continue
            key = (-gap, ensure_utc(goal.created_at) or _LATEST, str(goal.id), index)
            if best is None or key < best[0]:
                best = (key, GenericMatch(goal=goal, metric_index=index, gap=gap))
    return best[1] if best else None


class ShadowVerifier:
    """Creates shadow activities and links them to goals."""

    def __init__(self, session_factory: sessionmaker, window_minutes: Optional[int] = None):
        self._session_factory = session_factory
        self._window = timedelta(
            minutes=window_minutes if window_minutes is not None else settings.SHADOW_ACTIVITY_MINUTES
        )

    def process_shadow_event(self, event: ShadowInput) -> Optional[uuid.UUID]:
        """
        Process one submission.

        Returns the new activity id, or None when the event was already
        processed.
        """
        end_time = ensure_utc(event.occurred_at)
        start_time = end_time - self._window
        tz_offset = (
            event.timezone_offset
            if event.timezone_offset is not None
            else settings.SHADOW_TZ_OFFSET_MINUTES
        )
        validate_tz_offset(tz_offset)
        day = format_local_date(local_date(start_time, tz_offset))
        platform = event.platform.strip().lower()
        category = category_for_platform(platform)

        with self._session_factory() as db:
            try:
                existing = (
                    db.query(Activity.id)
                    .filter(Activity.is_shadow == True, Activity.end_time == end_time)  # noqa: E712
                    .first()
                )
            except SQLAlchemyError as e:
                raise db_context("shadow check", e)
            if existing is not None:
                logger.info(f"Shadow activity already exists for {platform} submission at {end_time.isoformat()}")
                return None

            activity = Activity(
                id=uuid.uuid4(),
                date=day,
                start_time=start_time,
                end_time=end_time,
                category=category,
                title=event.title,
                description=f"{platform.upper()} - {event.title}",
                is_productive=True,
                is_shadow=True,
            )

            try:
                db.add(activity)
                db.flush()
            except IntegrityError:
                # Another delivery of the same event won the insert.
                db.rollback()
                logger.info(f"Shadow activity for {end_time.isoformat()} created concurrently, skipping")
                return None
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("create shadow activity", e)

            try:
                self._link(db, activity, event.problem_id, day, category)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("shadow goal link", e)

            logger.info(f"Created shadow activity {activity.id} for {platform} problem {event.problem_id}")
            return activity.id

    def process_shadow_batch(self, events: List[ShadowInput]) -> int:
        """
        Process submissions one after another. Returns how many new shadow
        activities were created; a failing item is logged and skipped.
        """
        created = 0
        for event in events:
            try:
                if self.process_shadow_event(event) is not None:
                    created += 1
            except (APIException, SQLAlchemyError) as e:
                logger.error(
                    f"Shadow event {event.platform}:{event.problem_id} at {event.occurred_at} failed: {e}",
                    exc_info=True,
                )
        logger.info(f"Processed {created}/{len(events)} shadow submissions")
        return created

    def _link(self, db: Session, activity: Activity, problem_id: str, day: str, category: str) -> None:
        now = utcnow()

        exact = (
            db.query(GoalInstance)
            .filter(
                GoalInstance.due_date_local == day,
                GoalInstance.problem_id == problem_id,
                GoalInstance.completed == False,  # noqa: E712
                GoalInstance.verified == False,  # noqa: E712
            )
            .order_by(GoalInstance.created_at, GoalInstance.id)
            .with_for_update()
            .first()
        )
        if exact is not None:
            self._attach(activity, exact)
            exact.verified = True
            if not exact.metrics:
                self._complete(db, exact, now)
            logger.info(f"Linked activity {activity.id} to goal {exact.id} (exact match) and marked verified")
            return

        keyword = keyword_for_category(category)
        pattern = f"%{keyword}%"
        candidates = (
            db.query(GoalInstance)
            .filter(
                GoalInstance.due_date_local == day,
                GoalInstance.completed == False,  # noqa: E712
                GoalInstance.verified == False,  # noqa: E712
                or_(
                    GoalInstance.text.ilike(pattern),
                    GoalInstance.description.ilike(pattern),
                    GoalInstance.category.ilike(pattern),
                ),
            )
            .with_for_update()
            .all()
        )
        match = pick_generic_match(candidates)
        if match is None:
            logger.debug(f"No goal matched shadow activity {activity.id} (keyword '{keyword}')")
            return

        goal = match.goal
        self._attach(activity, goal)
        metrics = clone_metrics(goal.metrics)
        metrics[match.metric_index]["current"] = (metrics[match.metric_index].get("current") or 0) + 1
        goal.metrics = metrics

        if goal.metrics_satisfied():
            goal.verified = True
            self._complete(db, goal, now)
            logger.info(f"Linked activity {activity.id} to goal {goal.id} (generic match), goal complete")
        else:
            logger.info(f"Linked activity {activity.id} to goal {goal.id} (generic match), incremented metric")

    @staticmethod
    def _attach(activity: Activity, goal: GoalInstance) -> None:
        activity.goal_id = goal.id
        linked = list(goal.linked_activity_ids or [])
        if str(activity.id) not in linked:
            linked.append(str(activity.id))
        goal.linked_activity_ids = linked

    @staticmethod
    def _complete(db: Session, goal: GoalInstance, now: datetime) -> None:
        goal.completed = True
        goal.completed_at = now
        if goal.is_debt:
            resolve_open_records(db, [goal.id], now)
