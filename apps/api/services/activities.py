"""
Activity log: user-entered activities and per-day listing with time totals.
Shadow activities are created by the shadow verifier, never here.
"""
from datetime import datetime
from typing import List, Optional
import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from core.exceptions import InvalidInputError, NotFoundError, db_context
from models import Activity, GoalInstance
from schemas import ActivityCreate
from services.goals import verify_with_activity
from services.timeutils import ensure_utc, format_local_date, local_date, parse_local_date, utcnow, validate_tz_offset

logger = logging.getLogger(__name__)


def _minutes(activity: Activity) -> int:
    return int((ensure_utc(activity.end_time) - ensure_utc(activity.start_time)).total_seconds() // 60)


def summarize_day(day: str, activities: List[Activity]) -> dict:
    total = productive = goal_directed = 0
    for activity in activities:
        minutes = _minutes(activity)
        total += minutes
        if activity.is_productive:
            productive += minutes
        if activity.goal_id is not None:
            goal_directed += minutes
    return {
        "date": day,
        "activities": activities,
        "total_minutes": total,
        "productive_minutes": productive,
        "goal_directed_minutes": goal_directed,
    }


class ActivityService:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create_activity(self, data: ActivityCreate, now: Optional[datetime] = None) -> Activity:
        """Log an activity. Linking it to a goal verifies that goal."""
        now = now or utcnow()
        validate_tz_offset(data.tz_offset)
        start = ensure_utc(data.start_time)
        end = ensure_utc(data.end_time)
        if end < start:
            raise InvalidInputError("end_time must not be before start_time", field="end_time")

        with self._session_factory() as db:
            goal: Optional[GoalInstance] = None
            if data.goal_id is not None:
                goal = db.get(GoalInstance, data.goal_id)
                if goal is None:
                    raise NotFoundError("Goal", str(data.goal_id))

            activity = Activity(
                id=uuid.uuid4(),
                date=format_local_date(local_date(start, data.tz_offset)),
                start_time=start,
                end_time=end,
                category=data.category,
                title=data.title,
                description=data.description,
                is_productive=data.is_productive,
                is_shadow=False,
            )
            try:
                db.add(activity)
                if goal is not None:
                    verify_with_activity(db, goal, activity, now)
                db.commit()
                db.refresh(activity)
            except SQLAlchemyError as e:
                db.rollback()
                raise db_context("create activity", e)

        logger.info(f"Logged activity {activity.id} ({activity.category}, {_minutes(activity)} min)")
        return activity

    def get_activities(self, day: str) -> dict:
        """Activities of a local day with total/productive/goal-directed minutes."""
        parse_local_date(day)
        with self._session_factory() as db:
            try:
                activities = (
                    db.query(Activity)
                    .filter(Activity.date == day)
                    .order_by(Activity.start_time, Activity.id)
                    .all()
                )
            except SQLAlchemyError as e:
                raise db_context("get activities", e)
        return summarize_day(day, activities)

    def get_activity(self, activity_id: uuid.UUID) -> Activity:
        with self._session_factory() as db:
            activity = db.get(Activity, activity_id)
            if activity is None:
                raise NotFoundError("Activity", str(activity_id))
            return activity
