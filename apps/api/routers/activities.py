"""
Activities API Router

User-logged activities and the per-day activity log.
"""

from fastapi import APIRouter, Depends, Query, status
from datetime import date
from uuid import UUID

from schemas import ActivityCreate, ActivityResponse, DailyActivities
from services.engine import GoalEngine, get_goal_engine

router = APIRouter(prefix="/v1/activities", tags=["Activities"])


@router.get("", response_model=DailyActivities)
def get_activities(
    day: date = Query(..., alias="date", description="Local day (YYYY-MM-DD)"),
    engine: GoalEngine = Depends(get_goal_engine),
):
    summary = engine.activities.get_activities(day.isoformat())
    summary["activities"] = [ActivityResponse.model_validate(a) for a in summary["activities"]]
    return summary


@router.post("", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
def create_activity(
    payload: ActivityCreate,
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.activities.create_activity(payload)


@router.get("/{activity_id}", response_model=ActivityResponse)
def get_activity(
    activity_id: UUID,
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.activities.get_activity(activity_id)
