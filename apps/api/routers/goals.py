"""
Goals API Router

Range reads (which reconcile recurring templates and debt first), one-off
goal CRUD, completion/verification, and recurring template management.
"""

from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from datetime import date
from uuid import UUID

from schemas import (
    GoalCreate,
    GoalFilters,
    GoalResponse,
    GoalUpdate,
    LinkActivityRequest,
    Priority,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
)
from services.engine import GoalEngine, get_goal_engine
from services.timeutils import local_date, utcnow

router = APIRouter(prefix="/v1/goals", tags=["Goals"])


# --- Templates (declared first so /templates never reads as a goal id) ---

@router.get("/templates", response_model=List[TemplateResponse])
def list_templates(
    active_only: bool = Query(False),
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.goals.list_templates(active_only=active_only)


@router.post("/templates", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(
    payload: TemplateCreate,
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.goals.create_template(payload)


@router.patch("/templates/{template_id}", response_model=TemplateResponse)
def update_template(
    template_id: UUID,
    payload: TemplateUpdate,
    engine: GoalEngine = Depends(get_goal_engine),
):
    """Affects future generation only."""
    return engine.goals.update_template(template_id, payload)


# --- Goal instances ---

@router.get("", response_model=List[GoalResponse])
def get_goals(
    start: Optional[date] = Query(None, description="First local day (default: today)"),
    end: Optional[date] = Query(None, description="Last local day (default: start)"),
    tz_offset: int = Query(0, description="Minutes east of UTC"),
    completed: Optional[bool] = None,
    is_debt: Optional[bool] = None,
    priority: Optional[Priority] = None,
    urgent: Optional[bool] = None,
    category: Optional[str] = None,
    parent_goal_id: Optional[UUID] = None,
    template_id: Optional[UUID] = None,
    engine: GoalEngine = Depends(get_goal_engine),
):
    """
    Goals due in [start, end].

    Generates missing recurring instances for the window and sweeps overdue
    goals into debt before reading.
    """
    first = start or local_date(utcnow(), tz_offset)
    last = end or first
    filters = GoalFilters(
        completed=completed,
        is_debt=is_debt,
        priority=priority,
        urgent=urgent,
        category=category,
        parent_goal_id=parent_goal_id,
        template_id=template_id,
    )
    return engine.goals.get_goals_for_range(first, last, tz_offset, filters)


@router.post("", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
def create_goal(
    payload: GoalCreate,
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.goals.create_goal(payload)


@router.get("/{goal_id}", response_model=GoalResponse)
def get_goal(
    goal_id: UUID,
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.goals.get_goal(goal_id)


@router.patch("/{goal_id}", response_model=GoalResponse)
def update_goal(
    goal_id: UUID,
    payload: GoalUpdate,
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.goals.update_goal(goal_id, payload)


@router.post("/{goal_id}/toggle", response_model=GoalResponse)
def toggle_goal(
    goal_id: UUID,
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.goals.toggle_goal(goal_id)


@router.post("/{goal_id}/link-activity", response_model=GoalResponse)
def link_activity(
    goal_id: UUID,
    payload: LinkActivityRequest,
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.goals.link_activity(goal_id, payload.activity_id)


@router.delete("/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_goal(
    goal_id: UUID,
    engine: GoalEngine = Depends(get_goal_engine),
):
    engine.goals.delete_goal(goal_id)
