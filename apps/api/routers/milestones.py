"""
Milestones API Router

Milestone CRUD, live progress, and the balancer trigger.
"""

from fastapi import APIRouter, Depends, Query, status
from typing import List
from uuid import UUID

from schemas import (
    BalancerResult,
    MilestoneCreate,
    MilestoneProgress,
    MilestoneResponse,
    MilestoneUpdate,
)
from services.engine import GoalEngine, get_goal_engine

router = APIRouter(prefix="/v1/milestones", tags=["Milestones"])


@router.get("", response_model=List[MilestoneResponse])
def list_milestones(
    active_only: bool = Query(False, description="Only milestones whose period has not ended"),
    tz_offset: int = Query(0, description="Minutes east of UTC"),
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.milestones.list_milestones(active_only=active_only, tz_offset=tz_offset)


@router.post("", response_model=MilestoneResponse, status_code=status.HTTP_201_CREATED)
def create_milestone(
    payload: MilestoneCreate,
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.milestones.create_milestone(payload)


@router.get("/{milestone_id}", response_model=MilestoneResponse)
def get_milestone(
    milestone_id: UUID,
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.milestones.get_milestone(milestone_id)


@router.patch("/{milestone_id}", response_model=MilestoneResponse)
def update_milestone(
    milestone_id: UUID,
    payload: MilestoneUpdate,
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.milestones.update_milestone(milestone_id, payload)


@router.delete("/{milestone_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_milestone(
    milestone_id: UUID,
    engine: GoalEngine = Depends(get_goal_engine),
):
    engine.milestones.delete_milestone(milestone_id)


@router.get("/{milestone_id}/progress", response_model=MilestoneProgress)
def get_milestone_progress(
    milestone_id: UUID,
    tz_offset: int = Query(0),
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.milestones.get_progress(milestone_id, tz_offset=tz_offset)


@router.post("/{milestone_id}/balance", response_model=BalancerResult)
def run_balancer(
    milestone_id: UUID,
    tz_offset: int = Query(0),
    engine: GoalEngine = Depends(get_goal_engine),
):
    """Redistribute the remaining target over the rest of the period."""
    return engine.balancer.run_balancer(milestone_id, tz_offset).to_dict()
