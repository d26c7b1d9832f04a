"""
Debt API Router

Open debt list, monthly archival, reset, and the read-only debt views.
"""

from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from datetime import date

from schemas import (
    AccumulatedDebtResponse,
    CountResponse,
    DebtRecordResponse,
    DebtResetRequest,
    DebtTrailDay,
    DebtTransitionRequest,
    GoalResponse,
)
from services.engine import GoalEngine, get_goal_engine

router = APIRouter(prefix="/v1/debt", tags=["Debt"])


@router.get("", response_model=List[DebtRecordResponse])
def get_debt_goals(engine: GoalEngine = Depends(get_goal_engine)):
    """Unresolved debt, oldest first."""
    return engine.debt.get_debt_goals()


@router.post("/transition", response_model=CountResponse)
def transition_monthly_debt(
    payload: DebtTransitionRequest,
    engine: GoalEngine = Depends(get_goal_engine),
):
    count = engine.debt.transition_monthly_debt(payload.month, payload.reason)
    return CountResponse(count=count)


@router.post("/reset", response_model=CountResponse)
def reset_debt(
    payload: DebtResetRequest,
    engine: GoalEngine = Depends(get_goal_engine),
):
    count = engine.debt.reset_debt(payload.goal_ids)
    return CountResponse(count=count)


@router.get("/archive", response_model=List[DebtRecordResponse])
def get_debt_archive(
    month: Optional[str] = Query(None, description="YYYY-MM; omit for the latest entries"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    engine: GoalEngine = Depends(get_goal_engine),
):
    return engine.debt.get_debt_archive(month=month, limit=limit)


@router.get("/trail", response_model=List[DebtTrailDay])
def get_debt_trail(
    end_date: Optional[date] = Query(None),
    days_back: Optional[int] = Query(None, ge=0, le=365),
    tz_offset: int = Query(0),
    engine: GoalEngine = Depends(get_goal_engine),
):
    trail = engine.debt.get_debt_trail(
        end_date=end_date.isoformat() if end_date else None,
        days_back=days_back,
        tz_offset=tz_offset,
    )
    return [
        DebtTrailDay(
            date=day.date,
            count=day.count,
            goals=[GoalResponse.model_validate(g) for g in day.goals],
        )
        for day in trail
    ]


@router.get("/accumulated", response_model=AccumulatedDebtResponse)
def get_accumulated_debt(
    before: date = Query(..., description="Debt originating strictly before this day"),
    engine: GoalEngine = Depends(get_goal_engine),
):
    goals = engine.debt.get_accumulated_debt(before.isoformat())
    return AccumulatedDebtResponse(
        before=before.isoformat(),
        count=len(goals),
        goals=[GoalResponse.model_validate(g) for g in goals],
    )
