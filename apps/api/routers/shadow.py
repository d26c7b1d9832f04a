"""
Shadow API Router

Ingestion endpoint for scraper collaborators. Redelivering an event is safe:
the second delivery reports `already_processed` and changes nothing.
"""

from fastapi import APIRouter, Depends, Query
import logging

from schemas import ShadowBatchRequest, ShadowBatchResponse, ShadowEventResponse, ShadowInput
from services.engine import GoalEngine, get_goal_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/shadow", tags=["Shadow"])


@router.post("/events", response_model=ShadowEventResponse)
def process_shadow_event(
    event: ShadowInput,
    engine: GoalEngine = Depends(get_goal_engine),
):
    activity_id = engine.shadow.process_shadow_event(event)
    return ShadowEventResponse(activity_id=activity_id, already_processed=activity_id is None)


@router.post("/batch", response_model=ShadowBatchResponse)
def process_shadow_batch(
    payload: ShadowBatchRequest,
    background: bool = Query(False, description="Queue on the worker instead of processing inline"),
    engine: GoalEngine = Depends(get_goal_engine),
):
    if background:
        from tasks.goal_tasks import process_shadow_batch_task

        task = process_shadow_batch_task.delay([e.model_dump(mode="json") for e in payload.events])
        logger.info(f"Queued shadow batch of {len(payload.events)} events as task {task.id}")
        return ShadowBatchResponse(task_id=task.id, queued=True)

    created = engine.shadow.process_shadow_batch(payload.events)
    return ShadowBatchResponse(created=created)
