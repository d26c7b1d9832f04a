"""
Goal Engine Tasks

Push-style entry points for the lifecycle engine:
    - process_shadow_batch: scraper collaborators enqueue the submissions
      they discovered; redelivery is safe.
    - run_balancer: rebalance one monthly milestone.
    - transition_monthly_debt: archive a closed month.

Each task returns a small JSON-safe dict for monitoring. Engine errors
(invalid input, unknown ids) are reported in the result instead of being
retried; store failures propagate so Celery records them.
"""

from typing import Dict, List, Optional
from uuid import UUID

from celery import Task
from pydantic import ValidationError

from tasks import celery_app
from core.exceptions import APIException, DatabaseError
from schemas import ShadowInput
from services.engine import get_goal_engine
import logging

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.process_shadow_batch", bind=True)
def process_shadow_batch_task(self: Task, events: List[Dict]) -> Dict:
    """
    Create shadow activities for a batch of submissions.

    Malformed events are skipped and counted; the rest are processed.
    """
    parsed: List[ShadowInput] = []
    invalid = 0
    for raw in events:
        try:
            parsed.append(ShadowInput.model_validate(raw))
        except ValidationError as e:
            invalid += 1
            logger.warning(f"Skipping malformed shadow event {raw!r}: {e}")

    created = get_goal_engine().shadow.process_shadow_batch(parsed)
    return {
        "status": "success",
        "received": len(events),
        "invalid": invalid,
        "created": created,
    }


@celery_app.task(name="tasks.run_balancer", bind=True)
def run_balancer_task(self: Task, milestone_id: str, tz_offset: int = 0) -> Dict:
    try:
        result = get_goal_engine().balancer.run_balancer(UUID(milestone_id), tz_offset)
    except DatabaseError:
        raise
    except APIException as e:
        logger.warning(f"Balancer for milestone {milestone_id} rejected: {e}")
        return {"status": "error", "error_code": e.error_code, "message": e.detail}

    return {
        "status": "success",
        "milestone_id": str(result.milestone_id),
        "updated_count": result.updated_count,
        "daily_required": result.daily_required,
        "message": result.message,
    }


@celery_app.task(name="tasks.transition_monthly_debt", bind=True)
def transition_monthly_debt_task(self: Task, month: str, reason: Optional[str] = None) -> Dict:
    try:
        archived = get_goal_engine().debt.transition_monthly_debt(month, reason)
    except DatabaseError:
        raise
    except APIException as e:
        logger.warning(f"Monthly debt transition for {month} rejected: {e}")
        return {"status": "error", "error_code": e.error_code, "message": e.detail}

    return {"status": "success", "month": month, "archived": archived}
