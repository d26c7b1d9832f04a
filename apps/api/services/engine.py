"""
Goal engine wiring.

`GoalEngine` bundles the lifecycle components around one session factory.
The process-wide instance is built once from `SessionLocal` on first use
and reused by every request, Celery task and script.
"""
from typing import Optional
import logging

from sqlalchemy.orm import sessionmaker

from services.activities import ActivityService
from services.balancer import Balancer
from services.debt_transitioner import DebtTransitioner
from services.goals import GoalService
from services.milestones import MilestoneService
from services.recurring_expander import RecurringExpander
from services.shadow_verifier import ShadowVerifier

logger = logging.getLogger(__name__)


class GoalEngine:
    def __init__(self, session_factory: sessionmaker, shadow_window_minutes: Optional[int] = None):
        self.session_factory = session_factory
        self.expander = RecurringExpander(session_factory)
        self.debt = DebtTransitioner(session_factory)
        self.shadow = ShadowVerifier(session_factory, window_minutes=shadow_window_minutes)
        self.balancer = Balancer(session_factory)
        self.goals = GoalService(session_factory, self.expander, self.debt)
        self.milestones = MilestoneService(session_factory)
        self.activities = ActivityService(session_factory)


_engine: Optional[GoalEngine] = None


def get_goal_engine() -> GoalEngine:
    """FastAPI dependency / task helper returning the shared engine."""
    global _engine
    if _engine is None:
        from core.database import SessionLocal

        _engine = GoalEngine(SessionLocal)
        logger.info("Goal engine initialized")
    return _engine
