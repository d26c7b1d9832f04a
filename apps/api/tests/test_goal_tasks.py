"""
Celery task tests.

Tasks are executed in-process through `.run()`; the shared engine is
swapped for the per-test one.
"""
import pytest
from datetime import date
from unittest.mock import MagicMock, patch
from uuid import uuid4

from core.exceptions import DatabaseError
from models import Activity, GoalInstance
from tasks.goal_tasks import (
    process_shadow_batch_task,
    run_balancer_task,
    transition_monthly_debt_task,
)
from services.timeutils import local_date, utcnow

from fixtures.goal_fixtures import make_goal, make_milestone, metric


@pytest.fixture
def patched_engine(goal_engine):
    with patch("tasks.goal_tasks.get_goal_engine", return_value=goal_engine):
        yield goal_engine


class TestProcessShadowBatchTask:
    def test_valid_events_are_processed(self, patched_engine, query_all):
        events = [
            {"occurred_at": "2024-03-15T10:00:00+00:00", "problem_id": "a", "title": "A", "platform": "leetcode"},
            {"occurred_at": "2024-03-15T11:00:00+00:00", "problem_id": "b", "title": "B", "platform": "leetcode"},
        ]

        result = process_shadow_batch_task.run(events)

        assert result == {"status": "success", "received": 2, "invalid": 0, "created": 2}
        assert len(query_all(Activity)) == 2

    def test_redelivery_creates_nothing(self, patched_engine, query_all):
        events = [{"occurred_at": "2024-03-15T10:00:00+00:00", "problem_id": "a", "title": "A", "platform": "leetcode"}]

        process_shadow_batch_task.run(events)
        result = process_shadow_batch_task.run(events)

        assert result["created"] == 0
        assert len(query_all(Activity)) == 1

    def test_malformed_events_are_skipped(self, patched_engine):
        events = [
            {"occurred_at": "2024-03-15T10:00:00", "problem_id": "naive", "title": "A", "platform": "leetcode"},
            {"problem_id": "missing-time", "title": "B", "platform": "leetcode"},
            {"occurred_at": "2024-03-15T12:00:00+00:00", "problem_id": "ok", "title": "C", "platform": "leetcode"},
        ]

        result = process_shadow_batch_task.run(events)

        assert result["invalid"] == 2
        assert result["created"] == 1


class TestRunBalancerTask:
    def test_success(self, patched_engine, seed):
        today = local_date(utcnow(), 0)
        milestone = seed(make_milestone(today, today, daily_amount=5))
        seed(make_goal(today, parent_goal_id=milestone.id, metrics=[metric(5)]))

        result = run_balancer_task.run(str(milestone.id))

        assert result["status"] == "success"
        assert result["milestone_id"] == str(milestone.id)
        assert result["updated_count"] == 1
        assert result["daily_required"] == 5

    def test_engine_rejection_is_reported(self, patched_engine):
        result = run_balancer_task.run(str(uuid4()))

        assert result["status"] == "error"
        assert result["error_code"] == "NOT_FOUND"

    def test_store_failure_propagates(self):
        engine = MagicMock()
        engine.balancer.run_balancer.side_effect = DatabaseError("fetch milestone", "connection reset")

        with patch("tasks.goal_tasks.get_goal_engine", return_value=engine):
            with pytest.raises(DatabaseError):
                run_balancer_task.run(str(uuid4()))


class TestTransitionMonthlyDebtTask:
    def test_success(self, patched_engine, seed, load):
        goal = seed(make_goal(date(2024, 1, 10)))

        result = transition_monthly_debt_task.run("2024-01", reason="closing")

        assert result == {"status": "success", "month": "2024-01", "archived": 1}
        assert load(GoalInstance, goal.id).is_debt is True

    def test_bad_month_is_reported(self, patched_engine):
        result = transition_monthly_debt_task.run("January")

        assert result["status"] == "error"
        assert result["error_code"] == "INVALID_INPUT_MONTH"


def test_task_names_are_stable():
    assert process_shadow_batch_task.name == "tasks.process_shadow_batch"
    assert run_balancer_task.name == "tasks.run_balancer"
    assert transition_monthly_debt_task.name == "tasks.transition_monthly_debt"
