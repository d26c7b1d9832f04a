"""
API endpoint tests.

Exercises every router through FastAPI's TestClient against the per-test
SQLite engine. Dates are relative to the real current day because the
routes read the clock themselves.
"""
from datetime import timedelta
from unittest.mock import MagicMock
from uuid import uuid4

from models import Activity, GoalInstance
from services.timeutils import format_local_date, local_date, utcnow

from fixtures.goal_fixtures import make_goal, make_milestone, make_template, metric


def today():
    return local_date(utcnow(), 0)


class TestHealth:
    def test_ping(self, client):
        response = client.get("/ping")
        assert response.status_code == 200
        assert response.json() == {"pong": True}


class TestGoalsEndpoints:
    def test_create_and_fetch_goal(self, client):
        payload = {
            "text": "Read a chapter",
            "due_date": format_local_date(today()),
            "metrics": [{"label": "Pages", "target": 20}],
        }

        response = client.post("/v1/goals", json=payload)

        assert response.status_code == 201
        body = response.json()
        assert body["text"] == "Read a chapter"
        assert body["due_date_local"] == format_local_date(today())
        assert body["metrics"][0]["current"] == 0
        assert body["is_debt"] is False

        fetched = client.get(f"/v1/goals/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == body["id"]

    def test_range_read_defaults_to_today_and_expands(self, client, seed):
        seed(make_template("Daily", text="Stretch"))

        response = client.get("/v1/goals")

        assert response.status_code == 200
        goals = response.json()
        assert [g["text"] for g in goals] == ["Stretch"]
        assert goals[0]["due_date_local"] == format_local_date(today())

    def test_range_read_sweeps_overdue_into_debt(self, client, seed):
        yesterday = today() - timedelta(days=1)
        seed(make_goal(yesterday, text="Missed"))

        response = client.get("/v1/goals", params={"start": yesterday.isoformat(), "end": today().isoformat()})

        assert response.status_code == 200
        (goal,) = response.json()
        assert goal["is_debt"] is True
        assert goal["original_date"] == yesterday.isoformat()

    def test_range_read_rejects_inverted_window(self, client):
        response = client.get(
            "/v1/goals",
            params={"start": today().isoformat(), "end": (today() - timedelta(days=2)).isoformat()},
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_INPUT_END"

    def test_unknown_goal_is_404(self, client):
        response = client.get(f"/v1/goals/{uuid4()}")
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_patch_toggle_delete(self, client, seed, load):
        goal = seed(make_goal(today(), text="Old"))

        patched = client.patch(f"/v1/goals/{goal.id}", json={"text": "New", "priority": "high"})
        assert patched.status_code == 200
        assert patched.json()["text"] == "New"
        assert patched.json()["priority"] == "high"

        toggled = client.post(f"/v1/goals/{goal.id}/toggle")
        assert toggled.json()["completed"] is True

        deleted = client.delete(f"/v1/goals/{goal.id}")
        assert deleted.status_code == 204
        assert load(GoalInstance, goal.id) is None

    def test_empty_patch_is_rejected(self, client, seed):
        goal = seed(make_goal(today()))
        response = client.patch(f"/v1/goals/{goal.id}", json={})
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_INPUT"

    def test_patched_metrics_keep_their_defaults(self, client, seed, load):
        goal = seed(make_goal(today(), metrics=[metric(3)]))

        response = client.patch(f"/v1/goals/{goal.id}", json={"metrics": [{"label": "Problems", "target": 5}]})

        assert response.status_code == 200
        assert load(GoalInstance, goal.id).metrics == [
            {"label": "Problems", "target": 5.0, "current": 0.0, "unit": "count"}
        ]

    def test_link_activity(self, client, seed):
        goal = seed(make_goal(today()))
        now = utcnow()
        activity = seed(
            Activity(
                id=uuid4(),
                date=format_local_date(today()),
                start_time=now - timedelta(minutes=30),
                end_time=now,
                category="study",
                title="Notes",
            )
        )

        response = client.post(f"/v1/goals/{goal.id}/link-activity", json={"activity_id": str(activity.id)})
        assert response.status_code == 200
        assert response.json()["verified"] is True
        assert response.json()["linked_activity_ids"] == [str(activity.id)]

        again = client.post(f"/v1/goals/{goal.id}/link-activity", json={"activity_id": str(activity.id)})
        assert again.status_code == 409

    def test_template_routes(self, client):
        created = client.post(
            "/v1/goals/templates",
            json={"text": "Gym", "recurring_pattern": "Mon,Wed,Fri", "metrics": [{"label": "Sets", "target": 4}]},
        )
        assert created.status_code == 201
        template_id = created.json()["id"]

        listed = client.get("/v1/goals/templates")
        assert [t["id"] for t in listed.json()] == [template_id]

        updated = client.patch(f"/v1/goals/templates/{template_id}", json={"is_active": False})
        assert updated.json()["is_active"] is False
        assert client.get("/v1/goals/templates", params={"active_only": True}).json() == []

    def test_template_with_meaningless_pattern(self, client):
        response = client.post("/v1/goals/templates", json={"text": "Gym", "recurring_pattern": "sometimes"})
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_INPUT_RECURRING_PATTERN"


class TestDebtEndpoints:
    def test_transition_archive_and_reset(self, client, seed):
        goal = seed(make_goal(today().replace(day=1) - timedelta(days=1), text="Last month"))
        month = goal.due_date_local[:7]

        transition = client.post("/v1/debt/transition", json={"month": month, "reason": "closed"})
        assert transition.json() == {"count": 1}

        archive = client.get("/v1/debt/archive", params={"month": month}).json()
        assert [r["goal_id"] for r in archive] == [str(goal.id)]
        assert archive[0]["reason"] == "closed"

        open_debt = client.get("/v1/debt").json()
        assert [r["goal_id"] for r in open_debt] == [str(goal.id)]

        reset = client.post("/v1/debt/reset", json={"goal_ids": [str(goal.id)]})
        assert reset.json() == {"count": 1}
        assert client.get("/v1/debt").json() == []

    def test_bad_month(self, client):
        response = client.post("/v1/debt/transition", json={"month": "2024-13"})
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_INPUT_MONTH"

    def test_trail_and_accumulated(self, client, seed):
        two_days_ago = today() - timedelta(days=2)
        goal = seed(make_goal(two_days_ago, text="Old"))
        client.get("/v1/goals")  # triggers the sweep

        trail = client.get("/v1/debt/trail", params={"days_back": 7}).json()
        assert [(day["date"], day["count"]) for day in trail] == [(two_days_ago.isoformat(), 1)]
        assert trail[0]["goals"][0]["id"] == str(goal.id)

        accumulated = client.get("/v1/debt/accumulated", params={"before": today().isoformat()}).json()
        assert accumulated["count"] == 1
        assert accumulated["before"] == today().isoformat()


class TestShadowEndpoints:
    def test_event_is_idempotent(self, client):
        event = {
            "occurred_at": utcnow().isoformat(),
            "problem_id": "two-sum",
            "title": "Two Sum",
            "platform": "leetcode",
        }

        first = client.post("/v1/shadow/events", json=event)
        second = client.post("/v1/shadow/events", json=event)

        assert first.status_code == 200
        assert first.json()["already_processed"] is False
        assert first.json()["activity_id"] is not None
        assert second.json() == {"activity_id": None, "already_processed": True}

    def test_naive_timestamp_is_rejected(self, client):
        response = client.post(
            "/v1/shadow/events",
            json={"occurred_at": "2024-03-15T10:00:00", "problem_id": "x", "title": "X", "platform": "leetcode"},
        )
        assert response.status_code == 422

    def test_inline_batch(self, client):
        now = utcnow()
        events = [
            {"occurred_at": (now - timedelta(minutes=i)).isoformat(), "problem_id": f"p{i}", "title": "P", "platform": "codeforces"}
            for i in range(3)
        ]

        response = client.post("/v1/shadow/batch", json={"events": events})

        assert response.json() == {"created": 3, "task_id": None, "queued": False}

    def test_background_batch_is_queued(self, client, monkeypatch, query_all):
        event = {"occurred_at": utcnow().isoformat(), "problem_id": "p", "title": "P", "platform": "leetcode"}
        captured = []

        def _capture_delay(events):
            captured.append(events)
            return MagicMock(id="task-123")

        monkeypatch.setattr("tasks.goal_tasks.process_shadow_batch_task.delay", _capture_delay)
        response = client.post("/v1/shadow/batch", params={"background": True}, json={"events": [event]})

        assert response.json() == {"created": None, "task_id": "task-123", "queued": True}
        assert captured[0][0]["problem_id"] == "p"
        assert query_all(Activity) == []


class TestMilestoneEndpoints:
    def test_create_progress_balance(self, client):
        start = today() - timedelta(days=2)
        end = today() + timedelta(days=4)
        created = client.post(
            "/v1/milestones",
            json={
                "target_metric": "Pushups",
                "daily_amount": 10,
                "period_start": start.isoformat(),
                "period_end": end.isoformat(),
                "recurring_pattern": "Daily",
            },
        )
        assert created.status_code == 201
        milestone = created.json()
        assert milestone["target_value"] == 70

        progress = client.get(f"/v1/milestones/{milestone['id']}/progress").json()
        assert progress["total_days"] == 7
        assert progress["elapsed_days"] == 3
        assert progress["on_track"] is False

        balanced = client.post(f"/v1/milestones/{milestone['id']}/balance")
        assert balanced.status_code == 200
        # 70 left over today + 4 days
        assert balanced.json()["daily_required"] == 14
        assert balanced.json()["updated_count"] == 5

    def test_weekly_milestone_cannot_be_balanced(self, client, seed):
        milestone = seed(make_milestone(today(), today() + timedelta(days=6), period_type="weekly"))

        response = client.post(f"/v1/milestones/{milestone.id}/balance")

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_INPUT_PERIOD_TYPE"

    def test_crud(self, client, seed):
        milestone = seed(make_milestone(today(), today() + timedelta(days=9)))

        assert client.get(f"/v1/milestones/{milestone.id}").json()["target_value"] == 100
        assert [m["id"] for m in client.get("/v1/milestones").json()] == [str(milestone.id)]

        patched = client.patch(f"/v1/milestones/{milestone.id}", json={"strategy": "Manual"})
        assert patched.json()["strategy"] == "Manual"

        assert client.delete(f"/v1/milestones/{milestone.id}").status_code == 204
        assert client.get(f"/v1/milestones/{milestone.id}").status_code == 404

    def test_invalid_period(self, client):
        response = client.post(
            "/v1/milestones",
            json={
                "target_metric": "Pushups",
                "daily_amount": 10,
                "period_start": today().isoformat(),
                "period_end": (today() - timedelta(days=1)).isoformat(),
            },
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_INPUT_PERIOD_END"


class TestActivityEndpoints:
    def test_log_and_list_day(self, client, seed):
        goal = seed(make_goal(today(), metrics=[metric(1)]))
        day = today().isoformat()
        base = utcnow().replace(hour=8, minute=0, second=0, microsecond=0)

        first = client.post(
            "/v1/activities",
            json={
                "start_time": base.isoformat(),
                "end_time": (base + timedelta(minutes=45)).isoformat(),
                "category": "study",
                "title": "Algorithms",
                "goal_id": str(goal.id),
            },
        )
        assert first.status_code == 201
        client.post(
            "/v1/activities",
            json={
                "start_time": (base + timedelta(hours=1)).isoformat(),
                "end_time": (base + timedelta(hours=1, minutes=15)).isoformat(),
                "category": "leisure",
                "title": "Break",
                "is_productive": False,
            },
        )

        summary = client.get("/v1/activities", params={"date": day}).json()

        assert summary["date"] == day
        assert [a["title"] for a in summary["activities"]] == ["Algorithms", "Break"]
        assert summary["total_minutes"] == 60
        assert summary["productive_minutes"] == 45
        assert summary["goal_directed_minutes"] == 45

        fetched = client.get(f"/v1/activities/{first.json()['id']}")
        assert fetched.json()["goal_id"] == str(goal.id)

    def test_end_before_start(self, client):
        base = utcnow()
        response = client.post(
            "/v1/activities",
            json={
                "start_time": base.isoformat(),
                "end_time": (base - timedelta(minutes=5)).isoformat(),
                "category": "study",
                "title": "Backwards",
            },
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_INPUT_END_TIME"
