"""
Tests for milestone management.

Covers:
- Target derivation from daily amount and inclusive period length
- Seeding of linked instances from a recurring pattern
- Progress / on-track computation
- Update, delete (children detached), listing
"""
import pytest
from datetime import date

from core.exceptions import InvalidInputError, NotFoundError
from models import GoalInstance, Milestone
from schemas import MilestoneCreate, MilestoneUpdate
from services.milestones import MilestoneService, derive_target_value, period_days

from fixtures.goal_fixtures import at, make_goal, make_milestone, metric


def create_payload(**overrides):
    values = {
        "target_metric": "Pushups",
        "daily_amount": 10,
        "period_start": date(2023, 2, 1),
        "period_end": date(2023, 2, 28),
    }
    values.update(overrides)
    return MilestoneCreate(**values)


class TestTargetDerivation:
    def test_non_leap_february(self):
        assert derive_target_value(10, date(2023, 2, 1), date(2023, 2, 28)) == 280

    def test_leap_february(self):
        assert derive_target_value(10, date(2024, 2, 1), date(2024, 2, 29)) == 290

    def test_single_day_period(self):
        assert period_days(date(2024, 5, 5), date(2024, 5, 5)) == 1


class TestCreateMilestone:
    def test_target_value_is_derived(self, session_factory, load):
        milestone = MilestoneService(session_factory).create_milestone(create_payload())

        stored = load(Milestone, milestone.id)
        assert stored.target_value == 280
        assert stored.current_value == 0
        assert stored.strategy == "EvenDistribution"

    def test_leap_year_target(self, session_factory):
        milestone = MilestoneService(session_factory).create_milestone(
            create_payload(period_start=date(2024, 2, 1), period_end=date(2024, 2, 29))
        )
        assert milestone.target_value == 290

    def test_recurring_pattern_seeds_linked_instances(self, session_factory, query_all):
        milestone = MilestoneService(session_factory).create_milestone(
            create_payload(
                period_start=date(2024, 1, 1),
                period_end=date(2024, 1, 14),
                recurring_pattern="Mon,Thu",
                label="Daily pushups",
                problem_id="pushups",
            )
        )

        goals = query_all(GoalInstance, GoalInstance.parent_goal_id == milestone.id)
        assert sorted(g.due_date_local for g in goals) == [
            "2024-01-01", "2024-01-04", "2024-01-08", "2024-01-11",
        ]
        for goal in goals:
            assert goal.text == "Daily pushups"
            assert goal.problem_id == "pushups"
            assert goal.metrics == [metric(10, 0, label="Daily pushups")]

    def test_no_pattern_seeds_nothing(self, session_factory, query_all):
        MilestoneService(session_factory).create_milestone(create_payload())
        assert query_all(GoalInstance) == []

    def test_period_end_before_start_is_rejected(self, session_factory, query_all):
        with pytest.raises(InvalidInputError):
            MilestoneService(session_factory).create_milestone(
                create_payload(period_start=date(2024, 3, 10), period_end=date(2024, 3, 1))
            )
        assert query_all(Milestone) == []

    def test_pattern_without_weekdays_is_rejected(self, session_factory):
        with pytest.raises(InvalidInputError):
            MilestoneService(session_factory).create_milestone(create_payload(recurring_pattern="never"))


class TestProgress:
    def test_on_track_when_ahead_of_schedule(self, session_factory, seed):
        milestone = seed(make_milestone(date(2024, 3, 1), date(2024, 3, 30), daily_amount=10))
        seed(make_goal(date(2024, 3, 1), parent_goal_id=milestone.id, metrics=[metric(10, 50)]))

        progress = MilestoneService(session_factory).get_progress(milestone.id, now=at(2024, 3, 5, 12))

        assert progress.current_value == 50
        assert progress.remaining == 250
        assert progress.elapsed_days == 5
        assert progress.remaining_days == 26
        assert progress.expected_by_now == 50
        assert progress.on_track is True
        assert progress.daily_required == 10
        assert progress.percent_complete == pytest.approx(16.7)

    def test_behind_schedule(self, session_factory, seed):
        milestone = seed(make_milestone(date(2024, 3, 1), date(2024, 3, 30), daily_amount=10))

        progress = MilestoneService(session_factory).get_progress(milestone.id, now=at(2024, 3, 10, 12))

        assert progress.expected_by_now == 100
        assert progress.on_track is False

    def test_after_period_end(self, session_factory, seed):
        milestone = seed(make_milestone(date(2024, 3, 1), date(2024, 3, 30), daily_amount=10))

        progress = MilestoneService(session_factory).get_progress(milestone.id, now=at(2024, 4, 5))

        assert progress.remaining_days == 0
        assert progress.elapsed_days == 30
        assert progress.daily_required is None

    def test_unknown_milestone(self, session_factory):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            MilestoneService(session_factory).get_progress(uuid4())


class TestMilestoneCrud:
    def test_update_does_not_recompute_target_from_period(self, session_factory, seed):
        milestone = seed(make_milestone(date(2024, 3, 1), date(2024, 3, 30), daily_amount=10))

        updated = MilestoneService(session_factory).update_milestone(
            milestone.id, MilestoneUpdate(strategy="Manual", label="Reps")
        )

        assert updated.strategy == "Manual"
        assert updated.label == "Reps"
        assert updated.target_value == 300

    def test_update_rejects_null_target_metric(self, session_factory, seed):
        milestone = seed(make_milestone(date(2024, 3, 1), date(2024, 3, 30)))

        with pytest.raises(InvalidInputError):
            MilestoneService(session_factory).update_milestone(
                milestone.id, MilestoneUpdate(target_metric=None)
            )

    def test_delete_detaches_children(self, session_factory, seed, load):
        milestone = seed(make_milestone(date(2024, 3, 1), date(2024, 3, 30)))
        goal = seed(make_goal(date(2024, 3, 2), parent_goal_id=milestone.id))

        MilestoneService(session_factory).delete_milestone(milestone.id)

        assert load(Milestone, milestone.id) is None
        assert load(GoalInstance, goal.id).parent_goal_id is None

    def test_list_active_only(self, session_factory, seed):
        current = make_milestone(date(2024, 3, 1), date(2024, 3, 31))
        past = make_milestone(date(2024, 1, 1), date(2024, 1, 31))
        seed(current, past)
        service = MilestoneService(session_factory)

        assert {m.id for m in service.list_milestones()} == {current.id, past.id}
        assert [m.id for m in service.list_milestones(active_only=True, now=at(2024, 3, 15))] == [current.id]

    def test_active_only_uses_callers_local_day(self, session_factory, seed):
        milestone = seed(make_milestone(date(2024, 3, 1), date(2024, 3, 31)))
        service = MilestoneService(session_factory)

        # 23:00 UTC on the 31st is already April 1st at UTC+2.
        late_march = at(2024, 3, 31, 23)
        assert [m.id for m in service.list_milestones(active_only=True, now=late_march)] == [milestone.id]
        assert service.list_milestones(active_only=True, tz_offset=120, now=late_march) == []

        # 02:00 UTC on April 1st is still March 31st at UTC-5.
        early_april = at(2024, 4, 1, 2)
        assert service.list_milestones(active_only=True, now=early_april) == []
        assert [m.id for m in service.list_milestones(active_only=True, tz_offset=-300, now=early_april)] == [
            milestone.id
        ]

    def test_list_rejects_bad_offset(self, session_factory):
        with pytest.raises(InvalidInputError):
            MilestoneService(session_factory).list_milestones(tz_offset=900)
