"""
Reconciliation engine tests

Every pass must leave Canvas holding exactly one event per due TP activity,
and only ever touch events recorded in the shadow store.
"""

import os
import sys
from unittest.mock import MagicMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import HttpError, NotFoundOnRemote, TransportError, UnauthorizedAmbiguous
from models import MirrorEvent, Room
from storage.shadow_store import ShadowStore
from sync.engine import DeleteOutcome, ReconciliationEngine


@pytest.fixture
def engine(canvas, store):
    return ReconciliationEngine(canvas, store)


@pytest.fixture
def two_activities(activity_factory):
    return [
        activity_factory(id='1'),
        activity_factory(id='2', dtstart='2020-01-27T10:15:00+01:00', dtend='2020-01-27T12:00:00+01:00'),
    ]


def shadow_ids(store, course):
    return sorted(e.canvas_id for e in store.events_for_course(store.find_or_create_course(course.id)))


class TestReconcilePasses:
    """Create, match and delete across repeated passes"""

    @pytest.mark.unit
    def test_first_pass_creates_every_activity(self, engine, canvas, store, course, two_activities):
        result = engine.reconcile(course, two_activities, 'INF-1100')

        assert result.created == 2
        assert result.matched == 0
        assert result.success
        assert len(canvas.events) == 2
        assert shadow_ids(store, course) == sorted(canvas.events)

    @pytest.mark.unit
    def test_second_pass_is_a_no_op(self, engine, canvas, store, course, two_activities):
        """An unchanged schedule causes no creates or deletes"""
        engine.reconcile(course, two_activities, 'INF-1100')
        created_before = len(canvas.created)
        canvas.calls.clear()
        canvas.reads.clear()

        result = engine.reconcile(course, two_activities, 'INF-1100')

        assert result.matched == 2
        assert result.mutations == 0
        assert len(canvas.created) == created_before
        assert canvas.deleted == []
        # One read per shadow record and nothing else
        assert canvas.calls == ['calendar_event', 'calendar_event']
        assert sorted(canvas.reads) == shadow_ids(store, course)

    @pytest.mark.unit
    def test_removed_activity_is_deleted(self, engine, canvas, store, course, two_activities):
        engine.reconcile(course, two_activities, 'INF-1100')

        result = engine.reconcile(course, two_activities[:1], 'INF-1100')

        assert result.deleted == 1
        assert result.matched == 1
        assert len(canvas.events) == 1
        assert shadow_ids(store, course) == sorted(canvas.events)

    @pytest.mark.unit
    def test_changed_activity_is_replaced(self, engine, canvas, store, course, activity_factory):
        engine.reconcile(course, [activity_factory()], 'INF-1100')
        old_ids = set(canvas.events)

        moved = activity_factory(rooms=[Room('REALF', 'A016')])
        result = engine.reconcile(course, [moved], 'INF-1100')

        assert result.deleted == 1
        assert result.created == 1
        assert not old_ids & set(canvas.events)
        assert list(canvas.events.values())[0].location_name == 'REALF A016'

    @pytest.mark.unit
    def test_empty_source_removes_all_our_events(self, engine, canvas, store, course, two_activities):
        engine.reconcile(course, two_activities, 'INF-1100')

        result = engine.reconcile(course, [], 'INF-1100')

        assert result.deleted == 2
        assert canvas.events == {}
        assert shadow_ids(store, course) == []

    @pytest.mark.unit
    def test_event_count_never_exceeds_activities(self, engine, canvas, course, activity_factory):
        """Repeated passes over a growing schedule never duplicate events"""
        schedule = []
        for week in range(1, 5):
            schedule.append(activity_factory(
                id=str(week),
                dtstart=f"2020-02-0{week}T10:15:00+01:00",
                dtend=f"2020-02-0{week}T12:00:00+01:00",
            ))
            for _ in range(2):
                engine.reconcile(course, schedule, 'INF-1100')
                assert len(canvas.events) == len(schedule)

    @pytest.mark.unit
    def test_events_not_on_record_are_left_alone(self, engine, canvas, course, activity_factory):
        manual = canvas.add_event(MirrorEvent(id=1, title='Office hours', context_code=course.context_code))

        engine.reconcile(course, [activity_factory()], 'INF-1100')
        engine.reconcile(course, [], 'INF-1100')

        assert canvas.events == {manual.id: manual}

    @pytest.mark.unit
    def test_event_missing_in_canvas_is_forgotten_and_recreated(self, engine, canvas, store, course,
                                                                 activity_factory):
        engine.reconcile(course, [activity_factory()], 'INF-1100')
        canvas.events.clear()

        result = engine.reconcile(course, [activity_factory()], 'INF-1100')

        assert result.deleted == 1
        assert result.created == 1
        assert shadow_ids(store, course) == sorted(canvas.events)

    @pytest.mark.unit
    def test_course_details_are_recorded(self, engine, store, course, activity_factory):
        engine.reconcile(course, [activity_factory()], 'INF-1100')

        shadow_course = store.find_course(course.sis_course_id)
        assert shadow_course.canvas_id == course.id
        assert shadow_course.name == course.name

    @pytest.mark.unit
    def test_failed_create_is_counted_and_not_recorded(self, store, course, activity_factory):
        canvas = MagicMock()
        canvas.create_calendar_event.side_effect = HttpError(400, 'bad request', 'POST', 'calendar_events')
        engine = ReconciliationEngine(canvas, store)

        result = engine.reconcile(course, [activity_factory()], 'INF-1100')

        assert result.failed == 1
        assert not result.success
        assert shadow_ids(store, course) == []


class TestDryRun:
    """Dry-run never changes Canvas or the shadow store"""

    @pytest.mark.unit
    def test_dry_run_makes_no_changes(self, tmp_path, canvas, course, two_activities):
        db_path = tmp_path / 'shadow.sqlite3'
        with ShadowStore(db_path, dry_run=True) as dry_store:
            result = ReconciliationEngine(canvas, dry_store, dry_run=True).reconcile(
                course, two_activities, 'INF-1100'
            )

        assert result.created == 2
        assert canvas.created == []
        assert canvas.events == {}
        with ShadowStore(db_path) as real_store:
            assert real_store.find_course(course.sis_course_id) is None

    @pytest.mark.unit
    def test_dry_run_delete_sends_nothing(self, store, course):
        canvas = MagicMock()
        shadow_course = store.find_or_create_course(course.id)
        store.add_event(shadow_course, 5)
        shadow_event = store.events_for_course(shadow_course)[0]

        outcome = ReconciliationEngine(canvas, store, dry_run=True).delete_event(shadow_event)

        assert outcome is DeleteOutcome.DRY_RUN
        canvas.delete_calendar_event.assert_not_called()


class TestDeleteOutcomes:
    """404 and 401 answers on delete"""

    @pytest.fixture
    def recorded(self, store, course):
        shadow_course = store.find_or_create_course(course.id)
        store.add_event(shadow_course, 77)
        return shadow_course, store.events_for_course(shadow_course)[0]

    @pytest.mark.unit
    def test_delete_confirmed(self, store, recorded):
        canvas = MagicMock()
        shadow_course, shadow_event = recorded

        outcome = ReconciliationEngine(canvas, store).delete_event(shadow_event)

        assert outcome is DeleteOutcome.DELETED
        canvas.delete_calendar_event.assert_called_once_with(77)
        assert store.events_for_course(shadow_course) == []

    @pytest.mark.unit
    def test_not_found_counts_as_deleted(self, store, recorded):
        canvas = MagicMock()
        canvas.delete_calendar_event.side_effect = NotFoundOnRemote(404, '', 'DELETE', 'x')
        shadow_course, shadow_event = recorded

        outcome = ReconciliationEngine(canvas, store).delete_event(shadow_event)

        assert outcome is DeleteOutcome.ALREADY_GONE
        assert outcome.removed
        assert store.events_for_course(shadow_course) == []

    @pytest.mark.unit
    def test_unauthorized_on_deleted_event(self, store, recorded):
        canvas = MagicMock()
        canvas.delete_calendar_event.side_effect = UnauthorizedAmbiguous(401, '', 'DELETE', 'x')
        canvas.calendar_event.return_value = MirrorEvent(id=77, workflow_state='deleted')
        shadow_course, shadow_event = recorded

        outcome = ReconciliationEngine(canvas, store).delete_event(shadow_event)

        assert outcome is DeleteOutcome.MARKED_DELETED
        canvas.calendar_event.assert_called_once_with(77)
        assert store.events_for_course(shadow_course) == []

    @pytest.mark.unit
    def test_unauthorized_on_live_event_fails(self, store, recorded):
        canvas = MagicMock()
        canvas.delete_calendar_event.side_effect = UnauthorizedAmbiguous(401, '', 'DELETE', 'x')
        canvas.calendar_event.return_value = MirrorEvent(id=77, workflow_state='active')
        shadow_course, shadow_event = recorded

        outcome = ReconciliationEngine(canvas, store).delete_event(shadow_event)

        assert outcome is DeleteOutcome.FAILED
        assert len(store.events_for_course(shadow_course)) == 1

    @pytest.mark.unit
    def test_unauthorized_with_failed_reread_fails(self, store, recorded):
        canvas = MagicMock()
        canvas.delete_calendar_event.side_effect = UnauthorizedAmbiguous(401, '', 'DELETE', 'x')
        canvas.calendar_event.side_effect = TransportError('connection refused', 'GET', 'x')
        shadow_course, shadow_event = recorded

        outcome = ReconciliationEngine(canvas, store).delete_event(shadow_event)

        assert outcome is DeleteOutcome.FAILED
        assert len(store.events_for_course(shadow_course)) == 1

    @pytest.mark.unit
    def test_failed_delete_fails_the_pass(self, store, recorded, course):
        canvas = MagicMock()
        canvas.calendar_event.return_value = MirrorEvent(id=77, title='Old', context_code=course.context_code)
        canvas.delete_calendar_event.side_effect = HttpError(500, 'boom', 'DELETE', 'x')
        canvas.create_calendar_event.return_value = MirrorEvent(id=78)

        result = ReconciliationEngine(canvas, store).reconcile(course, [], 'INF-1100')

        assert result.failed == 1
        assert not result.success
