"""
Shared fixtures: TP activities, an in-memory Canvas and a throwaway shadow store
"""

import os
import sys
from typing import Dict, List

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import NotFoundOnRemote, UnauthorizedAmbiguous
from models import Activity, MirrorCourse, MirrorEvent, Room, Staff
from storage.shadow_store import ShadowStore
from utils.timezone import parse_timestamp


class FakeCanvas:
    """In-memory stand-in for CanvasClient that answers like Canvas does"""

    def __init__(self, courses: List[MirrorCourse] = None):
        self.courses = list(courses or [])
        self.events: Dict[int, MirrorEvent] = {}
        self.next_id = 1000
        self.created: List[Dict] = []
        self.deleted: List[int] = []
        self.reads: List[int] = []
        self.calls: List[str] = []

    # Canvas answers with UTC 'Z' timestamps, unlike TP
    @staticmethod
    def _utc(value: str) -> str:
        return parse_timestamp(value).strftime('%Y-%m-%dT%H:%M:%SZ')

    def add_event(self, event: MirrorEvent) -> MirrorEvent:
        self.events[event.id] = event
        return event

    def account_courses(self, account_id, **params) -> List[MirrorCourse]:
        self.calls.append('account_courses')
        term = params.get('search_term')
        return [c for c in self.courses if term is None or term in (c.sis_course_id or '')]

    def course_by_sis(self, sis_course_id: str) -> MirrorCourse:
        self.calls.append('course_by_sis')
        for course in self.courses:
            if course.sis_course_id == sis_course_id:
                return course
        raise NotFoundOnRemote(404, 'not found', 'GET', sis_course_id)

    def calendar_events(self, context_code: str) -> List[MirrorEvent]:
        self.calls.append('calendar_events')
        return [e for e in self.events.values() if e.context_code == context_code]

    def calendar_event(self, event_id: int) -> MirrorEvent:
        self.calls.append('calendar_event')
        self.reads.append(event_id)
        if event_id not in self.events:
            raise NotFoundOnRemote(404, 'not found', 'GET', f"calendar_events/{event_id}")
        return self.events[event_id]

    def create_calendar_event(self, payload: Dict) -> MirrorEvent:
        self.calls.append('create_calendar_event')
        self.next_id += 1
        self.created.append(payload)
        event = MirrorEvent(
            id=self.next_id,
            title=payload['title'],
            start_at=self._utc(payload['start_at']),
            end_at=self._utc(payload['end_at']),
            location_name=payload['location_name'],
            description=payload['description'],
            context_code=payload['context_code'],
        )
        return self.add_event(event)

    def delete_calendar_event(self, event_id: int) -> MirrorEvent:
        self.calls.append('delete_calendar_event')
        if event_id not in self.events:
            raise NotFoundOnRemote(404, 'not found', 'DELETE', f"calendar_events/{event_id}")
        event = self.events[event_id]
        if event.is_deleted:
            raise UnauthorizedAmbiguous(401, 'unauthorized', 'DELETE', f"calendar_events/{event_id}")
        self.deleted.append(event_id)
        return self.events.pop(event_id)


def make_activity(**overrides) -> Activity:
    values = {
        'id': '1',
        'summary': 'Forelesning',
        'dtstart': '2020-01-20T10:15:00+01:00',
        'dtend': '2020-01-20T12:00:00+01:00',
        'title': None,
        'rooms': [Room('TEO-H1', '1.022AUD')],
        'staffs': [Staff('Ola', 'Nordmann')],
        'tags': ['Mediasite opptak'],
        'curr': 'Introduction to programming',
        'editurl': 'https://tp.uio.no/uit/timeplan/edit?id=1',
        'actid': '200',
    }
    values.update(overrides)
    return Activity(**values)


@pytest.fixture
def activity_factory():
    return make_activity


@pytest.fixture
def course():
    return MirrorCourse(
        id=42,
        name='Innføring i programmering',
        course_code='INF-1100',
        sis_course_id='UE_186_INF-1100_1_2020_VÅR_1',
        workflow_state='available',
    )


@pytest.fixture
def canvas_factory():
    return FakeCanvas


@pytest.fixture
def canvas(course):
    return FakeCanvas([course])


@pytest.fixture
def store():
    shadow_store = ShadowStore(':memory:')
    shadow_store.connect()
    yield shadow_store
    shadow_store.close()
