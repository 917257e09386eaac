# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Canvas Client - the Canvas REST endpoints this service needs, decoded to typed records.

create_calendar_event() and delete_calendar_event() are the only calls in the
project that change anything outside it.
"""
import logging
from typing import Dict, List, Optional
from urllib.parse import quote

from clients.rest import RESTClient
from errors import ModelError
from models import MirrorCourse, MirrorEvent

logger = logging.getLogger(__name__)

EVENT_COMPARE_FIELDS = ['title', 'start_at', 'end_at', 'description', 'location_name', 'workflow_state']
EVENT_STRICT_FIELDS = ['id', 'context_code']


class CanvasClient(RESTClient):
    """Typed facade over the Canvas REST API"""

    def __init__(self, url: str, key: str, **kwargs):
        super().__init__(
            f"{url.rstrip('/')}/api/v1/",
            headers={'Authorization': f"Bearer {key}"},
            **kwargs
        )

    def account_courses(self, account_id: int, **params) -> List[MirrorCourse]:
        """List (or search, with search_term=) the courses in an account"""
        params = {'per_page': 100, **params}
        data = self.paginated_get(f"accounts/{account_id}/courses", params=params)
        if not isinstance(data, list):
            raise ModelError(f"Unexpected course list from Canvas account {account_id}")

        courses = []
        for element in data:
            try:
                courses.append(MirrorCourse.from_json(element))
            except ModelError as e:
                logger.error(f"Skipping malformed Canvas course: {e}")
        return courses

    def course(self, course_id: int) -> MirrorCourse:
        return MirrorCourse.from_json(self.get_json(f"courses/{course_id}"))

    def course_by_sis(self, sis_course_id: str) -> MirrorCourse:
        return MirrorCourse.from_json(self.get_json(f"courses/sis_course_id:{quote(sis_course_id, safe='')}"))

    def calendar_events(self, context_code: str) -> List[MirrorEvent]:
        """Every calendar event in a context, e.g. "course_123" """
        params = {'per_page': 100, 'all_events': 'true', 'context_codes[]': context_code}
        data = self.paginated_get("calendar_events", params=params)
        if not isinstance(data, list):
            raise ModelError(f"Unexpected calendar event list for {context_code}")
        return [MirrorEvent.from_json(element) for element in data]

    def calendar_event(self, event_id: int) -> MirrorEvent:
        return MirrorEvent.from_json(self.get_json(f"calendar_events/{event_id}"))

    def create_calendar_event(self, payload: Dict) -> MirrorEvent:
        """Create a calendar event. A good save answers 201 with the new event."""
        response = self.post("calendar_events", json={'calendar_event': payload})
        return MirrorEvent.from_json(self.response_to_native(response))

    def delete_calendar_event(self, event_id: int) -> Optional[MirrorEvent]:
        """
        Delete a calendar event.

        Raises NotFoundOnRemote (404) or UnauthorizedAmbiguous (401) for the two
        answers the caller has to interpret itself.
        """
        data = self.response_to_native(self.delete(f"calendar_events/{event_id}"))
        return MirrorEvent.from_json(data) if data else None

    @staticmethod
    def events_equal(first: MirrorEvent, second: MirrorEvent, strict: bool = False) -> bool:
        """Compare two Canvas events field by field"""
        fields = EVENT_COMPARE_FIELDS + (EVENT_STRICT_FIELDS if strict else [])
        return all(getattr(first, name) == getattr(second, name) for name in fields)
