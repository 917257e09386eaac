# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Reconciliation Engine - make one Canvas course's calendar equal its due TP activities
"""
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from clients.canvas import CanvasClient
from errors import HttpError, NotFoundOnRemote, TransportError, UnauthorizedAmbiguous
from models import Activity, MirrorCourse, MirrorEvent
from signature_utils import activity_equals_event, build_event_payload
from storage.shadow_store import ShadowCourse, ShadowEvent, ShadowStore
from utils.logger import StructuredLogger

logger = logging.getLogger(__name__)


class DeleteOutcome(Enum):
    """Result of deleting one Canvas event"""
    DELETED = "deleted"                # Canvas confirmed the delete
    ALREADY_GONE = "already_gone"      # 404 - nothing to delete
    MARKED_DELETED = "marked_deleted"  # 401, but Canvas already has it as deleted
    DRY_RUN = "dry_run"                # nothing sent
    FAILED = "failed"                  # still there, or unknown

    @property
    def removed(self) -> bool:
        return self is not DeleteOutcome.FAILED


@dataclass
class ReconcileResult:
    canvas_course_id: int
    matched: int = 0
    created: int = 0
    deleted: int = 0
    failed: int = 0

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def mutations(self) -> int:
        return self.created + self.deleted

    def as_dict(self):
        return {
            'canvas_course_id': self.canvas_course_id,
            'matched': self.matched,
            'created': self.created,
            'deleted': self.deleted,
            'failed': self.failed,
        }


class ReconciliationEngine:
    """
    Computes and applies the creates and deletes for one Canvas course.

    Events are never updated in place: a changed activity deletes the old event
    and creates a new one. Only events recorded in the shadow store are ever
    touched, so events instructors add by hand are left alone.
    """

    def __init__(self, canvas_client: CanvasClient, shadow_store: ShadowStore, dry_run: bool = False):
        self.canvas = canvas_client
        self.store = shadow_store
        self.dry_run = dry_run
        self.structured_logger = StructuredLogger(__name__)

    def reconcile(self, course: MirrorCourse, activities: List[Activity], course_code: str) -> ReconcileResult:
        """
        One pass over a Canvas course.

        Raises TransportError/HttpError when Canvas cannot be read; failed writes
        are counted in the result instead.
        """
        result = ReconcileResult(canvas_course_id=course.id)
        shadow_course = self._remember_course(course)

        # Course pulled from the schedule
        if not activities:
            logger.info(f"🗑️ No TP activities for {course} - removing our events")
            deleted, failed = self.delete_course_events(shadow_course)
            result.deleted, result.failed = deleted, failed
            self._log_result(course, result)
            return result

        pending = list(activities)

        for shadow_event in self.store.events_for_course(shadow_course):
            live = self._fetch_live(shadow_event)
            if live is None:
                logger.warning(f"Event {shadow_event.canvas_id} is gone from Canvas - forgetting it")
                self.store.delete_event(shadow_event)
                result.deleted += 1
                continue

            match_index = self._find_match(pending, live, course_code)
            if match_index is not None:
                pending.pop(match_index)
                result.matched += 1
                logger.debug(f"✅ Event match in TP and Canvas - no update needed: {live}")
                continue

            # Nothing in TP matches; it was changed or removed there
            outcome = self.delete_event(shadow_event)
            if outcome.removed:
                result.deleted += 1
            else:
                result.failed += 1

        for activity in pending:
            if self.create_event(activity, course, shadow_course, course_code):
                result.created += 1
            else:
                result.failed += 1

        self._log_result(course, result)
        return result

    def _remember_course(self, course: MirrorCourse) -> ShadowCourse:
        shadow_course = self.store.find_or_create_course(course.id)
        shadow_course.name = course.name
        shadow_course.course_code = course.course_code
        shadow_course.sis_course_id = course.sis_course_id
        self.store.save_course(shadow_course)
        return shadow_course

    def _fetch_live(self, shadow_event: ShadowEvent) -> Optional[MirrorEvent]:
        """The current Canvas event, or None if it is gone or marked deleted"""
        try:
            live = self.canvas.calendar_event(shadow_event.canvas_id)
        except NotFoundOnRemote:
            return None
        if live.is_deleted:
            return None
        return live

    @staticmethod
    def _find_match(pending: List[Activity], event: MirrorEvent, course_code: str) -> Optional[int]:
        for index, activity in enumerate(pending):
            if activity_equals_event(activity, event, course_code):
                return index
        return None

    def create_event(self, activity: Activity, course: MirrorCourse, shadow_course: ShadowCourse,
                     course_code: str) -> bool:
        """Create one event in Canvas, then record it. Returns False if Canvas refused."""
        payload = build_event_payload(activity, course, course_code)

        if self.dry_run:
            logger.info(f"🧪 DRY RUN: would create event {json.dumps(payload, ensure_ascii=False)}")
            return True

        try:
            created = self.canvas.create_calendar_event(payload)
        except HttpError as e:
            logger.error(f"❌ Failed to create event '{payload['title']}' in course {course.id}: {e}")
            self.structured_logger.log_sync_event('event_create_failed', {
                'canvas_course_id': course.id,
                'title': payload['title'],
                'status': e.status,
            })
            return False

        # Only record the event once Canvas has it
        self.store.add_event(shadow_course, created.id)
        logger.info(f"➕ Event created in Canvas: {payload['title']} - canvas id: {created.id}")
        return True

    def delete_event(self, shadow_event: ShadowEvent) -> DeleteOutcome:
        """
        Delete one Canvas event and, unless that failed, its shadow record.

        A 401 from Canvas is ambiguous: it is also what Canvas answers for an event
        that is already marked deleted, so a second read decides.
        """
        event_id = shadow_event.canvas_id

        if self.dry_run:
            logger.info(f"🧪 DRY RUN: would delete event {event_id}")
            return DeleteOutcome.DRY_RUN

        try:
            self.canvas.delete_calendar_event(event_id)
            outcome = DeleteOutcome.DELETED
            logger.info(f"🗑️ Event deleted in Canvas: {event_id}")
        except NotFoundOnRemote:
            outcome = DeleteOutcome.ALREADY_GONE
            logger.warning(f"Event {event_id} missing in Canvas, assume deletion")
        except UnauthorizedAmbiguous:
            outcome = self._resolve_unauthorized(event_id)
        except HttpError as e:
            outcome = DeleteOutcome.FAILED
            logger.error(f"❌ Unable to delete event {event_id} in Canvas: {e}")

        if outcome.removed and shadow_event.id is not None:
            self.store.delete_event(shadow_event)

        self.structured_logger.log_sync_event(
            'event_delete_failed' if outcome is DeleteOutcome.FAILED else 'event_deleted',
            {'canvas_event_id': event_id, 'outcome': outcome.value}
        )
        return outcome

    def _resolve_unauthorized(self, event_id: int) -> DeleteOutcome:
        try:
            live = self.canvas.calendar_event(event_id)
        except (HttpError, TransportError) as e:
            logger.error(f"❌ Unable to delete event {event_id} in Canvas, and re-reading it failed: {e}")
            return DeleteOutcome.FAILED
        if live.is_deleted:
            logger.warning(f"Event {event_id} marked as deleted in Canvas, assume deleted")
            return DeleteOutcome.MARKED_DELETED
        logger.error(f"❌ Unauthorized to delete event {event_id} in Canvas")
        return DeleteOutcome.FAILED

    def delete_course_events(self, shadow_course: ShadowCourse):
        """Delete every event we have on record for a course. Returns (deleted, failed)."""
        deleted = failed = 0
        for shadow_event in self.store.events_for_course(shadow_course):
            if self.delete_event(shadow_event).removed:
                deleted += 1
            else:
                failed += 1
        return deleted, failed

    def _log_result(self, course: MirrorCourse, result: ReconcileResult):
        logger.info(
            f"📋 {course}: {result.matched} unchanged, {result.created} created, "
            f"{result.deleted} deleted, {result.failed} failed"
        )
        self.structured_logger.log_sync_event(
            'course_reconciled' if result.success else 'course_reconcile_failed',
            {**result.as_dict(), 'sis_course_id': course.sis_course_id, 'dry_run': self.dry_run}
        )
