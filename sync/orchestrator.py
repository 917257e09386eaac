# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Sync Orchestrator - drives course, term and maintenance runs
"""
import logging
from typing import Dict, List

from clients.canvas import CanvasClient
from context import SyncContext
from errors import HttpError, ModelError, TransportError
from models import MirrorEvent
from storage.shadow_store import ShadowEvent
from sync.engine import ReconciliationEngine
from sync.resolver import CourseResolver
from sync.timetable import fetch_schedule
from utils.semester import make_sis_semester, term_window
from utils.timezone import get_local_time

logger = logging.getLogger(__name__)


def like_escape(value: str) -> str:
    """Escape a value for use inside a LIKE pattern with '\\' as escape character"""
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def sis_like_pattern(course_id: str, semester: str, termnr: int) -> str:
    """LIKE pattern for every SIS id of a course in one term, e.g. %INF-1100\\_%\\_2020\\_VÅR\\_1%"""
    return f"%{like_escape(course_id)}\\_%\\_{like_escape(make_sis_semester(semester, termnr))}%"


class SyncOrchestrator:
    """Runs the fetch → resolve → reconcile pipeline"""

    def __init__(self, context: SyncContext):
        self.context = context
        self.settings = context.settings
        self.tp = context.tp
        self.canvas = context.canvas
        self.store = context.store
        self.resolver = CourseResolver(
            context.canvas,
            self.settings.canvas_account_id,
            self.settings.tp_institution,
            self.settings.max_semester
        )
        self.engine = ReconciliationEngine(context.canvas, context.store, dry_run=self.settings.dry_run)

    def sync_course(self, course_id: str, semester: str, termnr: int) -> bool:
        """
        Sync one TP course into every Canvas course it maps to.

        Returns False when something failed and a later retry may succeed. Never raises.
        """
        logger.info(f"🚀 Syncing {course_id} {semester} term {termnr}")
        try:
            schedule = fetch_schedule(self.tp, course_id, semester, int(termnr), self.settings.max_semester)
            candidates = self.resolver.find_candidates(course_id, semester, int(termnr))
            success = True
            for course, activities in self.resolver.assign(schedule, candidates):
                result = self.engine.reconcile(course, activities, course_id)
                success = success and result.success
            return success
        except (TransportError, HttpError) as e:
            logger.error(f"❌ Sync of {course_id} {semester}#{termnr} failed: {e}")
            self.context.structured_logger.log_sync_event('course_sync_failed', {
                'course_id': course_id, 'semester': semester, 'termnr': termnr, 'error': str(e)
            })
            return False
        except ModelError as e:
            logger.error(f"❌ Bad data while syncing {course_id} {semester}#{termnr}: {e}")
            return False
        except Exception as e:
            # Don't let one course crash the consumer or a full run
            logger.exception(f"❌ Unexpected error while syncing {course_id} {semester}#{termnr}: {e}")
            self.context.structured_logger.log_sync_event('course_sync_failed', {
                'course_id': course_id, 'semester': semester, 'termnr': termnr,
                'error': f"{type(e).__name__}: {e}"
            })
            return False

    def full_sync(self, semester: str) -> Dict:
        """Sync every TP course of a semester; one broken course never stops the run"""
        started = get_local_time()
        logger.info(f"Starting full sync for {semester}")
        try:
            courses = self.tp.courses(semester)
        except (TransportError, HttpError, ModelError) as e:
            logger.critical(f"Could not get course list from TP for {semester}: {e}")
            return {'success': False, 'semester': semester, 'total': 0, 'succeeded': 0, 'failed': []}

        failed: List[str] = []
        for index, tp_course in enumerate(courses, start=1):
            logger.info(f"[{index}/{len(courses)}] Updating {tp_course.id} term {tp_course.terminnr}")
            if not self.sync_course(tp_course.id, semester, tp_course.terminnr):
                failed.append(f"{tp_course.id}#{tp_course.terminnr}")

        summary = {
            'success': not failed,
            'semester': semester,
            'total': len(courses),
            'succeeded': len(courses) - len(failed),
            'failed': failed,
            'duration_seconds': (get_local_time() - started).total_seconds(),
        }
        self.context.structured_logger.log_sync_event('full_sync_completed', summary)
        return summary

    def remove_course(self, course_id: str, semester: str, termnr: int) -> bool:
        """Delete every event we created for a TP course term, in all its Canvas courses"""
        courses = self.store.find_courses_by_sis_like(sis_like_pattern(course_id, semester, int(termnr)))
        if not courses:
            logger.warning(f"No local courses found for {course_id} {semester}#{termnr}")
            return True

        success = True
        for course in courses:
            try:
                deleted, failed = self.engine.delete_course_events(course)
            except TransportError as e:
                logger.error(f"❌ Could not remove events for {course.sis_course_id}: {e}")
                success = False
                continue
            logger.info(f"🗑️ {course.sis_course_id}: {deleted} events removed, {failed} failed")
            success = success and failed == 0
        return success

    def check_structure_change(self, semester: str) -> Dict:
        """
        Compare the courses we have on record with the Canvas courses for each TP course.

        Local courses that no longer exist in Canvas are forgotten. Canvas courses we
        have no trace of are reported, since they need a sync.
        """
        report = {'semester': semester, 'removed_local': [], 'unknown_in_canvas': [], 'errors': []}
        try:
            tp_courses = self.tp.courses(semester)
        except (TransportError, HttpError, ModelError) as e:
            logger.critical(f"Could not get course list from TP for {semester}: {e}")
            report['errors'].append(str(e))
            return report

        for tp_course in tp_courses:
            sis_semester = make_sis_semester(semester, tp_course.terminnr)
            try:
                canvas_ids = {
                    course.sis_course_id
                    for course in self.resolver.find_candidates(tp_course.id, semester, tp_course.terminnr, exact=False)
                    if f"_{sis_semester}" in (course.sis_course_id or '')
                }
            except (TransportError, HttpError) as e:
                logger.error(f"Could not fetch Canvas courses for {tp_course.id}: {e}")
                report['errors'].append(f"{tp_course.id}: {e}")
                continue

            local_courses = self.store.find_courses_by_sis_like(
                sis_like_pattern(tp_course.id, semester, tp_course.terminnr)
            )
            local_ids = {course.sis_course_id for course in local_courses}

            for course in local_courses:
                if course.sis_course_id not in canvas_ids:
                    self.store.delete_course(course)
                    report['removed_local'].append(course.sis_course_id)
                    logger.warning(f"Local course removed from Canvas: {course.sis_course_id}")

            for sis_course_id in sorted(canvas_ids - local_ids):
                report['unknown_in_canvas'].append(sis_course_id)
                logger.warning(f"Course changed in Canvas and needs an update: {sis_course_id}")

        return report

    def compare_environments(self, sis_course_id: str, other: CanvasClient) -> Dict:
        """Events of one SIS course that exist in only one of two Canvas environments"""
        primary_course = self.canvas.course_by_sis(sis_course_id)
        other_course = other.course_by_sis(sis_course_id)
        primary_events = self.canvas.calendar_events(primary_course.context_code)
        other_events = other.calendar_events(other_course.context_code)

        def missing_from(events: List[MirrorEvent], candidates: List[MirrorEvent]) -> List[str]:
            return [
                str(event) for event in events
                if not any(CanvasClient.events_equal(event, candidate) for candidate in candidates)
            ]

        report = {
            'sis_course_id': sis_course_id,
            'only_primary': missing_from(primary_events, other_events),
            'only_other': missing_from(other_events, primary_events),
        }
        report['matching'] = len(primary_events) - len(report['only_primary'])
        report['equal'] = not report['only_primary'] and not report['only_other']
        return report

    def delete_single_event(self, canvas_event_id: int) -> bool:
        """Delete one Canvas event, and our record of it if we have one"""
        shadow_event = self.store.find_event_by_canvas_id(canvas_event_id)
        if shadow_event is None:
            logger.warning(f"Event {canvas_event_id} is not on record - deleting in Canvas only")
            shadow_event = ShadowEvent(id=None, canvas_course_id=0, canvas_id=canvas_event_id)
        try:
            return self.engine.delete_event(shadow_event).removed
        except TransportError as e:
            logger.error(f"❌ Could not delete event {canvas_event_id}: {e}")
            return False

    def course_mapping(self, course_id: str, semester: str, termnr: int) -> Dict:
        """Describe how a TP course maps onto Canvas courses, for troubleshooting"""
        termnr = int(termnr)
        window = term_window(semester, termnr, self.settings.max_semester)
        window_terms = set(window.terms())

        candidates = []
        for course in self.resolver.find_candidates(course_id, semester, termnr, exact=False):
            sis = course.sis
            candidates.append({
                'canvas_course': str(course),
                'sis': sis.as_dict(),
                'in_window': (sis.tp_semester, sis.termnr) in window_terms,
            })

        schedule = fetch_schedule(self.tp, course_id, semester, termnr, self.settings.max_semester)
        matching = self.resolver.find_candidates(course_id, semester, termnr)
        assignments = [
            {'canvas_course': str(course), 'activities': len(activities)}
            for course, activities in self.resolver.assign(schedule, matching)
        ]

        return {
            'course_id': course_id,
            'window': window._asdict(),
            'candidates': candidates,
            'groups': {
                category: [{'actid': group.actid, 'occurrences': len(group.occurrences)} for group in groups]
                for category, groups in schedule.groups.items()
            },
            'assignments': assignments,
        }
