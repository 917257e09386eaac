# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Course Resolver - find the Canvas course(s) a TP course maps to and split its activities between them
"""
import logging
from typing import Dict, List, Optional, Tuple

from clients.canvas import CanvasClient
from errors import ModelError
from models import Activity, CATEGORY_GROUP, CATEGORY_PLENARY, MirrorCourse, Schedule
from utils.logger import StructuredLogger
from utils.semester import term_window

logger = logging.getLogger(__name__)

Assignment = Tuple[MirrorCourse, List[Activity]]


class CourseResolver:
    """Maps TP courses onto Canvas courses through their SIS ids"""

    def __init__(self, canvas_client: CanvasClient, account_id: int, institution: int, max_semester: str):
        self.canvas = canvas_client
        self.account_id = account_id
        self.institution = str(institution)
        self.max_semester = max_semester
        self.structured_logger = StructuredLogger(__name__)

    def find_candidates(self, course_id: str, semester: str, termnr: int, exact: bool = True) -> List[MirrorCourse]:
        """
        Canvas courses for a TP course, in Canvas order.

        Searches the account by course code, then keeps the courses whose SIS id
        names our institution and this course and, when exact, one of the terms
        in the course's term window.
        """
        window_terms = set(term_window(semester, termnr, self.max_semester).terms())
        candidates = []

        for course in self.canvas.account_courses(self.account_id, search_term=course_id):
            try:
                sis = course.sis
            except ModelError as e:
                logger.debug(f"Ignoring Canvas course {course.id} with unusable SIS id: {e}")
                continue
            if sis.institution != self.institution or sis.course != course_id:
                continue
            if exact and (sis.tp_semester, sis.termnr) not in window_terms:
                continue
            candidates.append(course)

        logger.info(f"🔎 {course_id} {semester}#{termnr}: {len(candidates)} Canvas candidate(s)")
        return candidates

    def assign(self, schedule: Schedule, candidates: List[MirrorCourse]) -> List[Assignment]:
        """
        Split a schedule's activities between candidate Canvas courses.

        One candidate gets everything. With several, single-section (UE) courses
        get the plenary activities and each multi-section (UA) course gets the
        group activities whose actid equals its SIS actid.
        """
        if not candidates:
            logger.warning(f"⚠️ No Canvas course found for {schedule.course_id} {schedule.semester}")
            return []

        if len(candidates) == 1:
            return [(candidates[0], schedule.flatten())]

        assignments = []
        seen: Dict[Tuple, MirrorCourse] = {}
        has_single_section = False

        for course in candidates:
            sis = course.sis
            key = (sis.type, sis.actid, sis.tp_semester, sis.termnr)
            if key in seen:
                self.structured_logger.log_sync_event('course_mapping_anomaly', {
                    'course_id': schedule.course_id,
                    'semester': schedule.semester,
                    'kept': seen[key].sis_course_id,
                    'ignored': course.sis_course_id,
                })
                continue
            seen[key] = course

            if sis.is_multi_section:
                activities = self._group_activities(schedule, sis.actid)
            else:
                has_single_section = True
                activities = schedule.flatten(CATEGORY_PLENARY)
            assignments.append((course, activities))

        if not has_single_section and schedule.flatten(CATEGORY_PLENARY):
            logger.warning(
                f"⚠️ {schedule.course_id} has plenary activities but no single-section Canvas course - "
                f"plenary activities are not synced"
            )
        return assignments

    @staticmethod
    def _group_activities(schedule: Schedule, actid: Optional[str]) -> List[Activity]:
        return [
            occurrence
            for group in schedule.activity_groups(CATEGORY_GROUP)
            if group.actid == actid
            for occurrence in group.occurrences
        ]
