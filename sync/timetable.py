# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Timetable - fetch a TP course schedule over every term the course runs
"""
import logging

from clients.tp import TPClient
from models import Schedule
from utils.semester import term_window

logger = logging.getLogger(__name__)


def fetch_schedule(tp_client: TPClient, course_id: str, semester: str, termnr: int,
                   max_semester: str) -> Schedule:
    """
    Fetch every term of a course, from its first term up to max_semester, and
    merge the activities of all terms into one Schedule.

    Raises TransportError/HttpError if TP cannot be reached.
    """
    window = term_window(semester, termnr, max_semester)
    schedule = Schedule(
        course_id=course_id,
        semester=semester,
        termnr=termnr,
        first_semester=window.first_semester,
        first_term=window.first_term,
        last_semester=window.last_semester,
        last_term=window.last_term,
    )

    for term_semester, term in window.terms():
        timetable = tp_client.schedule(term_semester, course_id, term)
        for category, groups in timetable.items():
            schedule.groups.setdefault(category, []).extend(groups)
        logger.debug(
            f"Fetched {course_id} {term_semester} term {term}: "
            f"{sum(len(g.occurrences) for groups in timetable.values() for g in groups)} occurrences"
        )

    logger.info(
        f"📅 Schedule for {course_id} {window.first_semester}#{window.first_term}"
        f" - {window.last_semester}#{window.last_term}: {len(schedule.flatten())} occurrences"
    )
    return schedule
