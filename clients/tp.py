# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
TP Client - read-only access to the TP timetable web service
"""
import logging
from typing import Dict, List

from clients.rest import RESTClient
from errors import ModelError
from models import ActivityGroup, CATEGORY_GROUP, CATEGORY_PLENARY, TpCourse

logger = logging.getLogger(__name__)


class TPClient(RESTClient):
    """Typed facade over the TP web service"""

    def __init__(self, url: str, key: str, institution: int, **kwargs):
        self.institution = institution
        super().__init__(
            f"{url.rstrip('/')}/ws/",
            headers={'X-Gravitee-Api-Key': key},
            **kwargs
        )

    def courses(self, semester: str, times: bool = True) -> List[TpCourse]:
        """List courses for the institution in a semester (e.g. "20v")"""
        params = {'id': self.institution, 'sem': semester}
        if times:
            params['times'] = 1
        data = self.get_json("course", params=params)
        if isinstance(data, dict):
            data = data.get('data')
        if not isinstance(data, list):
            raise ModelError(f"Unexpected course list from TP for {semester}")

        courses = []
        for element in data:
            try:
                courses.append(TpCourse.from_json(element))
            except ModelError as e:
                logger.error(f"Skipping malformed TP course in {semester}: {e}")
        return courses

    def schedule(self, semester: str, course_id: str, termnr: int) -> Dict[str, List[ActivityGroup]]:
        """One term's timetable for a course, split into 'group' and 'plenary' activities"""
        data = self.get_json("1.4/", params={'id': course_id, 'sem': semester, 'termnr': termnr})
        timetable = data.get('data') if isinstance(data, dict) else None
        if not isinstance(timetable, dict):
            return {}

        groups = {}
        for category in (CATEGORY_GROUP, CATEGORY_PLENARY):
            activities = timetable.get(category)
            if isinstance(activities, list):
                groups[category] = [ActivityGroup.from_json(activity, category) for activity in activities]
        return groups

    def last_changed_list(self, timestamp: str, change_type: str = 'course') -> List[Dict]:
        """List courses changed since a timestamp in ISO-8601 format, e.g. "2020-01-21T00:00:00" """
        data = self.get_json("1.4/lastchanged-list.php", params={'timestamp': timestamp, 'type': change_type})
        if not isinstance(data, dict):
            return []
        elements = data.get('elements')
        return elements if isinstance(elements, list) else []
