# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Typed records for the TP and Canvas payloads this service works with.

Every record is built by an explicit from_json() decode step. Optional fields
missing from a payload become None or an empty list; required fields missing
from a payload raise ModelError.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from errors import ModelError
from utils.semester import sis_to_semester
from utils.timezone import format_local_time, parse_timestamp

SIS_SINGLE_SECTION = 'UE'
SIS_MULTI_SECTION = 'UA'

CATEGORY_GROUP = 'group'
CATEGORY_PLENARY = 'plenary'


def _require(data: Dict, key: str, kind: str) -> Any:
    if not isinstance(data, dict):
        raise ModelError(f"{kind} payload is not an object: {data!r}")
    if data.get(key) is None:
        raise ModelError(f"{kind} payload is missing '{key}'")
    return data[key]


def _list(data: Dict, key: str) -> List:
    value = data.get(key)
    return value if isinstance(value, list) else []


# =============================================================================
# TP (SOURCE)
# =============================================================================

@dataclass(frozen=True)
class TpCourse:
    """One entry of the TP course list for a semester"""
    id: str
    terminnr: int
    name: str = ''

    @classmethod
    def from_json(cls, data: Dict) -> 'TpCourse':
        try:
            terminnr = int(_require(data, 'terminnr', 'TP course'))
        except (TypeError, ValueError) as e:
            raise ModelError(f"TP course has a bad term number: {data!r}") from e
        return cls(str(_require(data, 'id', 'TP course')), terminnr, data.get('name') or '')


@dataclass(frozen=True)
class Room:
    building_id: str
    room_id: str

    @classmethod
    def from_json(cls, data: Dict) -> 'Room':
        return cls(str(data.get('buildingid') or ''), str(data.get('roomid') or ''))

    @property
    def display_name(self) -> str:
        return f"{self.building_id} {self.room_id}"


@dataclass(frozen=True)
class Staff:
    firstname: str
    lastname: str

    @classmethod
    def from_json(cls, data: Dict) -> 'Staff':
        return cls(data.get('firstname') or '', data.get('lastname') or '')

    @property
    def display_name(self) -> str:
        return f"{self.firstname} {self.lastname}"


@dataclass(frozen=True)
class ExternalStaff:
    name: str
    url: str = ''

    @classmethod
    def from_json(cls, data: Dict) -> 'ExternalStaff':
        return cls(data.get('name') or '', data.get('url') or '')

    @property
    def display_name(self) -> str:
        return f"{self.name} (external) {self.url}"


@dataclass(frozen=True)
class Activity:
    """One concrete, scheduled occurrence from TP"""
    id: str
    summary: str
    dtstart: str
    dtend: str
    title: Optional[str] = None
    rooms: List[Room] = field(default_factory=list)
    staffs: List[Staff] = field(default_factory=list)
    external_staffs: List[ExternalStaff] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    curr: str = ''
    editurl: Optional[str] = None
    actid: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict, actid: Optional[str] = None) -> 'Activity':
        dtstart = _require(data, 'dtstart', 'TP event')
        dtend = _require(data, 'dtend', 'TP event')
        # Fail here rather than during matching
        parse_timestamp(dtstart)
        parse_timestamp(dtend)
        return cls(
            id=str(data.get('id') or ''),
            summary=data.get('summary') or '',
            dtstart=dtstart,
            dtend=dtend,
            title=data.get('title') or None,
            rooms=[Room.from_json(room) for room in _list(data, 'room')],
            staffs=[Staff.from_json(staff) for staff in _list(data, 'staffs')],
            external_staffs=[ExternalStaff.from_json(staff) for staff in _list(data, 'xstaff-list')],
            tags=[str(tag) for tag in _list(data, 'tags')],
            curr=data.get('curr') or '',
            editurl=data.get('editurl') or None,
            actid=actid,
        )


@dataclass
class ActivityGroup:
    """A TP activity (one section, or the plenary teaching) and all its occurrences"""
    actid: str
    category: str
    occurrences: List[Activity] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict, category: str) -> 'ActivityGroup':
        actid = str(data.get('actid') or data.get('id') or '')
        occurrences = []
        for sequence in _list(data, 'eventsequences'):
            for event in _list(sequence, 'events'):
                occurrences.append(Activity.from_json(event, actid=actid))
        return cls(actid=actid, category=category, occurrences=occurrences)


@dataclass
class Schedule:
    """A TP course schedule merged over its whole term window"""
    course_id: str
    semester: str
    termnr: int
    first_semester: str
    first_term: int
    last_semester: str
    last_term: int
    groups: Dict[str, List[ActivityGroup]] = field(default_factory=dict)

    def activity_groups(self, category: str) -> List[ActivityGroup]:
        return self.groups.get(category, [])

    def flatten(self, category: Optional[str] = None) -> List[Activity]:
        """Every occurrence, in TP order, optionally limited to one category"""
        categories = [category] if category else [CATEGORY_GROUP, CATEGORY_PLENARY]
        return [
            occurrence
            for cat in categories
            for group in self.activity_groups(cat)
            for occurrence in group.occurrences
        ]

    def is_empty(self) -> bool:
        return not self.flatten()


# =============================================================================
# CANVAS (MIRROR)
# =============================================================================

@dataclass
class EventMeta:
    """Hidden metadata block embedded in a Canvas event description"""
    recording: bool
    staff: List[str]
    curr: str

    def to_json(self) -> str:
        return json.dumps({'recording': self.recording, 'staff': self.staff, 'curr': self.curr})

    @classmethod
    def from_json(cls, data: Dict) -> 'EventMeta':
        staff = data.get('staff')
        if not isinstance(staff, list):
            raise ModelError("Event metadata has no staff list")
        return cls(bool(data.get('recording')), [str(s) for s in staff], str(data.get('curr') or ''))


@dataclass
class MirrorEvent:
    id: int
    title: str = ''
    start_at: Optional[str] = None
    end_at: Optional[str] = None
    location_name: str = ''
    description: str = ''
    workflow_state: str = 'active'
    context_code: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict) -> 'MirrorEvent':
        return cls(
            id=int(_require(data, 'id', 'Canvas event')),
            title=data.get('title') or '',
            start_at=data.get('start_at'),
            end_at=data.get('end_at'),
            location_name=data.get('location_name') or '',
            description=data.get('description') or '',
            workflow_state=data.get('workflow_state') or 'active',
            context_code=data.get('context_code'),
        )

    @property
    def is_deleted(self) -> bool:
        return self.workflow_state == 'deleted'

    @property
    def short_time(self) -> str:
        """Date, start time and end time, assuming both are on the same day"""
        try:
            start = parse_timestamp(self.start_at)
            end = parse_timestamp(self.end_at)
        except ModelError:
            return '?'
        return f"{format_local_time(start, '%d.%m.%y %H:%M')}-{format_local_time(end, '%H:%M')}"

    def __str__(self) -> str:
        return f"{self.short_time} {self.title}"


@dataclass(frozen=True)
class SisId:
    """Decoded Canvas SIS course id, e.g. UA_186_INF-1100_1_2020_VÅR_1_123456"""
    type: str
    institution: str
    course: str
    version: str
    year: str
    season: str
    termnr: int
    actid: Optional[str] = None

    @classmethod
    def parse(cls, sis_course_id: Optional[str]) -> 'SisId':
        if not sis_course_id:
            raise ModelError("Missing SIS course id")
        elements = sis_course_id.split('_')
        kind = elements[0]
        if kind not in (SIS_SINGLE_SECTION, SIS_MULTI_SECTION):
            raise ModelError(f"Unknown SIS type encountered: {sis_course_id!r}")
        expected = 7 if kind == SIS_SINGLE_SECTION else 8
        if len(elements) < expected:
            raise ModelError(f"Too few SIS elements in {sis_course_id!r}")
        try:
            termnr = int(elements[6])
        except ValueError as e:
            raise ModelError(f"Non-numeric SIS term number in {sis_course_id!r}") from e
        sis = cls(
            type=kind,
            institution=elements[1],
            course=elements[2],
            version=elements[3],
            year=elements[4],
            season=elements[5],
            termnr=termnr,
            actid=elements[7] if kind == SIS_MULTI_SECTION else None,
        )
        # Validates year and season
        sis_to_semester(sis.year, sis.season)
        return sis

    @property
    def tp_semester(self) -> str:
        return sis_to_semester(self.year, self.season)

    @property
    def is_multi_section(self) -> bool:
        return self.type == SIS_MULTI_SECTION

    def as_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'institution': self.institution,
            'course': self.course,
            'version': self.version,
            'year': self.year,
            'season': self.season,
            'termnr': self.termnr,
            'actid': self.actid,
            'tpsemester': self.tp_semester,
        }


@dataclass
class MirrorCourse:
    id: int
    name: str = ''
    course_code: str = ''
    sis_course_id: Optional[str] = None
    workflow_state: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict) -> 'MirrorCourse':
        return cls(
            id=int(_require(data, 'id', 'Canvas course')),
            name=data.get('name') or '',
            course_code=data.get('course_code') or '',
            sis_course_id=data.get('sis_course_id'),
            workflow_state=data.get('workflow_state'),
        )

    @property
    def sis(self) -> SisId:
        return SisId.parse(self.sis_course_id)

    @property
    def context_code(self) -> str:
        return f"course_{self.id}"

    @property
    def is_published(self) -> bool:
        if self.workflow_state in ('available', 'completed'):
            return True
        if self.workflow_state in ('unpublished', 'deleted'):
            return False
        raise ModelError(f"Unknown Canvas workflow_state: {self.workflow_state!r}")

    def __str__(self) -> str:
        return f"ID:{self.id} SIS:{self.sis_course_id} NAME:{self.name}"


# =============================================================================
# CHANGE QUEUE
# =============================================================================

@dataclass(frozen=True)
class ChangeNotification:
    """One course-changed message from the TP change exchange"""
    id: str
    semesterid: str
    terminnr: int
    lastchanged: str

    @classmethod
    def from_json(cls, body: Union[bytes, str, Dict]) -> 'ChangeNotification':
        if isinstance(body, (bytes, str)):
            try:
                body = json.loads(body)
            except ValueError as e:
                raise ModelError(f"Change notification is not JSON: {e}") from e
        try:
            terminnr = int(_require(body, 'terminnr', 'Change notification'))
        except (TypeError, ValueError) as e:
            raise ModelError(f"Change notification has a bad term number: {body!r}") from e
        return cls(
            id=str(_require(body, 'id', 'Change notification')),
            semesterid=str(_require(body, 'semesterid', 'Change notification')),
            terminnr=terminnr,
            lastchanged=str(_require(body, 'lastchanged', 'Change notification')),
        )

    @property
    def course_key(self) -> str:
        return f"{self.id}_{self.semesterid}_{self.terminnr}"
