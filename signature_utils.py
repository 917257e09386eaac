# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
CRITICAL: Shared Event Signature Utilities

Everything that decides whether a Canvas event already represents a TP
activity lives here: the title (with its zero-width signature), the location
string, the staff list, the recording flag, the curriculum hash and the hidden
metadata block in the description. Creating events and matching events MUST use
these same functions.

A mismatch between how events are written and how they are compared causes
every event of a course to be deleted and re-created on every run.
"""

import hashlib
import html
import json
import logging
from typing import Callable, Dict, Iterator, List, Optional, Tuple
from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from errors import ModelError
from models import Activity, EventMeta, MirrorCourse, MirrorEvent
from utils.timezone import same_instant

logger = logging.getLogger(__name__)

# Two zero-width spaces mark a title as written by this service
TITLE_SIGNATURE = '\u200b\u200b'
MAX_TITLE_LENGTH = 253

META_ELEMENT_ID = 'description-meta'
RECORDING_TAG = 'mediasite'
ROOM_MAP_URL = 'https://uit.no/mazemaproom?room_name={room}&zoom=20'


def build_title(activity: Activity, course_code: str) -> str:
    """
    "{code} ({title}) {summary}", or "{code} {summary}" without a title.

    Truncated to MAX_TITLE_LENGTH code points (never bytes, so a multi-byte
    character is never cut in half) before the signature is appended.
    """
    if activity.title:
        title = f"{course_code} ({activity.title}) {activity.summary}"
    else:
        title = f"{course_code} {activity.summary}"
    return title[:MAX_TITLE_LENGTH] + TITLE_SIGNATURE


def is_signed(event: MirrorEvent) -> bool:
    """True if the event title carries this service's signature"""
    return event.title.endswith(TITLE_SIGNATURE)


def build_location(activity: Activity) -> str:
    return ', '.join(room.display_name for room in activity.rooms)


def build_staff_list(activity: Activity) -> List[str]:
    """Sorted display names, internal staff first-name-last-name, external staff with url"""
    names = [staff.display_name for staff in activity.staffs]
    names += [staff.display_name for staff in activity.external_staffs]
    return sorted(names)


def has_recording(activity: Activity) -> bool:
    return any(RECORDING_TAG in tag.lower() for tag in activity.tags)


def curriculum_hash(curr: Optional[str]) -> str:
    return hashlib.md5((curr or '').encode('utf-8')).hexdigest()


def build_meta(activity: Activity) -> EventMeta:
    return EventMeta(
        recording=has_recording(activity),
        staff=build_staff_list(activity),
        curr=curriculum_hash(activity.curr),
    )


def extract_meta(description: Optional[str]) -> Optional[EventMeta]:
    """Recover the hidden metadata block from an event description, if there is a valid one"""
    if not description:
        return None
    soup = BeautifulSoup(description, 'html.parser')
    element = soup.find('span', id=META_ELEMENT_ID)
    if element is None:
        return None
    try:
        return EventMeta.from_json(json.loads(element.get_text()))
    except (ValueError, ModelError, AttributeError) as e:
        logger.debug(f"Unreadable event metadata: {e}")
        return None


def build_description(activity: Activity, meta: Optional[EventMeta] = None) -> str:
    """HTML description with map links, staff, curriculum, TP link and the hidden metadata"""
    meta = meta or build_meta(activity)
    parts = []

    if activity.rooms:
        links = []
        for room in activity.rooms:
            url = ROOM_MAP_URL.format(room=quote_plus(room.display_name))
            links.append(f'<a href="{html.escape(url)}">{html.escape(room.display_name)}</a>')
        parts.append('<p><b>Location</b><br>' + '<br>'.join(links) + '</p>')

    staff_lines = [html.escape(staff.display_name) for staff in activity.staffs]
    for staff in activity.external_staffs:
        if staff.url:
            staff_lines.append(f'<a href="{html.escape(staff.url)}">{html.escape(staff.name)} (external)</a>')
        else:
            staff_lines.append(html.escape(staff.display_name))
    if staff_lines:
        parts.append('<p><b>Staff</b><br>' + '<br>'.join(staff_lines) + '</p>')

    if activity.curr:
        parts.append(f'<p><b>Curriculum</b><br>{html.escape(activity.curr)}</p>')

    if meta.recording:
        parts.append('<p>This activity is recorded.</p>')

    if activity.editurl:
        parts.append(f'<p><a href="{html.escape(activity.editurl)}">Edit in TP</a></p>')

    parts.append(
        f'<span id="{META_ELEMENT_ID}" style="display:none">{html.escape(meta.to_json(), quote=False)}</span>'
    )
    return ''.join(parts)


def build_event_payload(activity: Activity, course: MirrorCourse, course_code: str) -> Dict:
    """The calendar_event body for creating this activity in a Canvas course"""
    return {
        'context_code': course.context_code,
        'title': build_title(activity, course_code),
        'description': build_description(activity),
        'start_at': activity.dtstart,
        'end_at': activity.dtend,
        'location_name': build_location(activity),
    }


def _checks(activity: Activity, event: MirrorEvent, course_code: str) -> Iterator[Tuple[str, Callable[[], bool]]]:
    """Each field of the equality predicate, evaluated lazily in order"""
    yield 'workflow_state', lambda: not event.is_deleted
    yield 'title', lambda: build_title(activity, course_code) == event.title
    yield 'location', lambda: build_location(activity) == event.location_name
    yield 'start', lambda: same_instant(activity.dtstart, event.start_at)
    yield 'end', lambda: same_instant(activity.dtend, event.end_at)

    meta = None

    def load_meta() -> bool:
        nonlocal meta
        meta = extract_meta(event.description)
        return meta is not None

    yield 'meta', load_meta
    yield 'staff', lambda: meta is not None and sorted(meta.staff) == build_staff_list(activity)
    yield 'recording', lambda: meta is not None and meta.recording == has_recording(activity)
    yield 'curr', lambda: meta is not None and meta.curr == curriculum_hash(activity.curr)


def activity_equals_event(activity: Activity, event: MirrorEvent, course_code: str) -> bool:
    """
    True iff the Canvas event already represents the TP activity exactly.

    All fields must match; an event without a readable metadata block never matches.
    """
    return all(check() for _, check in _checks(activity, event, course_code))


def event_differences(activity: Activity, event: MirrorEvent, course_code: str) -> List[str]:
    """Every field that differs. Diagnostics only - sync decisions use activity_equals_event()."""
    return [name for name, check in _checks(activity, event, course_code) if not check()]
