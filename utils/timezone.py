# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Timezone utilities for comparing TP and Canvas timestamps as instants
"""
from datetime import datetime
from typing import Optional, Union

import pytz

import config
from errors import ModelError


def get_local_time() -> datetime:
    """Get current time in the institution's timezone"""
    return datetime.now(pytz.timezone(config.LOCAL_TIMEZONE))


def get_utc_time() -> datetime:
    """Get current time in UTC"""
    return datetime.now(pytz.UTC)


def parse_timestamp(value: Union[str, datetime, None]) -> datetime:
    """
    Parse a TP or Canvas timestamp into an aware UTC datetime.

    Canvas answers in UTC with a 'Z' suffix, TP with an explicit offset, and the
    TP change feed without any offset at all. Naive values are taken to be local
    time, so the same instant always compares equal no matter how it was written.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        if not value or not isinstance(value, str):
            raise ModelError(f"Missing or invalid timestamp: {value!r}")
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ModelError(f"Unparseable timestamp {value!r}: {e}") from e

    if parsed.tzinfo is None:
        parsed = pytz.timezone(config.LOCAL_TIMEZONE).localize(parsed)
    return parsed.astimezone(pytz.UTC)


def same_instant(first: Optional[str], second: Optional[str]) -> bool:
    """True if both timestamps denote the same instant. Unparseable values never match."""
    try:
        return parse_timestamp(first) == parse_timestamp(second)
    except ModelError:
        return False


def format_local_time(dt: Optional[datetime], fmt: str = '%d.%m.%y %H:%M') -> str:
    """Format datetime in local time for display"""
    if dt is None:
        return "Never"
    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)
    return dt.astimezone(pytz.timezone(config.LOCAL_TIMEZONE)).strftime(fmt)
