# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Change Ledger - remembers when each recently synced course was last applied,
so re-delivered or outdated change notifications can be skipped
"""
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, Union

from utils.timezone import parse_timestamp

logger = logging.getLogger(__name__)

Timestamp = Union[str, datetime]


class ChangeLedger:
    """
    Bounded, process-local map of course key -> last applied time.

    Oldest-inserted entries are evicted first. Reading an entry does not
    refresh it; only set() moves a key to the back.
    """

    def __init__(self, capacity: int = 100):
        self.capacity = capacity
        self._changes: "OrderedDict[str, datetime]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._changes)

    def __contains__(self, course_key: str) -> bool:
        return course_key in self._changes

    def check(self, course_key: str, timestamp: Timestamp) -> bool:
        """True if a change at `timestamp` is already covered (skip it)"""
        last_applied = self._changes.get(course_key)
        if last_applied is None:
            return False
        return parse_timestamp(timestamp) <= last_applied

    def set(self, course_key: str, timestamp: Timestamp):
        """Record that `course_key` is in sync as of `timestamp`"""
        applied = parse_timestamp(timestamp)
        if course_key in self._changes:
            del self._changes[course_key]
        elif len(self._changes) >= self.capacity:
            evicted, _ = self._changes.popitem(last=False)
            logger.debug(f"Change ledger full - forgetting {evicted}")
        self._changes[course_key] = applied

    def get_stats(self) -> Dict:
        return {
            'entries': len(self._changes),
            'capacity': self.capacity,
            'oldest': next(iter(self._changes), None),
        }
