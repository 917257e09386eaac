# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Semester arithmetic

TP names a semester "YY" + "v" (spring) or "h" (autumn), e.g. "20v". For
iteration a semester is handled as a number: the year, plus 0.5 for autumn.
"""
import re
from typing import List, NamedTuple, Tuple

from errors import ModelError

SEMESTER_PATTERN = re.compile(r'^\s*(\d{1,2})\s*([hv])\s*$', re.IGNORECASE)

SEASON_SPRING = 'VÅR'
SEASON_AUTUMN = 'HØST'


def string_to_semnr(semester: str) -> float:
    """"18h" -> 18.5, "18v" -> 18.0"""
    match = SEMESTER_PATTERN.match(semester or '')
    if not match:
        raise ModelError(f"Unparseable semester string: {semester!r}")
    semnr = float(match.group(1))
    if match.group(2).lower() == 'h':
        semnr += 0.5
    return semnr


def semnr_to_string(semnr: float) -> str:
    """18.5 -> "18h", 18.0 -> "18v" """
    season = 'v' if semnr % 1 == 0 else 'h'
    return f"{int(semnr):02d}{season}"


def make_sis_semester(semester: str, termnr: int) -> str:
    """("18h", 3) -> "2018_HØST_3", the tail of a Canvas SIS course id"""
    semnr = string_to_semnr(semester)
    season = SEASON_SPRING if semnr % 1 == 0 else SEASON_AUTUMN
    return f"20{int(semnr):02d}_{season}_{termnr}"


def sis_to_semester(year: str, season: str) -> str:
    """("2020", "VÅR") -> "20v" """
    if len(year) != 4 or not year.isdigit():
        raise ModelError(f"Unparseable SIS year: {year!r}")
    season = season.upper()
    if season == SEASON_SPRING:
        return f"{year[2:4]}v"
    if season == SEASON_AUTUMN:
        return f"{year[2:4]}h"
    raise ModelError(f"Unknown SIS season: {season!r}")


def first_semester(semester: str, termnr: int) -> Tuple[str, int]:
    """
    The semester a course ran its first term, given that `semester` is term `termnr`.

    ("20v", 3) -> ("19v", 1): term 1 was two half-years before 20v.
    """
    if termnr == 1:
        return semester, 1
    semnr = string_to_semnr(semester) - 0.5 * (termnr - 1)
    return semnr_to_string(semnr), 1


def last_semester(semester: str, termnr: int, max_semester: str) -> Tuple[str, int]:
    """Extend forward to `max_semester`, one term number per half-year"""
    this_semnr = string_to_semnr(semester)
    max_semnr = string_to_semnr(max_semester)
    if this_semnr < max_semnr:
        terms_more = int(round((max_semnr - this_semnr) * 2))
        return semnr_to_string(max_semnr), termnr + terms_more
    return semester, termnr


class TermWindow(NamedTuple):
    first_semester: str
    first_term: int
    last_semester: str
    last_term: int

    def terms(self) -> List[Tuple[str, int]]:
        """Every (semester, termnr) pair in the window, oldest first"""
        semnr = string_to_semnr(self.first_semester)
        pairs = []
        for term in range(self.first_term, self.last_term + 1):
            pairs.append((semnr_to_string(semnr), term))
            semnr += 0.5
        return pairs


def term_window(semester: str, termnr: int, max_semester: str) -> TermWindow:
    """Every term a course that runs `semester` as term `termnr` has run or will run"""
    first, first_term = first_semester(semester, termnr)
    last, last_term = last_semester(semester, termnr, max_semester)
    return TermWindow(first, first_term, last, last_term)


def is_beyond(semester: str, max_semester: str) -> bool:
    """True if `semester` is later than the configured sync horizon"""
    return string_to_semnr(semester) > string_to_semnr(max_semester)
