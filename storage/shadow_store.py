# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Shadow Store - durable record of the Canvas courses we touched and the events we created
"""
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class ShadowCourse:
    """Local copy of a Canvas course. id is None until the course is saved."""
    canvas_id: int
    id: Optional[int] = None
    name: Optional[str] = None
    course_code: Optional[str] = None
    sis_course_id: Optional[str] = None

    @property
    def is_new(self) -> bool:
        return self.id is None


@dataclass
class ShadowEvent:
    """One Canvas event this service created, linked to a local course"""
    id: Optional[int]
    canvas_course_id: int
    canvas_id: int


class ShadowStore:
    """
    SQLite-backed shadow store.

    Every write returns True without touching the database in dry-run mode, so
    callers do not need to branch on it.
    """

    def __init__(self, db_path: Union[str, Path], dry_run: bool = False):
        self.db_path = str(db_path)
        self.dry_run = dry_run
        self.conn: Optional[sqlite3.Connection] = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the shadow database"""
        if self.conn is not None:
            return
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute('PRAGMA foreign_keys = ON')
        self._init_schema()

    def _init_schema(self):
        self.conn.executescript('''
            CREATE TABLE IF NOT EXISTS canvas_courses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                canvas_id INTEGER NOT NULL UNIQUE,
                name TEXT,
                course_code TEXT,
                sis_course_id TEXT
            );
            CREATE TABLE IF NOT EXISTS canvas_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                canvas_course_id INTEGER NOT NULL REFERENCES canvas_courses(id) ON DELETE CASCADE,
                canvas_id INTEGER NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_canvas_events_course ON canvas_events(canvas_course_id);
            CREATE INDEX IF NOT EXISTS idx_canvas_courses_sis ON canvas_courses(sis_course_id);
        ''')
        self.conn.commit()

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    @property
    def db(self) -> sqlite3.Connection:
        if self.conn is None:
            self.connect()
        return self.conn

    # -------------------------------------------------------------------------
    # Courses
    # -------------------------------------------------------------------------

    @staticmethod
    def _course_from_row(row: sqlite3.Row) -> ShadowCourse:
        return ShadowCourse(
            canvas_id=row['canvas_id'],
            id=row['id'],
            name=row['name'],
            course_code=row['course_code'],
            sis_course_id=row['sis_course_id'],
        )

    def find_or_create_course(self, canvas_id: int) -> ShadowCourse:
        """The stored course for a Canvas course id, or a blank unsaved one"""
        row = self.db.execute(
            "SELECT * FROM canvas_courses WHERE canvas_id = ?", (canvas_id,)
        ).fetchone()
        if row is None:
            return ShadowCourse(canvas_id=canvas_id)
        return self._course_from_row(row)

    def find_course(self, sis_course_id: str) -> Optional[ShadowCourse]:
        row = self.db.execute(
            "SELECT * FROM canvas_courses WHERE sis_course_id = ? LIMIT 1", (sis_course_id,)
        ).fetchone()
        return self._course_from_row(row) if row else None

    def find_courses_by_sis_like(self, pattern: str) -> List[ShadowCourse]:
        """Wildcard search on SIS course id; '%' matches anything, '\\_' a literal underscore"""
        rows = self.db.execute(
            "SELECT * FROM canvas_courses WHERE sis_course_id LIKE ? ESCAPE '\\' ORDER BY id",
            (pattern,)
        ).fetchall()
        return [self._course_from_row(row) for row in rows]

    def save_course(self, course: ShadowCourse) -> bool:
        if self.dry_run:
            logger.info(f"🧪 DRY RUN: would save course {course.canvas_id} ({course.sis_course_id})")
            return True
        if course.is_new:
            cursor = self.db.execute(
                "INSERT INTO canvas_courses (canvas_id, name, course_code, sis_course_id) VALUES (?, ?, ?, ?)",
                (course.canvas_id, course.name, course.course_code, course.sis_course_id)
            )
            course.id = cursor.lastrowid
        else:
            self.db.execute(
                "UPDATE canvas_courses SET canvas_id = ?, name = ?, course_code = ?, sis_course_id = ? WHERE id = ?",
                (course.canvas_id, course.name, course.course_code, course.sis_course_id, course.id)
            )
        self.db.commit()
        return True

    def delete_course(self, course: ShadowCourse) -> bool:
        """Delete a course and, through the foreign key, its event records"""
        if self.dry_run:
            logger.info(f"🧪 DRY RUN: would delete course {course.canvas_id} ({course.sis_course_id})")
            return True
        if course.is_new:
            return True
        self.db.execute("DELETE FROM canvas_courses WHERE id = ?", (course.id,))
        self.db.commit()
        return True

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def events_for_course(self, course: ShadowCourse) -> List[ShadowEvent]:
        if course.is_new:
            return []
        rows = self.db.execute(
            "SELECT * FROM canvas_events WHERE canvas_course_id = ? ORDER BY id", (course.id,)
        ).fetchall()
        return [ShadowEvent(row['id'], row['canvas_course_id'], row['canvas_id']) for row in rows]

    def find_event_by_canvas_id(self, canvas_id: int) -> Optional[ShadowEvent]:
        row = self.db.execute(
            "SELECT * FROM canvas_events WHERE canvas_id = ? LIMIT 1", (canvas_id,)
        ).fetchone()
        return ShadowEvent(row['id'], row['canvas_course_id'], row['canvas_id']) if row else None

    def add_event(self, course: ShadowCourse, canvas_event_id: int) -> bool:
        """Record a Canvas event created in a (saved) course"""
        if self.dry_run:
            logger.info(f"🧪 DRY RUN: would record event {canvas_event_id} for course {course.canvas_id}")
            return True
        if course.is_new:
            self.save_course(course)
        self.db.execute(
            "INSERT INTO canvas_events (canvas_course_id, canvas_id) VALUES (?, ?)",
            (course.id, canvas_event_id)
        )
        self.db.commit()
        return True

    def delete_event(self, event: ShadowEvent) -> bool:
        if self.dry_run:
            logger.info(f"🧪 DRY RUN: would forget event {event.canvas_id}")
            return True
        self.db.execute("DELETE FROM canvas_events WHERE id = ?", (event.id,))
        self.db.commit()
        return True
