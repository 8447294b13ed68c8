"""
Firestore document models for the class record book.

Two logical collections are stored:
  - a single metadata document holding the course/subject/teacher catalog
  - one document per lesson entry, keyed by course, date and hour

Each model includes:
  - A `to_dict()` instance method for serialization
  - A `from_dict(data, ...)` classmethod for deserialization
  - Sensible defaults for all fields

Datetime fields are kept as native datetime objects since Firestore
handles them natively.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


WEEKDAYS = ("mon", "tue", "wed", "thu", "fri")
SLOTS_PER_DAY = 6


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_datetime(value) -> Optional[datetime]:
    """Convert a value to datetime. Accepts datetime objects, ISO-format
    strings, and Firestore DatetimeWithNanoseconds objects."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        value = value.replace("Z", "+00:00")
        try:
            return datetime.fromisoformat(value)
        except (ValueError, TypeError):
            return None
    return None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _str_list(value) -> List[str]:
    if not value:
        return []
    return [str(v) for v in value]


def _key_str(value) -> str:
    return str(value) if value is not None else ""


def empty_timetable() -> Dict[str, List[str]]:
    return {day: [""] * SLOTS_PER_DAY for day in WEEKDAYS}


def normalize_timetable(timetable) -> Dict[str, List[str]]:
    """Return a copy of `timetable` with exactly SLOTS_PER_DAY labels for
    every school day. Short days are padded with empty strings, long ones
    truncated, non-list values replaced. Keys outside mon-fri are kept."""
    if not isinstance(timetable, dict):
        return empty_timetable()
    normalized = dict(timetable)
    for day in WEEKDAYS:
        slots = timetable.get(day)
        if not isinstance(slots, list):
            normalized[day] = [""] * SLOTS_PER_DAY
            continue
        slots = list(slots[:SLOTS_PER_DAY])
        slots.extend([""] * (SLOTS_PER_DAY - len(slots)))
        normalized[day] = slots
    return normalized


# ===========================================================================
# 1. Course  (embedded in the metadata document)
# ===========================================================================

@dataclass
class Course:
    id: str = ""
    name: str = ""
    students: List[str] = field(default_factory=list)
    timetable: Optional[Dict[str, List[str]]] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "id": self.id,
            "name": self.name,
            "students": list(self.students),
        }
        if self.timetable is not None:
            d["timetable"] = self.timetable
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Course:
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            students=_str_list(data.get("students")),
            timetable=data.get("timetable"),
        )


# ===========================================================================
# 2. Metadata  (singleton document)
# ===========================================================================

@dataclass
class Metadata:
    courses: List[Course] = field(default_factory=list)
    subjects: List[str] = field(default_factory=list)
    teachers: List[str] = field(default_factory=list)

    def find_course(self, course_id: str) -> Optional[Course]:
        for course in self.courses:
            if course.id == course_id:
                return course
        return None

    def is_empty(self) -> bool:
        return not (self.courses or self.subjects or self.teachers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "courses": [c.to_dict() for c in self.courses],
            "subjects": list(self.subjects),
            "teachers": list(self.teachers),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Metadata:
        data = data or {}
        return cls(
            courses=[Course.from_dict(c) for c in data.get("courses") or []],
            subjects=_str_list(data.get("subjects")),
            teachers=_str_list(data.get("teachers")),
        )


# ===========================================================================
# 3. Entry  (collection: entries)
# ===========================================================================

@dataclass
class Entry:
    id: Optional[str] = None          # Firestore document ID
    course: str = ""
    date: str = ""                    # ISO date, e.g. "2024-05-01"
    hour: str = ""                    # lesson slot, e.g. "1"
    subject: str = ""
    teacher: str = ""
    content: str = ""
    absences: List[str] = field(default_factory=list)
    locked: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def natural_key(self):
        return (self.course, self.date, self.hour)

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "course": self.course,
            "date": self.date,
            "hour": self.hour,
            "subject": self.subject,
            "teacher": self.teacher,
            "content": self.content,
            "absences": list(self.absences),
            "locked": self.locked,
            "created_at": self.created_at or _now(),
        }
        if self.updated_at is not None:
            d["updated_at"] = self.updated_at
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> Entry:
        return cls(
            id=doc_id if doc_id is not None else data.get("id"),
            course=_key_str(data.get("course")),
            date=_key_str(data.get("date")),
            hour=_key_str(data.get("hour")),
            subject=data.get("subject", ""),
            teacher=data.get("teacher", ""),
            content=data.get("content", ""),
            absences=_str_list(data.get("absences")),
            locked=bool(data.get("locked", False)),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )
