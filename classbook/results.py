"""
Uniform result type for record store operations.

Write operations never raise for expected conditions (duplicates, locks,
missing documents) or for backend call failures; they return a ``Result``.
The only exception that escapes to callers is ``BackendUnavailable``, raised
when the Firestore client could not be initialized at startup.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    DUPLICATE_TARGET = "duplicate_target"
    LOCKED = "locked"
    MISSING_ARGUMENT = "missing_argument"
    BACKEND_FAILURE = "backend_failure"


# Reason strings the admin UI matches on
DEFAULT_REASONS = {
    ErrorKind.NOT_FOUND: "not found",
    ErrorKind.DUPLICATE: "duplicate",
    ErrorKind.DUPLICATE_TARGET: "duplicate_target",
    ErrorKind.LOCKED: "locked",
    ErrorKind.MISSING_ARGUMENT: "missing id",
    ErrorKind.BACKEND_FAILURE: "backend failure",
}


class BackendUnavailable(RuntimeError):
    """Raised by every store access when Firestore was never initialized."""


@dataclass(frozen=True)
class Result:
    ok: bool
    id: Optional[str] = None
    error: Optional[ErrorKind] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, doc_id: Optional[str] = None) -> Result:
        return cls(ok=True, id=doc_id)

    @classmethod
    def failure(cls, kind: ErrorKind, reason: Optional[str] = None) -> Result:
        return cls(ok=False, error=kind, reason=reason or DEFAULT_REASONS[kind])

    def __bool__(self) -> bool:
        return self.ok

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"ok": self.ok}
        if self.id is not None:
            d["id"] = self.id
        if self.reason is not None:
            d["reason"] = self.reason
        return d
