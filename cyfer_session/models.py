"""
Session data model — enums, wire payloads and emitted view state.
"""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class VaultExistence(str, Enum):
    UNKNOWN = "unknown"
    ABSENT = "absent"
    PRESENT = "present"


class SessionState(str, Enum):
    LOCKED = "locked"
    UNLOCKING = "unlocking"
    UNLOCKED = "unlocked"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    INVALID_CREDENTIAL = "invalid_credential"
    BACKEND = "backend"
    BUSY = "busy"


class SecretBundle(BaseModel):
    """Decrypted payload of one service entry."""

    username: str
    secret: str
    notes: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("notes")
    @classmethod
    def blank_notes_are_none(cls, v: Optional[str]) -> Optional[str]:
        """Absence of notes and empty notes mean the same thing."""
        if v is not None and not v.strip():
            return None
        return v

    def __repr__(self) -> str:
        return "<SecretBundle [redacted]>"

    __str__ = __repr__


class ErrorInfo(BaseModel):
    """A single-shot, displayable error."""

    kind: ErrorKind
    message: str
    rule: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Outcome(BaseModel):
    """Result of one controller intent."""

    ok: bool
    error: Optional[ErrorInfo] = None
    value: Any = None

    @classmethod
    def success(cls, value: Any = None) -> "Outcome":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ErrorInfo) -> "Outcome":
        return cls(ok=False, error=error)


class ViewState(BaseModel):
    """Snapshot emitted to the presentation layer after every change."""

    existence: VaultExistence = VaultExistence.UNKNOWN
    session: SessionState = SessionState.LOCKED
    services: tuple[str, ...] = Field(default_factory=tuple)
    query: str = ""
    visible_services: tuple[str, ...] = Field(default_factory=tuple)
    selection: Optional[Any] = None  # SelectionView
    last_error: Optional[ErrorInfo] = None
    busy: bool = False

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def unlocked(self) -> bool:
        return self.session is SessionState.UNLOCKED
