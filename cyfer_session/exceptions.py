"""
Session error taxonomy.

Errors are raised inside the controller and converted to ``ErrorInfo`` data
at the session boundary; callers of the controller never see them raised.
"""
from typing import Optional

from .models import ErrorInfo, ErrorKind


class VaultError(Exception):
    """Base class for all session-level failures."""

    kind: ErrorKind = ErrorKind.BACKEND

    def __init__(self, message: str, rule: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.rule = rule

    def to_error(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=self.message, rule=self.rule)


class ValidationError(VaultError):
    """A local precondition was violated; no bridge call was made."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, rule: str):
        super().__init__(message, rule=rule)


class InvalidCredential(VaultError):
    """The secrets engine rejected the master password."""

    kind = ErrorKind.INVALID_CREDENTIAL


class BackendError(VaultError):
    """A Command Bridge call failed or the engine reported a fault."""

    kind = ErrorKind.BACKEND


class BusyError(VaultError):
    """Another intent is in flight for this session."""

    kind = ErrorKind.BUSY
