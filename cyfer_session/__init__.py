"""Cyfer Session — client-side session controller for an encrypted password vault.

Security Note (Threat Model):
    While a session is unlocked the master password and the selected
    SecretBundle live in process memory in wipeable buffers. ``lock()``
    zero-fills and drops them. Transient ``str`` copies handed to the
    Command Bridge cannot be cleared and remain until garbage collected;
    this is an accepted limitation.
"""

from .bridge import CommandBridge, HttpCommandBridge
from .conf import BusyPolicy, EngineConfig, SessionConfig
from .controller import VaultSessionController, filter_services
from .exceptions import (
    BackendError,
    BusyError,
    InvalidCredential,
    ValidationError,
    VaultError,
)
from .models import (
    ErrorInfo,
    ErrorKind,
    Outcome,
    SecretBundle,
    SessionState,
    VaultExistence,
    ViewState,
)
from .selection import SelectionView
from .version import __version__

__all__ = [
    "CommandBridge",
    "HttpCommandBridge",
    "BusyPolicy",
    "EngineConfig",
    "SessionConfig",
    "VaultSessionController",
    "filter_services",
    "BackendError",
    "BusyError",
    "InvalidCredential",
    "ValidationError",
    "VaultError",
    "ErrorInfo",
    "ErrorKind",
    "Outcome",
    "SecretBundle",
    "SessionState",
    "VaultExistence",
    "ViewState",
    "SelectionView",
    "__version__",
]
