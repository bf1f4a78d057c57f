"""
VaultSessionController — the state machine behind a password-vault client.

Owns vault existence, the lock/unlock lifecycle, the cached set of service
names and the single selected SecretBundle. Presentation code sends intents:

- ``check_existence()`` / ``create_vault()`` / ``unlock()`` / ``lock()``
- ``refresh_services()`` / ``select_service()`` / ``toggle_reveal()``
- ``add_service()`` / ``delete_service()`` / ``filter()``

and renders the ``ViewState`` snapshots the controller emits.

Every async intent is exactly one Command Bridge call (plus the implicit
refresh after create, unlock and add). Intents run one at a time: with the
``reject`` policy a second intent fails with ``BusyError``; with ``queue``
it waits its turn. State is committed only after a call succeeds.

Security Note:
    Never log the master password or any field of a SecretBundle. Only log
    intent names and service names. ``lock()`` zero-fills the credential and
    the selected bundle before dropping them.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Optional, TypeVar

from .bridge import (
    CMD_ADD,
    CMD_CREATE,
    CMD_DELETE,
    CMD_EXISTS,
    CMD_GET,
    CMD_LIST,
    CMD_VERIFY,
    CommandBridge,
)
from .conf import BusyPolicy, SessionConfig
from .exceptions import (
    BackendError,
    BusyError,
    InvalidCredential,
    ValidationError,
    VaultError,
)
from .models import (
    ErrorInfo,
    Outcome,
    SecretBundle,
    SessionState,
    VaultExistence,
    ViewState,
)
from .selection import Selection, SelectionView
from .sensitive import SensitiveValue

logger = logging.getLogger("cyfer.session")

T = TypeVar("T")

Listener = Callable[[ViewState], None]


def sort_services(names: Iterable[str]) -> tuple[str, ...]:
    """Display order: case-insensitive, ties broken by exact spelling."""
    return tuple(sorted(names, key=lambda s: (s.casefold(), s)))


def filter_services(names: Iterable[str], query: str) -> tuple[str, ...]:
    """Case-insensitive substring filter; an empty query keeps everything."""
    needle = (query or "").casefold()
    ordered = sort_services(names)
    if not needle:
        return ordered
    return tuple(name for name in ordered if needle in name.casefold())


def _discarded(command: str) -> BackendError:
    # the engine answered, possibly after applying the change; only the
    # client-side commit is dropped
    return BackendError(
        f"{command} completed after the session was locked; result discarded",
        rule="discarded",
    )


class VaultSessionController:
    """Single-flight session controller over a CommandBridge."""

    def __init__(
        self,
        bridge: CommandBridge,
        config: Optional[SessionConfig] = None,
    ):
        self._bridge = bridge
        self._config = config or SessionConfig()
        self._existence = VaultExistence.UNKNOWN
        self._state = SessionState.LOCKED
        self._credential: Optional[SensitiveValue] = None
        self._services: frozenset[str] = frozenset()
        self._selection: Optional[Selection] = None
        self._query = ""
        self._last_error: Optional[ErrorInfo] = None
        self._inflight: Optional[str] = None
        self._queue = asyncio.Lock()
        # bumped by lock(); results of calls started in an older epoch are dropped
        self._epoch = 0
        self._listeners: list[Listener] = []

    def __repr__(self) -> str:
        return (
            f"<VaultSessionController [{self._existence.value}/{self._state.value}] "
            f"services={len(self._services)} inflight={self._inflight}>"
        )

    # ------------------------------------------------------------------
    # Observed state
    # ------------------------------------------------------------------

    @property
    def existence(self) -> VaultExistence:
        return self._existence

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def services(self) -> frozenset[str]:
        return self._services

    @property
    def busy(self) -> bool:
        return self._inflight is not None

    @property
    def credential_held(self) -> bool:
        return self._credential is not None and not self._credential.wiped

    @property
    def view(self) -> ViewState:
        """Build the current view state snapshot."""
        return ViewState(
            existence=self._existence,
            session=self._state,
            services=sort_services(self._services),
            query=self._query,
            visible_services=filter_services(self._services, self._query),
            selection=self._selection.view() if self._selection else None,
            last_error=self._last_error,
            busy=self.busy,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a view-state listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        if not self._listeners:
            return
        view = self.view
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception as err:
                logger.error("View listener %r failed: %s", listener, err)

    # ------------------------------------------------------------------
    # Single-flight execution
    # ------------------------------------------------------------------

    async def _run(
        self, intent: str, operation: Callable[[], Awaitable[Any]],
    ) -> Outcome:
        if self._config.busy_policy is BusyPolicy.QUEUE:
            async with self._queue:
                return await self._execute(intent, operation)
        if self._inflight is not None:
            return self._fail(
                intent,
                BusyError(f"Cannot {intent} while {self._inflight} is in progress"),
            )
        return await self._execute(intent, operation)

    async def _execute(
        self, intent: str, operation: Callable[[], Awaitable[Any]],
    ) -> Outcome:
        self._inflight = intent
        self._last_error = None
        self._emit()
        error: Optional[VaultError] = None
        value: Any = None
        try:
            value = await operation()
        except VaultError as err:
            error = err
        finally:
            self._inflight = None
        if error is not None:
            return self._fail(intent, error)
        logger.debug("Intent completed: %s", intent)
        self._emit()
        return Outcome.success(value)

    def _fail(self, intent: str, error: VaultError) -> Outcome:
        info = error.to_error()
        self._last_error = info
        logger.warning("Intent %s failed [%s]: %s", intent, info.kind.value, info.message)
        self._emit()
        return Outcome.failure(info)

    async def _call(self, command: str, call: Awaitable[T], guard: bool = True) -> T:
        """Await one bridge call, normalizing failures to BackendError.

        With ``guard`` set, a result that arrives after ``lock()`` ran is
        discarded.
        """
        epoch = self._epoch
        try:
            result = await call
        except VaultError:
            raise
        except Exception as err:
            raise BackendError(f"{command} failed: {err}") from err
        if guard and epoch != self._epoch:
            raise _discarded(command)
        return result

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def _require_unlocked(self) -> None:
        if self._state is not SessionState.UNLOCKED or self._credential is None:
            raise ValidationError("Vault is locked", rule="locked")

    def _require_listed(self, name: str) -> None:
        if name not in self._services:
            raise ValidationError(f"Unknown service: {name}", rule="unknown_service")

    def _master(self) -> str:
        self._require_unlocked()
        return self._credential.reveal()

    def _validate_new_password(self, candidate: str, confirmation: str) -> None:
        if not candidate or not candidate.strip():
            raise ValidationError("Password is required", rule="required")
        if candidate != confirmation:
            raise ValidationError("Passwords do not match", rule="mismatch")
        minimum = self._config.min_password_length
        if len(candidate) < minimum:
            raise ValidationError(
                f"Password must be at least {minimum} characters",
                rule="min_length",
            )

    # ------------------------------------------------------------------
    # Session transitions
    # ------------------------------------------------------------------

    def _open_session(self, candidate: str) -> None:
        self._credential = SensitiveValue(candidate)
        self._state = SessionState.UNLOCKED
        self._services = frozenset()
        self._clear_selection()
        logger.info("Vault session unlocked")

    def _clear_selection(self) -> None:
        if self._selection is not None:
            self._selection.wipe()
            self._selection = None

    def _replace_selection(self, selection: Selection) -> None:
        self._clear_selection()
        self._selection = selection

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    async def check_existence(self) -> Outcome:
        """Ask the engine whether a vault exists.

        A failed check is surfaced as ``BackendError`` and existence falls
        back to ``ABSENT`` so the user is not blocked on a loading screen.
        """
        return await self._run("check existence", self._check_existence)

    async def _check_existence(self) -> VaultExistence:
        if self._state is not SessionState.LOCKED:
            raise ValidationError("Session is already open", rule="unlocked")
        try:
            exists = await self._call(CMD_EXISTS, self._bridge.vault_exists(), guard=False)
        except BackendError:
            self._existence = VaultExistence.ABSENT
            raise
        self._existence = VaultExistence.PRESENT if exists else VaultExistence.ABSENT
        logger.info("Vault existence: %s", self._existence.value)
        return self._existence

    async def create_vault(self, candidate: str, confirmation: str) -> Outcome:
        """Create a vault and open a session with the new master password.

        Validation (no bridge call): non-empty, equal to the confirmation,
        at least ``min_password_length`` characters.
        """
        async def operation() -> tuple[str, ...]:
            self._validate_new_password(candidate, confirmation)
            if self._existence is VaultExistence.UNKNOWN:
                raise ValidationError(
                    "Vault existence has not been checked", rule="unknown_existence",
                )
            if self._existence is not VaultExistence.ABSENT:
                raise ValidationError("A vault already exists", rule="vault_exists")
            epoch = self._epoch
            await self._call(CMD_CREATE, self._bridge.create_vault(candidate), guard=False)
            self._existence = VaultExistence.PRESENT
            logger.info("Vault created")
            if epoch != self._epoch:
                raise _discarded(CMD_CREATE)
            self._open_session(candidate)
            self._emit()
            return sort_services(await self._refresh())

        return await self._run("create vault", operation)

    async def unlock(self, candidate: str) -> Outcome:
        """Verify ``candidate`` with the engine and open the session.

        A wrong password surfaces ``InvalidCredential``; a failing call
        surfaces ``BackendError``. Neither unlocks.
        """
        async def operation() -> tuple[str, ...]:
            if not candidate or not candidate.strip():
                raise ValidationError("Password is required", rule="required")
            if self._existence is not VaultExistence.PRESENT:
                raise ValidationError("No vault to unlock", rule="no_vault")
            if self._state is not SessionState.LOCKED:
                raise ValidationError("Session is already open", rule="unlocked")
            self._state = SessionState.UNLOCKING
            self._emit()
            try:
                verified = await self._call(
                    CMD_VERIFY, self._bridge.verify_password(candidate),
                )
            except VaultError:
                if self._state is SessionState.UNLOCKING:
                    self._state = SessionState.LOCKED
                raise
            if not verified:
                self._state = SessionState.LOCKED
                raise InvalidCredential("Incorrect password")
            self._open_session(candidate)
            self._emit()
            return sort_services(await self._refresh())

        return await self._run("unlock", operation)

    async def refresh_services(self) -> Outcome:
        """Reload the service list; the old list survives a failed reload."""
        async def operation() -> tuple[str, ...]:
            return sort_services(await self._refresh())

        return await self._run("refresh services", operation)

    async def _refresh(self) -> frozenset[str]:
        names = await self._call(CMD_LIST, self._bridge.list_services(self._master()))
        self._services = frozenset(names)
        if self._selection is not None and self._selection.service not in self._services:
            self._clear_selection()
        logger.debug("Service list refreshed: %d entries", len(self._services))
        return self._services

    async def select_service(self, name: str) -> Outcome:
        """Fetch the bundle for ``name`` and make it the selection."""
        async def operation() -> SelectionView:
            self._require_unlocked()
            self._require_listed(name)
            bundle = await self._call(
                CMD_GET, self._bridge.get_service(self._master(), name),
            )
            if not isinstance(bundle, SecretBundle):
                raise BackendError(f"Engine returned a malformed entry for {name}")
            self._replace_selection(Selection(name, bundle))
            logger.debug("Selected service %s", name)
            return self._selection.view()

        return await self._run("select service", operation)

    async def add_service(
        self,
        name: str,
        username: str,
        secret: str,
        notes: Optional[str] = None,
    ) -> Outcome:
        """Store a new entry, then reload the list and clear the selection."""
        async def operation() -> tuple[str, ...]:
            self._require_unlocked()
            service = (name or "").strip()
            login = (username or "").strip()
            for label, value in (("Service", service), ("Username", login), ("Secret", secret)):
                if not value or not value.strip():
                    raise ValidationError(f"{label} is required", rule="required")
            bundle = SecretBundle(
                username=login,
                secret=secret,
                notes=notes.strip() if notes else None,
            )
            await self._call(
                CMD_ADD, self._bridge.add_service(self._master(), service, bundle),
            )
            logger.info("Service added: %s", service)
            self._clear_selection()
            self._emit()
            return sort_services(await self._refresh())

        return await self._run("add service", operation)

    async def delete_service(self, name: str) -> Outcome:
        """Delete an entry the caller has already confirmed.

        On success the name is dropped locally, without a full refresh.
        """
        async def operation() -> tuple[str, ...]:
            self._require_unlocked()
            self._require_listed(name)
            await self._call(
                CMD_DELETE, self._bridge.delete_service(self._master(), name),
            )
            self._services = self._services - {name}
            if self._selection is not None and self._selection.service == name:
                self._clear_selection()
            logger.info("Service deleted: %s", name)
            return sort_services(self._services)

        return await self._run("delete service", operation)

    def toggle_reveal(self) -> bool:
        """Flip the reveal flag of the current selection; no-op without one."""
        if self._selection is None:
            return False
        revealed = self._selection.toggle_reveal()
        self._emit()
        return revealed

    def filter(self, query: str) -> tuple[str, ...]:
        """Set the search query and return the matching service names."""
        self._query = query or ""
        self._emit()
        return filter_services(self._services, self._query)

    def lock(self) -> Outcome:
        """Close the session, wiping the credential and the selection.

        Always succeeds and never touches the bridge. A call still in flight
        will have its result discarded.
        """
        self._epoch += 1
        if self._credential is not None:
            self._credential.wipe()
            self._credential = None
        self._clear_selection()
        self._services = frozenset()
        self._query = ""
        self._last_error = None
        self._state = SessionState.LOCKED
        logger.info("Vault session locked")
        self._emit()
        return Outcome.success()
