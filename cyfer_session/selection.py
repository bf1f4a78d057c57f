"""
Selection/Reveal sub-state.

Holds the one SecretBundle the client keeps at any time, for the currently
selected service, together with its reveal flag. The presentation layer only
ever receives a ``SelectionView``, which reads through to the live selection:
once the selection is wiped the view exposes no secret material.
"""
from typing import Optional

from .models import SecretBundle
from .sensitive import SensitiveValue

MASK = "••••••••••"


class Selection:
    """The selected service and its decrypted bundle, held in wipeable buffers."""

    def __init__(self, service: str, bundle: SecretBundle):
        self.service = service
        self.revealed = False
        self._username: Optional[SensitiveValue] = SensitiveValue(bundle.username)
        self._secret: Optional[SensitiveValue] = SensitiveValue(bundle.secret)
        self._notes: Optional[SensitiveValue] = (
            SensitiveValue(bundle.notes) if bundle.notes is not None else None
        )
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def toggle_reveal(self) -> bool:
        if self._active:
            self.revealed = not self.revealed
        return self.revealed

    def field(self, name: str) -> Optional[str]:
        if not self._active:
            return None
        value = getattr(self, f"_{name}")
        return value.reveal() if value is not None else None

    def wipe(self) -> None:
        """Overwrite every held buffer, then drop the references."""
        for value in (self._username, self._secret, self._notes):
            if value is not None:
                value.wipe()
        self._username = self._secret = self._notes = None
        self.revealed = False
        self._active = False

    def view(self) -> "SelectionView":
        return SelectionView(self)

    def __repr__(self) -> str:
        return (
            f"<Selection [service:{self.service}, active:{self._active}, "
            f"revealed:{self.revealed}]>"
        )


class SelectionView:
    """Read-only handle on a Selection, given to the presentation layer."""

    __slots__ = ("_selection",)

    def __init__(self, selection: Selection):
        self._selection = selection

    @property
    def active(self) -> bool:
        return self._selection.active

    @property
    def service(self) -> Optional[str]:
        return self._selection.service if self.active else None

    @property
    def revealed(self) -> bool:
        return self.active and self._selection.revealed

    @property
    def username(self) -> Optional[str]:
        return self._selection.field("username")

    @property
    def secret(self) -> Optional[str]:
        """Unmasked secret, for explicit copy actions."""
        return self._selection.field("secret")

    @property
    def notes(self) -> Optional[str]:
        return self._selection.field("notes")

    @property
    def display_secret(self) -> Optional[str]:
        if not self.active:
            return None
        return self.secret if self.revealed else MASK

    def __repr__(self) -> str:
        return f"<SelectionView [service:{self.service}, revealed:{self.revealed}]>"
