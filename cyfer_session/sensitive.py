"""
Sensitive values — secret strings held in wipeable buffers.

Python ``str`` objects are immutable and cannot be cleared, so secrets owned
by the session controller live in a ``bytearray`` that is zero-filled and
dropped on ``wipe()``.

Security Note:
    ``reveal()`` necessarily produces a transient ``str`` copy for the caller
    (e.g. a bridge call). Those copies are short-lived and not retained by
    the controller; this is an accepted limitation.
"""
from typing import Optional


class SensitiveValue:
    """A secret string that can be explicitly overwritten and dropped."""

    __slots__ = ("_buf",)

    def __init__(self, value: str):
        self._buf: Optional[bytearray] = bytearray(value.encode("utf-8"))

    @property
    def wiped(self) -> bool:
        return self._buf is None

    def reveal(self) -> str:
        """Return the secret as a string.

        Raises:
            ValueError: If the value has already been wiped.
        """
        if self._buf is None:
            raise ValueError("Sensitive value has been wiped")
        return self._buf.decode("utf-8")

    def matches(self, other: str) -> bool:
        if self._buf is None:
            return False
        return self._buf == other.encode("utf-8")

    def wipe(self) -> None:
        """Overwrite the buffer with zeros, then drop it."""
        if self._buf is None:
            return
        for i in range(len(self._buf)):
            self._buf[i] = 0
        self._buf = None

    def __len__(self) -> int:
        return 0 if self._buf is None else len(self._buf)

    def __repr__(self) -> str:
        state = "wiped" if self._buf is None else "set"
        return f"<SensitiveValue [{state}]>"

    __str__ = __repr__
