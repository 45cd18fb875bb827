"""
Client-side persistence of the session (token, guest id) behind an interface.
"""

from __future__ import annotations

from typing import Protocol


class ClientStorage(Protocol):
    def load_token(self) -> str | None: ...
    def save_token(self, token: str) -> None: ...
    def load_guest_id(self) -> str | None: ...
    def save_guest_id(self, guest_id: str) -> None: ...
    def clear(self) -> None: ...


class MemoryClientStorage:
    """Storage for scripts and tests; a browser client would use localStorage."""

    def __init__(self) -> None:
        self._token: str | None = None
        self._guest_id: str | None = None

    def load_token(self) -> str | None:
        return self._token

    def save_token(self, token: str) -> None:
        self._token = token

    def load_guest_id(self) -> str | None:
        return self._guest_id

    def save_guest_id(self, guest_id: str) -> None:
        self._guest_id = guest_id

    def clear(self) -> None:
        self._token = None
        self._guest_id = None


__all__ = ("ClientStorage", "MemoryClientStorage")
