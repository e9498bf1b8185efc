"""Cache interface (port) for the last known visit count."""

from __future__ import annotations

from typing import Protocol


class CountCache(Protocol):
    """Port: short-lived key/value memo of integer counts."""

    def get(self, key: str) -> int | None: ...

    def set(self, key: str, value: int) -> None: ...
