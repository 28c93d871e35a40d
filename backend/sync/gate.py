from __future__ import annotations

from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator


class LoadState(str, Enum):
    idle = "idle"
    fetching_viewport = "fetching_viewport"


class LoadGate:
    """
    At most one viewport fetch in flight.

    Callers that fail `try_enter()` skip their pass instead of waiting; the next
    settled move/zoom retries.
    """

    def __init__(self) -> None:
        self._state = LoadState.idle

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is LoadState.fetching_viewport

    def try_enter(self) -> bool:
        if self._state is not LoadState.idle:
            return False
        self._state = LoadState.fetching_viewport
        return True

    def exit(self) -> None:
        self._state = LoadState.idle

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[bool]:
        """
        `async with gate.hold() as entered:` releases on every exit path when entered.
        """
        entered = self.try_enter()
        try:
            yield entered
        finally:
            if entered:
                self.exit()
