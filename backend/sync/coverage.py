from __future__ import annotations

import logging

from geo.viewport import Viewport, viewport_key

log = logging.getLogger(__name__)


class CoverageTracker:
    """
    Remembers which viewport keys have already been fetched successfully.

    Keys are only added after a fetch completes. The whole set is dropped when the
    user moves to an area that does not overlap the last fetched viewport, so memory
    stays bounded by the current neighbourhood of the map.
    """

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def __len__(self) -> int:
        return len(self._keys)

    def has_coverage(self, viewport: Viewport) -> bool:
        return viewport_key(viewport) in self._keys

    def mark_covered(self, viewport: Viewport) -> None:
        self._keys.add(viewport_key(viewport))

    def clear(self) -> None:
        self._keys.clear()

    def reset_if_disjoint(
        self, new_viewport: Viewport, last_fetched: Viewport | None
    ) -> bool:
        """
        Clear coverage when `new_viewport` does not overlap `last_fetched`.

        No previous fetch counts as disjoint, so the first viewport is never skipped.
        Returns True when a reset happened.
        """
        if last_fetched is not None and new_viewport.intersects(last_fetched):
            return False
        if self._keys:
            log.debug("viewport jump; dropping %d covered keys", len(self._keys))
        self._keys.clear()
        return True
