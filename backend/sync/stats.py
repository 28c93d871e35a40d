from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Protocol

HIGH_SCORE_THRESHOLD = 4.0


class _Scored(Protocol):
    score: float | None
    rating_count: int


@dataclass(frozen=True)
class MapStats:
    count: int = 0
    mean_score: float | None = None
    high_score_count: int = 0
    rated_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "meanScore": self.mean_score,
            "highScoreCount": self.high_score_count,
            "ratedCount": self.rated_count,
        }


def compute_stats(
    markers: Iterable[_Scored], *, high_score_threshold: float = HIGH_SCORE_THRESHOLD
) -> MapStats:
    """
    Aggregate display numbers over everything currently on the map.

    The mean only counts entities that have a score; unscored entities are not zeros.
    """
    count = 0
    scored = 0
    total = 0.0
    high = 0
    rated = 0
    for m in markers:
        count += 1
        if m.score is not None:
            scored += 1
            total += float(m.score)
            if m.score >= high_score_threshold:
                high += 1
        if m.rating_count > 0 or m.score is not None:
            rated += 1

    return MapStats(
        count=count,
        mean_score=(total / scored) if scored else None,
        high_score_count=high,
        rated_count=rated,
    )
