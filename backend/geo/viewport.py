from __future__ import annotations

from dataclasses import dataclass

from shapely.geometry import box as shapely_box

KEY_DECIMALS = 4
KEY_SEPARATOR = "|"


@dataclass(frozen=True)
class Viewport:
    """
    Visible map area as a WGS84 bounding box in degrees.

    Convention used throughout this repo:
    - south, west, north, east (the order Leaflet's `getBounds()` accessors use)
    """

    south: float
    west: float
    north: float
    east: float

    def normalized(self) -> "Viewport":
        return Viewport(
            south=min(self.south, self.north),
            west=min(self.west, self.east),
            north=max(self.south, self.north),
            east=max(self.west, self.east),
        )

    def key(self, decimals: int = KEY_DECIMALS) -> str:
        """
        Canonical cache key: every bound rounded to `decimals` places.

        decimals=4 is ~11m in latitude. Two viewports with the same key are treated as
        the same area; this is a quantization, not geometric equality.
        """
        b = self.normalized()
        return KEY_SEPARATOR.join(
            _fmt(v, decimals) for v in (b.south, b.west, b.north, b.east)
        )

    def intersects(self, other: "Viewport") -> bool:
        # Shared edges count as overlap.
        return _box(self).intersects(_box(other))

    def centroid(self) -> tuple[float, float]:
        """(lat, lng) of the box centre."""
        b = self.normalized()
        return (b.south + b.north) / 2.0, (b.west + b.east) / 2.0

    def contains_point(self, lat: float, lng: float) -> bool:
        b = self.normalized()
        return b.south <= lat <= b.north and b.west <= lng <= b.east

    def to_bounds_param(self) -> str:
        b = self.normalized()
        return f"{b.south},{b.west},{b.north},{b.east}"

    @classmethod
    def from_bounds_param(cls, raw: str) -> "Viewport":
        parts = [p.strip() for p in (raw or "").split(",")]
        if len(parts) != 4:
            raise ValueError(f"Expected 'south,west,north,east', got {raw!r}")
        south, west, north, east = (float(p) for p in parts)
        return cls(south=south, west=west, north=north, east=east).normalized()

    def as_dict(self) -> dict[str, float]:
        b = self.normalized()
        return {"south": b.south, "west": b.west, "north": b.north, "east": b.east}


def viewport_key(viewport: Viewport, decimals: int = KEY_DECIMALS) -> str:
    return viewport.key(decimals)


def _fmt(v: float, decimals: int) -> str:
    s = f"{round(float(v), decimals):.{decimals}f}"
    # round() can produce -0.0 for tiny negatives; keep keys canonical.
    if s.startswith("-") and float(s) == 0.0:
        s = s[1:]
    return s


def _box(v: Viewport):
    b = v.normalized()
    return shapely_box(b.west, b.south, b.east, b.north)
