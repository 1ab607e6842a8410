"""Domain models shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence


LatLon = tuple[float, float]
Ring = tuple[LatLon, ...]
Polygon = tuple[Ring, ...]


class LayerType(str, Enum):
    POINTS = "points"
    AREAS = "areas"
    HEAT = "heat"


class AggregateType(str, Enum):
    COUNT = "count"
    SUM = "sum"


@dataclass(frozen=True, slots=True)
class AdminLevel:
    """An HXL administrative level and how the boundary service names it."""

    tag: str
    service_level: int
    layer_name: str
    code_property: str

    @property
    def code_pattern(self) -> str:
        return f"{self.tag}+code"

    @property
    def name_pattern(self) -> str:
        return f"{self.tag}+name"


ADMIN_LEVELS: Mapping[str, AdminLevel] = {
    "#country": AdminLevel("#country", 1, "Admin0", "admin0Pcode"),
    "#adm1": AdminLevel("#adm1", 2, "Admin1", "admin1Pcode"),
    "#adm2": AdminLevel("#adm2", 3, "Admin2", "admin2Pcode"),
    "#adm3": AdminLevel("#adm3", 4, "Admin3", "admin3Pcode"),
    "#adm4": AdminLevel("#adm4", 5, "Admin4", "admin4Pcode"),
    "#adm5": AdminLevel("#adm5", 6, "Admin5", "admin5Pcode"),
}

# Most specific first.
ADMIN_LEVEL_SEARCH_ORDER: tuple[str, ...] = ("#adm5", "#adm4", "#adm3", "#adm2", "#adm1", "#country")


def admin_level(tag: str) -> AdminLevel:
    normalized = tag.strip().lower()
    if not normalized.startswith("#"):
        normalized = f"#{normalized}"
    try:
        return ADMIN_LEVELS[normalized]
    except KeyError:
        raise ValueError(f"Unrecognised admin level: '{tag}'") from None


@dataclass(frozen=True, slots=True)
class Bounds:
    """Lat/lon bounding rectangle."""

    south: float
    west: float
    north: float
    east: float

    @classmethod
    def from_points(cls, points: Iterable[LatLon]) -> Bounds | None:
        bounds: Bounds | None = None
        for lat, lon in points:
            bounds = Bounds(lat, lon, lat, lon) if bounds is None else bounds.extend((lat, lon))
        return bounds

    def extend(self, point: LatLon) -> Bounds:
        lat, lon = point
        return Bounds(
            south=min(self.south, lat),
            west=min(self.west, lon),
            north=max(self.north, lat),
            east=max(self.east, lon),
        )

    def union(self, other: Bounds) -> Bounds:
        return Bounds(
            south=min(self.south, other.south),
            west=min(self.west, other.west),
            north=max(self.north, other.north),
            east=max(self.east, other.east),
        )

    def to_dict(self) -> dict[str, float]:
        return {"south": self.south, "west": self.west, "north": self.north, "east": self.east}


def merge_bounds(items: Iterable[Bounds | None]) -> Bounds | None:
    merged: Bounds | None = None
    for item in items:
        if item is None:
            continue
        merged = item if merged is None else merged.union(item)
    return merged


@dataclass(frozen=True, slots=True)
class Marker:
    location: LatLon
    popup_html: str


@dataclass(frozen=True, slots=True)
class AreaStyle:
    color: str | None
    fill_opacity: float = 0.5
    stroke: bool = False
    weight: float = 1.0


NO_DATA_STYLE = AreaStyle(color="rgb(128,128,128)", fill_opacity=0.5)
NO_DATA_TEXT = "(no data available)"


@dataclass(frozen=True, slots=True)
class AreaShape:
    code: str
    polygons: tuple[Polygon, ...]
    style: AreaStyle
    tooltip: str


@dataclass(frozen=True, slots=True)
class HeatPoints:
    points: tuple[LatLon, ...]
    radius: int = 15
    min_opacity: float = 0.4


@dataclass(slots=True)
class Overlay:
    """Render-ready content of one layer."""

    name: str
    layer_type: LayerType
    markers: list[Marker] = field(default_factory=list)
    areas: list[AreaShape] = field(default_factory=list)
    heat: HeatPoints | None = None
    cluster: bool = False
    legend: Any | None = None
    bounds: Bounds | None = None
    missing_countries: list[str] = field(default_factory=list)

    def extend_bounds(self, points: Sequence[LatLon]) -> None:
        extra = Bounds.from_points(points)
        self.bounds = merge_bounds((self.bounds, extra))

    def summary(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.layer_type.value,
            "markers": len(self.markers),
            "areas": len(self.areas),
            "heat_points": len(self.heat.points) if self.heat is not None else 0,
            "cluster": self.cluster,
            "bounds": self.bounds.to_dict() if self.bounds is not None else None,
            "missing_countries": list(self.missing_countries),
        }
