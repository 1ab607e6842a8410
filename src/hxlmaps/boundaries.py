"""Administrative boundary loading from the iTOS COD services, with caching."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

from .models import AdminLevel, LatLon, Polygon, Ring, admin_level


_LOGGER = logging.getLogger("hxlmaps.boundaries")

FetchJson = Callable[..., Awaitable[Any]]


class BoundaryError(RuntimeError):
    """Raised when boundary metadata or geometry cannot be loaded."""


@dataclass(frozen=True, slots=True)
class BoundaryFeature:
    code: str | None
    name: str | None
    properties: Mapping[str, Any]
    polygons: tuple[Polygon, ...]

    def points(self) -> list[LatLon]:
        return [point for polygon in self.polygons for ring in polygon for point in ring]


@dataclass(frozen=True, slots=True)
class BoundarySet:
    """Render-ready boundaries for one country at one admin level."""

    country: str
    admin_level: AdminLevel
    features: tuple[BoundaryFeature, ...]


class BoundaryCache:
    """Deduplicating loader for boundaries keyed by (country, admin level).

    The first request for a key creates a task; every later request for the
    same key, whether pending, resolved or failed, gets that same task back.
    Failures are cached too, so a broken service is only asked once.
    """

    def __init__(
        self,
        fetch_json: FetchJson,
        *,
        service_url: str,
        swap_axes: bool = True,
    ) -> None:
        self._fetch_json = fetch_json
        self.service_url = service_url.rstrip("/")
        self.swap_axes = swap_axes
        self._country_layers: dict[str, asyncio.Future[list[Mapping[str, Any]]]] = {}
        self._levels: dict[tuple[str, str], asyncio.Future[BoundarySet]] = {}

    def load_level(self, country: str, level: str | AdminLevel) -> asyncio.Future[BoundarySet]:
        """Return the shared future for one country's boundaries at `level`.

        Must be called with a running event loop.
        """
        info = level if isinstance(level, AdminLevel) else admin_level(level)
        key = (country.strip().upper(), info.tag)
        future = self._levels.get(key)
        if future is not None:
            _LOGGER.debug("Hit boundary cache for %s %s", *key)
            return future
        future = asyncio.ensure_future(self._load_level(key[0], info))
        future.add_done_callback(_mark_exception_retrieved)
        self._levels[key] = future
        return future

    def clear(self) -> None:
        self._country_layers.clear()
        self._levels.clear()

    def __len__(self) -> int:
        return len(self._levels)

    def _load_country_layers(self, country: str) -> asyncio.Future[list[Mapping[str, Any]]]:
        future = self._country_layers.get(country)
        if future is not None:
            _LOGGER.debug("Hit country info cache for %s", country)
            return future
        future = asyncio.ensure_future(self._fetch_country_layers(country))
        future.add_done_callback(_mark_exception_retrieved)
        self._country_layers[country] = future
        return future

    async def _fetch_country_layers(self, country: str) -> list[Mapping[str, Any]]:
        url = f"{self.service_url}/{country}_pcode/MapServer"
        try:
            payload = await self._fetch_json(url, params={"f": "json"})
        except Exception as exc:
            raise BoundaryError(f"Cannot load boundary metadata for {country}: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise BoundaryError(f"Boundary metadata for {country} is not a JSON object")
        if "error" in payload:
            raise BoundaryError(f"Boundary service error for {country}: {payload['error']}")
        layers = payload.get("layers")
        if not isinstance(layers, list):
            raise BoundaryError(f"Boundary metadata for {country} has no layer list")
        return [item for item in layers if isinstance(item, Mapping)]

    async def _load_level(self, country: str, info: AdminLevel) -> BoundarySet:
        layers = await self._load_country_layers(country)
        layer_id = _find_layer_id(layers, info.layer_name)
        if layer_id is None:
            raise BoundaryError(f"No {info.layer_name} boundaries published for {country}")

        url = f"{self.service_url}/{country}_pcode/MapServer/{layer_id}/query"
        try:
            payload = await self._fetch_json(
                url,
                params={"where": "1=1", "outFields": "*", "f": "geojson"},
            )
        except Exception as exc:
            raise BoundaryError(f"Cannot load {info.tag} boundaries for {country}: {exc}") from exc

        boundary_set = ingest_geojson(payload, country=country, level=info, swap_axes=self.swap_axes)
        _LOGGER.info(
            "Loaded %d %s boundaries for %s",
            len(boundary_set.features),
            info.tag,
            country,
        )
        return boundary_set


def ingest_geojson(
    payload: Any,
    *,
    country: str,
    level: AdminLevel,
    swap_axes: bool = True,
) -> BoundarySet:
    """Convert a GeoJSON feature collection into a render-ready `BoundarySet`."""
    if not isinstance(payload, Mapping):
        raise BoundaryError(f"Boundary geometry for {country} is not a JSON object")
    if "error" in payload:
        raise BoundaryError(f"Boundary service error for {country}: {payload['error']}")
    features_raw = payload.get("features")
    if not isinstance(features_raw, list):
        raise BoundaryError(f"Boundary geometry for {country} has no feature list")

    name_property = level.code_property.replace("Pcode", "Name_en")
    features: list[BoundaryFeature] = []
    for item in features_raw:
        if not isinstance(item, Mapping):
            continue
        properties = item.get("properties")
        if not isinstance(properties, Mapping):
            properties = {}
        polygons = _polygons_from_geometry(item.get("geometry"), swap_axes=swap_axes)
        if not polygons:
            _LOGGER.info("Skipping boundary feature without polygon geometry in %s", country)
            continue
        code = properties.get(level.code_property)
        name = properties.get(name_property)
        features.append(
            BoundaryFeature(
                code=str(code).strip() if code is not None and str(code).strip() else None,
                name=str(name).strip() if isinstance(name, str) and name.strip() else None,
                properties=dict(properties),
                polygons=polygons,
            )
        )
    return BoundarySet(country=country, admin_level=level, features=tuple(features))


def _find_layer_id(layers: Sequence[Mapping[str, Any]], layer_name: str) -> Any | None:
    for layer in layers:
        if layer.get("name") == layer_name:
            return layer.get("id")
    return None


def _polygons_from_geometry(geometry: Any, *, swap_axes: bool) -> tuple[Polygon, ...]:
    if not isinstance(geometry, Mapping):
        return ()
    kind = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list):
        return ()
    if kind == "Polygon":
        parts = [coordinates]
    elif kind == "MultiPolygon":
        parts = coordinates
    else:
        _LOGGER.debug("Unsupported boundary geometry type %s", kind)
        return ()

    polygons: list[Polygon] = []
    for part in parts:
        if not isinstance(part, list):
            continue
        rings = tuple(ring for ring in (_ring(raw, swap_axes=swap_axes) for raw in part) if ring)
        if rings:
            polygons.append(rings)
    return tuple(polygons)


def _ring(raw: Any, *, swap_axes: bool) -> Ring:
    if not isinstance(raw, list):
        return ()
    out: list[LatLon] = []
    for pair in raw:
        if not isinstance(pair, (list, tuple)) or len(pair) < 2:
            continue
        try:
            first, second = float(pair[0]), float(pair[1])
        except (TypeError, ValueError):
            continue
        out.append((second, first) if swap_axes else (first, second))
    return tuple(out)


def _mark_exception_retrieved(future: asyncio.Future[Any]) -> None:
    # Failed entries stay cached and are re-raised to whoever awaits them.
    if not future.cancelled():
        future.exception()
