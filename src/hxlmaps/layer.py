"""A single HXL-backed map layer and its loading pipeline."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from html import escape

from .aggregate import AggregatedRow, Aggregation, aggregate
from .boundaries import BoundaryError, BoundarySet
from .codes import country_for_code, fuzzy_lookup, iso2_to_iso3
from .colors import color_for
from .config import LayerConfig
from .context import MapContext
from .hxl import Dataset, Row
from .legend import Legend
from .models import (
    NO_DATA_STYLE,
    NO_DATA_TEXT,
    AdminLevel,
    AggregateType,
    AreaShape,
    AreaStyle,
    Bounds,
    HeatPoints,
    LatLon,
    LayerType,
    Marker,
    Overlay,
    admin_level,
)
from .resolve import LAT_PATTERN, LON_PATTERN, ResolvedLayerConfig, resolve_layer_config
from .util import format_number


_LOGGER = logging.getLogger("hxlmaps.layer")

COUNTRY_CODE_PATTERN = "#country+code"


class LayerState(str, Enum):
    CREATED = "created"
    LOADING_DATASET = "loading_dataset"
    TYPE_RESOLVED = "type_resolved"
    STYLING = "styling"
    AGGREGATING = "aggregating"
    GEOMETRY_LOADING = "geometry_loading"
    READY = "ready"
    FAILED = "failed"


class LayerLoadError(RuntimeError):
    """Raised when a layer cannot be loaded at all."""


class Layer:
    """Turns one layer config plus its dataset into a render-ready overlay."""

    def __init__(self, config: LayerConfig, context: MapContext) -> None:
        self.config = config
        self.context = context
        self.state = LayerState.CREATED
        self.resolved: ResolvedLayerConfig | None = None
        self.dataset: Dataset | None = None
        self.aggregation: Aggregation | None = None
        self.pcode_index: dict[str, AggregatedRow] = {}
        self.overlay: Overlay | None = None
        self.error: Exception | None = None

    @property
    def name(self) -> str:
        if self.resolved is not None:
            return self.resolved.name
        return self.config.name or self.config.url

    @property
    def bounds(self) -> Bounds | None:
        return self.overlay.bounds if self.overlay is not None else None

    async def load(self) -> Overlay:
        """Fetch the dataset, resolve the config, and build the overlay."""
        try:
            self._set_state(LayerState.LOADING_DATASET)
            self.dataset = await self.context.datasets.load(self.config.url)
            self.resolved = resolve_layer_config(self.config, self.dataset.columns, self.context.cfg.layers)
            self._set_state(LayerState.TYPE_RESOLVED)

            if self.resolved.type is LayerType.POINTS:
                overlay = self._load_points(self.dataset, self.resolved)
            elif self.resolved.type is LayerType.HEAT:
                overlay = self._load_heat(self.dataset, self.resolved)
            else:
                overlay = await self._load_areas(self.dataset, self.resolved)
        except Exception as exc:
            self.error = exc
            self._set_state(LayerState.FAILED)
            raise LayerLoadError(f"Layer '{self.name}' failed to load: {exc}") from exc

        self.overlay = overlay
        self._set_state(LayerState.READY)
        return overlay

    def _set_state(self, state: LayerState) -> None:
        _LOGGER.debug("Layer %s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state

    def _load_points(self, dataset: Dataset, resolved: ResolvedLayerConfig) -> Overlay:
        self._set_state(LayerState.STYLING)
        overlay = Overlay(name=resolved.name, layer_type=LayerType.POINTS, cluster=resolved.cluster)
        for row_number, row in enumerate(dataset, start=1):
            location = _row_location(row)
            if location is None:
                _LOGGER.info("No usable lat/lon in row %d of %s", row_number, resolved.name)
                continue
            overlay.markers.append(Marker(location=location, popup_html=_popup_html(row)))
        overlay.extend_bounds([marker.location for marker in overlay.markers])
        return overlay

    def _load_heat(self, dataset: Dataset, resolved: ResolvedLayerConfig) -> Overlay:
        self._set_state(LayerState.STYLING)
        defaults = self.context.cfg.layers
        points: list[LatLon] = []
        for row_number, row in enumerate(dataset, start=1):
            location = _row_location(row)
            if location is None:
                _LOGGER.info("No usable lat/lon in row %d of %s", row_number, resolved.name)
                continue
            points.append(location)
        overlay = Overlay(
            name=resolved.name,
            layer_type=LayerType.HEAT,
            heat=HeatPoints(
                points=tuple(points),
                radius=defaults.heat_radius,
                min_opacity=defaults.heat_min_opacity,
            ),
        )
        overlay.extend_bounds(points)
        return overlay

    async def _load_areas(self, dataset: Dataset, resolved: ResolvedLayerConfig) -> Overlay:
        if resolved.admin_level is None:
            raise ValueError("Areas layer resolved without an admin level")
        level = admin_level(resolved.admin_level)

        self._set_state(LayerState.AGGREGATING)
        value_pattern = resolved.aggregate_column if resolved.aggregate_type is AggregateType.SUM else None
        aggregation = aggregate(dataset, [level.name_pattern, level.code_pattern], value_pattern)
        self.aggregation = aggregation
        self.pcode_index = aggregation.index()
        countries = self._countries_for_dataset(dataset, level)

        self._set_state(LayerState.GEOMETRY_LOADING)
        results = await asyncio.gather(
            *(self._load_country(country, level) for country in countries),
            return_exceptions=True,
        )

        overlay = Overlay(
            name=resolved.name,
            layer_type=LayerType.AREAS,
            legend=Legend.build(
                title=resolved.legend,
                color_map=resolved.color_map,
                alpha=resolved.alpha,
                min_value=aggregation.min,
                max_value=aggregation.max,
            ),
        )
        for country, result in zip(countries, results):
            if isinstance(result, BaseException):
                _LOGGER.error("Unexpected failure loading %s boundaries: %s", country, result)
                overlay.missing_countries.append(country)
                continue
            boundary_set, degraded = result
            if boundary_set is None:
                overlay.missing_countries.append(country)
                continue
            self._add_areas(overlay, boundary_set, resolved, aggregation, degraded=degraded)
        return overlay

    def _countries_for_dataset(self, dataset: Dataset, level: AdminLevel) -> list[str]:
        """Countries whose boundaries are needed, in first-seen order."""
        countries: dict[str, None] = {}
        for row_number, row in enumerate(dataset, start=1):
            country_code = row.get(COUNTRY_CODE_PATTERN)
            if country_code is not None:
                code = country_code.upper()
                countries.setdefault(iso2_to_iso3(code) or code, None)
                continue
            pcode = row.get(level.code_pattern)
            if pcode is None:
                _LOGGER.info("No P-code in row %d of %s", row_number, self.name)
                continue
            country = country_for_code(pcode)
            if country is None:
                _LOGGER.error("Cannot guess country for P-code %s", pcode)
                continue
            countries.setdefault(country, None)
        return list(countries)

    async def _load_country(self, country: str, level: AdminLevel) -> tuple[BoundarySet | None, bool]:
        """Load one country's boundaries, falling back to its outline on failure."""
        try:
            return await self.context.boundaries.load_level(country, level), False
        except BoundaryError as exc:
            _LOGGER.error("Cannot open %s boundaries for %s in %s: %s", level.tag, country, self.name, exc)
        if level.tag == "#country":
            return None, False
        try:
            outline = await self.context.boundaries.load_level(country, "#country")
        except BoundaryError as exc:
            _LOGGER.error("Cannot open country outline for %s in %s: %s", country, self.name, exc)
            return None, False
        return outline, True

    def _add_areas(
        self,
        overlay: Overlay,
        boundary_set: BoundarySet,
        resolved: ResolvedLayerConfig,
        aggregation: Aggregation,
        *,
        degraded: bool,
    ) -> None:
        stroke = bool(resolved.style.get("stroke", False))
        weight = float(resolved.style.get("weight", 1.0))
        for feature in boundary_set.features:
            if not feature.code:
                _LOGGER.info(
                    "Feature has no %s in %s",
                    boundary_set.admin_level.code_property,
                    boundary_set.country,
                )
                continue
            row = None if degraded else fuzzy_lookup(feature.code, self.pcode_index)
            if row is None:
                style = NO_DATA_STYLE
                tooltip = NO_DATA_TEXT
            else:
                color = color_for(aggregation.normalize(row.value), resolved.color_map)
                style = AreaStyle(color=color.css, fill_opacity=resolved.alpha, stroke=stroke, weight=weight)
                tooltip = f"{row.name or row.code}: {format_number(row.value)} {resolved.unit}"
            overlay.areas.append(
                AreaShape(code=feature.code, polygons=feature.polygons, style=style, tooltip=tooltip)
            )
            overlay.extend_bounds(feature.points())


def _row_location(row: Row) -> LatLon | None:
    lat_raw = row.get(LAT_PATTERN)
    lon_raw = row.get(LON_PATTERN)
    if lat_raw is None or lon_raw is None:
        return None
    try:
        lat, lon = float(lat_raw), float(lon_raw)
    except ValueError:
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return None
    return (lat, lon)


def _popup_html(row: Row) -> str:
    cells = "".join(
        f"<tr><th>{escape(name)}</th><td>{escape(value)}</td></tr>" for name, value in row.labelled_values()
    )
    return f"<table>{cells}</table>"
