"""Concurrent loading of every layer in a map configuration."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from .boundaries import BoundarySet
from .config import CodLayerConfig, MapConfig
from .context import MapContext
from .layer import Layer
from .models import Bounds, Overlay, merge_bounds
from .render import MapCanvas


_LOGGER = logging.getLogger("hxlmaps.orchestrator")

NO_DATA_MESSAGE = "No map data loaded"


@dataclass(frozen=True, slots=True)
class TileLayer:
    name: str
    url: str | None = None
    attribution: str | None = None


TILE_LAYERS: tuple[TileLayer, ...] = (
    TileLayer(
        name="OpenStreetMap",
        url="https://tile.openstreetmap.org/{z}/{x}/{y}.png",
        attribution="Map data © OpenStreetMap contributors, CC-BY-SA",
    ),
    TileLayer(name="None"),
)


@dataclass(slots=True)
class LayerControl:
    """Base layers and selectable overlays, both sorted by name."""

    base_layers: list[str] = field(default_factory=list)
    overlays: list[str] = field(default_factory=list)


@dataclass(slots=True)
class MapState:
    title: str | None
    layers: list[Layer]
    overlays: list[Overlay]
    cod_boundaries: list[BoundarySet]
    bounds: Bounds | None
    control: LayerControl
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.overlays)

    @property
    def message(self) -> str | None:
        return None if self.ok else NO_DATA_MESSAGE

    def render(self, canvas: MapCanvas) -> None:
        """Draw everything onto `canvas` and snap it to the merged bounds."""
        for tile in TILE_LAYERS:
            if tile.url is not None:
                canvas.add_tile_layer(tile.name, tile.url, attribution=tile.attribution)
        for boundary_set in self.cod_boundaries:
            for feature in boundary_set.features:
                for polygon in feature.polygons:
                    canvas.add_polygon(polygon, color="#888888", fill_opacity=0.0, stroke=True, weight=1.0)
        legends_drawn: set[str] = set()
        for overlay in self.overlays:
            _draw_overlay(canvas, overlay)
            if overlay.legend is not None and overlay.name not in legends_drawn:
                legends_drawn.add(overlay.name)
                canvas.add_legend(overlay.name, overlay.legend)
        if self.bounds is not None:
            canvas.fit_bounds(self.bounds)
        canvas.add_layer_control(self.control.base_layers, self.control.overlays)

    def summary(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "ok": self.ok,
            "message": self.message,
            "bounds": self.bounds.to_dict() if self.bounds is not None else None,
            "layers": [
                {
                    "name": layer.name,
                    "state": layer.state.value,
                    "config": layer.resolved.to_dict() if layer.resolved is not None else None,
                    "overlay": layer.overlay.summary() if layer.overlay is not None else None,
                    "legend": (
                        layer.overlay.legend.to_dict()
                        if layer.overlay is not None and layer.overlay.legend is not None
                        else None
                    ),
                }
                for layer in self.layers
            ],
            "control": {"base_layers": self.control.base_layers, "overlays": self.control.overlays},
            "errors": list(self.errors),
        }


class MapOrchestrator:
    """Loads all layers concurrently and merges them into one map state."""

    def __init__(self, map_config: MapConfig, context: MapContext) -> None:
        self.map_config = map_config
        self.context = context
        self.layers = [Layer(layer_config, context) for layer_config in map_config.layers]

    async def load(self) -> MapState:
        if not self.layers:
            _LOGGER.error("No layers defined")

        layer_results, cod_results = await asyncio.gather(
            asyncio.gather(*(layer.load() for layer in self.layers), return_exceptions=True),
            self._load_cod_layers(self.map_config.cod_layers),
        )

        errors: list[str] = []
        loaded: list[Overlay] = []
        for layer, result in zip(self.layers, layer_results):
            if isinstance(result, BaseException):
                _LOGGER.error("Layer %s failed: %s", layer.name, result)
                errors.append(str(result))
                continue
            loaded.append(result)
            if result.missing_countries:
                message = f"Layer '{layer.name}' has no boundaries for: {', '.join(result.missing_countries)}"
                _LOGGER.warning(message)
                errors.append(message)

        cod_boundaries: list[BoundarySet] = []
        for cod_config, result in zip(self.map_config.cod_layers, cod_results):
            if isinstance(result, BaseException):
                _LOGGER.error("Failed to load COD %s %s: %s", cod_config.country, cod_config.level, result)
                errors.append(f"COD layer {cod_config.country} {cod_config.level}: {result}")
                continue
            cod_boundaries.append(result)

        bounds = merge_bounds(overlay.bounds for overlay in loaded)
        state = MapState(
            title=self.map_config.title,
            layers=self.layers,
            overlays=loaded,
            cod_boundaries=cod_boundaries,
            bounds=bounds,
            control=_build_layer_control(loaded, has_cods=bool(cod_boundaries)),
            errors=errors,
        )
        if state.ok:
            _LOGGER.info("All layers settled: %d of %d loaded", len(loaded), len(self.layers))
        else:
            _LOGGER.error(NO_DATA_MESSAGE)
        return state

    async def _load_cod_layers(self, cod_layers: Sequence[CodLayerConfig]) -> list[Any]:
        return await asyncio.gather(
            *(self.context.boundaries.load_level(cod.country, cod.level) for cod in cod_layers),
            return_exceptions=True,
        )


def _build_layer_control(overlays: Sequence[Overlay], *, has_cods: bool) -> LayerControl:
    base_layers = [tile.name for tile in TILE_LAYERS if tile.url is not None]
    if has_cods:
        base_layers.append("CODs")
    base_layers.append("None")
    names = sorted({overlay.name for overlay in overlays})
    return LayerControl(base_layers=sorted(base_layers), overlays=names)


def _draw_overlay(canvas: MapCanvas, overlay: Overlay) -> None:
    for marker in overlay.markers:
        canvas.add_marker(marker.location, marker.popup_html, cluster=overlay.cluster)
    if overlay.heat is not None:
        canvas.add_heat(overlay.heat.points, radius=overlay.heat.radius, min_opacity=overlay.heat.min_opacity)
    for area in overlay.areas:
        for polygon in area.polygons:
            canvas.add_polygon(
                polygon,
                color=area.style.color,
                fill_opacity=area.style.fill_opacity,
                stroke=area.style.stroke,
                weight=area.style.weight,
                tooltip=area.tooltip,
            )
