"""Drawing surfaces for a loaded map."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Protocol, Sequence

from .config import RenderConfig
from .legend import Legend
from .models import Bounds, LatLon, Polygon


_LOGGER = logging.getLogger("hxlmaps.render")

_CSS_RGB_RE = re.compile(r"^rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*([0-9.]+)\s*)?\)$")

MARKER_COLOR = "#1f78b4"
HEAT_COLOR = "#e31a1c"


class MapCanvas(Protocol):
    def add_tile_layer(self, name: str, url: str, *, attribution: str | None = None) -> None: ...

    def add_marker(self, location: LatLon, popup_html: str, *, cluster: bool = False) -> None: ...

    def add_heat(self, points: Sequence[LatLon], *, radius: int, min_opacity: float) -> None: ...

    def add_polygon(
        self,
        polygon: Polygon,
        *,
        color: str | None,
        fill_opacity: float,
        stroke: bool,
        weight: float,
        tooltip: str | None = None,
    ) -> None: ...

    def add_legend(self, name: str, legend: Legend) -> None: ...

    def fit_bounds(self, bounds: Bounds) -> None: ...

    def add_layer_control(self, base_layers: Sequence[str], overlays: Sequence[str]) -> None: ...


@dataclass(slots=True)
class _LegendEntry:
    name: str
    legend: Legend


@dataclass(slots=True)
class MatplotlibCanvas:
    """Static PNG rendering of a map; longitude on x, latitude on y.

    Tile layers are recorded for the summary but not drawn.
    """

    cfg: RenderConfig
    tile_layers: list[str] = field(default_factory=list)
    base_layers: list[str] = field(default_factory=list)
    overlays: list[str] = field(default_factory=list)
    bounds: Bounds | None = None
    _legends: list[_LegendEntry] = field(default_factory=list)
    _fig: Any = None
    _ax: Any = None

    def __post_init__(self) -> None:
        plt = _require_matplotlib()
        dpi = self.cfg.dpi
        self._fig, self._ax = plt.subplots(figsize=(self.cfg.width_px / dpi, self.cfg.height_px / dpi), dpi=dpi)
        self._ax.set_aspect("equal", adjustable="datalim")
        self._ax.set_xlabel("Longitude")
        self._ax.set_ylabel("Latitude")

    def add_tile_layer(self, name: str, url: str, *, attribution: str | None = None) -> None:
        _LOGGER.debug("Tile layer %s (%s) not drawn in static output", name, url)
        self.tile_layers.append(name)

    def add_marker(self, location: LatLon, popup_html: str, *, cluster: bool = False) -> None:
        lat, lon = location
        self._ax.plot(lon, lat, marker="o", markersize=3, color=MARKER_COLOR, zorder=4)

    def add_heat(self, points: Sequence[LatLon], *, radius: int, min_opacity: float) -> None:
        if not points:
            return
        lats = [lat for lat, _ in points]
        lons = [lon for _, lon in points]
        self._ax.scatter(lons, lats, s=radius * radius, color=HEAT_COLOR, alpha=min_opacity, linewidths=0, zorder=3)

    def add_polygon(
        self,
        polygon: Polygon,
        *,
        color: str | None,
        fill_opacity: float,
        stroke: bool,
        weight: float,
        tooltip: str | None = None,
    ) -> None:
        if not polygon:
            return
        rgb = css_to_mpl(color) if color else None
        outer = polygon[0]
        xs = [lon for _, lon in outer]
        ys = [lat for lat, _ in outer]
        if rgb is not None and fill_opacity > 0:
            self._ax.fill(xs, ys, color=rgb, alpha=fill_opacity, linewidth=0, zorder=2)
        if stroke or fill_opacity == 0:
            edge = rgb if rgb is not None else (0.0, 0.0, 0.0)
            for ring in polygon:
                self._ax.plot([lon for _, lon in ring], [lat for lat, _ in ring], color=edge, linewidth=weight, zorder=2)

    def add_legend(self, name: str, legend: Legend) -> None:
        self._legends.append(_LegendEntry(name=name, legend=legend))

    def fit_bounds(self, bounds: Bounds) -> None:
        self.bounds = bounds
        pad_lat = max((bounds.north - bounds.south) * 0.05, 0.01)
        pad_lon = max((bounds.east - bounds.west) * 0.05, 0.01)
        self._ax.set_xlim(bounds.west - pad_lon, bounds.east + pad_lon)
        self._ax.set_ylim(bounds.south - pad_lat, bounds.north + pad_lat)

    def add_layer_control(self, base_layers: Sequence[str], overlays: Sequence[str]) -> None:
        self.base_layers = list(base_layers)
        self.overlays = list(overlays)

    def save(self, output_path: Path, *, title: str | None = None) -> Path:
        if title:
            self._ax.set_title(title)
        self._draw_legends()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        plt = _require_matplotlib()
        try:
            self._fig.savefig(output_path, dpi=self.cfg.dpi, format="png")
        finally:
            plt.close(self._fig)
        return output_path

    def _draw_legends(self) -> None:
        for idx, entry in enumerate(self._legends):
            legend = entry.legend
            top = 0.98 - idx * 0.12
            self._ax.text(0.02, top, legend.title, transform=self._ax.transAxes, fontsize=7, va="top", zorder=6)
            width = 0.25 / len(legend.swatches)
            for step, swatch in enumerate(legend.swatches):
                self._ax.add_patch(
                    _rectangle(
                        (0.02 + step * width, top - 0.06),
                        width,
                        0.025,
                        color=(swatch.r / 255, swatch.g / 255, swatch.b / 255),
                        alpha=swatch.alpha if swatch.alpha is not None else 1.0,
                        transform=self._ax.transAxes,
                    )
                )
            self._ax.text(0.02, top - 0.065, legend.min_label, transform=self._ax.transAxes, fontsize=6, va="top")
            self._ax.text(
                0.27, top - 0.065, legend.max_label, transform=self._ax.transAxes, fontsize=6, va="top", ha="right"
            )


def css_to_mpl(color: str) -> tuple[float, ...] | str:
    """Convert `rgb(r,g,b)` / `rgba(r,g,b,a)` to a matplotlib color tuple.

    Anything else (hex, named colors) is passed through unchanged.
    """
    match = _CSS_RGB_RE.match(color.strip())
    if match is None:
        return color
    r, g, b = (int(match.group(i)) / 255 for i in (1, 2, 3))
    if match.group(4) is not None:
        return (r, g, b, float(match.group(4)))
    return (r, g, b)


def _rectangle(xy: tuple[float, float], width: float, height: float, **kwargs: Any) -> Any:
    from matplotlib.patches import Rectangle

    return Rectangle(xy, width, height, **kwargs)


@lru_cache(maxsize=1)
def _require_matplotlib() -> Any:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for map rendering") from exc
    return plt
