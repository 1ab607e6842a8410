"""Typed configuration loaders for `config.yaml` and map configurations."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .colors import DEFAULT_COLOR_MAP, ColorMap, parse_color_map
from .hxl import TagPattern
from .models import AggregateType, LayerType, admin_level


_DEFAULT_USER_AGENT = "hxlmaps/0.3 (python-requests)"
_DEFAULT_PROXY_URL = "https://proxy.hxlstandard.org/data.json"
_DEFAULT_BOUNDARY_SERVICE_URL = "https://gistmaps.itos.uga.edu/arcgis/rest/services/COD_External"


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _opt_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    return _str(value, field_name)


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _alpha(value: Any, field_name: str) -> float:
    alpha = _float(value, field_name)
    if alpha <= 0 or alpha > 1:
        raise ValueError(f"'{field_name}' must be in (0, 1]")
    return alpha


def _style(value: Any, field_name: str) -> dict[str, Any]:
    style = dict(_mapping(value, field_name))
    if "stroke" in style:
        style["stroke"] = _bool(style["stroke"], f"{field_name}.stroke")
    if "weight" in style:
        weight = _float(style["weight"], f"{field_name}.weight")
        if weight < 0:
            raise ValueError(f"'{field_name}.weight' must be >= 0")
        style["weight"] = weight
    return style


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


@dataclass(frozen=True, slots=True)
class HttpConfig:
    user_agent: str
    request_timeout_s: float
    max_retries: int
    retry_backoff_s: float
    min_request_interval_s: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> HttpConfig:
        request_timeout_s = _float(raw.get("request_timeout_s", 60), "http.request_timeout_s")
        max_retries = _int(raw.get("max_retries", 3), "http.max_retries")
        retry_backoff_s = _float(raw.get("retry_backoff_s", 1.0), "http.retry_backoff_s")
        min_request_interval_s = _float(
            raw.get("min_request_interval_s", 0.0),
            "http.min_request_interval_s",
        )
        if request_timeout_s <= 0:
            raise ValueError("http.request_timeout_s must be > 0")
        if max_retries < 0:
            raise ValueError("http.max_retries must be >= 0")
        if retry_backoff_s <= 0:
            raise ValueError("http.retry_backoff_s must be > 0")
        if min_request_interval_s < 0:
            raise ValueError("http.min_request_interval_s must be >= 0")
        return cls(
            user_agent=_str(raw.get("user_agent", _DEFAULT_USER_AGENT), "http.user_agent"),
            request_timeout_s=request_timeout_s,
            max_retries=max_retries,
            retry_backoff_s=retry_backoff_s,
            min_request_interval_s=min_request_interval_s,
        )


@dataclass(frozen=True, slots=True)
class DatasetsConfig:
    proxy_url: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> DatasetsConfig:
        return cls(proxy_url=_str(raw.get("proxy_url", _DEFAULT_PROXY_URL), "datasets.proxy_url"))


@dataclass(frozen=True, slots=True)
class BoundariesConfig:
    service_url: str
    swap_axes: bool

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BoundariesConfig:
        return cls(
            service_url=_str(
                raw.get("service_url", _DEFAULT_BOUNDARY_SERVICE_URL),
                "boundaries.service_url",
            ).rstrip("/"),
            swap_axes=_bool(raw.get("swap_axes", True), "boundaries.swap_axes"),
        )


@dataclass(frozen=True, slots=True)
class LayerDefaults:
    color_map: ColorMap = DEFAULT_COLOR_MAP
    alpha: float = 0.5
    unit: str = "entries"
    heat_radius: int = 15
    heat_min_opacity: float = 0.4

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> LayerDefaults:
        color_raw = raw.get("color_map")
        heat = _mapping(raw.get("heat"), "layers.heat")
        heat_radius = _int(heat.get("radius", 15), "layers.heat.radius")
        if heat_radius < 1:
            raise ValueError("layers.heat.radius must be >= 1")
        return cls(
            color_map=parse_color_map(color_raw) if color_raw is not None else DEFAULT_COLOR_MAP,
            alpha=_alpha(raw.get("alpha", 0.5), "layers.alpha"),
            unit=_str(raw.get("unit", "entries"), "layers.unit"),
            heat_radius=heat_radius,
            heat_min_opacity=_alpha(heat.get("min_opacity", 0.4), "layers.heat.min_opacity"),
        )


@dataclass(frozen=True, slots=True)
class RenderConfig:
    width_px: int
    height_px: int
    dpi: int
    output_png: Path
    summary_json: Path
    legends_dir: Path

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> RenderConfig:
        width_px = _int(raw.get("width_px", 1600), "render.width_px")
        height_px = _int(raw.get("height_px", 1200), "render.height_px")
        dpi = _int(raw.get("dpi", 150), "render.dpi")
        if width_px < 1 or height_px < 1 or dpi < 1:
            raise ValueError("render.width_px, render.height_px and render.dpi must be >= 1")
        return cls(
            width_px=width_px,
            height_px=height_px,
            dpi=dpi,
            output_png=_path_from_cfg(raw.get("output_png", "build/map.png"), "render.output_png", root_dir),
            summary_json=_path_from_cfg(
                raw.get("summary_json", "build/map.json"), "render.summary_json", root_dir
            ),
            legends_dir=_path_from_cfg(raw.get("legends_dir", "build/legends"), "render.legends_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class PathsConfig:
    logs_dir: Path

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        return cls(logs_dir=_path_from_cfg(raw.get("logs_dir", "build/logs"), "paths.logs_dir", root_dir))


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path | None
    http: HttpConfig
    datasets: DatasetsConfig
    boundaries: BoundariesConfig
    layers: LayerDefaults
    render: RenderConfig
    paths: PathsConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path | None = None) -> AppConfig:
        root_dir = source_path.parent.resolve() if source_path is not None else Path.cwd()
        return cls(
            source_path=source_path.resolve() if source_path is not None else None,
            http=HttpConfig.from_mapping(_mapping(raw.get("http"), "http")),
            datasets=DatasetsConfig.from_mapping(_mapping(raw.get("datasets"), "datasets")),
            boundaries=BoundariesConfig.from_mapping(_mapping(raw.get("boundaries"), "boundaries")),
            layers=LayerDefaults.from_mapping(_mapping(raw.get("layers"), "layers")),
            render=RenderConfig.from_mapping(_mapping(raw.get("render"), "render"), root_dir),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
        )

    @classmethod
    def defaults(cls) -> AppConfig:
        return cls.from_mapping({})


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)


@dataclass(frozen=True, slots=True)
class LayerConfig:
    """A partially specified HXL layer, as written by the map author."""

    url: str
    type: LayerType | None = None
    admin_level: str | None = None
    aggregate_column: str | None = None
    aggregate_type: AggregateType | None = None
    color_map: ColorMap | None = None
    alpha: float | None = None
    unit: str | None = None
    legend: str | None = None
    name: str | None = None
    cluster: bool = False
    style: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], field_name: str = "layer") -> LayerConfig:
        type_raw = _opt_str(raw.get("type"), f"{field_name}.type")
        layer_type: LayerType | None = None
        if type_raw is not None:
            try:
                layer_type = LayerType(type_raw.lower())
            except ValueError:
                raise ValueError(f"Bad layer type '{type_raw}' for '{field_name}.type'") from None

        level_raw = _opt_str(raw.get("adminLevel"), f"{field_name}.adminLevel")
        level = admin_level(level_raw).tag if level_raw is not None else None

        aggregate_raw = _opt_str(raw.get("aggregateType"), f"{field_name}.aggregateType")
        aggregate_type: AggregateType | None = None
        if aggregate_raw is not None:
            try:
                aggregate_type = AggregateType(aggregate_raw.lower())
            except ValueError:
                raise ValueError(
                    f"Bad aggregate type '{aggregate_raw}' for '{field_name}.aggregateType'"
                ) from None

        aggregate_column = _opt_str(raw.get("aggregateColumn"), f"{field_name}.aggregateColumn")
        if aggregate_column is not None:
            TagPattern.parse(aggregate_column)

        color_raw = raw.get("colorMap")
        alpha_raw = raw.get("alpha")
        style = _style(raw.get("style"), f"{field_name}.style")
        return cls(
            url=_str(raw.get("url"), f"{field_name}.url"),
            type=layer_type,
            admin_level=level,
            aggregate_column=aggregate_column,
            aggregate_type=aggregate_type,
            color_map=parse_color_map(color_raw) if color_raw is not None else None,
            alpha=_alpha(alpha_raw, f"{field_name}.alpha") if alpha_raw is not None else None,
            unit=_opt_str(raw.get("unit"), f"{field_name}.unit"),
            legend=_opt_str(raw.get("legend"), f"{field_name}.legend"),
            name=_opt_str(raw.get("name"), f"{field_name}.name"),
            cluster=_bool(raw.get("cluster", False), f"{field_name}.cluster"),
            style=style,
        )


@dataclass(frozen=True, slots=True)
class CodLayerConfig:
    """A base boundary layer drawn underneath the data layers."""

    country: str
    level: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], field_name: str = "codLayer") -> CodLayerConfig:
        country = _str(raw.get("country"), f"{field_name}.country").upper()
        if len(country) != 3 or not country.isalpha():
            raise ValueError(f"Expected ISO3 code for '{field_name}.country', got '{country}'")
        level_raw = raw.get("level", "#country")
        return cls(country=country, level=admin_level(_str(level_raw, f"{field_name}.level")).tag)


@dataclass(frozen=True, slots=True)
class MapConfig:
    title: str | None
    layers: tuple[LayerConfig, ...]
    cod_layers: tuple[CodLayerConfig, ...] = ()

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> MapConfig:
        layers_raw = raw.get("layers", [])
        if not isinstance(layers_raw, list):
            raise ValueError("Expected list for 'layers'")
        cods_raw = raw.get("codLayers", [])
        if not isinstance(cods_raw, list):
            raise ValueError("Expected list for 'codLayers'")
        return cls(
            title=_opt_str(raw.get("title"), "title"),
            layers=tuple(
                LayerConfig.from_mapping(_mapping(item, f"layers[{idx}]"), f"layers[{idx}]")
                for idx, item in enumerate(layers_raw)
            ),
            cod_layers=tuple(
                CodLayerConfig.from_mapping(_mapping(item, f"codLayers[{idx}]"), f"codLayers[{idx}]")
                for idx, item in enumerate(cods_raw)
            ),
        )


def load_map_config(path: str | Path) -> MapConfig:
    """Load a map configuration from a JSON or YAML file."""
    map_path = Path(path).resolve()
    if not map_path.exists():
        raise FileNotFoundError(f"Map config file not found: {map_path}")
    text = map_path.read_text(encoding="utf-8")
    if map_path.suffix.lower() == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level map config must be a mapping")
    return MapConfig.from_mapping(cast(Mapping[str, Any], raw))
