"""Fill in unset layer configuration from a dataset's hashtag columns."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .colors import ColorMap
from .config import LayerConfig, LayerDefaults
from .hxl import Column, match_list
from .models import ADMIN_LEVEL_SEARCH_ORDER, AggregateType, LayerType


_LOGGER = logging.getLogger("hxlmaps.resolve")

LAT_PATTERN = "#geo+lat"
LON_PATTERN = "#geo+lon"

# Quantity-like hashtags, in order of preference for summing.
SUM_CANDIDATE_PATTERNS: tuple[str, ...] = (
    "#reached",
    "#targeted",
    "#inneed",
    "#affected",
    "#population",
    "#value",
    "#indicator+num",
)


class LayerConfigError(ValueError):
    """Raised when a layer cannot be placed on a map with the data given."""


@dataclass(frozen=True, slots=True)
class ResolvedLayerConfig:
    url: str
    type: LayerType
    name: str
    color_map: ColorMap
    alpha: float
    unit: str
    legend: str
    admin_level: str | None = None
    aggregate_type: AggregateType | None = None
    aggregate_column: str | None = None
    cluster: bool = False
    style: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "type": self.type.value,
            "name": self.name,
            "adminLevel": self.admin_level,
            "aggregateType": self.aggregate_type.value if self.aggregate_type is not None else None,
            "aggregateColumn": self.aggregate_column,
            "colorMap": [stop.to_dict() for stop in self.color_map],
            "alpha": self.alpha,
            "unit": self.unit,
            "legend": self.legend,
            "cluster": self.cluster,
            "style": dict(self.style),
        }


def resolve_layer_config(
    config: LayerConfig,
    columns: Sequence[Column],
    defaults: LayerDefaults | None = None,
) -> ResolvedLayerConfig:
    """Return a fully specified layer config; explicit values always win."""
    defaults = defaults or LayerDefaults()
    layer_type, level = _resolve_type(config, columns)

    aggregate_type: AggregateType | None = None
    aggregate_column: str | None = None
    if layer_type is LayerType.AREAS:
        aggregate_type, aggregate_column = _resolve_aggregation(config, columns)

    unit = config.unit or defaults.unit
    resolved = ResolvedLayerConfig(
        url=config.url,
        type=layer_type,
        name=config.name or config.url,
        color_map=config.color_map if config.color_map is not None else defaults.color_map,
        alpha=config.alpha if config.alpha is not None else defaults.alpha,
        unit=unit,
        legend=config.legend or f"Number of {unit}",
        admin_level=level,
        aggregate_type=aggregate_type,
        aggregate_column=aggregate_column,
        cluster=config.cluster,
        style=dict(config.style),
    )
    _LOGGER.debug("Resolved layer %s: %s", resolved.name, resolved.to_dict())
    return resolved


def _resolve_type(config: LayerConfig, columns: Sequence[Column]) -> tuple[LayerType, str | None]:
    has_points = match_list(LAT_PATTERN, columns) and match_list(LON_PATTERN, columns)

    if config.type in (LayerType.POINTS, LayerType.HEAT):
        if not has_points:
            raise LayerConfigError(
                f"Layer type '{config.type.value}' needs {LAT_PATTERN} and {LON_PATTERN} columns"
            )
        return config.type, config.admin_level

    if config.type is None and has_points:
        return LayerType.POINTS, config.admin_level

    if config.admin_level is not None:
        if not match_list(f"{config.admin_level}+code", columns):
            raise LayerConfigError(f"Dataset has no {config.admin_level}+code column")
        return LayerType.AREAS, config.admin_level

    for tag in ADMIN_LEVEL_SEARCH_ORDER:
        if match_list(f"{tag}+code", columns):
            return LayerType.AREAS, tag

    if config.type is LayerType.AREAS:
        raise LayerConfigError("Areas layer needs an admin-level column with a +code attribute")
    raise LayerConfigError("Cannot guess layer type from hashtags: no geocoding columns")


def _resolve_aggregation(
    config: LayerConfig,
    columns: Sequence[Column],
) -> tuple[AggregateType, str | None]:
    if config.aggregate_type is AggregateType.COUNT:
        return AggregateType.COUNT, None

    if config.aggregate_column is not None:
        if not match_list(config.aggregate_column, columns):
            raise LayerConfigError(f"Dataset has no {config.aggregate_column} column to sum")
        return AggregateType.SUM, config.aggregate_column

    for pattern in SUM_CANDIDATE_PATTERNS:
        if match_list(pattern, columns):
            return AggregateType.SUM, pattern

    if config.aggregate_type is AggregateType.SUM:
        raise LayerConfigError("aggregateType 'sum' requested but no numeric column found")
    return AggregateType.COUNT, None
