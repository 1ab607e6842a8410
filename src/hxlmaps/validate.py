"""Offline validation of a map configuration."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable
from urllib.parse import urlparse

from .codes import iso3_to_iso2
from .config import AppConfig, LayerConfig, MapConfig, load_map_config
from .models import AggregateType, LayerType
from .util import format_code_list


_KNOWN_STYLE_KEYS = frozenset({"stroke", "weight"})


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Checks a map configuration without touching the network."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def run(self, map_path: Path) -> ValidationReport:
        report = ValidationReport()
        map_config = self._load_map_config(report, map_path)
        if map_config is None:
            return report

        report.add_info(f"Map '{map_config.title or map_path.name}' declares {len(map_config.layers)} layer(s)")
        if not map_config.layers:
            report.add_error("Map config has no layers")
        self._validate_layer_names(report, map_config.layers)
        for idx, layer in enumerate(map_config.layers):
            self._validate_layer(report, idx, layer)
        self._validate_cod_layers(report, map_config)
        return report

    def _load_map_config(self, report: ValidationReport, map_path: Path) -> MapConfig | None:
        try:
            return load_map_config(map_path)
        except FileNotFoundError as exc:
            report.add_error(str(exc))
        except Exception as exc:
            report.add_error(f"Failed parsing map config '{map_path}': {exc}")
        return None

    def _validate_layer_names(self, report: ValidationReport, layers: Iterable[LayerConfig]) -> None:
        counts = Counter(layer.name or layer.url for layer in layers)
        duplicates = sorted(name for name, count in counts.items() if count > 1)
        if duplicates:
            report.add_warning(
                f"Duplicate layer names share one layer-control entry: {format_code_list(duplicates)}"
            )

    def _validate_layer(self, report: ValidationReport, idx: int, layer: LayerConfig) -> None:
        label = f"layers[{idx}]"
        parsed = urlparse(layer.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            report.add_warning(f"{label}: url '{layer.url}' is not an http(s) URL")

        if layer.type in (LayerType.POINTS, LayerType.HEAT):
            if layer.admin_level is not None:
                report.add_info(f"{label}: adminLevel is ignored for {layer.type.value} layers")
            if layer.aggregate_type is not None or layer.aggregate_column is not None:
                report.add_info(f"{label}: aggregation settings are ignored for {layer.type.value} layers")

        if layer.aggregate_type is AggregateType.COUNT and layer.aggregate_column is not None:
            report.add_warning(f"{label}: aggregateColumn is ignored when aggregateType is 'count'")

        unknown_style = sorted(set(layer.style) - _KNOWN_STYLE_KEYS)
        if unknown_style:
            report.add_warning(f"{label}: unknown style keys: {format_code_list(unknown_style)}")

    def _validate_cod_layers(self, report: ValidationReport, map_config: MapConfig) -> None:
        unknown = sorted({cod.country for cod in map_config.cod_layers if iso3_to_iso2(cod.country) is None})
        if unknown:
            report.add_error(f"codLayers reference unknown countries: {format_code_list(unknown)}")
        if map_config.cod_layers:
            report.add_info(f"{len(map_config.cod_layers)} COD base layer(s) configured")


def format_report_lines(report: ValidationReport) -> Iterable[str]:
    for info in report.infos:
        yield f"[INFO] {info}"
    for warning in report.warnings:
        yield f"[WARN] {warning}"
    for error in report.errors:
        yield f"[ERROR] {error}"
    if report.ok:
        yield "[OK] Validation completed with no errors."
