"""CLI entrypoint for hxlmaps."""

from __future__ import annotations

import argparse
import asyncio
import logging
import re
from pathlib import Path
from typing import Any, Sequence

from .config import AppConfig, MapConfig, load_config, load_map_config
from .context import MapContext
from .orchestrator import MapOrchestrator, MapState
from .render import MatplotlibCanvas
from .resolve import resolve_layer_config
from .util import setup_logging, write_json
from .validate import Validator, format_report_lines

LOGGER = logging.getLogger("hxlmaps.cli")

_DEFAULT_CONFIG = "config.yaml"
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hxlmaps",
        description="Render HXL datasets as map layers.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default=_DEFAULT_CONFIG, help="Path to YAML config.")
        p.add_argument("--map", required=True, help="Path to JSON or YAML map configuration.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    render_p = subparsers.add_parser("render", help="Load every layer and render the map to PNG.")
    add_common(render_p)
    render_p.add_argument("--output", default=None, help="Override render.output_png.")

    resolve_p = subparsers.add_parser(
        "resolve",
        help="Fetch each dataset and write the fully resolved layer configs as JSON.",
    )
    add_common(resolve_p)
    resolve_p.add_argument("--output", default=None, help="Write JSON here instead of logging it.")

    validate_p = subparsers.add_parser("validate", help="Validate the map configuration offline.")
    add_common(validate_p)

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    config_path = Path(args.config)
    if args.config == _DEFAULT_CONFIG and not config_path.exists():
        cfg = AppConfig.defaults()
    else:
        cfg = load_config(config_path)
    setup_logging(cfg.paths.logs_dir / "hxlmaps.log", verbose=args.verbose)
    if cfg.source_path is None:
        LOGGER.info("No %s found; using built-in defaults.", _DEFAULT_CONFIG)
    return cfg


def _run_validate(cfg: AppConfig, *, map_path: Path) -> int:
    report = Validator(cfg).run(map_path)
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


async def _load_map(cfg: AppConfig, map_config: MapConfig) -> MapState:
    context = MapContext.create(cfg)
    try:
        return await MapOrchestrator(map_config, context).load()
    finally:
        context.close()


def _run_render(cfg: AppConfig, *, map_path: Path, output: str | None) -> int:
    try:
        map_config = load_map_config(map_path)
    except Exception as exc:
        LOGGER.error("Failed loading map config '%s': %s", map_path, exc)
        return 1

    state = asyncio.run(_load_map(cfg, map_config))
    for error in state.errors:
        LOGGER.warning(error)

    write_json(cfg.render.summary_json, state.summary())
    LOGGER.info("Map summary written to %s", cfg.render.summary_json)
    if not state.ok:
        LOGGER.error("%s", state.message)
        return 1

    for idx, overlay in enumerate(state.overlays, start=1):
        if overlay.legend is None:
            continue
        legend_path = cfg.render.legends_dir / f"legend_{idx:02d}_{_slug(overlay.name)}.png"
        overlay.legend.render_png(legend_path)
        LOGGER.info("Legend for %s written to %s", overlay.name, legend_path)

    output_path = Path(output) if output else cfg.render.output_png
    canvas = MatplotlibCanvas(cfg.render)
    state.render(canvas)
    canvas.save(output_path, title=map_config.title)
    LOGGER.info("Map written to %s", output_path)
    return 0


async def _resolve_layers(cfg: AppConfig, map_config: MapConfig) -> list[dict[str, Any]]:
    context = MapContext.create(cfg)

    async def resolve_one(idx: int) -> dict[str, Any]:
        layer_config = map_config.layers[idx]
        dataset = await context.datasets.load(layer_config.url)
        return resolve_layer_config(layer_config, dataset.columns, cfg.layers).to_dict()

    try:
        results = await asyncio.gather(
            *(resolve_one(idx) for idx in range(len(map_config.layers))),
            return_exceptions=True,
        )
    finally:
        context.close()

    resolved: list[dict[str, Any]] = []
    for layer_config, result in zip(map_config.layers, results):
        if isinstance(result, BaseException):
            LOGGER.error("Cannot resolve layer %s: %s", layer_config.name or layer_config.url, result)
            resolved.append({"url": layer_config.url, "error": str(result)})
        else:
            resolved.append(result)
    return resolved


def _run_resolve(cfg: AppConfig, *, map_path: Path, output: str | None) -> int:
    try:
        map_config = load_map_config(map_path)
    except Exception as exc:
        LOGGER.error("Failed loading map config '%s': %s", map_path, exc)
        return 1

    resolved = asyncio.run(_resolve_layers(cfg, map_config))
    if output:
        write_json(Path(output), resolved)
        LOGGER.info("Resolved layer configs written to %s", output)
    else:
        for item in resolved:
            LOGGER.info("%s", item)
    return 0 if any("error" not in item for item in resolved) else 1


def _slug(name: str) -> str:
    slug = _SLUG_RE.sub("-", name.lower()).strip("-")
    return slug[:40] or "layer"


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    map_path = Path(args.map)
    if command == "render":
        return _run_render(cfg, map_path=map_path, output=args.output)
    if command == "resolve":
        return _run_resolve(cfg, map_path=map_path, output=args.output)
    if command == "validate":
        return _run_validate(cfg, map_path=map_path)
    LOGGER.error("Unknown command: %s", command)
    return 2


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
