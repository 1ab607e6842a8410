"""
Pytest fixtures: an in-memory stand-in for the HXL proxy and boundary service.
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

import pytest

from hxlmaps.config import AppConfig
from hxlmaps.context import MapContext

PROXY_URL = "https://proxy.test/data.json"
SERVICE_URL = "https://boundaries.test/COD_External"

LAYER_IDS = {"Admin0": 0, "Admin1": 1, "Admin2": 2}


class FakeFetch:
    """Async JSON fetcher serving canned payloads and recording every call.

    Dataset requests through the proxy are keyed by their `url` parameter;
    everything else is keyed by the request URL. An exception stored as a
    payload is raised instead of returned.
    """

    def __init__(self) -> None:
        self.responses: dict[str, Any] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        params = dict(params or {})
        self.calls.append((url, params))
        await asyncio.sleep(0)
        key = params["url"] if url == PROXY_URL else url
        if key not in self.responses:
            raise RuntimeError(f"404 Not Found: {key}")
        payload = self.responses[key]
        if isinstance(payload, Exception):
            raise payload
        return payload

    def add_dataset(self, url: str, rows: list[list[Any]] | Exception) -> None:
        self.responses[url] = rows

    def add_country(self, iso3: str, levels: Mapping[str, list[dict[str, Any]] | Exception]) -> None:
        """Publish boundary layers for one country, keyed by layer name (``Admin1``)."""
        self.responses[f"{SERVICE_URL}/{iso3}_pcode/MapServer"] = {
            "layers": [{"id": LAYER_IDS[name], "name": name} for name in levels]
        }
        for name, features in levels.items():
            url = f"{SERVICE_URL}/{iso3}_pcode/MapServer/{LAYER_IDS[name]}/query"
            if isinstance(features, Exception):
                self.responses[url] = features
            else:
                self.responses[url] = {"type": "FeatureCollection", "features": features}

    def count(self, url: str) -> int:
        return sum(1 for called, _ in self.calls if called == url)


def square(code: str, name: str, *, lon: float, lat: float, level: int = 1, size: float = 1.0) -> dict[str, Any]:
    """GeoJSON feature for a square with its south-west corner at (lon, lat)."""
    ring = [[lon, lat], [lon + size, lat], [lon + size, lat + size], [lon, lat + size], [lon, lat]]
    return {
        "type": "Feature",
        "properties": {f"admin{level}Pcode": code, f"admin{level}Name_en": name},
        "geometry": {"type": "Polygon", "coordinates": [ring]},
    }


@pytest.fixture
def app_cfg(tmp_path) -> AppConfig:
    return AppConfig.from_mapping(
        {
            "datasets": {"proxy_url": PROXY_URL},
            "boundaries": {"service_url": SERVICE_URL},
            "http": {"retry_backoff_s": 0.01},
        },
        tmp_path / "config.yaml",
    )


@pytest.fixture
def fake_fetch() -> FakeFetch:
    return FakeFetch()


@pytest.fixture
def context(app_cfg, fake_fetch) -> MapContext:
    return MapContext.create(app_cfg, fetch_json=fake_fetch)


@pytest.fixture
def three_w_rows() -> list[list[Any]]:
    return [
        ["Who's doing what where"],
        ["Province", "P-code", "Organisation", "People reached"],
        ["#adm1+name", "#adm1+code", "#org", "#reached"],
        ["Kayes", "ML01", "NGO A", "100"],
        ["Kayes", "ML01", "NGO B", "50"],
        ["Koulikoro", "ML02", "NGO A", "25"],
    ]


@pytest.fixture
def points_rows() -> list[list[Any]]:
    return [
        ["Site", "Latitude", "Longitude"],
        ["#loc+name", "#geo+lat", "#geo+lon"],
        ["Bamako & <Districts>", "12.65", "-8.0"],
        ["Mopti", "14.49", "-4.19"],
        ["Unknown", "", ""],
        ["Off the map", "91", "0"],
    ]


@pytest.fixture
def mali_admin1() -> list[dict[str, Any]]:
    return [
        square("MLI01", "Kayes", lon=-12.0, lat=13.0),
        square("MLI02", "Koulikoro", lon=-9.0, lat=13.0),
        square("MLI03", "Sikasso", lon=-7.0, lat=10.0),
    ]


@pytest.fixture
def mali_admin0() -> list[dict[str, Any]]:
    return [square("MLI", "Mali", lon=-12.0, lat=10.0, level=0, size=8.0)]
