"""Tests for the boundary cache and GeoJSON ingestion."""

import asyncio

import pytest

from conftest import SERVICE_URL, square
from hxlmaps.boundaries import BoundaryCache, BoundaryError, ingest_geojson
from hxlmaps.models import admin_level

METADATA_URL = f"{SERVICE_URL}/MLI_pcode/MapServer"
ADMIN1_URL = f"{SERVICE_URL}/MLI_pcode/MapServer/1/query"


@pytest.fixture
def cache(fake_fetch):
    return BoundaryCache(fake_fetch, service_url=SERVICE_URL + "/")


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_fetch(cache, fake_fetch, mali_admin1):
    fake_fetch.add_country("MLI", {"Admin0": [], "Admin1": mali_admin1})

    first = cache.load_level("MLI", "#adm1")
    second = cache.load_level("mli", "adm1")
    assert first is second
    results = await asyncio.gather(first, second, cache.load_level("MLI", "#adm1"))

    assert results[0] is results[1] is results[2]
    assert fake_fetch.count(METADATA_URL) == 1
    assert fake_fetch.count(ADMIN1_URL) == 1
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_levels_share_country_metadata(cache, fake_fetch, mali_admin0, mali_admin1):
    fake_fetch.add_country("MLI", {"Admin0": mali_admin0, "Admin1": mali_admin1})

    await asyncio.gather(cache.load_level("MLI", "#adm1"), cache.load_level("MLI", "#country"))

    assert fake_fetch.count(METADATA_URL) == 1
    assert len(cache) == 2


@pytest.mark.asyncio
async def test_geometry_request_parameters(cache, fake_fetch, mali_admin1):
    fake_fetch.add_country("MLI", {"Admin1": mali_admin1})

    await cache.load_level("MLI", "#adm1")

    assert (METADATA_URL, {"f": "json"}) in fake_fetch.calls
    assert (ADMIN1_URL, {"where": "1=1", "outFields": "*", "f": "geojson"}) in fake_fetch.calls


@pytest.mark.asyncio
async def test_coordinates_are_swapped_to_lat_lon(cache, fake_fetch):
    fake_fetch.add_country("MLI", {"Admin1": [square("MLI01", "Kayes", lon=-12.0, lat=13.0)]})

    boundary_set = await cache.load_level("MLI", "#adm1")

    feature = boundary_set.features[0]
    assert feature.code == "MLI01"
    assert feature.name == "Kayes"
    assert feature.polygons[0][0][0] == (13.0, -12.0)
    assert feature.polygons[0][0][1] == (13.0, -11.0)


@pytest.mark.asyncio
async def test_failures_are_cached(cache, fake_fetch, mali_admin1):
    fake_fetch.add_country("MLI", {"Admin1": RuntimeError("503 Service Unavailable")})

    with pytest.raises(BoundaryError, match="Cannot load #adm1 boundaries for MLI"):
        await cache.load_level("MLI", "#adm1")
    fake_fetch.add_country("MLI", {"Admin1": mali_admin1})
    with pytest.raises(BoundaryError):
        await cache.load_level("MLI", "#adm1")

    assert fake_fetch.count(ADMIN1_URL) == 1


@pytest.mark.asyncio
async def test_clear_forgets_failures(cache, fake_fetch, mali_admin1):
    fake_fetch.add_country("MLI", {"Admin1": RuntimeError("503 Service Unavailable")})
    with pytest.raises(BoundaryError):
        await cache.load_level("MLI", "#adm1")

    cache.clear()
    fake_fetch.add_country("MLI", {"Admin1": mali_admin1})
    boundary_set = await cache.load_level("MLI", "#adm1")

    assert len(boundary_set.features) == 3


@pytest.mark.asyncio
async def test_unpublished_level(cache, fake_fetch, mali_admin0):
    fake_fetch.add_country("MLI", {"Admin0": mali_admin0})

    with pytest.raises(BoundaryError, match="No Admin2 boundaries published for MLI"):
        await cache.load_level("MLI", "#adm2")


@pytest.mark.asyncio
async def test_service_error_payload(cache, fake_fetch):
    fake_fetch.responses[METADATA_URL] = {"error": {"code": 404, "message": "Service not found"}}

    with pytest.raises(BoundaryError, match="Boundary service error for MLI"):
        await cache.load_level("MLI", "#adm1")


def test_ingest_multipolygon_and_skips_bad_features():
    payload = {
        "type": "FeatureCollection",
        "features": [
            {
                "properties": {"admin2Pcode": "ML0101", "admin2Name_en": "Kayes"},
                "geometry": {
                    "type": "MultiPolygon",
                    "coordinates": [
                        [[[1, 2], [3, 4], [5, 6], [1, 2]]],
                        [[[7, 8], ["x", 9], [10, 11], [7, 8]]],
                    ],
                },
            },
            {"properties": {"admin2Pcode": "ML0102"}, "geometry": {"type": "Point", "coordinates": [1, 2]}},
            "not a feature",
        ],
    }

    boundary_set = ingest_geojson(payload, country="MLI", level=admin_level("#adm2"), swap_axes=False)

    assert len(boundary_set.features) == 1
    feature = boundary_set.features[0]
    assert len(feature.polygons) == 2
    assert feature.polygons[1][0] == ((7.0, 8.0), (10.0, 11.0), (7.0, 8.0))
    assert feature.code == "ML0101"


def test_ingest_rejects_payload_without_features():
    with pytest.raises(BoundaryError):
        ingest_geojson({"type": "FeatureCollection"}, country="MLI", level=admin_level("#adm1"))
