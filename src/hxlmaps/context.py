"""Process-scoped services shared by every layer of a map."""

from __future__ import annotations

from dataclasses import dataclass

from .boundaries import BoundaryCache
from .config import AppConfig
from .fetch import HttpClient
from .hxl import DatasetLoader, FetchJson


@dataclass(slots=True)
class MapContext:
    """Owns the HTTP client, dataset loader and boundary cache.

    Create one per application run and pass it to every layer; the boundary
    cache it holds is the only state shared between layers.
    """

    cfg: AppConfig
    datasets: DatasetLoader
    boundaries: BoundaryCache
    http: HttpClient | None = None

    @classmethod
    def create(cls, cfg: AppConfig, *, fetch_json: FetchJson | None = None) -> MapContext:
        http: HttpClient | None = None
        if fetch_json is None:
            http = HttpClient(cfg.http)
            fetch_json = http.fetch_json
        return cls(
            cfg=cfg,
            datasets=DatasetLoader(fetch_json, cfg.datasets.proxy_url),
            boundaries=BoundaryCache(
                fetch_json,
                service_url=cfg.boundaries.service_url,
                swap_axes=cfg.boundaries.swap_axes,
            ),
            http=http,
        )

    def close(self) -> None:
        if self.http is not None:
            self.http.close()
