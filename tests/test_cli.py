"""Tests for the command line entrypoint."""

import json

import pytest

from conftest import PROXY_URL, SERVICE_URL
from hxlmaps import cli

THREE_W_URL = "https://example.org/3w.csv"


@pytest.fixture
def workspace(tmp_path, monkeypatch, fake_fetch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"datasets:\n  proxy_url: {PROXY_URL}\nboundaries:\n  service_url: {SERVICE_URL}\n",
        encoding="utf-8",
    )

    class FakeClient:
        def __init__(self, cfg):
            self.fetch_json = fake_fetch

        def close(self):
            pass

    monkeypatch.setattr("hxlmaps.context.HttpClient", FakeClient)
    return tmp_path


def _write_map(workspace, payload):
    path = workspace / "map.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def _args(command, workspace, map_path, *extra):
    return [command, "--config", str(workspace / "config.yaml"), "--map", map_path, *extra]


def test_validate_command(workspace):
    ok_map = _write_map(workspace, {"layers": [{"url": THREE_W_URL}]})
    assert cli.main(_args("validate", workspace, ok_map)) == 0

    bad_map = _write_map(workspace, {"layers": []})
    assert cli.main(_args("validate", workspace, bad_map)) == 1


def test_render_command_writes_outputs(workspace, fake_fetch, three_w_rows, mali_admin1):
    fake_fetch.add_dataset(THREE_W_URL, three_w_rows)
    fake_fetch.add_country("MLI", {"Admin1": mali_admin1})
    map_path = _write_map(workspace, {"title": "Mali", "layers": [{"url": THREE_W_URL, "name": "Mali 3W"}]})

    assert cli.main(_args("render", workspace, map_path)) == 0

    assert (workspace / "build" / "map.png").exists()
    assert (workspace / "build" / "legends" / "legend_01_mali-3w.png").exists()
    summary = json.loads((workspace / "build" / "map.json").read_text(encoding="utf-8"))
    assert summary["ok"] is True
    assert summary["layers"][0]["state"] == "ready"


def test_render_command_fails_without_data(workspace, fake_fetch):
    fake_fetch.add_dataset(THREE_W_URL, RuntimeError("500 Internal Server Error"))
    map_path = _write_map(workspace, {"layers": [{"url": THREE_W_URL}]})

    assert cli.main(_args("render", workspace, map_path)) == 1

    summary = json.loads((workspace / "build" / "map.json").read_text(encoding="utf-8"))
    assert summary["message"] == "No map data loaded"
    assert not (workspace / "build" / "map.png").exists()


def test_resolve_command(workspace, fake_fetch, three_w_rows):
    fake_fetch.add_dataset(THREE_W_URL, three_w_rows)
    map_path = _write_map(workspace, {"layers": [{"url": THREE_W_URL}, {"url": "https://example.org/gone.csv"}]})
    output = workspace / "resolved.json"

    assert cli.main(_args("resolve", workspace, map_path, "--output", str(output))) == 0

    resolved = json.loads(output.read_text(encoding="utf-8"))
    assert resolved[0]["adminLevel"] == "#adm1"
    assert resolved[0]["aggregateColumn"] == "#reached"
    assert "error" in resolved[1]


def test_map_argument_is_required():
    with pytest.raises(SystemExit):
        cli.main(["render"])
