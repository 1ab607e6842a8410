"""Tests for offline map configuration validation."""

import json

from hxlmaps.config import AppConfig
from hxlmaps.validate import ValidationReport, Validator, format_report_lines


def _write_map(tmp_path, payload):
    path = tmp_path / "map.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_valid_map(tmp_path):
    path = _write_map(
        tmp_path,
        {
            "title": "Mali",
            "layers": [{"url": "https://example.org/3w.csv", "name": "3W"}],
            "codLayers": [{"country": "MLI"}],
        },
    )

    report = Validator(AppConfig.defaults()).run(path)

    assert report.ok
    assert report.warnings == []
    assert list(format_report_lines(report))[-1] == "[OK] Validation completed with no errors."


def test_missing_file(tmp_path):
    report = Validator(AppConfig.defaults()).run(tmp_path / "missing.json")
    assert not report.ok
    assert "not found" in report.errors[0]


def test_unparseable_map(tmp_path):
    path = _write_map(tmp_path, {"layers": [{"url": "u", "type": "choropleth"}]})
    report = Validator(AppConfig.defaults()).run(path)
    assert not report.ok
    assert "choropleth" in report.errors[0]


def test_empty_layers_is_an_error(tmp_path):
    report = Validator(AppConfig.defaults()).run(_write_map(tmp_path, {"layers": []}))
    assert report.errors == ["Map config has no layers"]


def test_warnings_for_suspicious_layers(tmp_path):
    path = _write_map(
        tmp_path,
        {
            "layers": [
                {"url": "https://example.org/a.csv", "name": "Same"},
                {"url": "ftp://example.org/b.csv", "name": "Same"},
                {"url": "https://example.org/c.csv", "aggregateType": "count", "aggregateColumn": "#reached"},
                {"url": "https://example.org/d.csv", "style": {"dashArray": "4"}},
            ],
            "codLayers": [{"country": "XXX"}],
        },
    )

    report = Validator(AppConfig.defaults()).run(path)

    assert not report.ok
    assert report.errors == ["codLayers reference unknown countries: XXX"]
    assert len(report.warnings) == 4
    assert any("Duplicate layer names" in warning for warning in report.warnings)


def test_format_report_lines_order():
    report = ValidationReport()
    report.add_info("i")
    report.add_warning("w")
    report.add_error("e")
    assert list(format_report_lines(report)) == ["[INFO] i", "[WARN] w", "[ERROR] e"]
