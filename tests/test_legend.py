"""Tests for area legends."""

from PIL import Image

from hxlmaps.colors import DEFAULT_COLOR_MAP
from hxlmaps.legend import Legend


def _legend(**overrides):
    params = dict(title="Number of entries", color_map=DEFAULT_COLOR_MAP, alpha=0.5, min_value=0.0, max_value=1500.0)
    params.update(overrides)
    return Legend.build(**params)


def test_swatches_step_by_five_percent():
    legend = _legend()
    assert len(legend.swatches) == 21
    assert legend.swatches[0].css == "rgba(128,208,199,0.5)"
    assert legend.swatches[-1].css == "rgba(19,84,122,0.5)"


def test_labels_and_dict():
    data = _legend(min_value=2.5).to_dict()
    assert data["title"] == "Number of entries"
    assert (data["min"], data["max"]) == ("2.5", "1,500")
    assert len(data["swatches"]) == 21


def test_render_png(tmp_path):
    path = _legend().render_png(tmp_path / "legends" / "legend.png")
    with Image.open(path) as image:
        assert image.format == "PNG"
        assert image.size == (16 * 21 + 16, 16 * 4 + 16)
