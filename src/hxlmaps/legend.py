"""Color legends for area layers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from PIL import Image, ImageDraw

from .colors import Color, ColorMap, color_for
from .util import format_number


LEGEND_STEPS = 20


@dataclass(frozen=True, slots=True)
class Legend:
    title: str
    swatches: tuple[Color, ...]
    min_value: float
    max_value: float

    @classmethod
    def build(
        cls,
        *,
        title: str,
        color_map: ColorMap,
        alpha: float,
        min_value: float,
        max_value: float,
    ) -> Legend:
        """Sample the color map from 0% to 100% in 5% steps."""
        swatches = tuple(color_for(step / LEGEND_STEPS, color_map, alpha) for step in range(LEGEND_STEPS + 1))
        return cls(title=title, swatches=swatches, min_value=min_value, max_value=max_value)

    @property
    def min_label(self) -> str:
        return format_number(self.min_value)

    @property
    def max_label(self) -> str:
        return format_number(self.max_value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "swatches": [swatch.css for swatch in self.swatches],
            "min": self.min_label,
            "max": self.max_label,
        }

    def render_png(self, output_path: Path, *, swatch_px: int = 16, padding_px: int = 8) -> Path:
        width = swatch_px * len(self.swatches) + padding_px * 2
        height = swatch_px * 4 + padding_px * 2
        canvas = Image.new("RGBA", (width, height), (255, 255, 255, 255))
        draw = ImageDraw.Draw(canvas)

        draw.text((padding_px, padding_px), self.title, fill=(0, 0, 0, 255))
        top = padding_px + swatch_px + 2
        for idx, swatch in enumerate(self.swatches):
            left = padding_px + idx * swatch_px
            box = Image.new("RGBA", (swatch_px, swatch_px), swatch.rgba_bytes())
            canvas.alpha_composite(box, (left, top))

        label_top = top + swatch_px + 4
        draw.text((padding_px, label_top), self.min_label, fill=(0, 0, 0, 255))
        max_width = draw.textlength(self.max_label)
        draw.text((width - padding_px - max_width, label_top), self.max_label, fill=(0, 0, 0, 255))

        output_path.parent.mkdir(parents=True, exist_ok=True)
        canvas.convert("RGB").save(output_path, format="PNG")
        return output_path
