"""Color maps and piecewise-linear gradient interpolation."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Mapping, Sequence


_HEX_COLOR_RE = re.compile(r"^#?([0-9A-Fa-f]{6})$")


class ColorMapError(ValueError):
    """Raised for a color map that cannot be interpolated."""


@dataclass(frozen=True, slots=True)
class RGB:
    r: int
    g: int
    b: int

    @classmethod
    def parse(cls, raw: Any, field_name: str = "color") -> RGB:
        if isinstance(raw, RGB):
            return raw
        if isinstance(raw, str):
            match = _HEX_COLOR_RE.match(raw.strip())
            if match is None:
                raise ColorMapError(f"Expected 6 hex digits for '{field_name}', got '{raw}'")
            digits = match.group(1)
            return cls(int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))
        if isinstance(raw, Mapping):
            return cls(
                r=_channel(raw.get("r"), f"{field_name}.r"),
                g=_channel(raw.get("g"), f"{field_name}.g"),
                b=_channel(raw.get("b"), f"{field_name}.b"),
            )
        raise ColorMapError(f"Expected hex string or {{r, g, b}} mapping for '{field_name}'")

    @property
    def hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"


@dataclass(frozen=True, slots=True)
class Color:
    r: int
    g: int
    b: int
    alpha: float | None = None

    @property
    def css(self) -> str:
        if self.alpha is not None:
            return f"rgba({self.r},{self.g},{self.b},{self.alpha:g})"
        return f"rgb({self.r},{self.g},{self.b})"

    def rgba_bytes(self) -> tuple[int, int, int, int]:
        alpha = 1.0 if self.alpha is None else self.alpha
        return (self.r, self.g, self.b, max(0, min(255, round(alpha * 255))))

    def __str__(self) -> str:
        return self.css


@dataclass(frozen=True, slots=True)
class ColorStop:
    percentage: float
    color: RGB

    def to_dict(self) -> dict[str, Any]:
        return {"percentage": self.percentage, "color": self.color.hex}


ColorMap = tuple[ColorStop, ...]

DEFAULT_COLOR_MAP: ColorMap = (
    ColorStop(0.0, RGB(0x80, 0xD0, 0xC7)),
    ColorStop(1.0, RGB(0x13, 0x54, 0x7A)),
)


def _channel(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ColorMapError(f"Expected integer 0-255 for '{field_name}'")
    if value < 0 or value > 255:
        raise ColorMapError(f"'{field_name}' must be between 0 and 255")
    return value


def parse_color_map(raw: Any) -> ColorMap:
    """Validate a list of ``{percentage, color}`` stops into a color map."""
    if isinstance(raw, Mapping) or not isinstance(raw, Sequence) or isinstance(raw, str):
        raise ColorMapError("Expected a list of color stops")
    if len(raw) < 2:
        raise ColorMapError("A color map needs at least 2 stops")

    stops: list[ColorStop] = []
    for idx, item in enumerate(raw):
        if isinstance(item, ColorStop):
            stop = item
        elif isinstance(item, Mapping):
            percentage = item.get("percentage")
            if isinstance(percentage, bool) or not isinstance(percentage, (int, float)):
                raise ColorMapError(f"Expected number for 'colorMap[{idx}].percentage'")
            stop = ColorStop(float(percentage), RGB.parse(item.get("color"), f"colorMap[{idx}].color"))
        elif isinstance(item, Sequence) and not isinstance(item, str) and len(item) == 2:
            percentage, color = item
            if isinstance(percentage, bool) or not isinstance(percentage, (int, float)):
                raise ColorMapError(f"Expected number for 'colorMap[{idx}][0]'")
            stop = ColorStop(float(percentage), RGB.parse(color, f"colorMap[{idx}][1]"))
        else:
            raise ColorMapError(f"Invalid color stop at index {idx}")

        if not 0.0 <= stop.percentage <= 1.0:
            raise ColorMapError(f"colorMap[{idx}].percentage must be between 0 and 1")
        if stops and stop.percentage < stops[-1].percentage:
            raise ColorMapError("Color stop percentages must be non-decreasing")
        stops.append(stop)
    return tuple(stops)


def color_for(percentage: float, color_map: Sequence[ColorStop], alpha: float | None = None) -> Color:
    """Interpolate a color for `percentage` (0.0 to 1.0) along `color_map`.

    Channels are floored, so results can sit one unit below the exact blend.
    """
    if len(color_map) < 2:
        raise ColorMapError("A color map needs at least 2 stops")

    idx = 1
    while idx < len(color_map) - 1 and percentage >= color_map[idx].percentage:
        idx += 1
    lower = color_map[idx - 1]
    upper = color_map[idx]

    span = upper.percentage - lower.percentage
    if span <= 0:
        position = 1.0 if percentage >= upper.percentage else 0.0
    else:
        position = (percentage - lower.percentage) / span
    position = min(max(position, 0.0), 1.0)
    weight_lower = 1.0 - position

    return Color(
        r=math.floor(lower.color.r * weight_lower + upper.color.r * position),
        g=math.floor(lower.color.g * weight_lower + upper.color.g * position),
        b=math.floor(lower.color.b * weight_lower + upper.color.b * position),
        alpha=alpha,
    )
