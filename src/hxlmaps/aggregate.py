"""Per-area aggregation of dataset rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from .hxl import COUNT_PATTERN, SUM_PATTERN, Dataset, TagPattern


_LOGGER = logging.getLogger("hxlmaps.aggregate")

_CODE_PATTERN = TagPattern.parse("#*+code")
_NAME_PATTERN = TagPattern.parse("#*+name")


@dataclass(frozen=True, slots=True)
class AggregatedRow:
    code: str | None
    name: str | None
    value: float


@dataclass(frozen=True, slots=True)
class Aggregation:
    rows: tuple[AggregatedRow, ...]
    min: float
    max: float

    def normalize(self, value: float) -> float:
        """Position of `value` between min and max; 0.0 when the range is empty."""
        if self.max == self.min:
            return 0.0
        return (value - self.min) / (self.max - self.min)

    def index(self) -> dict[str, AggregatedRow]:
        out: dict[str, AggregatedRow] = {}
        for row in self.rows:
            if not row.code:
                _LOGGER.info("No P-code in aggregated row %s", row)
                continue
            key = row.code.upper()
            previous = out.get(key)
            if previous is not None:
                row = AggregatedRow(code=key, name=previous.name or row.name, value=previous.value + row.value)
            out[key] = row
        return out


def aggregate(
    dataset: Dataset,
    grouping_patterns: Sequence[str],
    value_pattern: str | None = None,
) -> Aggregation:
    """Group rows by admin identity and count them, or sum `value_pattern`.

    P-codes are matched case-insensitively, so groups whose codes differ only
    in case are merged. Groups without a P-code are skipped and never take
    part in the min/max range.
    """
    grouped = dataset.count(grouping_patterns, value_pattern)
    stat_pattern = SUM_PATTERN if value_pattern is not None else COUNT_PATTERN

    merged: dict[str, AggregatedRow] = {}
    for row in grouped:
        code = (row.get(_CODE_PATTERN) or "").strip().upper()
        if not code:
            _LOGGER.info("Skipping rows without a P-code: %s", list(row.values))
            continue
        raw_value = row.get(stat_pattern)
        value = float(raw_value) if raw_value is not None else 0.0
        name = row.get(_NAME_PATTERN) or None
        previous = merged.get(code)
        if previous is not None:
            value += previous.value
            name = previous.name or name
        merged[code] = AggregatedRow(code=code, name=name, value=value)

    rows = tuple(merged.values())
    values = [row.value for row in rows]
    result = Aggregation(
        rows=rows,
        min=min(values) if values else 0.0,
        max=max(values) if values else 0.0,
    )
    _LOGGER.debug(
        "Aggregated %d rows into %d groups (min=%s, max=%s)",
        len(dataset),
        len(result.rows),
        result.min,
        result.max,
    )
    return result
