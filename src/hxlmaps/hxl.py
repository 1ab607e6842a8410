"""HXL dataset access: hashtag patterns, columns, rows, and grouping."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Iterator, Sequence


_LOGGER = logging.getLogger("hxlmaps.hxl")

_PATTERN_RE = re.compile(
    r"^\s*#?(?P<tag>[A-Za-z][A-Za-z0-9_]*|\*)(?P<atts>(?:\s*[+-]\s*[A-Za-z][A-Za-z0-9_]*)*)\s*$"
)
_ATTRIBUTE_RE = re.compile(r"([+-])\s*([A-Za-z][A-Za-z0-9_]*)")
_HASHTAG_ROW_SCAN_LIMIT = 25

COUNT_PATTERN = "#meta+count"
SUM_PATTERN = "#meta+sum"

FetchJson = Callable[..., Awaitable[Any]]


class DatasetError(RuntimeError):
    """Raised when a dataset cannot be fetched or parsed as HXL."""


@dataclass(frozen=True, slots=True)
class Column:
    tag: str | None
    attributes: tuple[str, ...] = ()
    header: str | None = None

    @classmethod
    def parse(cls, hashtag: str | None, header: str | None = None) -> Column:
        header_clean = header.strip() if isinstance(header, str) and header.strip() else None
        if hashtag is None or not hashtag.strip():
            return cls(tag=None, header=header_clean)
        match = _PATTERN_RE.match(hashtag)
        if match is None or match.group("tag") == "*" or "-" in match.group("atts"):
            _LOGGER.debug("Ignoring malformed hashtag %r", hashtag)
            return cls(tag=None, header=header_clean)
        attributes: list[str] = []
        for _, name in _ATTRIBUTE_RE.findall(match.group("atts")):
            lowered = name.lower()
            if lowered not in attributes:
                attributes.append(lowered)
        return cls(tag=match.group("tag").lower(), attributes=tuple(attributes), header=header_clean)

    @property
    def display_tag(self) -> str:
        if self.tag is None:
            return ""
        return "#" + "+".join((self.tag, *self.attributes))


@dataclass(frozen=True, slots=True)
class TagPattern:
    """A hashtag pattern such as ``#adm1+code`` or ``#*+name-alt``."""

    tag: str
    include: frozenset[str] = frozenset()
    exclude: frozenset[str] = frozenset()

    @classmethod
    def parse(cls, raw: str | TagPattern) -> TagPattern:
        if isinstance(raw, TagPattern):
            return raw
        match = _PATTERN_RE.match(raw)
        if match is None:
            raise ValueError(f"Malformed tag pattern: '{raw}'")
        include: set[str] = set()
        exclude: set[str] = set()
        for sign, name in _ATTRIBUTE_RE.findall(match.group("atts")):
            (include if sign == "+" else exclude).add(name.lower())
        return cls(tag=match.group("tag").lower(), include=frozenset(include), exclude=frozenset(exclude))

    def matches(self, column: Column) -> bool:
        if column.tag is None:
            return False
        if self.tag != "*" and self.tag != column.tag:
            return False
        attributes = set(column.attributes)
        return self.include <= attributes and not (self.exclude & attributes)

    def find_column(self, columns: Sequence[Column]) -> int | None:
        for idx, column in enumerate(columns):
            if self.matches(column):
                return idx
        return None

    def __str__(self) -> str:
        parts = [f"#{self.tag}"]
        parts.extend(f"+{name}" for name in sorted(self.include))
        parts.extend(f"-{name}" for name in sorted(self.exclude))
        return "".join(parts)


def match_list(pattern: str | TagPattern, columns: Sequence[Column]) -> bool:
    return TagPattern.parse(pattern).find_column(columns) is not None


@dataclass(frozen=True, slots=True)
class Row:
    columns: tuple[Column, ...]
    values: tuple[str, ...]

    def get(self, pattern: str | TagPattern) -> str | None:
        """Return the first non-empty value under a matching column."""
        parsed = TagPattern.parse(pattern)
        for column, value in zip(self.columns, self.values):
            if parsed.matches(column) and value.strip():
                return value.strip()
        return None

    def labelled_values(self) -> Iterator[tuple[str, str]]:
        for column, value in zip(self.columns, self.values):
            name = column.header or column.display_tag
            if name and value.strip():
                yield name, value.strip()


class Dataset:
    """An in-memory HXL dataset."""

    def __init__(self, columns: Sequence[Column], rows: Iterable[Sequence[str]]) -> None:
        self.columns: tuple[Column, ...] = tuple(columns)
        width = len(self.columns)
        self.rows: list[Row] = []
        for raw in rows:
            values = tuple("" if value is None else str(value) for value in raw)
            if len(values) < width:
                values = values + ("",) * (width - len(values))
            self.rows.append(Row(columns=self.columns, values=values[:width]))

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    @classmethod
    def from_json(cls, raw: Any) -> Dataset:
        """Build a dataset from the HXL proxy JSON array-of-arrays format."""
        if not isinstance(raw, list):
            raise DatasetError("Expected a JSON array of rows")
        rows = [row if isinstance(row, list) else [] for row in raw]
        hashtag_idx = _find_hashtag_row(rows)
        if hashtag_idx is None:
            raise DatasetError("No HXL hashtag row found")
        headers: Sequence[Any] = rows[hashtag_idx - 1] if hashtag_idx > 0 else ()
        hashtags = rows[hashtag_idx]
        columns = [
            Column.parse(
                _cell(hashtags, idx),
                _cell(headers, idx),
            )
            for idx in range(max(len(hashtags), len(headers)))
        ]
        return cls(columns, (_stringify_row(row) for row in rows[hashtag_idx + 1 :]))

    def count(
        self,
        patterns: Sequence[str | TagPattern],
        aggregate_pattern: str | TagPattern | None = None,
    ) -> Dataset:
        """Group rows by the values at `patterns`, counting or summing each group.

        The result carries the grouping columns followed by ``#meta+count``
        or, when `aggregate_pattern` is given, ``#meta+sum``. Non-numeric
        values in the summed column count as zero.
        """
        indices: list[int] = []
        for pattern in patterns:
            idx = TagPattern.parse(pattern).find_column(self.columns)
            if idx is None:
                _LOGGER.info("No column matches grouping pattern %s", pattern)
                continue
            indices.append(idx)
        if not indices:
            raise DatasetError("None of the grouping patterns match a column: " + ", ".join(map(str, patterns)))

        value_pattern = TagPattern.parse(aggregate_pattern) if aggregate_pattern is not None else None
        totals: dict[tuple[str, ...], float] = {}
        for row_number, row in enumerate(self.rows, start=1):
            key = tuple(row.values[idx].strip() for idx in indices)
            if value_pattern is None:
                amount = 1.0
            else:
                amount = _parse_number(row.get(value_pattern), row_number=row_number)
            totals[key] = totals.get(key, 0.0) + amount

        out_column = Column.parse(SUM_PATTERN if value_pattern is not None else COUNT_PATTERN)
        columns = [self.columns[idx] for idx in indices] + [out_column]
        out_rows = [(*key, _format_total(total)) for key, total in sorted(totals.items())]
        return Dataset(columns, out_rows)

    def get_min(self, pattern: str | TagPattern) -> float | None:
        values = self._numeric_values(pattern)
        return min(values) if values else None

    def get_max(self, pattern: str | TagPattern) -> float | None:
        values = self._numeric_values(pattern)
        return max(values) if values else None

    def _numeric_values(self, pattern: str | TagPattern) -> list[float]:
        out: list[float] = []
        for row in self.rows:
            number = _try_number(row.get(pattern))
            if number is not None:
                out.append(number)
        return out


class DatasetLoader:
    """Fetch HXL datasets through the HXL proxy JSON endpoint."""

    def __init__(self, fetch_json: FetchJson, proxy_url: str) -> None:
        self._fetch_json = fetch_json
        self.proxy_url = proxy_url

    async def load(self, url: str) -> Dataset:
        try:
            raw = await self._fetch_json(self.proxy_url, params={"url": url})
        except Exception as exc:
            raise DatasetError(f"Unable to read HXL dataset {url}: {exc}") from exc
        try:
            dataset = Dataset.from_json(raw)
        except DatasetError as exc:
            raise DatasetError(f"Unable to parse HXL dataset {url}: {exc}") from exc
        _LOGGER.info("Loaded %d rows from %s", len(dataset), url)
        return dataset


def _find_hashtag_row(rows: Sequence[Sequence[Any]]) -> int | None:
    for idx, row in enumerate(rows[:_HASHTAG_ROW_SCAN_LIMIT]):
        cells = [str(cell).strip() for cell in row if cell is not None and str(cell).strip()]
        if cells and all(cell.startswith("#") for cell in cells):
            return idx
    return None


def _cell(row: Sequence[Any], idx: int) -> str | None:
    if idx >= len(row) or row[idx] is None:
        return None
    return str(row[idx])


def _stringify_row(row: Sequence[Any]) -> list[str]:
    out: list[str] = []
    for value in row:
        if value is None:
            out.append("")
        elif isinstance(value, float) and value.is_integer():
            out.append(str(int(value)))
        else:
            out.append(str(value))
    return out


def _try_number(value: str | None) -> float | None:
    if value is None:
        return None
    cleaned = value.strip().replace(",", "").replace(" ", "")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _parse_number(value: str | None, *, row_number: int) -> float:
    if value is None:
        return 0.0
    number = _try_number(value)
    if number is None:
        _LOGGER.warning("Non-numeric value %r in row %d treated as 0", value, row_number)
        return 0.0
    return number


def _format_total(total: float) -> str:
    if total.is_integer():
        return str(int(total))
    return repr(total)
