"""Tests for per-area aggregation."""

from hxlmaps.aggregate import AggregatedRow, Aggregation, aggregate
from hxlmaps.hxl import Column, Dataset


def _dataset(hashtags, rows):
    return Dataset([Column.parse(hashtag) for hashtag in hashtags], rows)


def test_count_per_area():
    dataset = _dataset(["#adm1+code"], [["A"], ["A"], ["B"]])
    result = aggregate(dataset, ["#adm1+name", "#adm1+code"])
    assert [(row.code, row.value) for row in result.rows] == [("A", 2.0), ("B", 1.0)]
    assert (result.min, result.max) == (1.0, 2.0)


def test_sum_per_area():
    dataset = _dataset(["#adm1+code", "#affected"], [["A", "2"], ["A", "3"], ["B", "5"]])
    result = aggregate(dataset, ["#adm1+name", "#adm1+code"], "#affected")
    assert {row.code: row.value for row in result.rows} == {"A": 5.0, "B": 5.0}
    assert result.min == result.max == 5.0
    assert result.normalize(5.0) == 0.0


def test_names_are_carried_along(three_w_rows):
    result = aggregate(Dataset.from_json(three_w_rows), ["#adm1+name", "#adm1+code"], "#reached")
    assert result.rows == (
        AggregatedRow(code="ML01", name="Kayes", value=150.0),
        AggregatedRow(code="ML02", name="Koulikoro", value=25.0),
    )
    assert result.normalize(150.0) == 1.0
    assert result.normalize(25.0) == 0.0


def test_empty_dataset_has_zero_range():
    result = aggregate(_dataset(["#adm1+code"], []), ["#adm1+code"])
    assert result.rows == ()
    assert (result.min, result.max) == (0.0, 0.0)


def test_index_upper_cases_codes_and_skips_blank_ones():
    aggregation = Aggregation(
        rows=(AggregatedRow("ml01", "Kayes", 1.0), AggregatedRow(None, "Unknown", 4.0)),
        min=1.0,
        max=4.0,
    )
    assert list(aggregation.index()) == ["ML01"]


def test_rows_without_pcode_are_skipped_before_the_range():
    dataset = _dataset(
        ["#adm1+code", "#affected"],
        [["ML01", "10"], ["ML02", "20"], ["", "1000"], ["  ", "500"]],
    )
    result = aggregate(dataset, ["#adm1+name", "#adm1+code"], "#affected")
    assert [(row.code, row.value) for row in result.rows] == [("ML01", 10.0), ("ML02", 20.0)]
    assert (result.min, result.max) == (10.0, 20.0)
    assert result.normalize(20.0) == 1.0


def test_codes_differing_only_in_case_are_merged():
    dataset = _dataset(
        ["#adm1+name", "#adm1+code", "#affected"],
        [["Kayes", "ML01", "10"], ["Kayes", "ml01", "5"], ["Koulikoro", "ML02", "20"]],
    )
    result = aggregate(dataset, ["#adm1+name", "#adm1+code"], "#affected")
    assert result.index()["ML01"] == AggregatedRow(code="ML01", name="Kayes", value=15.0)
    assert (result.min, result.max) == (15.0, 20.0)


def test_index_adds_colliding_codes():
    aggregation = Aggregation(
        rows=(AggregatedRow("ML01", "Kayes", 10.0), AggregatedRow("ml01", None, 5.0)),
        min=5.0,
        max=10.0,
    )
    assert aggregation.index() == {"ML01": AggregatedRow("ML01", "Kayes", 15.0)}
