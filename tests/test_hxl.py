"""Tests for HXL hashtag parsing, pattern matching and grouping."""

import pytest

from hxlmaps.hxl import Column, Dataset, DatasetError, DatasetLoader, TagPattern, match_list


def _columns(*hashtags):
    return [Column.parse(hashtag) for hashtag in hashtags]


def test_column_parse_normalizes_tag_and_attributes():
    column = Column.parse(" #Adm1 +Code +code", header=" Province ")
    assert column.tag == "adm1"
    assert column.attributes == ("code",)
    assert column.header == "Province"
    assert column.display_tag == "#adm1+code"


def test_column_parse_without_hashtag():
    column = Column.parse("", header="Notes")
    assert column.tag is None
    assert column.display_tag == ""


def test_pattern_matching_with_wildcard_and_exclusion():
    columns = _columns("#adm1+name+alt", "#adm1+name", "#adm1+code")
    assert TagPattern.parse("#*+code").find_column(columns) == 2
    assert TagPattern.parse("#adm1+name-alt").find_column(columns) == 1
    assert TagPattern.parse("adm1").find_column(columns) == 0
    assert not match_list("#adm2+code", columns)


def test_pattern_parse_rejects_garbage():
    with pytest.raises(ValueError):
        TagPattern.parse("#adm1 code")


def test_pattern_str_is_canonical():
    assert str(TagPattern.parse("#ADM1 -alt +name")) == "#adm1+name-alt"


def test_from_json_finds_hashtag_row_and_headers(three_w_rows):
    dataset = Dataset.from_json(three_w_rows)
    assert [column.display_tag for column in dataset.columns] == ["#adm1+name", "#adm1+code", "#org", "#reached"]
    assert dataset.columns[3].header == "People reached"
    assert len(dataset) == 3


def test_from_json_without_hashtags():
    with pytest.raises(DatasetError):
        Dataset.from_json([["a", "b"], ["1", "2"]])
    with pytest.raises(DatasetError):
        Dataset.from_json({"rows": []})


def test_rows_are_padded_and_numbers_stringified():
    dataset = Dataset.from_json([["#adm1+code", "#reached"], ["ML01"], ["ML02", 12.0]])
    rows = list(dataset)
    assert rows[0].values == ("ML01", "")
    assert rows[1].get("#reached") == "12"


def test_row_get_skips_empty_values():
    dataset = Dataset(_columns("#org+name", "#org+name+alt"), [["", " NGO A "]])
    assert next(iter(dataset)).get("#org+name") == "NGO A"
    assert next(iter(dataset)).get("#sector") is None


def test_count_groups_rows(three_w_rows):
    grouped = Dataset.from_json(three_w_rows).count(["#adm1+name", "#adm1+code"])
    assert [row.values for row in grouped] == [("Kayes", "ML01", "2"), ("Koulikoro", "ML02", "1")]
    assert grouped.columns[-1].display_tag == "#meta+count"


def test_count_sums_values_and_treats_garbage_as_zero():
    dataset = Dataset(
        _columns("#adm1+code", "#affected"),
        [["ML01", "1,000"], ["ML01", "n/a"], ["ML02", "2.5"], ["ML02", ""]],
    )
    grouped = dataset.count(["#adm1+code"], "#affected")
    assert [row.values for row in grouped] == [("ML01", "1000"), ("ML02", "2.5")]
    assert grouped.get_min("#meta+sum") == 2.5
    assert grouped.get_max("#meta+sum") == 1000.0


def test_count_skips_missing_patterns_but_needs_one():
    dataset = Dataset(_columns("#adm1+code"), [["ML01"]])
    assert len(dataset.count(["#adm1+name", "#adm1+code"])) == 1
    with pytest.raises(DatasetError):
        dataset.count(["#adm2+code"])


def test_min_max_of_empty_column():
    dataset = Dataset(_columns("#reached"), [[""], ["x"]])
    assert dataset.get_min("#reached") is None
    assert dataset.get_max("#reached") is None


@pytest.mark.asyncio
async def test_loader_goes_through_proxy(three_w_rows):
    calls = []

    async def fetch_json(url, params=None):
        calls.append((url, params))
        return three_w_rows

    dataset = await DatasetLoader(fetch_json, "https://proxy.test/data.json").load("https://example.org/3w.csv")
    assert len(dataset) == 3
    assert calls == [("https://proxy.test/data.json", {"url": "https://example.org/3w.csv"})]


@pytest.mark.asyncio
async def test_loader_wraps_fetch_errors():
    async def fetch_json(url, params=None):
        raise ConnectionError("boom")

    with pytest.raises(DatasetError, match="Unable to read HXL dataset"):
        await DatasetLoader(fetch_json, "https://proxy.test/data.json").load("https://example.org/x.csv")
