from scouting.aggregator import (
    aggregates_to_dict,
    calculate_aggregates,
    calculate_interpreted_aggregates,
    numeric_averages,
)
from scouting.parsers import parse_file


def test_string_number_is_averaged_after_parsing():
    table = parse_file(b'date,hits,at_bats\n2024-05-01,2,4\n2024-05-02,"3",5\n', "csv")

    aggregates = calculate_aggregates(table.rows, table.headers)

    hits = aggregates["hits"]
    assert hits.type == "numeric"
    assert hits.avg == 2.5
    assert hits.min == 2 and hits.max == 3 and hits.sum == 5
    assert aggregates["date"].type == "text"
    assert aggregates["date"].unique_values == 2


def test_count_plus_null_count_equals_row_count():
    rows = [
        {"a": 1, "b": "x", "c": None, "d": True},
        {"a": None, "b": "x", "c": None, "d": 2},
        {"a": 3.5, "b": None, "c": None, "d": "y"},
    ]

    aggregates = calculate_aggregates(rows, ["a", "b", "c", "d"])

    for stat in aggregates.values():
        assert stat.count + stat.null_count == len(rows)


def test_column_classification():
    rows = [
        {"num": 1, "txt": "a", "mix": 1, "flag": True, "empty": None},
        {"num": 2.5, "txt": "a", "mix": "b", "flag": False, "empty": None},
    ]

    aggregates = calculate_aggregates(rows, ["num", "txt", "mix", "flag", "empty"])

    assert aggregates["num"].type == "numeric"
    assert aggregates["txt"].type == "text"
    assert aggregates["txt"].unique_values == 1
    assert aggregates["mix"].type == "mixed"
    assert aggregates["mix"].avg is None
    # booleans are not numbers
    assert aggregates["flag"].type == "mixed"
    assert aggregates["empty"].type == "text"
    assert aggregates["empty"].unique_values == 0


def test_missing_keys_count_as_null():
    aggregates = calculate_aggregates([{"a": 1}, {}], ["a"])
    assert aggregates["a"].count == 1
    assert aggregates["a"].null_count == 1


def test_numeric_averages_and_dict_form():
    aggregates = calculate_aggregates([{"x": 1, "y": "t"}, {"x": 3, "y": "u"}], ["x", "y"])

    assert numeric_averages(aggregates) == {"x": 2.0}
    as_dict = aggregates_to_dict(aggregates)
    assert as_dict["x"] == {"type": "numeric", "count": 2, "null_count": 0, "min": 1, "max": 3, "sum": 4, "avg": 2.0}
    assert "avg" not in as_dict["y"]


def test_interpreted_aggregates_pool_numbers_by_key():
    rows = [{"hits": 2, "name": "Ann"}, {"hits": 4, "flag": True}, {"walks": 1}]

    result = calculate_interpreted_aggregates(rows)

    assert result["hits"] == {"count": 2, "sum": 6, "avg": 3.0, "min": 2, "max": 4}
    assert result["walks"]["count"] == 1
    assert "name" not in result and "flag" not in result
