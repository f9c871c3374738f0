from datetime import datetime

import pytest

from qa_reader.services.datasets import DATA_SNAPSHOT, SAMPLING_DATA, replace_dataset
from qa_reader.services.insights import (
    compute_insights, duration_bucket, get_insights, parse_duration_minutes, parse_timestamp,
    resolve_source
)

COLUMNS = ["id", "agent", "actual_agent", "market", "vip_status", "rating", "duration", "start_time"]
NOW = datetime(2024, 6, 10, 12, 0, 0)


def rows():
    return [
        dict(zip(COLUMNS, values)) for values in [
            ["1", "ann", "Ann Lee", "SG", "vip", "5", "4:30", "2024-06-09T10:00:00"],
            ["2", "ann", "Ann Lee", "SG", "normal", "3", "12:00", "2024-06-09T11:00:00"],
            ["3", "bo", None, None, "normal", "", "25:00:00", "2024-06-01T08:00:00"],
            ["4", "cy", "Cy", "MY", "normal", "x", "soon", "not a date"],
        ]
    ]


@pytest.mark.parametrize(
    "value, expected",
    [("4:30", 4.5), ("1:02:30", 62.5), ("25:00:00", 1500.0), ("7", 7.0), ("3.5", 3.5),
     ("", None), ("soon", None), (None, None), ("a:b", None)],
)
def test_parse_duration_minutes(value, expected):
    assert parse_duration_minutes(value) == expected


def test_duration_buckets():
    assert duration_bucket(parse_duration_minutes("4:30")) == "<5"
    assert duration_bucket(parse_duration_minutes("25:00:00")) == "20+"
    assert duration_bucket(None) == "<5"
    assert [duration_bucket(m) for m in (5, 9.99, 10, 15, 19.9, 20)] == ["<10", "<10", "<15", "<20", "<20", "20+"]


def test_parse_timestamp_uses_first_dated_column():
    assert parse_timestamp({"start_time": "junk", "end_time": "2024-01-02 03:04:05"}) == datetime(2024, 1, 2, 3, 4, 5)
    assert parse_timestamp({"start_time": "2024-01-02T10:00:00+02:00"}) == datetime(2024, 1, 2, 8, 0, 0)
    assert parse_timestamp({"start_time": None}) is None


def test_resolve_source():
    assert resolve_source("Sampling") == "sampling"
    assert resolve_source(None) == "processed"
    assert resolve_source("whatever") == "processed"


def test_compute_insights_full_window():
    result = compute_insights(rows(), COLUMNS, "processed", now=NOW)

    assert result["exists"] is True
    assert result["total"] == 4
    assert result["agent"][0] == {"key": "ann", "count": 2}
    assert result["actual_agent"] == [
        {"key": "Ann Lee", "count": 2}, {"key": "(blank)", "count": 1}, {"key": "Cy", "count": 1}
    ]
    assert result["department"] == []
    assert result["duration_buckets"] == [
        {"bucket": "<5", "count": 2}, {"bucket": "<15", "count": 1}, {"bucket": "20+", "count": 1}
    ]

    kpis = result["kpis"]
    assert kpis["unique_agents"] == 3
    assert kpis["vip_percent"] == 25.0
    assert kpis["avg_rating"] == 4.0
    assert kpis["avg_duration_minutes"] == pytest.approx((4.5 + 12 + 1500) / 3)

    assert result["timeseries"] == [{"date": "2024-06-01", "count": 1}, {"date": "2024-06-09", "count": 2}]
    assert result["vip_by_agent"][0] == {"agent": "Ann Lee", "vip": 1, "normal": 1}


def test_days_window_excludes_old_and_undated_rows():
    result = compute_insights(rows(), COLUMNS, "sampling", days=7, now=NOW)
    assert result["source"] == "sampling"
    assert result["total"] == 2
    assert result["timeseries"] == [{"date": "2024-06-09", "count": 2}]
    assert result["kpis"]["unique_agents"] == 1


def test_missing_source_table(engine, registry):
    result = get_insights(engine, registry, "processed")
    assert result["exists"] is False
    assert result["total"] == 0
    assert result["kpis"]["unique_agents"] == 0
    assert result["agent"] == []


def test_get_insights_reads_selected_source(engine, registry):
    data = [[r[c] for c in COLUMNS] for r in rows()]
    replace_dataset(engine, registry, DATA_SNAPSHOT, COLUMNS, data)
    replace_dataset(engine, registry, SAMPLING_DATA, COLUMNS, data[:1])

    assert get_insights(engine, registry, "processed")["total"] == 4
    sampled = get_insights(engine, registry, "sampling")
    assert sampled["exists"] is True
    assert sampled["total"] == 1
