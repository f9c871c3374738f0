import pytest
from sqlalchemy import text

from qa_reader.common.errors import InvalidRequestError
from qa_reader.services.datasets import (
    RAW_CHAT, count_rows, drop_dataset, get_upload_dataset, parse_csv, read_rows, replace_dataset
)


def test_parse_csv_strips_bom_and_blank_lines():
    header, rows = parse_csv("\ufeffID,Name\r\n1,Ann\r\n\r\n2,\"Bo, Jr\"\r\n".encode("utf-8"))
    assert header == ["ID", "Name"]
    assert rows == [["1", "Ann"], ["2", "Bo, Jr"]]


def test_parse_csv_header_only():
    header, rows = parse_csv(b"a,b\n")
    assert header == ["a", "b"]
    assert rows == []


@pytest.mark.parametrize("data", [b"", b"\n\n", b"\xff\xfe\x00bad"])
def test_parse_csv_rejects_empty_or_undecodable(data):
    with pytest.raises(InvalidRequestError):
        parse_csv(data)


def test_unknown_upload_type():
    with pytest.raises(InvalidRequestError, match="Invalid type"):
        get_upload_dataset("payroll")
    assert get_upload_dataset("agent_info").feeds_snapshot
    assert not get_upload_dataset("criteria_scoring").feeds_snapshot


def test_replace_dataset_pads_and_truncates(engine, registry):
    count = replace_dataset(engine, registry, RAW_CHAT, ["id", "agent"], [["1"], ["2", "Ann", "extra"]])
    assert count == 2
    with engine.connect() as conn:
        assert registry.columns(conn, RAW_CHAT) == ["id", "agent"]
        assert read_rows(conn, RAW_CHAT, ["id", "agent"]) == [
            {"id": "1", "agent": None},
            {"id": "2", "agent": "Ann"},
        ]


def test_values_are_stored_literally(engine, registry):
    hostile = "x'); DROP TABLE dataset_schema; --"
    replace_dataset(engine, registry, RAW_CHAT, ["id", "content"], [["1", hostile]])
    with engine.connect() as conn:
        rows = read_rows(conn, RAW_CHAT, ["id", "content"])
        assert rows == [{"id": "1", "content": hostile}]
        assert registry.columns(conn, RAW_CHAT) == ["id", "content"]


def test_replace_discards_previous_contents_and_columns(engine, registry):
    replace_dataset(engine, registry, RAW_CHAT, ["a", "b"], [["1", "2"], ["3", "4"]])
    replace_dataset(engine, registry, RAW_CHAT, ["c"], [["5"]])
    with engine.connect() as conn:
        assert registry.columns(conn, RAW_CHAT) == ["c"]
        assert read_rows(conn, RAW_CHAT, ["c"]) == [{"c": "5"}]
        assert count_rows(conn, RAW_CHAT) == 1


def test_read_rows_ordering_and_paging(engine, registry):
    rows = [["1", "2024-01-01"], ["2", "2024-03-01"], ["3", "2024-02-01"], ["4", "2024-03-01"]]
    replace_dataset(engine, registry, RAW_CHAT, ["id", "start_time"], rows)
    with engine.connect() as conn:
        ordered = read_rows(conn, RAW_CHAT, ["id", "start_time"], order_by=[("start_time", True)])
        assert [r["id"] for r in ordered] == ["2", "4", "3", "1"]
        page = read_rows(conn, RAW_CHAT, ["id", "start_time"], limit=2, offset=1)
        assert [r["id"] for r in page] == ["2", "3"]


def test_registry_treats_dropped_table_as_absent(engine, registry):
    replace_dataset(engine, registry, RAW_CHAT, ["id"], [["1"]])
    with engine.begin() as conn:
        conn.execute(text(f"DROP TABLE {RAW_CHAT}"))
    with engine.connect() as conn:
        assert registry.columns(conn, RAW_CHAT) is None


def test_drop_dataset_is_idempotent(engine, registry):
    replace_dataset(engine, registry, RAW_CHAT, ["id"], [["1"]])
    drop_dataset(engine, registry, RAW_CHAT)
    drop_dataset(engine, registry, RAW_CHAT)
    with engine.connect() as conn:
        assert registry.columns(conn, RAW_CHAT) is None
