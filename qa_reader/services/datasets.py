"""
Dataset Tables and Schema Registry

This module owns the dynamic, text-typed tables of The Reader: the three
uploaded datasets and the derived snapshot and sampling tables.

Features:
- CSV parsing (first row is the header)
- Atomic table materialization with parameterized bulk insert
- Schema registry persisted in ``dataset_schema``
- Advisory-locked rebuilds on Postgres

Author: The Reader Team
Date: 2026-10-19
"""

import csv
import io
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import (
    Column, Connection, Engine, Integer, MetaData, Table, Text, delete, func, insert, select, text
)
from sqlalchemy.sql import table as sql_table

from qa_reader.common.db import lock_table, table_exists
from qa_reader.common.errors import InvalidRequestError
from qa_reader.common.models import DatasetSchema

logger = logging.getLogger("datasets")

ROW_ID = '_row_id'
TEXT_TYPE = 'text'

RAW_CHAT = 'raw_chat'
AGENT_INFO = 'agent_info'
CRITERIA_SCORING = 'criteria_scoring'
DATA_SNAPSHOT = 'data_snapshot'
SAMPLING_DATA = 'sampling_data'


@dataclass(frozen=True)
class UploadDataset:
    """Where an uploadable dataset is stored and which table it loads into."""
    name: str
    storage_prefix: str
    table: str
    feeds_snapshot: bool


UPLOAD_DATASETS: Dict[str, UploadDataset] = {
    RAW_CHAT: UploadDataset(RAW_CHAT, 'raw_chat', RAW_CHAT, True),
    AGENT_INFO: UploadDataset(AGENT_INFO, 'agent_info', AGENT_INFO, True),
    CRITERIA_SCORING: UploadDataset(CRITERIA_SCORING, 'criteria_scoring', CRITERIA_SCORING, False),
}


def get_upload_dataset(name: Optional[str]) -> UploadDataset:
    dataset = UPLOAD_DATASETS.get(name or '')
    if dataset is None:
        raise InvalidRequestError("Invalid type")
    return dataset


def parse_csv(data: bytes) -> Tuple[List[str], List[List[str]]]:
    """
    Parse an uploaded CSV file.

    Args:
        data: Raw file bytes (UTF-8, optional BOM)

    Returns:
        Tuple[List[str], List[List[str]]]: header row and data rows

    Raises:
        InvalidRequestError: If the file is not UTF-8, malformed or empty
    """
    try:
        decoded = data.decode('utf-8-sig')
    except UnicodeDecodeError as ex:
        raise InvalidRequestError(f"File is not valid UTF-8: {ex}") from ex

    try:
        rows = [
            row for row in csv.reader(io.StringIO(decoded, newline=''))
            if row and row != ['']
        ]
    except csv.Error as ex:
        raise InvalidRequestError(f"Malformed CSV: {ex}") from ex

    if not rows:
        raise InvalidRequestError("No rows found")
    return rows[0], rows[1:]


def dataset_table(name: str, columns: Sequence[str]) -> Table:
    """Build the Core table object for a dynamic text table."""
    return Table(
        name,
        MetaData(),
        Column(ROW_ID, Integer, primary_key=True, autoincrement=True),
        *(Column(col, Text) for col in columns)
    )


class DatasetRegistry:
    """
    Schema registry over the ``dataset_schema`` table.

    Dynamic tables are described by their registry entry instead of
    catalog introspection; an entry whose table has disappeared is
    treated as absent.
    """

    def columns(self, conn: Connection, name: str) -> Optional[List[str]]:
        entry = conn.execute(
            select(DatasetSchema.columns).where(DatasetSchema.name == name)
        ).scalar_one_or_none()
        if entry is None or not table_exists(conn, name):
            return None
        return [col for col, _type in entry]

    def register(
        self,
        conn: Connection,
        name: str,
        columns: Sequence[str],
        row_count: int,
        object_key: Optional[str] = None,
    ) -> None:
        conn.execute(delete(DatasetSchema).where(DatasetSchema.name == name))
        conn.execute(
            insert(DatasetSchema).values(
                name=name,
                columns=[[col, TEXT_TYPE] for col in columns],
                row_count=row_count,
                object_key=object_key,
            )
        )

    def forget(self, conn: Connection, name: str) -> None:
        conn.execute(delete(DatasetSchema).where(DatasetSchema.name == name))


def drop_table(conn: Connection, name: str) -> None:
    quoted = conn.dialect.identifier_preparer.quote(name)
    conn.execute(text(f"DROP TABLE IF EXISTS {quoted}"))


def materialize_table(
    conn: Connection,
    name: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
) -> int:
    """
    Replace a table with one text column per name and insert all rows.

    Destroys prior contents unconditionally. Rows shorter than the header
    are padded with NULL, longer rows are truncated. Values are bound as
    parameters; run this inside the caller's transaction.

    Returns:
        int: number of inserted rows
    """
    table = dataset_table(name, columns)
    drop_table(conn, name)
    table.create(conn)

    width = len(columns)
    payload = [
        {col: (row[i] if i < len(row) else None) for i, col in enumerate(columns)}
        for row in rows
    ]
    if payload and width:
        conn.execute(table.insert(), payload)
    elif payload:
        # A header-less table still gets one surrogate row per record
        conn.execute(table.insert(), [{} for _ in payload])
    return len(payload)


def write_dataset(
    conn: Connection,
    registry: DatasetRegistry,
    name: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    object_key: Optional[str] = None,
) -> int:
    """Materialize ``name`` and register it on a connection that already holds its lock."""
    count = materialize_table(conn, name, columns, rows)
    registry.register(conn, name, columns, count, object_key)
    logger.info(f"Materialized {name}: {len(columns)} column(s), {count} row(s)")
    return count


def remove_dataset(conn: Connection, registry: DatasetRegistry, name: str) -> None:
    drop_table(conn, name)
    registry.forget(conn, name)
    logger.info(f"Dropped {name}")


def replace_dataset(
    engine: Engine,
    registry: DatasetRegistry,
    name: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    object_key: Optional[str] = None,
) -> int:
    """
    Atomically rebuild a dynamic table and its registry entry.

    Drop, create, insert and registry write share one transaction that
    holds the table's advisory lock, so readers never see an empty window.
    """
    with engine.begin() as conn:
        lock_table(conn, name)
        return write_dataset(conn, registry, name, columns, rows, object_key)


def drop_dataset(engine: Engine, registry: DatasetRegistry, name: str) -> None:
    with engine.begin() as conn:
        lock_table(conn, name)
        remove_dataset(conn, registry, name)


def read_rows(
    conn: Connection,
    name: str,
    columns: Sequence[str],
    limit: Optional[int] = None,
    offset: int = 0,
    order_by: Sequence[Tuple[str, bool]] = (),
) -> List[Dict[str, Any]]:
    """
    Read rows of a dynamic table as dicts, without the surrogate key.

    ``order_by`` holds ``(column, descending)`` pairs; the surrogate key
    is always the final tie-break so paging is stable.
    """
    table = dataset_table(name, columns)
    stmt = select(*(table.c[col] for col in columns))
    for col, descending in order_by:
        stmt = stmt.order_by(table.c[col].desc() if descending else table.c[col].asc())
    stmt = stmt.order_by(table.c[ROW_ID])
    if offset:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return [dict(row) for row in conn.execute(stmt).mappings()]


def count_rows(conn: Connection, name: str) -> int:
    return int(conn.execute(select(func.count()).select_from(sql_table(name))).scalar() or 0)
