"""
Snapshot Builder

Rebuilds ``data_snapshot`` from the uploaded chats (``raw_chat``) enriched
with the agent roster (``agent_info``):

- ``actual_agent`` / ``market``: roster match on the normalized agent name
- ``vip_status``: ``vip`` when the custom variables carry ``type:vip``

Roster resolution is an explicit two-pass lookup build followed by a pure
``resolve`` call per chat, so it is testable without a database.

Author: The Reader Team
Date: 2026-10-19
"""

import logging
import time
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from prometheus_client import Histogram
from sqlalchemy import Engine

from qa_reader.common.db import lock_table
from qa_reader.services.datasets import (
    AGENT_INFO, DATA_SNAPSHOT, RAW_CHAT, DatasetRegistry, count_rows,
    read_rows, remove_dataset, write_dataset
)

logger = logging.getLogger("snapshot")

SNAPSHOT_REBUILD_SECONDS = Histogram(
    'reader_snapshot_rebuild_seconds',
    'Snapshot rebuild latency seconds'
)

# Display label -> raw column, in snapshot column order
DISPLAY_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ('ID', 'id'),
    ('Name', 'name'),
    ('Department', 'department'),
    ('Agent', 'agent'),
    ('Content', 'content'),
    ('Start Time', 'start_time'),
    ('End Time', 'end_time'),
    ('Request Page', 'request_page'),
    ('Custom Variables', 'custom_variables'),
    ('Rating', 'rating'),
    ('Rating Comment', 'rating_comment'),
    ('Category', 'category'),
    ('Duration', 'duration'),
    ('Campaign', 'campaign'),
    ('Country/Region', 'country_region'),
)
EXPECTED_COLUMNS = tuple(col for _label, col in DISPLAY_COLUMNS)
COMPUTED_COLUMNS = ('actual_agent', 'market', 'vip_status')
COMPUTED_DISPLAY = {'Actual Agent': 'actual_agent', 'Market': 'market', 'VIP Status': 'vip_status'}

SCHEDULE_NAME = 'specialist_name_as_per_schedule'
LIVE_CHAT_NAME = 'specialist_live_chat_name'
ROSTER_MARKET = 'market'

VIP_MARKER = 'type:vip'


def display_order() -> List[str]:
    """Display labels with the computed columns placed after their source."""
    out: List[str] = []
    for label, _col in DISPLAY_COLUMNS:
        out.append(label)
        if label == 'Agent':
            out.extend(['Actual Agent', 'Market'])
        if label == 'Custom Variables':
            out.append('VIP Status')
    return out


def normalize_name(value: Optional[str], fold_accents: bool = True) -> str:
    """
    Normalize a person name for roster matching.

    Lowercases, trims, optionally folds accents (NFKD with combining marks
    dropped) and removes all whitespace and punctuation, so
    ``"  José-Luis "`` and ``"jose luis"`` both become ``"joseluis"``.
    """
    if value is None:
        return ''
    text = value.strip().lower()
    if fold_accents:
        text = ''.join(
            ch for ch in unicodedata.normalize('NFKD', text)
            if not unicodedata.combining(ch)
        )
    return ''.join(
        ch for ch in text
        if not ch.isspace() and unicodedata.category(ch)[0] not in ('P', 'S')
    )


@dataclass(frozen=True)
class RosterMatch:
    actual_agent: str
    market: Optional[str]


def _present(value: Any) -> bool:
    return value is not None and str(value).strip() != ''


def build_roster_lookup(
    roster_rows: Iterable[Mapping[str, Any]],
    columns: Iterable[str],
) -> Dict[str, RosterMatch]:
    """
    Build the normalized-name -> roster match lookup.

    Pass 1 adds every non-blank schedule name (priority 1). Pass 2 adds every
    non-blank live-chat name (priority 2) whose identity is the row's
    schedule name when present, else the live-chat name. For each normalized
    name the lowest priority wins; ties go to the lexically smallest identity.

    Args:
        roster_rows: Rows of the roster table as dicts
        columns: Columns present in the roster table

    Returns:
        Dict[str, RosterMatch]: empty when neither name column exists
    """
    cols = set(columns)
    has_schedule = SCHEDULE_NAME in cols
    has_live = LIVE_CHAT_NAME in cols
    has_market = ROSTER_MARKET in cols
    rows = list(roster_rows)

    best: Dict[str, Tuple[int, str, Optional[str]]] = {}

    def offer(key: str, priority: int, identity: str, market: Optional[str]) -> None:
        if not key:
            return
        current = best.get(key)
        if current is None or (priority, identity) < (current[0], current[1]):
            best[key] = (priority, identity, market)

    if has_schedule:
        for row in rows:
            schedule = row.get(SCHEDULE_NAME)
            if _present(schedule):
                market = row.get(ROSTER_MARKET) if has_market else None
                offer(normalize_name(schedule), 1, schedule, market)

    if has_live:
        for row in rows:
            live = row.get(LIVE_CHAT_NAME)
            if not _present(live):
                continue
            schedule = row.get(SCHEDULE_NAME) if has_schedule else None
            identity = schedule if _present(schedule) else live
            market = row.get(ROSTER_MARKET) if has_market else None
            offer(normalize_name(live), 2, identity, market)

    return {
        key: RosterMatch(actual_agent=identity, market=market)
        for key, (_priority, identity, market) in best.items()
    }


def resolve(name: Optional[str], lookup: Mapping[str, RosterMatch]) -> Optional[RosterMatch]:
    if not lookup:
        return None
    key = normalize_name(name)
    if not key:
        return None
    return lookup.get(key)


def vip_status_for(custom_variables: Optional[str]) -> str:
    # Substring match: "type:vipx" also counts as vip
    if custom_variables and VIP_MARKER in custom_variables.lower():
        return 'vip'
    return 'normal'


@dataclass
class SnapshotSummary:
    exists: bool
    row_count: int = 0


def rebuild_snapshot(engine: Engine, registry: DatasetRegistry) -> SnapshotSummary:
    """
    Rebuild ``data_snapshot`` from ``raw_chat`` and the optional roster.

    Drops the snapshot when ``raw_chat`` does not exist. The snapshot lock
    is taken before the sources are read, so the rows written always come
    from the latest committed ``raw_chat`` and roster.
    """
    started = time.perf_counter()

    with engine.begin() as conn:
        lock_table(conn, DATA_SNAPSHOT)
        raw_columns = registry.columns(conn, RAW_CHAT)
        if raw_columns is None:
            remove_dataset(conn, registry, DATA_SNAPSHOT)
            logger.info("raw_chat missing, snapshot dropped")
            return SnapshotSummary(exists=False)

        raw_rows = read_rows(conn, RAW_CHAT, raw_columns)
        roster_columns = registry.columns(conn, AGENT_INFO)
        roster_rows = read_rows(conn, AGENT_INFO, roster_columns) if roster_columns else []

        present = [col for col in EXPECTED_COLUMNS if col in raw_columns]
        lookup = build_roster_lookup(roster_rows, roster_columns or [])
        has_custom_vars = 'custom_variables' in raw_columns
        has_market = bool(roster_columns) and ROSTER_MARKET in roster_columns

        snapshot_columns = present + list(COMPUTED_COLUMNS)
        snapshot_rows = []
        for row in raw_rows:
            match = resolve(row.get('agent'), lookup)
            values = [row.get(col) for col in present]
            values.append(match.actual_agent if match else None)
            values.append(match.market if match and has_market else None)
            values.append(vip_status_for(row.get('custom_variables')) if has_custom_vars else None)
            snapshot_rows.append(values)

        count = write_dataset(conn, registry, DATA_SNAPSHOT, snapshot_columns, snapshot_rows)

    SNAPSHOT_REBUILD_SECONDS.observe(time.perf_counter() - started)
    return SnapshotSummary(exists=True, row_count=count)


def browse_snapshot(engine: Engine, registry: DatasetRegistry, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
    """
    Page through the snapshot for display.

    Rows are ordered by ``start_time`` descending, then ``id`` ascending,
    when those columns exist. ``mapping`` maps display labels to the row keys.
    """
    page = page if page > 0 else 1
    page_size = page_size if 0 < page_size <= 200 else 20
    result: Dict[str, Any] = {
        'columns': display_order(),
        'rows': [],
        'total': 0,
        'page': page,
        'pageSize': page_size,
        'mapping': {},
        'tableMissing': True,
    }

    with engine.connect() as conn:
        columns = registry.columns(conn, DATA_SNAPSHOT)
        if columns is None:
            return result
        order_by = []
        if 'start_time' in columns:
            order_by.append(('start_time', True))
        if 'id' in columns:
            order_by.append(('id', False))
        result['rows'] = read_rows(
            conn,
            DATA_SNAPSHOT,
            columns,
            limit=page_size,
            offset=(page - 1) * page_size,
            order_by=order_by
        )
        result['total'] = count_rows(conn, DATA_SNAPSHOT)

    mapping = {label: col for label, col in DISPLAY_COLUMNS if col in columns}
    mapping.update(COMPUTED_DISPLAY)
    result['mapping'] = mapping
    result['tableMissing'] = False
    return result
