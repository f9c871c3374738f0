"""
Insights Aggregator

Read-only dashboard aggregations over the snapshot (``processed`` source)
or the sample (``sampling`` source): top-N value counts, a duration
histogram, KPIs, a daily time series and VIP/normal counts per agent.
Everything can be windowed to the last N days.

Author: The Reader Team
Date: 2026-10-19
"""

import logging
import re
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import Engine

from qa_reader.services.datasets import DATA_SNAPSHOT, SAMPLING_DATA, DatasetRegistry, read_rows

logger = logging.getLogger("insights")

SOURCE_TABLES = {
    'processed': DATA_SNAPSHOT,
    'sampling': SAMPLING_DATA,
}
TOP_LIMIT = 50
VIP_BY_AGENT_LIMIT = 10
BLANK = '(blank)'
SERIES_COLUMNS = ('department', 'agent', 'actual_agent', 'market', 'vip_status', 'rating', 'category', 'country_region')
BUCKETS = ('<5', '<10', '<15', '<20', '20+')

_DATE_PREFIX = re.compile(r'^\d{4}-\d{2}-\d{2}')
_PLAIN_NUMBER = re.compile(r'^\d+(\.\d+)?$')


def resolve_source(source: Optional[str]) -> str:
    return 'sampling' if (source or '').lower() == 'sampling' else 'processed'


def parse_duration_minutes(value: Optional[str]) -> Optional[float]:
    """
    Parse a chat duration into minutes.

    A plain numeral is already minutes; ``H:MM:SS`` and ``MM:SS`` are
    converted. Returns None for anything else.
    """
    if value is None:
        return None
    text = str(value).strip()
    if _PLAIN_NUMBER.match(text):
        return float(text)
    parts = text.split(':')
    try:
        if len(parts) >= 3:
            seconds = float(parts[2]) if parts[2] else 0.0
            return float(parts[0]) * 60 + float(parts[1]) + seconds / 60
        if len(parts) == 2:
            seconds = float(parts[1]) if parts[1] else 0.0
            return float(parts[0]) + seconds / 60
    except ValueError:
        return None
    return None


def duration_bucket(minutes: Optional[float]) -> str:
    minutes = minutes or 0.0
    if minutes < 5:
        return '<5'
    if minutes < 10:
        return '<10'
    if minutes < 15:
        return '<15'
    if minutes < 20:
        return '<20'
    return '20+'


def _to_datetime(text: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(text.strip())
    except ValueError:
        try:
            parsed = datetime.strptime(text[:10], '%Y-%m-%d')
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_timestamp(row: Dict[str, Any]) -> Optional[datetime]:
    """First of ``start_time`` / ``end_time`` that starts with ``YYYY-MM-DD``, as naive UTC."""
    for col in ('start_time', 'end_time'):
        value = row.get(col)
        if value and _DATE_PREFIX.match(str(value)):
            return _to_datetime(str(value))
    return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or str(value).strip() == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _series(rows: Sequence[Dict[str, Any]], col: str) -> List[Dict[str, Any]]:
    counts = Counter(BLANK if row.get(col) is None else str(row.get(col)) for row in rows)
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [{'key': key, 'count': count} for key, count in ordered[:TOP_LIMIT]]


def empty_insights(source: str, exists: bool = False) -> Dict[str, Any]:
    result: Dict[str, Any] = {'source': source, 'exists': exists, 'total': 0}
    for col in SERIES_COLUMNS:
        result[col] = []
    result['duration_buckets'] = []
    result['kpis'] = {
        'unique_agents': 0,
        'vip_percent': 0.0,
        'avg_duration_minutes': None,
        'avg_rating': None,
    }
    result['timeseries'] = []
    result['vip_by_agent'] = []
    return result


def compute_insights(
    rows: Sequence[Dict[str, Any]],
    columns: Sequence[str],
    source: str,
    days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Aggregate rows already read from the source table.

    Args:
        rows: Source rows as dicts
        columns: Columns present in the source table
        source: ``processed`` or ``sampling`` (echoed back)
        days: Keep only rows whose timestamp falls in the last N days
        now: Reference time for the window (naive UTC)
    """
    present = set(columns)
    result = empty_insights(source, exists=True)

    stamped = [(row, parse_timestamp(row)) for row in rows]
    if days is not None:
        now = now or datetime.now(timezone.utc).replace(tzinfo=None)
        cutoff = now - timedelta(days=max(0, days))
        stamped = [(row, ts) for row, ts in stamped if ts is not None and ts >= cutoff]
    window = [row for row, _ts in stamped]
    result['total'] = len(window)

    agent_col = 'agent_caller_name' if 'agent_caller_name' in present else ('agent' if 'agent' in present else None)
    for col in SERIES_COLUMNS:
        source_col = agent_col if col == 'agent' else col
        if source_col and source_col in present:
            result[col] = _series(window, source_col)

    if 'duration' in present:
        minutes = [parse_duration_minutes(row.get('duration')) for row in window]
        bucket_counts = Counter(duration_bucket(m) for m in minutes)
        result['duration_buckets'] = [
            {'bucket': bucket, 'count': bucket_counts[bucket]} for bucket in BUCKETS if bucket_counts[bucket]
        ]
        parsed = [m for m in minutes if m is not None]
        result['kpis']['avg_duration_minutes'] = sum(parsed) / len(parsed) if parsed else None

    has_actual = 'actual_agent' in present

    def agent_key(row: Dict[str, Any]) -> Optional[str]:
        actual = row.get('actual_agent') if has_actual else None
        if actual is not None:
            return actual
        return row.get(agent_col) if agent_col else None

    if has_actual or agent_col:
        keys = {agent_key(row) for row in window}
        keys.discard(None)
        result['kpis']['unique_agents'] = len(keys)

    has_vip = 'vip_status' in present

    def is_vip(row: Dict[str, Any]) -> bool:
        return has_vip and (row.get('vip_status') or 'normal') == 'vip'

    if has_vip:
        vip_count = sum(1 for row in window if is_vip(row))
        result['kpis']['vip_percent'] = 100.0 * vip_count / max(len(window), 1)

    if 'rating' in present:
        ratings = [r for r in (_as_float(row.get('rating')) for row in window) if r is not None]
        result['kpis']['avg_rating'] = sum(ratings) / len(ratings) if ratings else None

    if 'start_time' in present or 'end_time' in present:
        per_day = Counter(ts.strftime('%Y-%m-%d') for _row, ts in stamped if ts is not None)
        result['timeseries'] = [{'date': day, 'count': per_day[day]} for day in sorted(per_day)]

    if has_actual or agent_col:
        stacked: Dict[str, Dict[str, int]] = defaultdict(lambda: {'vip': 0, 'normal': 0})
        for row in window:
            key = agent_key(row)
            entry = stacked[BLANK if key is None else str(key)]
            entry['vip' if is_vip(row) else 'normal'] += 1
        ordered = sorted(stacked.items(), key=lambda item: (-(item[1]['vip'] + item[1]['normal']), item[0]))
        result['vip_by_agent'] = [
            {'agent': agent, 'vip': counts['vip'], 'normal': counts['normal']}
            for agent, counts in ordered[:VIP_BY_AGENT_LIMIT]
        ]

    return result


def get_insights(
    engine: Engine,
    registry: DatasetRegistry,
    source: Optional[str] = None,
    days: Optional[int] = None,
) -> Dict[str, Any]:
    """Dashboard insights for a source; a missing table yields ``exists: False``."""
    source = resolve_source(source)
    table = SOURCE_TABLES[source]
    with engine.connect() as conn:
        columns = registry.columns(conn, table)
        if columns is None:
            return empty_insights(source)
        rows = read_rows(conn, table, columns)
    logger.debug(f"Aggregating {len(rows)} row(s) from {table}")
    return compute_insights(rows, columns, source, days)
