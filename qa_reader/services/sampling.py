"""
Sampling Engine

Draws a stratified random subset of ``data_snapshot`` into
``sampling_data``:

1. Pick a share of the distinct agents (``actual_agent``, else ``agent``)
2. Keep only the chats of picked agents
3. Sample the normal and vip strata independently, then union them
4. Optionally down-sample the union by an overall chat share
5. Replace ``sampling_data`` atomically

Percentages become row counts with ``ceil`` so a non-zero share of a
non-empty population always selects at least one row.

Author: The Reader Team
Date: 2026-10-19
"""

import logging
import math
import random
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Dict, List, Optional, Sequence

from prometheus_client import Counter
from sqlalchemy import Engine

from qa_reader.common.db import lock_table
from qa_reader.common.errors import InvalidRequestError, SourceMissingError
from qa_reader.services.datasets import (
    DATA_SNAPSHOT, SAMPLING_DATA, DatasetRegistry, count_rows, drop_dataset, read_rows,
    write_dataset
)

logger = logging.getLogger("sampling")

SAMPLED_ROWS = Counter('reader_sampled_rows_total', 'Rows written to sampling_data')
SAMPLING_RUNS = Counter('reader_sampling_runs_total', 'Sampling runs completed')

MODE_ALL = 'all'
MODE_PERCENT = 'percent'
PREVIEW_ROWS = 50


def normalize_mode(mode: Optional[str]) -> str:
    return MODE_PERCENT if mode == MODE_PERCENT else MODE_ALL


def clamp_percent(value: Any) -> float:
    if value is None:
        return 100.0
    try:
        number = float(value)
    except (TypeError, ValueError) as ex:
        raise InvalidRequestError(f"Invalid percent: {value!r}") from ex
    if math.isnan(number):
        raise InvalidRequestError(f"Invalid percent: {value!r}")
    return max(0.0, min(100.0, number))


@dataclass(frozen=True)
class SamplingParams:
    """Four independent (mode, percent) selection knobs."""
    agent_mode: str = MODE_ALL
    agent_percent: float = 100.0
    chat_mode: str = MODE_ALL
    chat_percent: float = 100.0
    normal_mode: str = MODE_ALL
    normal_percent: float = 100.0
    vip_mode: str = MODE_ALL
    vip_percent: float = 100.0

    @classmethod
    def build(
        cls,
        agent_mode: Optional[str] = None,
        agent_percent: Any = None,
        chat_mode: Optional[str] = None,
        chat_percent: Any = None,
        normal_mode: Optional[str] = None,
        normal_percent: Any = None,
        vip_mode: Optional[str] = None,
        vip_percent: Any = None,
    ) -> 'SamplingParams':
        """Coerce loose request values: unknown modes become ``all``, percents are clamped to [0, 100]."""
        return cls(
            agent_mode=normalize_mode(agent_mode),
            agent_percent=clamp_percent(agent_percent),
            chat_mode=normalize_mode(chat_mode),
            chat_percent=clamp_percent(chat_percent),
            normal_mode=normalize_mode(normal_mode),
            normal_percent=clamp_percent(normal_percent),
            vip_mode=normalize_mode(vip_mode),
            vip_percent=clamp_percent(vip_percent),
        )


def take_count(mode: str, percent: float, population: int) -> int:
    """
    Number of rows to draw from a population.

    ``all`` takes everything; ``percent`` takes ``ceil(percent/100 * n)``,
    computed on exact fractions so 30% of 10 is 3, never 4.
    """
    if mode != MODE_PERCENT:
        return population
    exact = Fraction(str(percent)) * population / 100
    return min(population, math.ceil(exact))


def _draw(items: Sequence[Any], mode: str, percent: float, rng: random.Random) -> List[Any]:
    count = take_count(mode, percent, len(items))
    if count >= len(items):
        return list(items)
    return rng.sample(list(items), count)


def agent_key(row: Dict[str, Any]) -> Optional[str]:
    actual = row.get('actual_agent')
    return actual if actual is not None else row.get('agent')


def stratum(row: Dict[str, Any]) -> str:
    vip_status = row.get('vip_status')
    return vip_status if vip_status is not None else 'normal'


def draw_sample(
    rows: Sequence[Dict[str, Any]],
    params: SamplingParams,
    rng: Optional[random.Random] = None,
) -> List[Dict[str, Any]]:
    """
    Run the sampling stages over in-memory snapshot rows.

    Each stage only sees the survivors of the previous one. With every
    mode set to ``all`` the result keeps every normal and vip row: the
    normal rows first, then the vip rows, each in snapshot order. Rows
    of any other stratum are never kept.
    """
    rng = rng or random.Random()

    # Distinct keys in first-seen order so seeded draws are repeatable
    keys = list(dict.fromkeys(agent_key(row) for row in rows))
    picked = set(_draw(keys, params.agent_mode, params.agent_percent, rng))
    filtered = [row for row in rows if agent_key(row) in picked]

    normal = [row for row in filtered if stratum(row) == 'normal']
    vip = [row for row in filtered if stratum(row) == 'vip']
    union = (
        _draw(normal, params.normal_mode, params.normal_percent, rng)
        + _draw(vip, params.vip_mode, params.vip_percent, rng)
    )

    return _draw(union, params.chat_mode, params.chat_percent, rng)


def run_sampling(
    engine: Engine,
    registry: DatasetRegistry,
    params: SamplingParams,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """
    Rebuild ``sampling_data`` from the snapshot.

    The snapshot is read and the sample written while holding the
    ``sampling_data`` lock.

    Raises:
        SourceMissingError: If ``data_snapshot`` does not exist
    """
    with engine.begin() as conn:
        lock_table(conn, SAMPLING_DATA)
        columns = registry.columns(conn, DATA_SNAPSHOT)
        if columns is None:
            raise SourceMissingError("data_snapshot missing")
        rows = read_rows(conn, DATA_SNAPSHOT, columns)

        sample = draw_sample(rows, params, rng)
        count = write_dataset(
            conn,
            registry,
            SAMPLING_DATA,
            columns,
            [[row.get(col) for col in columns] for row in sample]
        )
    SAMPLED_ROWS.inc(count)
    SAMPLING_RUNS.inc()
    logger.info(f"Sampled {count} of {len(rows)} snapshot row(s) with {params}")

    preview = sampling_preview(engine, registry)
    preview['ok'] = True
    return preview


def sampling_preview(engine: Engine, registry: DatasetRegistry) -> Dict[str, Any]:
    """First rows and total of ``sampling_data``, or ``exists: False``."""
    with engine.connect() as conn:
        columns = registry.columns(conn, SAMPLING_DATA)
        if columns is None:
            return {'exists': False, 'columns': [], 'rows': [], 'total': 0}
        rows = read_rows(conn, SAMPLING_DATA, columns, limit=PREVIEW_ROWS)
        total = count_rows(conn, SAMPLING_DATA)
    return {'exists': True, 'columns': list(columns), 'rows': rows, 'total': total}


def drop_sampling(engine: Engine, registry: DatasetRegistry) -> Dict[str, Any]:
    drop_dataset(engine, registry, SAMPLING_DATA)
    return {'ok': True, 'dropped': True, 'total': 0}
