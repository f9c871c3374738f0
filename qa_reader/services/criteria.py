"""
Criteria rubric management: browse the ``criteria_scoring`` table with
weight totals, edit rows in place and reload it from the stored CSV.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import Connection, Engine, select, update

from qa_reader.common.errors import InvalidRequestError
from qa_reader.common.storage import ObjectStorage, pick_latest
from qa_reader.services.columns import normalize_headers
from qa_reader.services.datasets import (
    CRITERIA_SCORING, ROW_ID, UPLOAD_DATASETS, DatasetRegistry, dataset_table, parse_csv,
    replace_dataset
)

logger = logging.getLogger("criteria")

ROW_LIMIT = 1000
CUSTOMER_TYPES = ('normal', 'premier')


def _weight(value: Any) -> float:
    if value is None or str(value).strip() == '':
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def criteria_totals(rows: Sequence[Mapping[str, Any]]) -> Dict[str, float]:
    """
    Total weight per customer type.

    Each (customer type, criterion) pair contributes its highest weightage
    once; types are matched by substring, so ``Normal Customer`` counts
    as ``normal``.
    """
    best: Dict[tuple, float] = {}
    for row in rows:
        key = (row.get('customer_type') or '', row.get('criteria') or '')
        best[key] = max(best.get(key, 0.0), _weight(row.get('weightage')))

    per_type: Dict[str, float] = defaultdict(float)
    for (customer_type, _criterion), weight in best.items():
        per_type[customer_type] += weight

    totals: Dict[str, float] = {}
    for customer_type, total in per_type.items():
        label = customer_type.lower()
        for known in CUSTOMER_TYPES:
            if known in label:
                totals[known] = totals.get(known, 0.0) + total
    return totals


def _clean_updates(updates: Any, columns: Sequence[str]) -> Dict[str, Optional[str]]:
    if not isinstance(updates, Mapping):
        return {}
    valid = set(columns)
    return {
        key: (None if value is None else str(value))
        for key, value in updates.items()
        if key in valid
    }


def _row_key(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidRequestError(f"Invalid row id: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as ex:
        raise InvalidRequestError(f"Invalid row id: {value!r}") from ex


class CriteriaService:
    def __init__(self, engine: Engine, registry: DatasetRegistry, storage: ObjectStorage):
        self.engine = engine
        self.registry = registry
        self.storage = storage

    def _columns(self, conn: Connection) -> List[str]:
        columns = self.registry.columns(conn, CRITERIA_SCORING)
        if columns is None:
            raise InvalidRequestError("criteria_scoring table not found")
        return columns

    def get(self) -> Dict[str, Any]:
        with self.engine.connect() as conn:
            columns = self.registry.columns(conn, CRITERIA_SCORING)
            if columns is None:
                return {'columns': [], 'rows': [], 'totals': {}}
            table = dataset_table(CRITERIA_SCORING, columns)
            rows = [
                dict(r) for r in conn.execute(
                    select(table).order_by(table.c[ROW_ID]).limit(ROW_LIMIT)
                ).mappings()
            ]
            all_rows = [dict(r) for r in conn.execute(select(table)).mappings()]
        return {
            'columns': [ROW_ID] + list(columns),
            'rows': rows,
            'totals': criteria_totals(all_rows),
        }

    def update_row(self, row_id: Any, updates: Any) -> Dict[str, Any]:
        """Update one row by ``_row_id``; unknown columns are ignored."""
        if not row_id or not isinstance(updates, Mapping):
            raise InvalidRequestError("id and updates required")
        key = _row_key(row_id)
        with self.engine.begin() as conn:
            columns = self._columns(conn)
            values = _clean_updates(updates, columns)
            if not values:
                return {'ok': True, 'unchanged': True}
            table = dataset_table(CRITERIA_SCORING, columns)
            conn.execute(update(table).where(table.c[ROW_ID] == key).values(**values))
            row = conn.execute(select(table).where(table.c[ROW_ID] == key)).mappings().first()
        return {'ok': True, 'row': dict(row) if row else None}

    def batch_update(self, items: Any) -> Dict[str, Any]:
        """Apply many row updates in one transaction; one bad id rejects the batch."""
        if not isinstance(items, list) or not items:
            raise InvalidRequestError("updates array required")
        affected = 0
        with self.engine.begin() as conn:
            columns = self._columns(conn)
            table = dataset_table(CRITERIA_SCORING, columns)
            for item in items:
                if not isinstance(item, Mapping) or not item.get('id'):
                    continue
                values = _clean_updates(item.get('updates'), columns)
                if not values:
                    continue
                result = conn.execute(
                    update(table).where(table.c[ROW_ID] == _row_key(item['id'])).values(**values)
                )
                affected += result.rowcount or 0
        logger.info(f"Batch updated {affected} criteria row(s)")
        return {'ok': True, 'affected': affected}

    def reset_from_storage(self) -> Dict[str, Any]:
        """Rebuild the rubric table from the newest stored criteria CSV."""
        prefix = UPLOAD_DATASETS[CRITERIA_SCORING].storage_prefix
        latest = pick_latest(self.storage.list_prefix(prefix))
        if latest is None:
            raise InvalidRequestError("No criteria file found in storage")
        header, records = parse_csv(self.storage.download(latest))
        replace_dataset(
            self.engine,
            self.registry,
            CRITERIA_SCORING,
            normalize_headers(header),
            records,
            object_key=latest
        )
        return {'ok': True, 'reset': True}
