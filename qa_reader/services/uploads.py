"""
Upload Service

Takes CSV files for the three uploadable datasets, keeps the latest file
per dataset in object storage and materializes it as a table.

Processing flow:
1. Parse the CSV and normalize its header
2. Store the object (or accept one uploaded through a presigned URL)
3. Delete every older object under the dataset prefix
4. Rebuild the dataset table and its registry entry atomically
5. Rebuild the snapshot when chats or the roster changed

Author: The Reader Team
Date: 2026-10-19
"""

import logging
from typing import Any, Dict, List, Optional

from prometheus_client import Counter
from sqlalchemy import Engine

from qa_reader.common.config import settings
from qa_reader.common.errors import InvalidRequestError
from qa_reader.common.storage import ObjectStorage, object_key, original_name, pick_latest
from qa_reader.services.columns import normalize_headers
from qa_reader.services.datasets import (
    UPLOAD_DATASETS, DatasetRegistry, UploadDataset, count_rows, drop_dataset, get_upload_dataset,
    parse_csv, read_rows, replace_dataset
)
from qa_reader.services.snapshot import rebuild_snapshot

logger = logging.getLogger("uploads")

UPLOADS = Counter('reader_uploads_total', 'CSV uploads materialized', ['dataset'])

PREVIEW_ROWS = 5


class UploadService:
    """
    Upload, retention and table loading for one storage bucket.

    Args:
        engine: Database engine
        registry: Dataset schema registry
        storage: Object storage bound to the upload bucket
    """

    def __init__(self, engine: Engine, registry: DatasetRegistry, storage: ObjectStorage):
        self.engine = engine
        self.registry = registry
        self.storage = storage

    def _load(self, dataset: UploadDataset, header: List[str], records: List[List[str]], key: str) -> Dict[str, Any]:
        columns = normalize_headers(header)

        count = replace_dataset(self.engine, self.registry, dataset.table, columns, records, object_key=key)
        UPLOADS.labels(dataset=dataset.name).inc()
        logger.info(f"Loaded {dataset.name} from {key}: {count} row(s)")

        snapshot = None
        if dataset.feeds_snapshot:
            snapshot = rebuild_snapshot(self.engine, self.registry)
        return {
            'ok': True,
            'table': dataset.table,
            'object': key,
            'columns': columns,
            'rows': count,
            'snapshot_rows': snapshot.row_count if snapshot else None,
        }

    def upload_file(self, dataset_name: Optional[str], filename: Optional[str], data: bytes) -> Dict[str, Any]:
        """
        Store an uploaded file and load it.

        The CSV is parsed before anything is written, so a bad file leaves
        storage and tables untouched.
        """
        dataset = get_upload_dataset(dataset_name)
        if data is None:
            raise InvalidRequestError("Missing file")
        header, records = parse_csv(data)

        key = object_key(dataset.storage_prefix, filename or 'upload.csv')
        self.storage.upload(key, data)
        self.storage.keep_latest(dataset.storage_prefix, key)
        return self._load(dataset, header, records, key)

    def ingest_object(self, dataset_name: Optional[str], object_path: Optional[str]) -> Dict[str, Any]:
        """Load a file that was uploaded directly through a presigned URL."""
        dataset = get_upload_dataset(dataset_name)
        if not object_path:
            raise InvalidRequestError("Missing objectPath")
        if not object_path.startswith(f"{dataset.storage_prefix}/"):
            raise InvalidRequestError(f"objectPath must be under {dataset.storage_prefix}/")

        data = self.storage.download(object_path)
        header, records = parse_csv(data)
        self.storage.keep_latest(dataset.storage_prefix, object_path)
        return self._load(dataset, header, records, object_path)

    def presign(self, dataset_name: Optional[str], filename: Optional[str]) -> Dict[str, Any]:
        dataset = get_upload_dataset(dataset_name)
        filename = (filename or '').strip()
        if not filename:
            raise InvalidRequestError("Missing filename")
        key = object_key(dataset.storage_prefix, filename)
        url = self.storage.presign_upload(key, settings.presign_expiry_seconds)
        return {'bucket': self.storage.bucket, 'path': key, 'url': url}

    def _latest_entry(self, dataset: UploadDataset) -> Optional[Dict[str, Any]]:
        latest = pick_latest(self.storage.list_prefix(dataset.storage_prefix))
        if latest is None:
            return None
        return {
            'type': dataset.name,
            'bucket': self.storage.bucket,
            'objectPath': latest,
            'fileName': original_name(latest),
        }

    def latest(self, dataset_name: Optional[str] = None) -> Dict[str, Any]:
        """Latest stored object for one dataset, or for all of them."""
        if dataset_name:
            dataset = get_upload_dataset(dataset_name)
            return {dataset.name: self._latest_entry(dataset)}
        return {name: self._latest_entry(dataset) for name, dataset in UPLOAD_DATASETS.items()}

    def preview(self, dataset_name: Optional[str]) -> Dict[str, Any]:
        dataset = get_upload_dataset(dataset_name)
        with self.engine.connect() as conn:
            columns = self.registry.columns(conn, dataset.table)
            if columns is None:
                return {'type': dataset.name, 'columns': [], 'rows': [], 'total': 0}
            rows = read_rows(conn, dataset.table, columns, limit=PREVIEW_ROWS)
            total = count_rows(conn, dataset.table)
        return {'type': dataset.name, 'columns': list(columns), 'rows': rows, 'total': total}

    def delete(self, dataset_name: Optional[str]) -> Dict[str, Any]:
        """Remove stored files and the table; the snapshot follows its sources."""
        dataset = get_upload_dataset(dataset_name)
        self.storage.delete(self.storage.list_prefix(dataset.storage_prefix))
        drop_dataset(self.engine, self.registry, dataset.table)
        if dataset.feeds_snapshot:
            rebuild_snapshot(self.engine, self.registry)
        return {'ok': True}
