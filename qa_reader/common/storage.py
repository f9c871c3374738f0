"""
Object Storage

S3-compatible storage for uploaded CSV files. Objects live under a
per-dataset prefix and are named ``{prefix}/{epoch_millis}_{filename}`` so
the newest upload can be picked from the key alone.

Author: The Reader Team
Date: 2026-10-19
"""

import logging
import re
import time
from typing import List, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from qa_reader.common.config import settings
from qa_reader.common.errors import StorageError

logger = logging.getLogger("storage")

_SAFE_NAME = re.compile(r'[^A-Za-z0-9._-]+')


def object_key(prefix: str, filename: str, now_ms: Optional[int] = None) -> str:
    """Build a timestamped object key for an uploaded file."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    safe = _SAFE_NAME.sub('_', filename.strip()) or 'upload.csv'
    return f"{prefix}/{now_ms}_{safe}"


def key_timestamp(key: str) -> int:
    last = key.rsplit('/', 1)[-1]
    head = last.split('_', 1)[0]
    return int(head) if head.isdigit() else 0


def pick_latest(keys: List[str]) -> Optional[str]:
    """Return the key with the newest timestamp prefix, or None."""
    if not keys:
        return None
    return max(keys, key=key_timestamp)


def original_name(key: str) -> str:
    """Strip the prefix and timestamp from a key to recover the file name."""
    last = key.rsplit('/', 1)[-1]
    return last.split('_', 1)[1] if '_' in last else last


class ObjectStorage:
    """
    Thin wrapper around an S3 client bound to one bucket.

    Every botocore failure is re-raised as StorageError so the API layer
    reports it as an upstream failure.
    """

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    def upload(self, key: str, data: bytes, content_type: str = 'text/csv') -> str:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type
            )
        except (BotoCoreError, ClientError) as ex:
            raise StorageError(f"Upload of {key} failed: {ex}") from ex
        return key

    def list_prefix(self, prefix: str) -> List[str]:
        keys: List[str] = []
        try:
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self.bucket, Prefix=f"{prefix}/"):
                keys.extend(obj['Key'] for obj in page.get('Contents', []))
        except (BotoCoreError, ClientError) as ex:
            raise StorageError(f"Listing {prefix} failed: {ex}") from ex
        return keys

    def download(self, key: str) -> bytes:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
            return obj['Body'].read()
        except (BotoCoreError, ClientError) as ex:
            raise StorageError(f"Download of {key} failed: {ex}") from ex

    def delete(self, keys: List[str]) -> None:
        if not keys:
            return
        try:
            self.client.delete_objects(
                Bucket=self.bucket,
                Delete={'Objects': [{'Key': k} for k in keys]}
            )
        except (BotoCoreError, ClientError) as ex:
            raise StorageError(f"Delete failed: {ex}") from ex

    def presign_upload(self, key: str, expires_in: int) -> str:
        try:
            return self.client.generate_presigned_url(
                'put_object',
                Params={'Bucket': self.bucket, 'Key': key, 'ContentType': 'text/csv'},
                ExpiresIn=expires_in
            )
        except (BotoCoreError, ClientError) as ex:
            raise StorageError(f"Presign of {key} failed: {ex}") from ex

    def keep_latest(self, prefix: str, keep_key: str) -> List[str]:
        """Delete every object under ``prefix`` except ``keep_key``."""
        stale = [k for k in self.list_prefix(prefix) if k != keep_key]
        self.delete(stale)
        if stale:
            logger.info(f"Removed {len(stale)} stale object(s) under {prefix}/")
        return stale

    def ping(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as ex:
            raise StorageError(f"Bucket {self.bucket} unavailable: {ex}") from ex


# Global storage instance (initialized lazily)
_storage: Optional[ObjectStorage] = None


def get_storage() -> ObjectStorage:
    """
    Get or create the process storage client.

    Returns:
        ObjectStorage: storage bound to the configured bucket
    """
    global _storage
    if _storage is None:
        session = boto3.session.Session()
        client = session.client(
            's3',
            endpoint_url=settings.s3_endpoint,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            config=Config(signature_version='s3v4'),
            region_name=settings.s3_region
        )
        _storage = ObjectStorage(client, settings.s3_bucket)
    return _storage
