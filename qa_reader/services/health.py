"""
Health checks for the external collaborators and the dataset tables.
"""

import logging
from typing import Any, Dict, Tuple

from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from qa_reader.common.db import table_exists
from qa_reader.common.errors import StorageError
from qa_reader.common.storage import ObjectStorage
from qa_reader.services.datasets import (
    AGENT_INFO, CRITERIA_SCORING, DATA_SNAPSHOT, RAW_CHAT, SAMPLING_DATA, count_rows
)

logger = logging.getLogger("health")

REPORTED_TABLES = (
    RAW_CHAT,
    AGENT_INFO,
    CRITERIA_SCORING,
    DATA_SNAPSHOT,
    SAMPLING_DATA,
    'response_result',
    'processed_data',
)


def check_services(engine: Engine, storage: ObjectStorage) -> Tuple[Dict[str, Any], bool]:
    """
    Check object storage and the database.

    Returns:
        Tuple[dict, bool]: check details and whether both are healthy
    """
    result: Dict[str, Any] = {'storageOk': False, 'dbOk': False}

    try:
        storage.ping()
        result['storageOk'] = True
    except StorageError as ex:
        logger.warning(f"Storage health check failed: {ex.message}")
        result['storageError'] = ex.message

    try:
        with engine.connect() as conn:
            result['dbOk'] = conn.execute(text("select 1")).scalar() == 1
    except SQLAlchemyError as ex:
        logger.warning(f"Database health check failed: {ex}")
        result['dbError'] = str(ex)

    return result, result['storageOk'] and result['dbOk']


def table_report(engine: Engine) -> Dict[str, Dict[str, Any]]:
    report: Dict[str, Dict[str, Any]] = {}
    with engine.connect() as conn:
        for name in REPORTED_TABLES:
            exists = table_exists(conn, name)
            report[name] = {'exists': exists, 'rowCount': count_rows(conn, name) if exists else 0}
    return report
