"""
Processed results: numeric flattening of ``response_result`` into
``processed_data`` for reporting.
"""

import logging
import re
from typing import Any, Dict, Optional

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from qa_reader.common.models import CRITERIA, ProcessedResult, ResponseResult

logger = logging.getLogger("results")

_SCORE_CELL = re.compile(r'(\d{1,3})\s*/\s*100')
DEFAULT_QA_NAME = 'AIVA'
LIST_LIMIT = 200


def score_cell_value(value: Any) -> Optional[float]:
    """
    Extract the score from a ``"NN/100 - comment"`` cell.

    Falls back to parsing the whole cell as a number; returns None when
    neither works.
    """
    if value is None:
        return None
    text = str(value)
    match = _SCORE_CELL.search(text)
    if match:
        return float(match.group(1))
    try:
        number = float(text)
    except ValueError:
        return None
    return number if number not in (float('inf'), float('-inf')) and number == number else None


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() == 'true'


def flatten_result(result: ResponseResult) -> ProcessedResult:
    qa_name = (result.qa_name or '').strip() or DEFAULT_QA_NAME
    processed = ProcessedResult(
        qa_name=qa_name,
        agent_caller_name=result.agent_caller_name,
        breach_confidentiality=_flag(result.breach_confidentiality_auto_failed),
        rudeness_unprofessionalism=_flag(result.rudeness_unprofessionalism_auto_failed),
        scoring=result.final_score,
        results=result.quality_assurance_feedback,
        agent_status=None,
    )
    for key in CRITERIA:
        setattr(processed, key, score_cell_value(getattr(result, key)))
    return processed


def reset_processed(engine: Engine) -> None:
    ProcessedResult.__table__.drop(engine, checkfirst=True)
    ProcessedResult.__table__.create(engine)
    logger.info("processed_data recreated")


def process_results(engine: Engine, replace: bool = False) -> Dict[str, Any]:
    """
    Append one processed row per scoring result, oldest first.

    Args:
        engine: Database engine
        replace: Recreate ``processed_data`` before inserting
    """
    if replace:
        reset_processed(engine)
    else:
        ProcessedResult.__table__.create(engine, checkfirst=True)
    ResponseResult.__table__.create(engine, checkfirst=True)

    with Session(engine) as session, session.begin():
        results = session.scalars(
            select(ResponseResult).order_by(ResponseResult.created_at.asc())
        ).all()
        session.add_all(flatten_result(r) for r in results)
        inserted = len(results)

    logger.info(f"Inserted {inserted} processed row(s)")
    return {'ok': True, 'inserted': inserted}


PROCESSED_COLUMNS = [col.name for col in ProcessedResult.__table__.columns]


def list_processed(engine: Engine) -> Dict[str, Any]:
    ProcessedResult.__table__.create(engine, checkfirst=True)
    table = ProcessedResult.__table__
    with engine.connect() as conn:
        rows = conn.execute(
            select(table).order_by(table.c.id).limit(LIST_LIMIT)
        ).mappings().all()
    return {
        'ok': True,
        'rows': [dict(r) for r in rows],
        'columns': PROCESSED_COLUMNS,
        'total': len(rows),
    }
