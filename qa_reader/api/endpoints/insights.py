from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from qa_reader.api.deps import engine_dep, registry_dep
from qa_reader.services.datasets import DatasetRegistry
from qa_reader.services.insights import get_insights

router = APIRouter(prefix="/insights", tags=["Insights"])


@router.get("")
def read_insights(
    source: Optional[str] = Query("processed"),
    days: Optional[int] = Query(None, ge=0),
    engine: Engine = Depends(engine_dep),
    registry: DatasetRegistry = Depends(registry_dep),
):
    return get_insights(engine, registry, source, days)
