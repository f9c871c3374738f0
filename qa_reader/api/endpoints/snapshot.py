from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from qa_reader.api.deps import engine_dep, registry_dep
from qa_reader.services.datasets import DatasetRegistry
from qa_reader.services.snapshot import browse_snapshot, rebuild_snapshot

router = APIRouter(prefix="/snapshot", tags=["Snapshot"])


@router.get("")
def get_snapshot(
    page: int = Query(1),
    page_size: int = Query(20, alias="pageSize"),
    engine: Engine = Depends(engine_dep),
    registry: DatasetRegistry = Depends(registry_dep),
):
    return browse_snapshot(engine, registry, page, page_size)


@router.post("/rebuild")
def post_rebuild(engine: Engine = Depends(engine_dep), registry: DatasetRegistry = Depends(registry_dep)):
    summary = rebuild_snapshot(engine, registry)
    return {'ok': True, 'exists': summary.exists, 'total': summary.row_count}
