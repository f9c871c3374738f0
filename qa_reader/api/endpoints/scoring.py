from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import Response
from sqlalchemy import Engine

from qa_reader.api.deps import api_key_dep, engine_dep, llm_factory_dep, registry_dep
from qa_reader.api.schemas import ResponseResultAction
from qa_reader.common.errors import InvalidRequestError
from qa_reader.services.datasets import DatasetRegistry
from qa_reader.services.llm_client import LLMClientFactory
from qa_reader.services.scoring import (
    ScoringPipeline, init_results, list_results, reset_results, results_csv
)

router = APIRouter(prefix="/response-result", tags=["Scoring"])


@router.post("")
def post_response_result(
    payload: Optional[ResponseResultAction] = Body(None),
    engine: Engine = Depends(engine_dep),
    registry: DatasetRegistry = Depends(registry_dep),
    client_factory: LLMClientFactory = Depends(llm_factory_dep),
    api_key: Optional[str] = Depends(api_key_dep),
):
    """Actions: ``init`` (create table), ``reset`` (recreate empty), ``process`` (score the sample)."""
    payload = payload or ResponseResultAction()
    if payload.action == "init":
        init_results(engine)
        return {'ok': True}
    if payload.action == "reset":
        reset_results(engine, registry)
        return {'ok': True, 'reset': True}
    if payload.action == "process":
        pipeline = ScoringPipeline(engine, registry, client_factory, api_key)
        return pipeline.run(limit=payload.limit, replace=payload.replace)
    raise InvalidRequestError("Unsupported action")


@router.get("")
def get_response_result(
    download: Optional[str] = Query(None),
    limit: int = Query(50),
    offset: int = Query(0),
    engine: Engine = Depends(engine_dep),
):
    init_results(engine)
    if download == "csv":
        return Response(
            content=results_csv(engine),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": "attachment; filename=response_result.csv"}
        )
    return list_results(engine, limit=limit, offset=offset)
