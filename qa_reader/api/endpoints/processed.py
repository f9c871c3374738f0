from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy import Engine

from qa_reader.api.deps import engine_dep
from qa_reader.api.schemas import ProcessedDataAction
from qa_reader.common.errors import InvalidRequestError
from qa_reader.services.results import list_processed, process_results, reset_processed

router = APIRouter(prefix="/processed-data", tags=["Processed"])


@router.post("")
def post_processed_data(
    payload: Optional[ProcessedDataAction] = Body(None),
    engine: Engine = Depends(engine_dep),
):
    payload = payload or ProcessedDataAction()
    if payload.action in ("reset", "recreate"):
        reset_processed(engine)
        return {'ok': True, 'reset': True}
    if payload.action == "process":
        return process_results(engine, replace=payload.replace)
    raise InvalidRequestError("Unsupported action")


@router.get("")
def get_processed_data(engine: Engine = Depends(engine_dep)):
    return list_processed(engine)
