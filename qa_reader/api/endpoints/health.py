from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import Engine

from qa_reader.api.deps import engine_dep, storage_dep
from qa_reader.common.storage import ObjectStorage
from qa_reader.services.health import check_services, table_report

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("/services")
def health_services(engine: Engine = Depends(engine_dep), storage: ObjectStorage = Depends(storage_dep)):
    """Storage and database reachability; 500 when either is down."""
    result, healthy = check_services(engine, storage)
    return JSONResponse(result, status_code=200 if healthy else 500)


@router.get("/tables")
def health_tables(engine: Engine = Depends(engine_dep)):
    return table_report(engine)
