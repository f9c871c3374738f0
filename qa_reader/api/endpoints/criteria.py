from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from qa_reader.api.deps import engine_dep, registry_dep, storage_dep
from qa_reader.api.schemas import CriteriaAction, CriteriaRowUpdate
from qa_reader.common.errors import InvalidRequestError
from qa_reader.common.storage import ObjectStorage
from qa_reader.services.criteria import CriteriaService
from qa_reader.services.datasets import DatasetRegistry

router = APIRouter(prefix="/criteria-scoring", tags=["Criteria"])


def criteria_service(
    engine: Engine = Depends(engine_dep),
    registry: DatasetRegistry = Depends(registry_dep),
    storage: ObjectStorage = Depends(storage_dep),
) -> CriteriaService:
    return CriteriaService(engine, registry, storage)


@router.get("")
def get_criteria(service: CriteriaService = Depends(criteria_service)):
    return service.get()


@router.patch("")
def patch_criteria(payload: CriteriaRowUpdate, service: CriteriaService = Depends(criteria_service)):
    return service.update_row(payload.id, payload.updates)


@router.post("")
def post_criteria(payload: CriteriaAction, service: CriteriaService = Depends(criteria_service)):
    if payload.action == "batchUpdate":
        return service.batch_update(payload.updates)
    if payload.action == "reset":
        return service.reset_from_storage()
    raise InvalidRequestError("Unsupported action")
