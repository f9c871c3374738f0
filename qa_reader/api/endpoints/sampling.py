from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from qa_reader.api.deps import engine_dep, registry_dep
from qa_reader.api.schemas import SamplingRequest
from qa_reader.services.datasets import DatasetRegistry
from qa_reader.services.sampling import SamplingParams, drop_sampling, run_sampling, sampling_preview

router = APIRouter(prefix="/sampling", tags=["Sampling"])


@router.get("")
def get_sampling(engine: Engine = Depends(engine_dep), registry: DatasetRegistry = Depends(registry_dep)):
    return sampling_preview(engine, registry)


@router.post("")
def post_sampling(
    payload: SamplingRequest,
    engine: Engine = Depends(engine_dep),
    registry: DatasetRegistry = Depends(registry_dep),
):
    params = SamplingParams.build(**payload.model_dump())
    return run_sampling(engine, registry, params)


@router.delete("")
def delete_sampling(engine: Engine = Depends(engine_dep), registry: DatasetRegistry = Depends(registry_dep)):
    return drop_sampling(engine, registry)
