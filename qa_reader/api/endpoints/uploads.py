from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError
from sqlalchemy import Engine
from starlette.concurrency import run_in_threadpool

from qa_reader.api.deps import engine_dep, registry_dep, storage_dep
from qa_reader.api.schemas import IngestObjectRequest, PresignRequest
from qa_reader.common.errors import InvalidRequestError
from qa_reader.common.storage import ObjectStorage
from qa_reader.services.datasets import DatasetRegistry, get_upload_dataset
from qa_reader.services.uploads import UploadService

router = APIRouter(prefix="/upload", tags=["Upload"])


def upload_service(
    engine: Engine = Depends(engine_dep),
    registry: DatasetRegistry = Depends(registry_dep),
    storage: ObjectStorage = Depends(storage_dep),
) -> UploadService:
    return UploadService(engine, registry, storage)


@router.post("")
async def upload(request: Request, service: UploadService = Depends(upload_service)):
    """Multipart ``(type, file)`` upload, or JSON ``{type, objectPath}`` after a presigned upload."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            body = IngestObjectRequest.model_validate(await request.json())
        except (ValueError, ValidationError) as ex:
            raise InvalidRequestError("Invalid JSON body") from ex
        return await run_in_threadpool(service.ingest_object, body.type, body.object_path)

    form = await request.form()
    dataset = form.get("type")
    file = form.get("file")
    if not isinstance(dataset, str):
        dataset = None
    get_upload_dataset(dataset)
    if file is None or isinstance(file, str):
        raise InvalidRequestError("Missing file")
    data = await file.read()
    return await run_in_threadpool(service.upload_file, dataset, file.filename, data)


@router.post("/presign")
def presign(payload: PresignRequest, service: UploadService = Depends(upload_service)):
    return service.presign(payload.type, payload.filename)


@router.get("")
def latest_uploads(
    type: Optional[str] = Query(None),
    preview: Optional[str] = Query(None),
    service: UploadService = Depends(upload_service),
):
    if preview and type:
        return service.preview(type)
    return service.latest(type)


@router.delete("")
def delete_upload(type: Optional[str] = Query(None), service: UploadService = Depends(upload_service)):
    return service.delete(type)
