from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from qa_reader.api.deps import engine_dep, llm_factory_dep
from qa_reader.api.schemas import ApiConfigurationRequest
from qa_reader.services import configuration
from qa_reader.services.llm_client import LLMClientFactory

router = APIRouter(prefix="/api-configuration", tags=["Configuration"])


@router.get("")
def get_configuration(mode: Optional[str] = Query(None), engine: Engine = Depends(engine_dep)):
    if mode == "usage":
        return configuration.usage(engine)
    return configuration.describe(engine)


@router.put("")
def put_configuration(
    payload: ApiConfigurationRequest,
    engine: Engine = Depends(engine_dep),
    client_factory: LLMClientFactory = Depends(llm_factory_dep),
):
    """Save provider/model/budget, or check the credential (``test``) or model (``testModel``)."""
    if payload.action == "test":
        configuration.validate_selection(payload.provider, payload.model)
        return configuration.test_key(client_factory, payload.openai_key)
    if payload.action == "testModel":
        return configuration.test_model(
            engine,
            client_factory,
            provider=payload.provider,
            model=payload.model,
            key=payload.openai_key
        )
    return configuration.save(
        engine,
        provider=payload.provider,
        model=payload.model,
        monthly_budget_usd=payload.monthly_budget_usd
    )
