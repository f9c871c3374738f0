from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from qa_reader.api.deps import engine_dep
from qa_reader.api.schemas import AgentConfigRequest
from qa_reader.services import configuration

router = APIRouter(prefix="/ai-agent-config", tags=["Configuration"])


@router.get("")
def get_agent_config(engine: Engine = Depends(engine_dep)):
    return configuration.get_agent_config(engine)


@router.put("")
def put_agent_config(payload: AgentConfigRequest, engine: Engine = Depends(engine_dep)):
    return configuration.save_agent_config(engine, payload.rubric_understanding)
