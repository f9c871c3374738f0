# Request bodies sent by the UI (camelCase names accepted as aliases)

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class IngestObjectRequest(_Body):
    type: Optional[str] = None
    object_path: Optional[str] = Field(None, alias='objectPath')


class PresignRequest(_Body):
    type: Optional[str] = None
    filename: Optional[str] = None


class SamplingRequest(_Body):
    agent_mode: Optional[str] = Field(None, alias='agentMode')
    agent_percent: Optional[float] = Field(None, alias='agentPercent')
    chat_mode: Optional[str] = Field(None, alias='chatMode')
    chat_percent: Optional[float] = Field(None, alias='chatPercent')
    normal_mode: Optional[str] = Field(None, alias='normalMode')
    normal_percent: Optional[float] = Field(None, alias='normalPercent')
    vip_mode: Optional[str] = Field(None, alias='vipMode')
    vip_percent: Optional[float] = Field(None, alias='vipPercent')


class ResponseResultAction(_Body):
    action: str = 'init'
    replace: bool = False
    limit: Optional[int] = None


class ProcessedDataAction(_Body):
    action: str = 'process'
    replace: bool = False


class CriteriaRowUpdate(_Body):
    id: Optional[int] = None
    updates: Optional[Dict[str, Any]] = None


class CriteriaAction(_Body):
    action: str = ''
    updates: Optional[List[Dict[str, Any]]] = None


class ApiConfigurationRequest(_Body):
    action: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    openai_key: Optional[str] = None
    monthly_budget_usd: Optional[float] = None


class AgentConfigRequest(_Body):
    rubric_understanding: Optional[str] = None
