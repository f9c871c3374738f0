"""
API configuration: the singleton provider/model row, monthly usage and
credential checks. Also the agent configuration singleton holding the
reviewers' rubric notes.

The credential is never stored here; it comes from the secret store via
``settings.openai_api_key``. A key sent with a test action is used for
that check only.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from qa_reader.common.config import settings
from qa_reader.common.errors import InvalidRequestError
from qa_reader.common.models import AgentConfiguration, ApiConfiguration
from qa_reader.services.llm_client import (
    DEFAULT_MODEL, MODEL_MAP, PROVIDERS, LLMClientFactory, provider_model_id
)
from qa_reader.services.scoring import current_month

logger = logging.getLogger("configuration")


def ensure_configuration(session: Session) -> ApiConfiguration:
    """Load the singleton row, creating it with defaults when absent."""
    config = session.get(ApiConfiguration, 1)
    if config is None:
        config = ApiConfiguration(
            id=1,
            provider=PROVIDERS[0],
            model=DEFAULT_MODEL,
            usage_month=current_month(),
            usage_tokens=0
        )
        session.add(config)
        session.flush()
    if config.usage_month is None:
        config.usage_month = current_month()
    if config.usage_tokens is None:
        config.usage_tokens = 0
    return config


def _budget(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def describe(engine: Engine) -> Dict[str, Any]:
    with Session(engine) as session, session.begin():
        config = ensure_configuration(session)
        return {
            'provider': config.provider,
            'model': config.model,
            'monthly_budget_usd': _budget(config.monthly_budget_usd),
            'has_key': bool(settings.openai_api_key),
        }


def usage(engine: Engine) -> Dict[str, Any]:
    with Session(engine) as session, session.begin():
        config = ensure_configuration(session)
        return {
            'month': config.usage_month,
            'tokens': int(config.usage_tokens or 0),
            'monthly_budget_usd': _budget(config.monthly_budget_usd),
        }


def validate_selection(provider: Optional[str], model: Optional[str]) -> None:
    if provider and provider not in PROVIDERS:
        raise InvalidRequestError("Unsupported provider")
    if model and model not in MODEL_MAP:
        raise InvalidRequestError("Unsupported model")


def save(
    engine: Engine,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    monthly_budget_usd: Any = None,
) -> Dict[str, Any]:
    """
    Save provider, model and budget.

    Empty provider/model keep the stored values; the budget is always
    overwritten (None clears it).
    """
    provider = (provider or '').strip() or None
    model = (model or '').strip() or None
    validate_selection(provider, model)

    budget = None
    if monthly_budget_usd is not None:
        try:
            budget = Decimal(str(monthly_budget_usd))
        except InvalidOperation as ex:
            raise InvalidRequestError("Invalid monthly_budget_usd") from ex
        if not budget.is_finite():
            raise InvalidRequestError("Invalid monthly_budget_usd")

    with Session(engine) as session, session.begin():
        config = ensure_configuration(session)
        if provider:
            config.provider = provider
        if model:
            config.model = model
        config.monthly_budget_usd = budget
    logger.info(f"API configuration saved: provider={provider}, model={model}")
    return {'ok': True}


def test_key(client_factory: LLMClientFactory, key: Optional[str] = None) -> Dict[str, Any]:
    """Check the models list with the given key, else the configured one."""
    key = (key or '').strip() or settings.openai_api_key
    if not key:
        raise InvalidRequestError("Missing key")
    with client_factory(key) as client:
        return client.check_models()


def test_model(
    engine: Engine,
    client_factory: LLMClientFactory,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Send a one-token completion for the given (or stored) model.

    Problems are reported as ``{"ok": False, "error": ...}`` rather than
    raised, matching what the configuration page displays.
    """
    if (provider or PROVIDERS[0]) not in PROVIDERS:
        return {'ok': False, 'error': 'Unsupported provider'}

    label = (model or '').strip()
    if not label:
        with Session(engine) as session, session.begin():
            label = ensure_configuration(session).model or DEFAULT_MODEL
    if label not in MODEL_MAP:
        return {'ok': False, 'error': 'Unsupported model'}

    key = (key or '').strip() or settings.openai_api_key
    if not key:
        return {'ok': False, 'error': 'Missing API key (enter a key or configure one first)'}

    with client_factory(key) as client:
        return client.check_model(provider_model_id(label))


def ensure_agent_config(session: Session) -> AgentConfiguration:
    config = session.get(AgentConfiguration, 1)
    if config is None:
        config = AgentConfiguration(id=1)
        session.add(config)
        session.flush()
    return config


def get_agent_config(engine: Engine) -> Dict[str, Any]:
    with Session(engine) as session, session.begin():
        config = ensure_agent_config(session)
        return {'config': {'rubric_understanding': config.rubric_understanding}}


def save_agent_config(engine: Engine, rubric_understanding: Optional[str] = None) -> Dict[str, Any]:
    """Overwrite the rubric notes; a missing value clears them."""
    with Session(engine) as session, session.begin():
        ensure_agent_config(session).rubric_understanding = rubric_understanding
    logger.info("Agent configuration saved")
    return {'ok': True}
