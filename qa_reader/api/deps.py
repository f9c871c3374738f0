"""
FastAPI dependencies.

Routers receive the engine, schema registry, object storage and LLM
client factory through these functions so tests can override them.
"""

from typing import Optional

from sqlalchemy import Engine

from qa_reader.common.config import settings
from qa_reader.common.db import init_engine
from qa_reader.common.storage import ObjectStorage, get_storage
from qa_reader.services.datasets import DatasetRegistry
from qa_reader.services.llm_client import LLMClientFactory, default_client_factory

_registry = DatasetRegistry()


def engine_dep() -> Engine:
    return init_engine()


def registry_dep() -> DatasetRegistry:
    return _registry


def storage_dep() -> ObjectStorage:
    return get_storage()


def llm_factory_dep() -> LLMClientFactory:
    return default_client_factory


def api_key_dep() -> Optional[str]:
    return settings.openai_api_key
