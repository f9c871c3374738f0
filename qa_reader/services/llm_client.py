"""
Chat Completion Client

Synchronous httpx client for an OpenAI-compatible chat completion API.
Used by the scoring pipeline (strict JSON evaluations) and by the API
configuration checks (models list, one-token completion).

Author: The Reader Team
Date: 2026-10-19
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx
from prometheus_client import Histogram

from qa_reader.common.config import settings

logger = logging.getLogger("llm_client")

LLM_CALL_SECONDS = Histogram('reader_llm_call_seconds', 'Chat completion call latency seconds')

PROVIDERS = ('OpenAI',)

# Friendly model labels -> provider model ids
MODEL_MAP: Dict[str, str] = {
    'GPT-5': 'gpt-4.1',
    'GPT-5 mini': 'gpt-4o-mini',
    'GPT-5 nano': 'gpt-4o-mini',
    'GPT-4.1': 'gpt-4.1',
}
DEFAULT_MODEL = 'GPT-5 mini'


def provider_model_id(label: Optional[str]) -> str:
    label = label or DEFAULT_MODEL
    return MODEL_MAP.get(label, label)


class LLMCallError(Exception):
    """A chat completion call that did not produce an assistant message."""


@dataclass
class Completion:
    content: str
    total_tokens: int = 0


class ChatCompletionClient:
    """
    Minimal chat completion client.

    Args:
        api_key: Decrypted provider credential
        base_url: API root, defaults to ``settings.openai_base_url``
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client = httpx.Client(
            base_url=(base_url or settings.openai_base_url).rstrip('/') + '/',
            timeout=timeout if timeout is not None else settings.llm_timeout_seconds,
            headers={'Authorization': f"Bearer {api_key}"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> 'ChatCompletionClient':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def complete_json(
        self,
        model: str,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None,
    ) -> Completion:
        """
        Request a JSON-object completion.

        Raises:
            LLMCallError: On transport errors, non-200 responses or a
                response without assistant content
        """
        payload = {
            'model': model,
            'messages': messages,
            'temperature': 0,
            'max_tokens': max_tokens or settings.llm_max_tokens,
            'response_format': {'type': 'json_object'},
        }
        started = time.perf_counter()
        try:
            resp = self._client.post('chat/completions', json=payload)
        except httpx.HTTPError as ex:
            raise LLMCallError(str(ex)) from ex
        finally:
            LLM_CALL_SECONDS.observe(time.perf_counter() - started)

        if resp.status_code != 200:
            raise LLMCallError(f"HTTP {resp.status_code}: {resp.text[:300]}")
        try:
            data = resp.json()
        except ValueError as ex:
            raise LLMCallError(f"Invalid response body: {ex}") from ex
        if not isinstance(data, dict):
            raise LLMCallError("Response body is not a JSON object")

        choices = data.get('choices') or []
        choice = choices[0] if choices and isinstance(choices[0], dict) else {}
        message = choice.get('message') or {}
        content = message.get('content') if isinstance(message, dict) else None
        if not content:
            detail = data.get('error') or choice.get('finish_reason')
            raise LLMCallError(f"No assistant content: {detail}" if detail else "No assistant content")
        usage = data.get('usage') or {}
        return Completion(content=content, total_tokens=int(usage.get('total_tokens') or 0))

    def _check(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as ex:
            return {'ok': False, 'error': str(ex)}
        if resp.status_code >= 400:
            return {'ok': False, 'status': resp.status_code, 'body': resp.text[:300]}
        return {'ok': True}

    def check_models(self) -> Dict[str, Any]:
        """Check the credential against the models list."""
        return self._check('GET', 'models')

    def check_model(self, model: str) -> Dict[str, Any]:
        """Send a one-token completion to check model access."""
        return self._check(
            'POST',
            'chat/completions',
            json={'model': model, 'messages': [{'role': 'user', 'content': 'ping'}], 'max_tokens': 1}
        )


LLMClientFactory = Callable[[str], ChatCompletionClient]


def default_client_factory(api_key: str) -> ChatCompletionClient:
    return ChatCompletionClient(api_key)
