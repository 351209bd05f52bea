from __future__ import annotations

import asyncio
import json
from hashlib import sha256
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from .contracts import DishExplanation
from .errors import GenerationFailed
from .logging_config import get_logger
from .prompts import EXPLANATION_SCHEMA, SYSTEM_PROMPT
from .settings import settings

logger = get_logger(__name__)

_NEW_STYLE_MODEL_PREFIXES = (
    "gpt-4o",
    "gpt-4.1",
    "gpt-5",
    "o1",
    "o3",
    "o4",
    "o-",
)


class Generator(Protocol):
    async def generate(self, prompt: str, response_schema: dict[str, Any]) -> dict[str, Any]: ...


def _token_param(model: str | None) -> str:
    name = (model or "").lower()
    for prefix in _NEW_STYLE_MODEL_PREFIXES:
        if name.startswith(prefix):
            return "max_completion_tokens"
    return "max_tokens"


def _prompt_fingerprint(prompt: str) -> str:
    return sha256(prompt.encode("utf-8")).hexdigest()[:10]


class OpenAIGenerator:
    """Chat-completions client that returns the model's JSON object."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.base_url = (base_url or settings.OPENAI_API_BASE).rstrip("/")
        self.model = model or settings.EXPLAIN_MODEL
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise GenerationFailed("OPENAI_API_KEY not configured")
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    timeout = httpx.Timeout(
                        settings.OPENAI_TIMEOUT_SECONDS,
                        connect=settings.OPENAI_CONNECT_TIMEOUT_SECONDS,
                    )
                    self._client = httpx.AsyncClient(
                        base_url=self.base_url, timeout=timeout, transport=self._transport
                    )
        return self._client

    def _payload(self, prompt: str, response_schema: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "temperature": settings.EXPLAIN_TEMPERATURE,
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": "dish_explanation", "schema": response_schema},
            },
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        payload[_token_param(self.model)] = settings.EXPLAIN_MAX_TOKENS
        return payload

    async def generate(self, prompt: str, response_schema: dict[str, Any]) -> dict[str, Any]:
        headers = self._headers()
        client = await self._get_client()
        digest = _prompt_fingerprint(prompt)
        try:
            response = await client.post(
                "/chat/completions", json=self._payload(prompt, response_schema), headers=headers
            )
        except httpx.HTTPError as exc:
            raise GenerationFailed(f"Request failed: {exc}") from exc
        if response.status_code >= 400:
            raise GenerationFailed(f"Model error {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError as exc:
            raise GenerationFailed("Invalid JSON from model API") from exc

        choices = body.get("choices") or []
        content = choices[0].get("message", {}).get("content") if choices else None
        if not content:
            raise GenerationFailed("Empty model response")
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            logger.warning("explanation_json_invalid", prompt=digest, content=content[:200])
            raise GenerationFailed("Model returned unparseable JSON") from exc
        if not isinstance(parsed, dict):
            raise GenerationFailed("Model returned a non-object JSON payload")
        logger.debug("explanation_json_parsed", prompt=digest)
        return parsed

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


async def generate_explanation(generator: Generator, prompt: str) -> DishExplanation:
    """Run one generation call and validate the result into a ``DishExplanation``."""
    try:
        raw = await generator.generate(prompt, EXPLANATION_SCHEMA)
    except GenerationFailed:
        raise
    except Exception as exc:
        raise GenerationFailed(str(exc) or exc.__class__.__name__) from exc
    try:
        return DishExplanation.model_validate(raw)
    except ValidationError as exc:
        logger.warning(
            "explanation_schema_mismatch",
            prompt=_prompt_fingerprint(prompt),
            errors=exc.error_count(),
            raw=str(raw)[:200],
        )
        raise GenerationFailed("Model output did not match the explanation schema") from exc


__all__ = ["Generator", "OpenAIGenerator", "generate_explanation"]
