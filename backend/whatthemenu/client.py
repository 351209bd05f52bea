"""HTTP client for ``POST /explain`` that follows the caller retry convention.

The service never retries internally. Callers retry rate-limited requests twice, waiting
3 seconds and then 5 seconds; every other failure is returned on the first attempt.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from .contracts import DishExplanation
from .errors import (
    GENERATION_FAILED_PREFIX,
    ForbiddenOrigin,
    GenerationFailed,
    InvalidInput,
    QuotaExceeded,
    RateLimited,
    Unauthorized,
    WhatTheMenuError,
)
from .logging_config import get_logger

logger = get_logger(__name__)

RETRY_DELAYS: tuple[float, ...] = (3.0, 5.0)

_STATUS_ERRORS: dict[int, type[WhatTheMenuError]] = {
    400: InvalidInput,
    401: Unauthorized,
    402: QuotaExceeded,
    403: ForbiddenOrigin,
}


@dataclass(slots=True)
class ExplainResult:
    explanation: DishExplanation
    source: str | None
    match_score: float | None
    processing_ms: int | None
    attempts: int


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text[:200]


def _float_header(response: httpx.Response, name: str) -> float | None:
    value = response.headers.get(name)
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class ExplainClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        origin: str | None = None,
        retry_delays: Sequence[float] = RETRY_DELAYS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 20.0,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if origin:
            headers["Origin"] = origin
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport
        )
        self.retry_delays = tuple(retry_delays)
        self._sleep = sleep

    async def __aenter__(self) -> ExplainClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def explain(
        self,
        dish_name: str,
        language: str = "en",
        *,
        restaurant_id: int | str | None = None,
        restaurant_name: str | None = None,
    ) -> ExplainResult:
        payload: dict[str, Any] = {"dishName": dish_name, "language": language}
        if restaurant_id is not None:
            payload["restaurantId"] = str(restaurant_id)
        if restaurant_name:
            payload["restaurantName"] = restaurant_name

        attempt = 0
        while True:
            attempt += 1
            response = await self._client.post("/explain", json=payload)
            if response.status_code != 429:
                return self._handle(response, attempt)
            if attempt > len(self.retry_delays):
                retry_after = _float_header(response, "Retry-After") or 1
                raise RateLimited(retry_after=int(retry_after))
            delay = self.retry_delays[attempt - 1]
            logger.info("explain_retry", dish=dish_name, attempt=attempt, delay=delay)
            await self._sleep(delay)

    def _handle(self, response: httpx.Response, attempts: int) -> ExplainResult:
        if response.status_code >= 400:
            message = _error_message(response)
            error_cls = _STATUS_ERRORS.get(response.status_code)
            if error_cls is not None:
                raise error_cls(message)
            raise GenerationFailed(message.removeprefix(GENERATION_FAILED_PREFIX))

        processing = response.headers.get("X-Processing-Time")
        return ExplainResult(
            explanation=DishExplanation.model_validate(response.json()),
            source=response.headers.get("X-Data-Source"),
            match_score=_float_header(response, "X-Match-Score"),
            processing_ms=int(processing) if processing and processing.isdigit() else None,
            attempts=attempts,
        )

    async def languages(self) -> list[dict[str, str]]:
        response = await self._client.get("/languages")
        response.raise_for_status()
        return response.json()


__all__ = ["ExplainClient", "ExplainResult", "RETRY_DELAYS"]
