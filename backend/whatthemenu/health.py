"""Health check module with dependency verification."""

from __future__ import annotations

import time
from typing import Any

import httpx

from .generator import OpenAIGenerator
from .settings import settings
from .storage import CorpusStore


def _is_configured(value: str | None) -> bool:
    """Return True when a config string is non-empty after trimming."""
    if value is None:
        return False
    return bool(value.strip())


class HealthChecker:
    """Health checker for monitoring service dependencies."""

    def __init__(self, store: CorpusStore, generator: Any = None) -> None:
        self.store = store
        self.generator = generator
        self._check_cache: dict[str, tuple[dict[str, Any], float]] = {}
        self._cache_ttl = 30.0  # Cache remote checks for 30 seconds

    async def check_all(self) -> dict[str, Any]:
        """
        Check health of all dependencies.

        The corpus store is required. The generator only has to be configured: a missing
        API key degrades the service because every cache miss would fail.

        Returns:
            Dict with overall status and individual component checks
        """
        auth0_configured = _is_configured(settings.AUTH0_DOMAIN)

        checks = {
            "database": await self._check_database(),
            "generator": self._check_generator(),
            "auth0": (
                await self._check_auth0()
                if auth0_configured and not settings.AUTH0_BYPASS
                else {"status": "bypassed"}
            ),
            "sentry": (
                {"status": "ok", "environment": settings.SENTRY_ENVIRONMENT}
                if _is_configured(settings.SENTRY_DSN)
                else {"status": "disabled"}
            ),
        }

        all_ok = all(
            check.get("status") in {"ok", "disabled", "bypassed"} for check in checks.values()
        )
        return {
            "status": "healthy" if all_ok else "degraded",
            "timestamp": time.time(),
            "checks": checks,
        }

    async def _check_database(self) -> dict[str, Any]:
        """Check that the corpus store answers a count query."""
        try:
            info = await self.store.ping()
        except Exception as exc:
            return {
                "status": "error",
                "error": str(exc),
                "error_type": type(exc).__name__,
            }
        return {"status": "ok", **info}

    def _check_generator(self) -> dict[str, Any]:
        if isinstance(self.generator, OpenAIGenerator):
            if not self.generator.configured:
                return {"status": "error", "error": "OPENAI_API_KEY not configured"}
            return {"status": "ok", "model": self.generator.model}
        if self.generator is None:
            return {"status": "error", "error": "No generator configured"}
        return {"status": "ok", "model": type(self.generator).__name__}

    async def _check_auth0(self) -> dict[str, Any]:
        """Check if Auth0 JWKS endpoint is reachable."""
        cache_key = "auth0"
        cached = self._get_cached_check(cache_key)
        if cached is not None:
            return cached

        issuer = settings.auth0_issuer
        if not issuer:
            return {"status": "disabled", "reason": "AUTH0_DOMAIN not configured"}
        url = issuer.rstrip("/") + "/.well-known/jwks.json"
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(url)
                response.raise_for_status()
                jwks = response.json()
        except httpx.TimeoutException:
            result = {"status": "error", "error": "Connection timeout", "error_type": "TimeoutException"}
        except httpx.HTTPStatusError as exc:
            result = {
                "status": "error",
                "error": f"HTTP {exc.response.status_code}",
                "error_type": "HTTPStatusError",
            }
        except (httpx.HTTPError, ValueError) as exc:
            result = {"status": "error", "error": str(exc), "error_type": type(exc).__name__}
        else:
            if isinstance(jwks, dict) and "keys" in jwks:
                result = {"status": "ok", "endpoint": url, "keys_count": len(jwks["keys"])}
            else:
                result = {"status": "error", "error": "Invalid JWKS response format"}
        self._cache_check(cache_key, result)
        return result

    def _get_cached_check(self, key: str) -> dict[str, Any] | None:
        """Get cached health check result if still valid."""
        if key not in self._check_cache:
            return None
        result, timestamp = self._check_cache[key]
        if time.time() - timestamp > self._cache_ttl:
            return None
        return result

    def _cache_check(self, key: str, result: dict[str, Any]) -> None:
        self._check_cache[key] = (result, time.time())


__all__ = ["HealthChecker"]
