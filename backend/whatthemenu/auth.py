from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Annotated, Any

import httpx
import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import (
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidTokenError,
    MissingRequiredClaimError,
)
from jwt.algorithms import RSAAlgorithm

from .errors import Unauthorized, WhatTheMenuError
from .settings import settings
from .utils import client_identifier

security = HTTPBearer(auto_error=False)
AuthCredentials = Annotated[HTTPAuthorizationCredentials | None, Depends(security)]

PAID_TIERS = frozenset({"pro", "premium", "restaurant"})
SUBSCRIPTION_CLAIMS = ("subscription_type", "https://whatthemenu.com/subscription_type")


@dataclass(slots=True)
class AuthContext:
    """Who is asking: a verified user or an anonymous client key."""

    client_key: str
    subject: str | None = None
    subscription_type: str = "free"
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def is_anonymous(self) -> bool:
        return self.subject is None

    @property
    def is_paid(self) -> bool:
        return self.subscription_type in PAID_TIERS

    @property
    def quota_key(self) -> str:
        return f"user:{self.subject}" if self.subject else f"anon:{self.client_key}"


class AuthUnavailable(WhatTheMenuError):
    status_code = 502
    public_message = "Authentication provider unavailable"


class Auth0Verifier:
    def __init__(self) -> None:
        self._jwks: dict[str, Any] | None = None
        self._jwks_expiry: float = 0.0

    def _fetch_jwks(self) -> dict[str, Any]:
        issuer = settings.auth0_issuer
        if not issuer:
            raise AuthUnavailable()
        url = issuer.rstrip("/") + "/.well-known/jwks.json"
        try:
            resp = httpx.get(url, timeout=5)
            resp.raise_for_status()
            return resp.json()
        except Exception as exc:  # pragma: no cover - network failures
            raise AuthUnavailable() from exc

    def _get_jwks(self) -> dict[str, Any]:
        now = time.time()
        if self._jwks and now < self._jwks_expiry:
            return self._jwks
        jwks = self._fetch_jwks()
        self._jwks = jwks
        self._jwks_expiry = now + 60 * 15  # cache for 15 minutes
        return jwks

    def verify(self, token: str) -> dict[str, Any]:
        """
        Verify an Auth0 RS256 access token and return its claims.

        Raises:
            Unauthorized: token malformed, expired, or signed by an unknown key
            AuthUnavailable: Auth0 not configured or JWKS unreachable
        """
        audience = settings.AUTH0_AUDIENCE
        issuer = settings.auth0_issuer
        if not audience or not issuer:
            raise AuthUnavailable()

        jwks = self._get_jwks()
        try:
            unverified_header = jwt.get_unverified_header(token)
        except InvalidTokenError as exc:
            raise Unauthorized() from exc

        # RS256 only (prevent algorithm confusion attacks)
        if unverified_header.get("alg") != "RS256":
            raise Unauthorized()

        kid = unverified_header.get("kid")
        key = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
        if not kid or not key:
            raise Unauthorized()

        public_key = RSAAlgorithm.from_jwk(json.dumps(key))
        try:
            payload = jwt.decode(
                token,
                key=public_key,
                algorithms=["RS256"],
                audience=audience,
                issuer=issuer.rstrip("/") + "/",
                options={"require": ["exp", "iat", "sub"]},
            )
        except (
            ExpiredSignatureError,
            InvalidAudienceError,
            InvalidIssuerError,
            MissingRequiredClaimError,
        ) as exc:
            raise Unauthorized() from exc
        except InvalidTokenError as exc:  # pragma: no cover - pyjwt already well-tested
            raise Unauthorized() from exc

        # Allow 5 minutes of clock skew on issued-at
        iat = payload.get("iat")
        if iat and iat > time.time() + 300:
            raise Unauthorized()
        return payload


auth0_verifier = Auth0Verifier()


def _subscription_from(claims: dict[str, Any]) -> str:
    for claim in SUBSCRIPTION_CLAIMS:
        value = claims.get(claim)
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
    return "free"


def resolve_auth_context(
    request: Request, credentials: HTTPAuthorizationCredentials | None
) -> AuthContext:
    client_key = client_identifier(request)
    if not credentials:
        return AuthContext(client_key=client_key)

    if settings.AUTH0_BYPASS:
        # Use deterministic local claims for development/tests
        claims = {"sub": "local-dev-user", "subscription_type": "free"}
    else:
        claims = auth0_verifier.verify(credentials.credentials)
    return AuthContext(
        client_key=client_key,
        subject=str(claims["sub"]),
        subscription_type=_subscription_from(claims),
        claims=claims,
    )


async def optional_auth(request: Request, credentials: AuthCredentials) -> AuthContext:
    """FastAPI dependency: anonymous when no bearer token, 401 when the token is bad."""
    return resolve_auth_context(request, credentials)


__all__ = ["AuthContext", "AuthUnavailable", "auth0_verifier", "optional_auth"]
