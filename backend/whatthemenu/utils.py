from __future__ import annotations

import ipaddress
import logging
import re
from contextvars import ContextVar
from urllib.parse import urlsplit
from uuid import uuid4

from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from .settings import settings

# Context variable for request ID (accessible throughout the request lifecycle)
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def wildcard_to_regex(pattern: str) -> str:
    """Translate a "*" wildcard origin pattern into an anchored regex."""
    return "^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$"


def origin_patterns_regex(patterns: list[str]) -> str | None:
    if not patterns:
        return None
    return "|".join(f"(?:{wildcard_to_regex(p)})" for p in patterns)


def add_cors(app):
    origins = settings.allow_origins
    patterns = settings.allow_origin_patterns
    if not origins and not patterns:
        # Default is explicit opt-in; skip middleware when nothing configured
        return
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_origin_regex=origin_patterns_regex(patterns),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=[
            "X-Data-Source",
            "X-Match-Score",
            "X-Processing-Time",
            "X-Request-ID",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "Retry-After",
        ],
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        response = await call_next(request)
        headers = {
            "X-Frame-Options": "DENY",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "Permissions-Policy": "camera=(self), microphone=(), geolocation=()",
        }
        if request.url.scheme in {"https", "wss"}:
            headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        for key, value in headers.items():
            response.headers.setdefault(key, value)
        return response


def add_security_headers(app):
    app.add_middleware(SecurityHeadersMiddleware)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Request-ID or mint one, and echo it on the response."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request_id_ctx.set(request_id)
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestIDLogFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        request_id = request_id_ctx.get("")
        record.request_id = request_id if request_id else "-"  # type: ignore[attr-defined]
        return True


def add_request_id_tracing(app):
    app.add_middleware(RequestIDMiddleware)
    logging.getLogger().addFilter(RequestIDLogFilter())


# ---------- client identification ----------


def is_valid_ip(ip: str) -> bool:
    try:
        ipaddress.ip_address(ip)
        return True
    except ValueError:
        return False


def is_trusted_proxy(ip: str) -> bool:
    """True when ``ip`` is listed (as an address or CIDR) in TRUSTED_PROXIES."""
    trusted = settings.TRUSTED_PROXIES.strip()
    if not trusted:
        return False
    # "*" means trust all (INSECURE - only for development)
    if trusted == "*":
        return True

    try:
        ip_obj = ipaddress.ip_address(ip)
    except ValueError:
        return False

    for trusted_entry in trusted.split(","):
        trusted_entry = trusted_entry.strip()
        if not trusted_entry:
            continue
        try:
            if "/" in trusted_entry:
                if ip_obj in ipaddress.ip_network(trusted_entry, strict=False):
                    return True
            elif ip_obj == ipaddress.ip_address(trusted_entry):
                return True
        except ValueError:
            continue
    return False


def client_identifier(request: Request) -> str:
    """
    Rate-limit key for a request.

    X-Forwarded-For is only honoured when the direct peer is a trusted proxy; then the first
    (leftmost) valid address in the chain is the original client.
    """
    direct_client_ip = request.client.host if request.client else None
    if not direct_client_ip or not is_trusted_proxy(direct_client_ip):
        return direct_client_ip or "anonymous"

    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded:
        return direct_client_ip
    for ip in (part.strip() for part in forwarded.split(",")):
        if is_valid_ip(ip):
            return ip
    return direct_client_ip


def request_origin(request: Request) -> str | None:
    """Origin header, falling back to the scheme://host of the Referer."""
    origin = request.headers.get("origin")
    if origin:
        return origin.strip()
    referer = request.headers.get("referer")
    if not referer:
        return None
    parts = urlsplit(referer)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"
