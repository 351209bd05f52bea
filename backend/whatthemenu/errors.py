"""Error taxonomy for the explanation service.

Every user-visible failure is a ``WhatTheMenuError``; the FastAPI app maps it to
``{"error": message}`` with ``status_code``. ``StorageDegraded`` is raised inside the
corpus store and always caught by the resolver.
"""

from __future__ import annotations

from .settings import SUPPORTED_LANGUAGES


class WhatTheMenuError(RuntimeError):
    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class InvalidInput(WhatTheMenuError):
    status_code = 400
    public_message = "Invalid request"


class MissingInput(InvalidInput):
    public_message = "dishName is required."


class UnsupportedLanguage(InvalidInput):
    public_message = "Unsupported language."

    def __init__(self, language: str | None = None) -> None:
        supported = ", ".join(SUPPORTED_LANGUAGES)
        if language:
            message = f"Unsupported language '{language}'. Supported: {supported}."
        else:
            message = f"Unsupported language. Supported: {supported}."
        super().__init__(message)
        self.language = language


class Unauthorized(WhatTheMenuError):
    status_code = 401
    public_message = "Unauthorized"


class ForbiddenOrigin(WhatTheMenuError):
    status_code = 403
    public_message = "Forbidden"


class QuotaExceeded(WhatTheMenuError):
    status_code = 402
    public_message = "Free explanation limit reached. Upgrade to keep exploring this menu."


class RateLimited(WhatTheMenuError):
    status_code = 429
    public_message = "Too many requests. Please wait before trying again."

    def __init__(self, retry_after: int = 1, limit: int | None = None) -> None:
        super().__init__()
        self.retry_after = max(1, int(retry_after))
        self.limit = limit


GENERATION_FAILED_PREFIX = "Failed to generate explanation. Reason: "


class GenerationFailed(WhatTheMenuError):
    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(GENERATION_FAILED_PREFIX + detail)
        self.detail = detail


class StorageDegraded(WhatTheMenuError):
    status_code = 500
    public_message = "Corpus store unavailable"

    def __init__(self, operation: str, detail: str | None = None) -> None:
        super().__init__(f"{operation} failed: {detail}" if detail else f"{operation} failed")
        self.operation = operation


__all__ = [
    "ForbiddenOrigin",
    "GenerationFailed",
    "InvalidInput",
    "MissingInput",
    "QuotaExceeded",
    "RateLimited",
    "StorageDegraded",
    "Unauthorized",
    "UnsupportedLanguage",
    "WhatTheMenuError",
]
