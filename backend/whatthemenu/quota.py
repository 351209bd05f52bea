"""Free-tier metering for dish explanations.

Paid subscribers are unlimited. Free users and anonymous clients get
``FREE_EXPLANATION_LIMIT`` explanations per scanned menu; ``reset`` starts a new menu.
Only fresh generations are metered: a corpus hit costs nothing.
"""

from __future__ import annotations

import threading

from .auth import AuthContext
from .settings import settings


class QuotaService:
    def __init__(self, limit: int | None = None) -> None:
        self._limit = limit
        self._usage: dict[str, int] = {}
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return settings.FREE_EXPLANATION_LIMIT if self._limit is None else self._limit

    def used(self, context: AuthContext) -> int:
        with self._lock:
            return self._usage.get(context.quota_key, 0)

    def can_explain_dish(self, context: AuthContext) -> bool:
        if context.is_paid:
            return True
        return self.used(context) < self.limit

    def record_explanation(self, context: AuthContext) -> int:
        with self._lock:
            count = self._usage.get(context.quota_key, 0) + 1
            self._usage[context.quota_key] = count
            return count

    def reset(self, context: AuthContext | None = None) -> None:
        with self._lock:
            if context is None:
                self._usage.clear()
            else:
                self._usage.pop(context.quota_key, None)


__all__ = ["QuotaService"]
