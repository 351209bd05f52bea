import asyncio
import os
import sys
from pathlib import Path
from typing import Any

import pytest
import sentry_sdk
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Disable outbound Sentry calls during tests
sentry_sdk.init = lambda *args, **kwargs: None  # type: ignore[assignment]
os.environ["SENTRY_DSN"] = ""
test_data_dir = ROOT / "artifacts" / "test-data"
test_data_dir.mkdir(parents=True, exist_ok=True)
os.environ["DATA_DIR"] = str(test_data_dir)

from backend.whatthemenu.contracts import DishRecord  # noqa: E402
from backend.whatthemenu.main import app, install_services  # noqa: E402
from backend.whatthemenu.quota import QuotaService  # noqa: E402
from backend.whatthemenu.resolver import ExplanationResolver  # noqa: E402
from backend.whatthemenu.settings import settings  # noqa: E402
from backend.whatthemenu.storage import CorpusStore  # noqa: E402

CARBONARA = {
    "explanation": "Roman pasta tossed with egg yolk, pecorino, crisp guanciale and black pepper.",
    "tags": ["Savory"],
    "allergens": ["Contains Gluten", "Contains Eggs", "Dairy"],
    "cuisine": "Roman",
}

NOT_FOOD = {
    "explanation": "This doesn't appear to be a food item.",
    "tags": [],
    "allergens": [],
    "cuisine": "Not applicable",
}


class FakeGenerator:
    """Stands in for the model API; records every prompt it receives."""

    def __init__(self, payload: dict[str, Any] | None = None) -> None:
        self.payload = dict(payload or CARBONARA)
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.delay = 0.0

    async def generate(self, prompt: str, response_schema: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return dict(self.payload)

    async def aclose(self) -> None:
        return None


def run(coro):
    return asyncio.run(coro)


def seed_dish(store: CorpusStore, name: str, language: str = "en", **fields: Any) -> DishRecord:
    record = DishRecord(
        name=name,
        display_language=language,
        explanation=fields.pop("explanation", f"A well-known dish called {name}."),
        **fields,
    )
    return run(store.insert(record))


@pytest.fixture()
def store(tmp_path) -> CorpusStore:
    corpus = CorpusStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'corpus.db'}")
    yield corpus
    run(corpus.close())


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def resolver(store, generator) -> ExplanationResolver:
    return ExplanationResolver(store, generator, quota=QuotaService())


@pytest.fixture()
def client(store, generator) -> TestClient:
    install_services(app, store, generator)
    return TestClient(app, base_url="http://api.testserver")


@pytest.fixture(autouse=True)
def test_settings() -> None:
    settings.AUTH0_BYPASS = True
    settings.RATE_LIMIT_ENABLED = False
    settings.OPENAI_API_KEY = None
    settings.SENTRY_DSN = None
    settings.CORS_ALLOW_ORIGINS = ""
    settings.CORS_ALLOW_ORIGIN_PATTERNS = ""
    settings.CACHE_NON_FOOD_RESULTS = False
    settings.EXPLAIN_DEADLINE_SECONDS = 15.0
    settings.CORPUS_WRITE_TIMEOUT_SECONDS = 5.0
    yield
