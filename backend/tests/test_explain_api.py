"""HTTP contract of the explanation service."""

from __future__ import annotations

import pytest
from backend.whatthemenu.auth import auth0_verifier
from backend.whatthemenu.errors import Unauthorized
from backend.whatthemenu.governor import InMemoryWindowStore, OriginPolicy, RequestGovernor
from backend.whatthemenu.main import app
from backend.whatthemenu.quota import QuotaService
from backend.whatthemenu.settings import settings
from conftest import run


def post_explain(client, **body):
    payload = {"dishName": "Spaghetti Carbonara", "language": "en"}
    payload.update(body)
    return client.post("/explain", json=payload)


class TestExplain:
    def test_generated_then_cached(self, client, generator):
        first = post_explain(client)
        assert first.status_code == 200
        assert first.json() == {
            "explanation": (
                "Roman pasta tossed with egg yolk, pecorino, crisp guanciale and black pepper."
            ),
            "tags": ["Savory"],
            "allergens": ["Contains Gluten", "Contains Eggs", "Contains Dairy"],
            "cuisine": "Roman",
        }
        assert first.headers["X-Data-Source"] == "generated"
        assert "X-Match-Score" not in first.headers
        assert first.headers["X-Processing-Time"].isdigit()

        second = post_explain(client, dishName="spaghetti  carbonara!")
        assert second.status_code == 200
        assert second.headers["X-Data-Source"] == "cache"
        assert second.headers["X-Match-Score"] == "1.000"
        assert second.json() == first.json()
        assert len(generator.calls) == 1

    def test_request_id_echoed(self, client):
        response = post_explain(client, dishName="Pad Thai")
        assert response.headers["X-Request-ID"]
        tagged = client.post(
            "/explain",
            json={"dishName": "Pad Thai", "language": "en"},
            headers={"X-Request-ID": "req-123"},
        )
        assert tagged.headers["X-Request-ID"] == "req-123"

    def test_language_defaults_to_english(self, client, generator):
        response = client.post("/explain", json={"dishName": "Pad Thai"})
        assert response.status_code == 200
        assert "in English" in generator.calls[0]

    def test_numeric_restaurant_id_string_accepted(self, client, store):
        response = post_explain(client, restaurantId="12", restaurantName="Trattoria")
        assert response.status_code == 200


class TestInvalidInput:
    def test_missing_dish_name(self, client, generator):
        response = client.post("/explain", json={"language": "en"})
        assert response.status_code == 400
        assert response.json() == {"error": "dishName is required."}
        assert generator.calls == []

    def test_blank_dish_name(self, client):
        response = post_explain(client, dishName="   ")
        assert response.status_code == 400

    def test_unsupported_language(self, client):
        response = post_explain(client, language="de")
        assert response.status_code == 400
        assert "Supported: en, es, zh, fr" in response.json()["error"]

    def test_dish_name_too_long(self, client):
        response = post_explain(client, dishName="x" * 201)
        assert response.status_code == 400
        assert response.json()["error"].startswith("dishName")

    def test_non_numeric_restaurant_id(self, client):
        response = post_explain(client, restaurantId="abc")
        assert response.status_code == 400
        assert response.json() == {"error": "restaurantId must be a numeric id."}

    @pytest.mark.parametrize("restaurant_id", ["99999999999999999999", 2**31, -1])
    def test_restaurant_id_out_of_range(self, client, generator, restaurant_id):
        response = post_explain(client, restaurantId=restaurant_id)
        assert response.status_code == 400
        assert response.json() == {"error": "restaurantId is out of range."}
        assert generator.calls == []

    def test_non_ascii_digits_rejected(self, client):
        response = post_explain(client, restaurantId="²")
        assert response.status_code == 400
        assert response.json() == {"error": "restaurantId must be a numeric id."}

    def test_malformed_json(self, client):
        response = client.post(
            "/explain", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert "error" in response.json()


class TestFailures:
    def test_generation_failure_is_500(self, client, generator):
        generator.error = RuntimeError("model overloaded")
        response = post_explain(client)
        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to generate explanation. Reason: model overloaded"
        }

    def test_wrongly_typed_model_output_is_500(self, client, store, generator):
        generator.payload = {"explanation": 123, "tags": "Spicy", "allergens": [], "cuisine": "Thai"}
        response = post_explain(client)
        assert response.status_code == 500
        assert response.json() == {
            "error": (
                "Failed to generate explanation. Reason: "
                "Model output did not match the explanation schema"
            )
        }
        assert run(store.count_dishes()) == 0

    def test_quota_exceeded(self, client):
        app.state.resolver.quota = QuotaService(limit=0)
        response = post_explain(client)
        assert response.status_code == 402
        assert "limit" in response.json()["error"]


class TestGovernor:
    def _install(self, **kwargs):
        app.state.governor = RequestGovernor(store=InMemoryWindowStore(), **kwargs)

    def test_forbidden_origin(self, client):
        self._install(origin_policy=OriginPolicy(["https://whatthemenu.com"]))
        response = client.post(
            "/explain",
            json={"dishName": "Pad Thai", "language": "en"},
            headers={"Origin": "https://evil.example"},
        )
        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}

    def test_allowed_origin_and_preview_pattern(self, client):
        self._install(
            origin_policy=OriginPolicy(
                ["https://whatthemenu.com"], ["https://deploy-preview-*--whatthemenu.netlify.app"]
            )
        )
        for origin in (
            "https://whatthemenu.com",
            "https://deploy-preview-7--whatthemenu.netlify.app",
        ):
            response = client.post(
                "/explain",
                json={"dishName": "Pad Thai", "language": "en"},
                headers={"Origin": origin},
            )
            assert response.status_code == 200

    def test_referer_used_when_origin_missing(self, client):
        self._install(origin_policy=OriginPolicy(["https://whatthemenu.com"]))
        response = client.post(
            "/explain",
            json={"dishName": "Pad Thai", "language": "en"},
            headers={"Referer": "https://whatthemenu.com/scan?menu=1"},
        )
        assert response.status_code == 200

    def test_rate_limited(self, client, generator):
        self._install(limit=2, window_seconds=300, enabled=True)
        assert post_explain(client).status_code == 200
        second = post_explain(client)
        assert second.headers["X-RateLimit-Limit"] == "2"
        assert second.headers["X-RateLimit-Remaining"] == "0"

        third = post_explain(client)
        assert third.status_code == 429
        assert int(third.headers["Retry-After"]) >= 1
        assert third.headers["X-RateLimit-Limit"] == "2"
        assert "error" in third.json()
        assert len(generator.calls) == 1

    def test_languages_endpoint_is_not_rate_limited(self, client):
        self._install(limit=1, window_seconds=300, enabled=True)
        for _ in range(3):
            assert client.get("/languages").status_code == 200


class TestAuth:
    def test_bearer_token_with_bypass(self, client):
        response = client.post(
            "/explain",
            json={"dishName": "Pad Thai", "language": "en"},
            headers={"Authorization": "Bearer dev-token"},
        )
        assert response.status_code == 200

    def test_invalid_token(self, client, monkeypatch):
        monkeypatch.setattr(settings, "AUTH0_BYPASS", False)

        def reject(token):
            raise Unauthorized()

        monkeypatch.setattr(auth0_verifier, "verify", reject)
        response = client.post(
            "/explain",
            json={"dishName": "Pad Thai", "language": "en"},
            headers={"Authorization": "Bearer forged"},
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_paid_subscriber_skips_quota(self, client, monkeypatch):
        monkeypatch.setattr(settings, "AUTH0_BYPASS", False)
        monkeypatch.setattr(
            auth0_verifier,
            "verify",
            lambda token: {"sub": "auth0|pro-user", "subscription_type": "pro"},
        )
        app.state.resolver.quota = QuotaService(limit=0)
        response = client.post(
            "/explain",
            json={"dishName": "Pad Thai", "language": "en"},
            headers={"Authorization": "Bearer valid"},
        )
        assert response.status_code == 200


def test_languages(client):
    response = client.get("/languages")
    assert response.status_code == 200
    body = response.json()
    assert [item["code"] for item in body] == ["en", "es", "zh", "fr"]
    assert {"code": "zh", "label": "Chinese", "native_label": "中文"} in body


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "ok"
    assert body["checks"]["database"]["dish_count"] == 0
    assert body["service"] == "whatthemenu"


def test_metrics(client):
    post_explain(client)
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "dish_explanations_total" in response.text
    assert "http_requests_total" in response.text


def test_security_headers(client):
    response = client.get("/languages")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
