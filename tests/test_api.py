# tests/test_api.py

from types import SimpleNamespace

import pytest
import redis
from fastapi.testclient import TestClient

from tableserve import main
from tableserve.core.config import get_settings
from tableserve.main import app, get_store
from tableserve.services.feedback import InMemoryOrderStore
from tests.conftest import ZONE_PHONE, make_order, rated

FEEDBACK_URL = "/api/orders/track/{}/feedback"


@pytest.fixture
def api_store(zone_orders) -> InMemoryOrderStore:
    return InMemoryOrderStore(zone_orders + [
        make_order(10, order_number="SINGLE10", status="pending", restaurant_id="rest-1"),
        make_order(11, order_number="SINGLE11", restaurant_id="rest-1",
                   feedback=rated(3, "Fine", minutes_ago=5)),
    ])


@pytest.fixture
def client(api_store):
    app.dependency_overrides[get_store] = lambda: api_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def submit(client, order_number, **body):
    payload = {"phone": ZONE_PHONE, "rating": 5}
    payload.update(body)
    return client.post(FEEDBACK_URL.format(order_number), json=payload)


class TestSubmitFeedbackEndpoint:
    """Test cases for POST /api/orders/track/{order_number}/feedback"""

    def test_zone_submission(self, client, api_store):
        response = submit(client, "zn16fgv", phone="(782) 648-2736", comment="Great", is_public=True)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["order_number"] == "ZN16FGV"
        assert body["data"]["order_type"] == "zone_main"
        assert body["data"]["target"] == "applied"
        assert body["data"]["feedback_saved_to"] == "zone_and_shops"
        assert [c["outcome"] for c in body["data"]["children"]] == ["applied", "applied"]
        assert api_store.get("child2").feedback.comment == "Great (Zone review)"

    def test_second_submission_reports_already_rated(self, client):
        submit(client, "ZN16FGV", comment="First")

        response = submit(client, "ZN16FGV", rating=1, comment="Second")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["target"] == "already_rated"
        assert data["rating"] == 5
        assert data["comment"] == "First"

    def test_rated_single_order(self, client):
        response = submit(client, "single11", rating=4)

        data = response.json()["data"]
        assert data["target"] == "already_rated"
        assert data["feedback_saved_to"] == "single_order"
        assert data["children"] == []

    def test_unknown_order(self, client):
        response = submit(client, "NOPE123")

        assert response.status_code == 404
        assert response.json()["detail"] == "Order not found or not eligible for feedback"

    def test_wrong_phone(self, client):
        response = submit(client, "ZN16FGV", phone="555-000-1111")

        assert response.status_code == 404

    def test_single_not_completed(self, client):
        response = submit(client, "SINGLE10")

        assert response.status_code == 400
        assert response.json()["detail"]["reason"] == "not_completed"

    @pytest.mark.parametrize("body", [
        {"rating": 6},
        {"rating": 0},
        {"phone": "---"},
    ])
    def test_invalid_body(self, client, api_store, body):
        response = submit(client, "ZN16FGV", **body)

        assert response.status_code == 422
        assert api_store.saves == 0

    def test_comment_limit_comes_from_settings(self, client, monkeypatch):
        monkeypatch.setattr(get_settings(), "feedback_comment_max_length", 10)

        too_long = submit(client, "ZN16FGV", comment="x" * 11)
        at_limit = submit(client, "ZN16FGV", comment="x" * 10)

        assert too_long.status_code == 400
        assert "cannot exceed 10 characters" in too_long.json()["detail"]
        assert at_limit.status_code == 200

    def test_default_comment_limit(self, client, api_store):
        response = submit(client, "ZN16FGV", comment="x" * 1001)

        assert response.status_code == 400
        assert api_store.saves == 0

    def test_storage_failure(self, client, api_store):
        api_store.fail_on_save.add("child1")

        response = submit(client, "ZN16FGV")

        assert response.status_code == 503
        assert api_store.get("mockId123").has_rating

    def test_export_queued_when_enabled(self, client, monkeypatch):
        queued = []
        monkeypatch.setattr(main.settings, "feedback_export_enabled", True)
        monkeypatch.setattr(main, "export_feedback_to_excel", SimpleNamespace(delay=queued.append))

        submit(client, "ZN16FGV", comment="Great")

        assert len(queued) == 1
        assert [row["order_number"] for row in queued[0]] == ["ZN16FGV", "FGV16XYZ", "FGV16ABC"]
        assert queued[0][1]["parent_order_number"] == "ZN16FGV"

    def test_export_not_queued_when_disabled(self, client, monkeypatch):
        queued = []
        monkeypatch.setattr(main, "export_feedback_to_excel", SimpleNamespace(delay=queued.append))

        submit(client, "ZN16FGV")

        assert queued == []

    def test_broker_failure_does_not_fail_submission(self, client, monkeypatch):
        def unavailable(rows):
            raise ConnectionError("broker down")

        monkeypatch.setattr(main.settings, "feedback_export_enabled", True)
        monkeypatch.setattr(main, "export_feedback_to_excel", SimpleNamespace(delay=unavailable))

        response = submit(client, "ZN16FGV")

        assert response.status_code == 200


class TestListingEndpoints:
    """Test cases for the feedback listing endpoints"""

    def test_restaurant_feedback(self, client):
        response = client.get("/api/orders/restaurants/rest-1/feedback")

        assert response.status_code == 200
        data = response.json()["data"]
        assert [item["order_number"] for item in data["feedback"]] == ["SINGLE11"]
        assert data["feedback"][0]["review_source"] == "Direct Restaurant Order"
        assert data["summary"]["average_rating"] == 3.0
        assert data["pagination"] == {"page": 1, "limit": 20, "total": 1, "pages": 1}

    def test_zone_feedback_after_submission(self, client):
        submit(client, "ZN16FGV", rating=4)

        response = client.get("/api/orders/zones/zone-16/feedback", params={"shop_id": "all"})

        data = response.json()["data"]
        assert data["summary"]["total_reviews"] == 3
        assert data["summary"]["review_breakdown"] == {"Zone Review": 1, "Shop Review": 2}
        shop_names = {item["order_number"]: item["shop_name"] for item in data["feedback"]}
        assert shop_names["ZN16FGV"] == "Zone Order"
        assert shop_names["FGV16XYZ"] == "Pizza Palace"

    def test_zone_feedback_single_shop(self, client):
        submit(client, "ZN16FGV", rating=4)

        response = client.get("/api/orders/zones/zone-16/feedback", params={"shop_id": "shop-2"})

        data = response.json()["data"]
        assert [item["order_number"] for item in data["feedback"]] == ["FGV16ABC"]

    @pytest.mark.parametrize("params", [{"rating": 9}, {"page": 0}, {"limit": 1000}])
    def test_bad_query(self, client, params):
        response = client.get("/api/orders/restaurants/rest-1/feedback", params=params)

        assert response.status_code == 422


class TestHealthEndpoint:
    """Test cases for GET /health"""

    def test_degraded_without_redis(self, client, monkeypatch):
        def refuse(*args, **kwargs):
            raise redis.ConnectionError("refused")

        monkeypatch.setattr(main.redis.Redis, "from_url", refuse)

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["database"] == "healthy"
        assert body["order_store"] == "memory"
        assert body["status"] == "degraded"

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/health"
