"""
Integration Tests - API Endpoints
Tests for the portfolio REST API and its error mapping.
"""
import pytest
from fastapi.testclient import TestClient

from invest_core.core.features import FeatureFlag, FeatureFlags
from invest_core.core.portfolio.service import PortfolioService
from invest_core.dependencies import get_service
from invest_core.main import create_application
from invest_core.repositories.portfolio import InMemoryPortfolioRepository


BASE = "/api/v1/portfolios"


def make_client(features: FeatureFlags) -> TestClient:
    app = create_application()
    service = PortfolioService(InMemoryPortfolioRepository(), features)
    app.dependency_overrides[get_service] = lambda: service
    return TestClient(app)


@pytest.fixture
def client(features):
    with make_client(features) as test_client:
        yield test_client


@pytest.fixture
def portfolio_id(client, sample_portfolio_data) -> str:
    response = client.post(f"{BASE}/", json=sample_portfolio_data)
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def funded_portfolio_id(client, portfolio_id) -> str:
    for symbol, category, quantity, price in (
        ("VTI", "stocks", 7, 100),
        ("BND", "bonds", 2, 100),
        ("CASH", "cash", 100, 1),
    ):
        response = client.post(f"{BASE}/{portfolio_id}/assets", json={
            "symbol": symbol,
            "category": category,
            "quantity": quantity,
            "average_price": price,
            "current_price": price,
        })
        assert response.status_code == 201
    return portfolio_id


class TestReferenceEndpoints:
    """Tests for static and capability endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_api_root(self, client):
        assert client.get("/api/v1/").json()["status"] == "operational"

    def test_features(self, client):
        response = client.get(f"{BASE}/features")
        assert response.status_code == 200
        data = response.json()
        assert data["can_create_manual"] is True
        assert data["can_create_multiple"] is False
        assert data["max_portfolios"] == 3

    def test_risk_profiles(self, client):
        profiles = client.get(f"{BASE}/risk-profiles").json()["profiles"]
        assert [p["type"] for p in profiles] == ["conservative", "moderate", "aggressive", "custom"]
        assert profiles[1]["min_score"] == 4


class TestPortfolioEndpoints:
    """Tests for portfolio CRUD over HTTP."""

    def test_create_portfolio(self, client, sample_portfolio_data):
        response = client.post(f"{BASE}/", json=sample_portfolio_data)
        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Retirement"
        assert data["risk_profile"]["score"] == 5
        assert data["assets"] == []

    def test_create_with_raw_strings(self, client):
        """Form strings are accepted and normalized."""
        response = client.post(f"{BASE}/", json={
            "user_id": "user-9",
            "name": " Emergency fund ",
            "objective": "emergency",
            "risk_profile": {"type": "conservative", "score": "1"},
            "time_horizon": "3",
        })
        assert response.status_code == 201
        assert response.json()["name"] == "Emergency fund"

    def test_validation_failed_is_422(self, client):
        """Every field error comes back in one response."""
        response = client.post(f"{BASE}/", json={
            "user_id": "user-1",
            "name": "",
            "risk_profile": {"type": "moderate", "score": 11},
            "target_allocations": [{"category": "stocks", "percentage": 99}],
            "time_horizon": 51,
        })
        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "VALIDATION_FAILED"
        assert {e["field"] for e in data["errors"]} == {
            "name", "risk_profile", "target_allocations", "time_horizon",
        }
        assert data["details"]["operation"] == "create_portfolio"

    def test_limit_exceeded_is_409(self, client, sample_portfolio_data):
        for _ in range(3):
            assert client.post(f"{BASE}/", json=sample_portfolio_data).status_code == 201
        response = client.post(f"{BASE}/", json=sample_portfolio_data)
        assert response.status_code == 409
        assert response.json()["error"] == "LIMIT_EXCEEDED"

    def test_get_portfolio(self, client, funded_portfolio_id):
        response = client.get(f"{BASE}/{funded_portfolio_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["total_value"] == 1000.0
        assert data["summary"]["asset_count"] == 3

    def test_get_missing_portfolio_is_404(self, client):
        response = client.get(f"{BASE}/does-not-exist")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_list_user_portfolios(self, client, portfolio_id):
        data = client.get(f"{BASE}/users/user-1").json()
        assert data["count"] == 1
        assert data["portfolios"][0]["portfolio_id"] == portfolio_id

    def test_user_stats(self, client, funded_portfolio_id):
        data = client.get(f"{BASE}/users/user-1/stats").json()
        assert data["total_portfolios"] == 1
        assert data["total_value"] == 1000.0
        assert data["portfolios_by_objective"] == {"retirement": 1}

    def test_update_portfolio(self, client, portfolio_id):
        response = client.patch(f"{BASE}/{portfolio_id}", json={"name": "Renamed", "time_horizon": 25})
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["time_horizon"] == 25

    def test_clear_target_amount(self, client, portfolio_id):
        client.patch(f"{BASE}/{portfolio_id}", json={"target_amount": 50000})
        response = client.patch(f"{BASE}/{portfolio_id}", json={"clear": ["target_amount"]})
        assert response.status_code == 200
        assert response.json()["target_amount"] is None

    def test_clear_unknown_field_is_400(self, client, portfolio_id):
        response = client.patch(f"{BASE}/{portfolio_id}", json={"clear": ["name"]})
        assert response.status_code == 400

    def test_update_invalid_is_422(self, client, portfolio_id):
        response = client.patch(f"{BASE}/{portfolio_id}", json={"time_horizon": 0})
        assert response.status_code == 422

    def test_delete_portfolio(self, client, portfolio_id):
        assert client.delete(f"{BASE}/{portfolio_id}").status_code == 204
        assert client.get(f"{BASE}/{portfolio_id}").status_code == 404


class TestAssetEndpoints:
    """Tests for asset management over HTTP."""

    def test_add_invalid_asset_is_422(self, client, portfolio_id):
        response = client.post(f"{BASE}/{portfolio_id}/assets", json={
            "symbol": "VTI", "category": "stocks", "quantity": 0, "average_price": 100,
        })
        assert response.status_code == 422
        assert response.json()["errors"][0]["code"] == "NON_POSITIVE_QUANTITY"

    def test_update_asset(self, client, funded_portfolio_id):
        asset_id = client.get(f"{BASE}/{funded_portfolio_id}").json()["assets"][0]["asset_id"]
        response = client.patch(
            f"{BASE}/{funded_portfolio_id}/assets/{asset_id}", json={"current_price": 110},
        )
        assert response.status_code == 200
        assert response.json()["total_value"] == 1070.0

    def test_remove_asset(self, client, funded_portfolio_id):
        asset_id = client.get(f"{BASE}/{funded_portfolio_id}").json()["assets"][0]["asset_id"]
        response = client.delete(f"{BASE}/{funded_portfolio_id}/assets/{asset_id}")
        assert response.status_code == 200
        assert len(response.json()["assets"]) == 2

    def test_remove_missing_asset_is_404(self, client, portfolio_id):
        response = client.delete(f"{BASE}/{portfolio_id}/assets/ghost")
        assert response.status_code == 404


class TestRebalanceEndpoint:
    """Tests for the rebalancing calculation over HTTP."""

    def test_rebalance(self, client, funded_portfolio_id):
        response = client.post(f"{BASE}/{funded_portfolio_id}/rebalance", json={"contribution": 100})
        assert response.status_code == 200
        data = response.json()
        assert [(a["category"], a["action"], a["amount"]) for a in data["actions"]] == [
            ("bonds", "buy", 130.0),
            ("cash", "buy", 10.0),
            ("stocks", "sell", 40.0),
        ]
        assert data["total_buy"] - data["total_sell"] == pytest.approx(100.0)

    def test_rebalance_with_prices(self, client, funded_portfolio_id):
        response = client.post(
            f"{BASE}/{funded_portfolio_id}/rebalance", json={"prices": {"VTI": "100", "BND": 100}},
        )
        assert response.json()["needs_rebalancing"] is True

    def test_invalid_contribution_is_400(self, client, funded_portfolio_id):
        response = client.post(f"{BASE}/{funded_portfolio_id}/rebalance", json={"contribution": -10})
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_INPUT"

    def test_missing_price_is_424(self, client, portfolio_id):
        client.post(f"{BASE}/{portfolio_id}/assets", json={
            "symbol": "XYZ", "category": "stocks", "quantity": 1, "average_price": 10,
        })
        response = client.post(f"{BASE}/{portfolio_id}/rebalance", json={})
        assert response.status_code == 424
        assert response.json()["error"] == "MISSING_PRICE"


class TestFeatureGates:
    """Tests for disabled features over HTTP."""

    def test_rebalancing_disabled_is_403(self, sample_portfolio_data):
        with make_client(FeatureFlags([FeatureFlag.MANUAL_PORTFOLIO])) as client:
            portfolio_id = client.post(f"{BASE}/", json=sample_portfolio_data).json()["id"]
            response = client.post(f"{BASE}/{portfolio_id}/rebalance", json={})
            assert response.status_code == 403
            assert response.json()["details"]["feature"] == "REBALANCING_CALCULATOR"
            assert client.get(f"{BASE}/features").json()["can_rebalance"] is False
