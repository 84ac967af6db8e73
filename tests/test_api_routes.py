"""
HTTP API Tests
Endpoints, status codes per error kind and error body shape
"""

import pytest
from fastapi.testclient import TestClient

from api_server import create_app
from services.settlement_executor import SimulatedSettlementExecutor


@pytest.fixture
def client(engine, session_factory, cost_oracle, settlement):
    app = create_app(
        session_factory=session_factory,
        bind=engine,
        cost_oracle=cost_oracle,
        settlement=settlement,
        settlement_timeout_seconds=0,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def failing_client(engine, session_factory, cost_oracle):
    app = create_app(
        session_factory=session_factory,
        bind=engine,
        cost_oracle=cost_oracle,
        settlement=SimulatedSettlementExecutor(fail_on_chains=["polygon"], sleep=False),
        settlement_timeout_seconds=0,
    )
    with TestClient(app) as test_client:
        yield test_client


class TestServiceEndpoints:

    def test_root_and_health(self, client):
        assert client.get("/").json()["title"] == "StableRoute Routing Engine"
        assert client.get("/health").json() == {"status": "ok"}

    def test_chains(self, client):
        response = client.get("/api/chains")
        assert response.status_code == 200
        assert [chain["id"] for chain in response.json()] == ["arbitrum", "avalanche", "ethereum", "polygon"]

        assert client.get("/api/chains/polygon").json()["nativeToken"] == "MATIC"

    def test_unknown_chain_is_404(self, client):
        response = client.get("/api/chains/solana")
        assert response.status_code == 404
        assert response.json() == {"error": "not_found", "message": "Chain solana was not found"}


class TestBalanceEndpoints:

    def test_deposit_then_unified_balance(self, client):
        deposit = client.post("/api/balances/deposit", json={"userId": "user_1", "chainId": "polygon", "amount": "250"})
        assert deposit.status_code == 200
        assert deposit.json() == {"userId": "user_1", "chainId": "polygon", "balance": "250.000000"}

        body = client.get("/api/users/user_1/balance").json()
        assert body["totalValue"] == "250.000000"
        assert body["perChain"] == [{"chain": "polygon", "balance": "250.000000"}]

    def test_deposit_on_unknown_chain(self, client):
        response = client.post("/api/balances/deposit", json={"userId": "user_1", "chainId": "solana", "amount": "1"})
        assert response.status_code == 404

    def test_deposit_with_too_many_decimals(self, client):
        response = client.post(
            "/api/balances/deposit", json={"userId": "user_1", "chainId": "polygon", "amount": "1.0000001"}
        )
        assert response.status_code == 422


class TestTransferEndpoints:

    def test_route_preview(self, client, fund):
        fund("user_1", polygon="20", ethereum="40")

        response = client.get("/api/routes", params={"userId": "user_1", "amount": "50"})

        assert response.status_code == 200
        body = response.json()
        assert body["destinationChain"] == "ethereum"
        assert body["score"] == "55.890000"
        assert [step["type"] for step in body["steps"]] == ["bridge", "transfer"]

    @pytest.mark.parametrize("amount", ["1.0000005", "abc"])
    def test_route_preview_rejects_malformed_amount(self, client, fund, amount):
        fund("user_1", polygon="20")

        response = client.get("/api/routes", params={"userId": "user_1", "amount": amount})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_amount"

    def test_create_and_fetch_transfer(self, client, fund):
        fund("user_1", polygon="100")

        created = client.post("/api/transfers", json={"fromUserId": "user_1", "toUserId": "user_2", "amount": "50"})
        assert created.status_code == 201
        body = created.json()
        assert body["status"] == "completed"

        fetched = client.get(f"/api/transfers/{body['transferId']}")
        assert fetched.status_code == 200
        assert fetched.json()["steps"][0]["status"] == "completed"

        assert client.get("/api/users/user_2/balance").json()["totalValue"] == "50.000000"

    @pytest.mark.parametrize("payload,status,kind", [
        ({"fromUserId": "user_1", "toUserId": "user_2", "amount": "0"}, 400, "invalid_amount"),
        ({"fromUserId": "user_1", "toUserId": "user_1", "amount": "5"}, 400, "invalid_request"),
        ({"fromUserId": "user_1", "toUserId": "user_2", "amount": "500"}, 503, "no_viable_route"),
        ({"fromUserId": "ghost", "toUserId": "user_2", "amount": "5"}, 503, "no_balances"),
    ])
    def test_rejected_transfers(self, client, fund, payload, status, kind):
        fund("user_1", polygon="100")

        response = client.post("/api/transfers", json=payload)

        assert response.status_code == status
        assert response.json()["error"] == kind
        assert response.json()["message"]

    def test_settlement_failure_is_502(self, failing_client, fund):
        fund("user_1", polygon="100")

        response = failing_client.post(
            "/api/transfers", json={"fromUserId": "user_1", "toUserId": "user_2", "amount": "50"}
        )

        assert response.status_code == 502
        assert response.json()["error"] == "settlement_failed"

    def test_unknown_transfer_is_404(self, client):
        assert client.get("/api/transfers/missing").status_code == 404
