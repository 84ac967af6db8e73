"""
Routing Service Tests
Snapshot gathering around the pure planner, with mocked collaborators
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import COSTS, balances
from services.chain_registry import StaticChainRegistry
from services.cost_oracle import StaticCostOracle
from services.routing_service import RoutingService
from utils.exceptions import ErrorKind, RoutingUnavailable


@pytest.fixture
def mock_ledger():
    ledger = MagicMock()
    ledger.get_balances.return_value = balances(polygon="20", ethereum="40")
    return ledger


@pytest.fixture
def mock_oracle():
    oracle = MagicMock()
    oracle.get_cost_snapshot = AsyncMock(return_value=list(COSTS.values()))
    return oracle


class TestRoutingService:

    @pytest.mark.asyncio
    async def test_plans_from_fresh_snapshots(self, mock_ledger, mock_oracle):
        service = RoutingService(mock_ledger, mock_oracle, StaticChainRegistry(["polygon", "ethereum"]))

        decision = await service.select_route("user_1", "50")

        assert decision.destination_chain == "ethereum"
        mock_ledger.get_balances.assert_called_once_with("user_1")
        mock_oracle.get_cost_snapshot.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_snapshot_fetched_per_request(self, mock_ledger, mock_oracle):
        service = RoutingService(mock_ledger, mock_oracle, StaticChainRegistry(["polygon", "ethereum"]))

        await service.plan_route("user_1", "5")
        await service.plan_route("user_1", "5")

        assert mock_oracle.get_cost_snapshot.await_count == 2

    @pytest.mark.asyncio
    async def test_invalid_amount_skips_collaborators(self, mock_ledger, mock_oracle):
        service = RoutingService(mock_ledger, mock_oracle, StaticChainRegistry(["polygon"]))

        result = await service.plan_route("user_1", "-1")

        assert result.error_kind is ErrorKind.INVALID_AMOUNT
        mock_ledger.get_balances.assert_not_called()
        mock_oracle.get_cost_snapshot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_routing_failure_raised_by_select_route(self, mock_ledger):
        service = RoutingService(
            mock_ledger, StaticCostOracle(list(COSTS.values())), StaticChainRegistry(["arbitrum"])
        )

        with pytest.raises(RoutingUnavailable) as exc_info:
            await service.select_route("user_1", "10")

        assert exc_info.value.kind is ErrorKind.NO_ELIGIBLE_CHAINS

    @pytest.mark.asyncio
    async def test_reads_active_chains_from_database(self, ledger, fund, cost_oracle, chain_registry):
        fund("user_1", polygon="10", avalanche="500")
        service = RoutingService(ledger, cost_oracle, chain_registry)

        result = await service.plan_route("user_1", "100")

        # avalanche is seeded inactive
        assert result.error_kind is ErrorKind.NO_VIABLE_ROUTE
        assert (await service.select_route("user_1", Decimal("10"))).source_chain == "polygon"
