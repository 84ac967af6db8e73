"""
Routing Service - gathers fresh snapshots and asks the planner for a route
"""

import asyncio
import logging
from typing import Any, Optional

from services.chain_registry import ActiveChainSource
from services.cost_oracle import CostOracle
from services.ledger_service import BalanceLedger
from services.route_planner import RouteDecision, RouteResult, ScoringPolicy, select_route
from utils.background_task_runner import run_io_task
from utils.decimal_precision import MonetaryDecimal
from utils.exceptions import InvalidAmount, ErrorKind

logger = logging.getLogger(__name__)


class RoutingService:
    """Reads balances, cost snapshot and active chains concurrently, then plans"""

    def __init__(
        self,
        ledger: BalanceLedger,
        cost_oracle: CostOracle,
        chain_registry: ActiveChainSource,
        policy: Optional[ScoringPolicy] = None,
    ):
        self.ledger = ledger
        self.cost_oracle = cost_oracle
        self.chain_registry = chain_registry
        self.policy = policy or ScoringPolicy()

    async def plan_route(self, user_id: str, amount: Any) -> RouteResult:
        """Explicit result value; no snapshot is fetched for an invalid amount"""
        try:
            normalized = MonetaryDecimal.positive_amount(amount)
        except InvalidAmount as e:
            return RouteResult.failed(ErrorKind.INVALID_AMOUNT, e.message)

        balances, cost_snapshot, active_chain_ids = await asyncio.gather(
            run_io_task(self.ledger.get_balances, user_id),
            self.cost_oracle.get_cost_snapshot(),
            self.chain_registry.get_active_chains(),
        )
        return select_route(user_id, normalized, balances, cost_snapshot, active_chain_ids, self.policy)

    async def select_route(self, user_id: str, amount: Any) -> RouteDecision:
        """Best route for the user, or the typed routing error"""
        return (await self.plan_route(user_id, amount)).unwrap()
