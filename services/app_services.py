"""
Explicit wiring of the ledger, oracle, registry, settlement and executor objects.

Every collaborator is passed in at construction; nothing is looked up globally.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from services.chain_registry import ChainRegistry
from services.cost_oracle import CostOracle, SimulatedCostOracle
from services.ledger_service import BalanceLedger
from services.routing_service import RoutingService
from services.settlement_executor import SettlementExecutor, SimulatedSettlementExecutor
from services.transfer_executor import TransferExecutor

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    chain_registry: ChainRegistry
    ledger: BalanceLedger
    routing: RoutingService
    transfers: TransferExecutor


def build_services(
    session_factory: sessionmaker,
    cost_oracle: Optional[CostOracle] = None,
    settlement: Optional[SettlementExecutor] = None,
    settlement_timeout_seconds: Optional[float] = None,
) -> AppServices:
    chain_registry = ChainRegistry(session_factory)
    ledger = BalanceLedger(session_factory)
    routing = RoutingService(ledger, cost_oracle or SimulatedCostOracle(), chain_registry)
    transfers = TransferExecutor(
        session_factory,
        routing,
        ledger,
        settlement or SimulatedSettlementExecutor(),
        settlement_timeout_seconds=settlement_timeout_seconds,
    )
    logger.debug("🔧 SERVICES_WIRED: registry, ledger, routing, transfers")
    return AppServices(chain_registry=chain_registry, ledger=ledger, routing=routing, transfers=transfers)
