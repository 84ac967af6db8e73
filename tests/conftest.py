"""
Shared Test Fixtures for StableRoute
Provides an isolated SQLite database per test, seeded chains, a fixed cost
snapshot and the simulated settlement executor.
"""

import logging
from decimal import Decimal
from typing import Dict, List

import pytest
from sqlalchemy import func, select

from database import build_engine, build_session_factory, create_tables
from models import Chain, UserChainBalance
from services.chain_registry import ChainRegistry
from services.cost_oracle import StaticCostOracle
from services.ledger_service import BalanceLedger
from services.route_planner import BalanceSnapshot, ChainCost
from services.routing_service import RoutingService
from services.settlement_executor import SimulatedSettlementExecutor
from services.transfer_executor import TransferExecutor

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Figures used throughout the routing scenarios
COSTS: Dict[str, ChainCost] = {
    "polygon": ChainCost("polygon", Decimal("0.01"), 30_000, Decimal("0.2"), 90_000),
    "ethereum": ChainCost("ethereum", Decimal("2.5"), 90_000, Decimal("4.5"), 300_000),
    "arbitrum": ChainCost("arbitrum", Decimal("0.02"), 15_000, Decimal("0.5"), 45_000),
}

CHAINS = [
    ("polygon", "Polygon", "MATIC", True),
    ("ethereum", "Ethereum", "ETH", True),
    ("arbitrum", "Arbitrum One", "ETH", True),
    ("avalanche", "Avalanche", "AVAX", False),
]


def balances(**per_chain) -> List[BalanceSnapshot]:
    """balances(polygon="20", ethereum="40") -> snapshots"""
    return [BalanceSnapshot(chain_id, Decimal(str(value))) for chain_id, value in per_chain.items()]


@pytest.fixture
def engine(tmp_path):
    db_engine = build_engine(f"sqlite:///{tmp_path / 'stableroute_test.db'}", echo=False)
    create_tables(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = build_session_factory(engine)
    with factory() as session:
        for chain_id, name, token, active in CHAINS:
            session.add(Chain(
                id=chain_id,
                name=name,
                native_token=token,
                settlement_address=f"0x{chain_id}",
                is_active=active,
            ))
        session.commit()
    return factory


@pytest.fixture
def cost_oracle():
    return StaticCostOracle(list(COSTS.values()))


@pytest.fixture
def chain_registry(session_factory):
    return ChainRegistry(session_factory)


@pytest.fixture
def ledger(session_factory):
    return BalanceLedger(session_factory)


@pytest.fixture
def settlement():
    return SimulatedSettlementExecutor(sleep=False, seed=7)


@pytest.fixture
def routing_service(ledger, cost_oracle, chain_registry):
    return RoutingService(ledger, cost_oracle, chain_registry)


@pytest.fixture
def executor(session_factory, routing_service, ledger, settlement):
    return TransferExecutor(session_factory, routing_service, ledger, settlement, settlement_timeout_seconds=0)


@pytest.fixture
def fund(session_factory):
    """Insert starting balances directly, bypassing the ledger"""
    def _fund(user_id: str, **per_chain):
        with session_factory() as session:
            for chain_id, value in per_chain.items():
                session.add(UserChainBalance(user_id=user_id, chain_id=chain_id, balance=Decimal(str(value))))
            session.commit()
    return _fund


@pytest.fixture
def count_rows(session_factory):
    def _count(model) -> int:
        with session_factory() as session:
            return session.execute(select(func.count()).select_from(model)).scalar_one()
    return _count
