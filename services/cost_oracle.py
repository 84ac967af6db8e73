"""
Cost Oracle - per-chain fee and latency figures

The routing core only consumes a point-in-time snapshot; it never caches one
across requests. SimulatedCostOracle jitters a fixed template the way a live
gas feed would move between calls.
"""

import logging
import random
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

from config import Config
from services.route_planner import ChainCost
from utils.decimal_precision import MonetaryDecimal

logger = logging.getLogger(__name__)


class CostOracle(Protocol):
    async def get_cost_snapshot(self) -> List[ChainCost]:
        ...


# Base figures per chain: gas fee USD, confirmation ms, bridge fee USD, bridge time ms
BASE_COST_TEMPLATE: Dict[str, Dict[str, object]] = {
    "polygon": {"gas_fee_usd": "0.005", "confirmation_ms": 30_000, "bridge_fee_usd": "0.2", "bridge_time_ms": 90_000},
    "ethereum": {"gas_fee_usd": "2.5", "confirmation_ms": 90_000, "bridge_fee_usd": "4.5", "bridge_time_ms": 300_000},
    "arbitrum": {"gas_fee_usd": "0.02", "confirmation_ms": 15_000, "bridge_fee_usd": "0.5", "bridge_time_ms": 45_000},
    "avalanche": {"gas_fee_usd": "0.03", "confirmation_ms": 5_000, "bridge_fee_usd": "0.6", "bridge_time_ms": 60_000},
    "base": {"gas_fee_usd": "0.01", "confirmation_ms": 12_000, "bridge_fee_usd": "0.3", "bridge_time_ms": 40_000},
}

FEE_VARIANCE = Decimal("0.10")
TIME_VARIANCE = Decimal("0.05")


class StaticCostOracle:
    """Returns the same snapshot every time"""

    def __init__(self, costs: Sequence[ChainCost]):
        self._costs = list(costs)

    @classmethod
    def from_mappings(cls, entries: Sequence[Mapping[str, object]]) -> "StaticCostOracle":
        return cls([ChainCost.from_mapping(entry) for entry in entries])

    async def get_cost_snapshot(self) -> List[ChainCost]:
        return list(self._costs)


class SimulatedCostOracle:
    """Template figures with +/- variance; deterministic when seeded or variance is off"""

    def __init__(
        self,
        template: Optional[Mapping[str, Mapping[str, object]]] = None,
        variance_enabled: Optional[bool] = None,
        seed: Optional[int] = None,
    ):
        self.template = dict(template or BASE_COST_TEMPLATE)
        self.variance_enabled = Config.ORACLE_VARIANCE_ENABLED if variance_enabled is None else variance_enabled
        self._random = random.Random(seed)

    def _randomize(self, value: Decimal, variance_ratio: Decimal) -> Decimal:
        if not self.variance_enabled:
            return value
        variance = value * variance_ratio
        delta = Decimal(str(self._random.random())) * variance - variance / 2
        return value + delta

    async def get_cost_snapshot(self) -> List[ChainCost]:
        snapshot = []
        for chain_id in sorted(self.template):
            base = self.template[chain_id]
            snapshot.append(ChainCost(
                chain_id=chain_id,
                gas_fee_usd=MonetaryDecimal.quantize_amount(
                    self._randomize(Decimal(str(base["gas_fee_usd"])), FEE_VARIANCE)
                ),
                confirmation_ms=int(round(self._randomize(Decimal(base["confirmation_ms"]), TIME_VARIANCE))),
                bridge_fee_usd=MonetaryDecimal.quantize_amount(
                    self._randomize(Decimal(str(base["bridge_fee_usd"])), FEE_VARIANCE)
                ),
                bridge_time_ms=int(round(self._randomize(Decimal(base["bridge_time_ms"]), TIME_VARIANCE))),
            ))
        logger.debug(f"⛽ COST_SNAPSHOT: {[cost.to_dict() for cost in snapshot]}")
        return snapshot
