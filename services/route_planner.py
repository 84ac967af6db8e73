"""
Route Planner - picks the cheapest/fastest way to fund a transfer

Pure function of (balances, cost snapshot, active chains, amount). Nothing here
touches the database or the network; RoutingService gathers the snapshots and
TransferExecutor acts on the decision.

Selection:
1. Direct: any eligible chain already holding the full amount. Lowest
   direct score wins.
2. Bridge: for each active chain short of the amount, greedily pull the
   shortfall from the other chains, cheapest bridge fee first. Lowest bridge
   score wins.

Scores are lower-is-better weighted sums of USD fees and seconds of latency.
Ties go to the candidate seen first; chains are always visited in ascending
chain id so the outcome never depends on input order.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from config import Config
from models import StepKind
from utils.decimal_precision import MonetaryDecimal, format_amount
from utils.exceptions import ErrorKind, InvalidAmount, error_for

logger = logging.getLogger(__name__)

MULTI_SOURCE = "multi-source"

SCORE_PRECISION = Decimal("0.000001")
MS_PER_SECOND = Decimal(1000)


@dataclass(frozen=True)
class ChainCost:
    """Point-in-time fee/latency figures for one chain"""
    chain_id: str
    gas_fee_usd: Decimal
    confirmation_ms: int
    bridge_fee_usd: Decimal
    bridge_time_ms: int

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ChainCost":
        """Accepts either the oracle's camelCase keys or snake_case keys"""
        def pick(snake: str, camel: str):
            return data[snake] if snake in data else data[camel]

        return cls(
            chain_id=str(pick("chain_id", "chainId")),
            gas_fee_usd=MonetaryDecimal.to_decimal(pick("gas_fee_usd", "gasFeeUsd"), "gas fee"),
            confirmation_ms=int(pick("confirmation_ms", "confirmationMs")),
            bridge_fee_usd=MonetaryDecimal.to_decimal(pick("bridge_fee_usd", "bridgeFeeUsd"), "bridge fee"),
            bridge_time_ms=int(pick("bridge_time_ms", "bridgeTimeMs")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "gasFeeUsd": format_amount(self.gas_fee_usd),
            "confirmationMs": self.confirmation_ms,
            "bridgeFeeUsd": format_amount(self.bridge_fee_usd),
            "bridgeTimeMs": self.bridge_time_ms,
        }


@dataclass(frozen=True)
class BalanceSnapshot:
    chain_id: str
    balance: Decimal


@dataclass(frozen=True)
class ScoringPolicy:
    """Fee-vs-latency weighting; the defaults bias selection toward cost"""
    fee_weight: Decimal = field(default_factory=lambda: Config.ROUTE_FEE_WEIGHT)
    time_weight: Decimal = field(default_factory=lambda: Config.ROUTE_TIME_WEIGHT)

    def score(self, fee_usd: Decimal, time_ms: int) -> Decimal:
        raw = fee_usd * self.fee_weight + (Decimal(time_ms) / MS_PER_SECOND) * self.time_weight
        return raw.quantize(SCORE_PRECISION, rounding=ROUND_HALF_UP)


def calculate_direct_score(cost: ChainCost, policy: Optional[ScoringPolicy] = None) -> Decimal:
    return (policy or ScoringPolicy()).score(cost.gas_fee_usd, cost.confirmation_ms)


def calculate_bridge_score(
    aggregate_bridge_fee_usd: Decimal,
    destination_gas_fee_usd: Decimal,
    total_time_ms: int,
    policy: Optional[ScoringPolicy] = None,
) -> Decimal:
    return (policy or ScoringPolicy()).score(
        aggregate_bridge_fee_usd + destination_gas_fee_usd, total_time_ms
    )


@dataclass
class RouteStep:
    kind: StepKind
    chain_id: str
    amount: str
    estimated_fee_usd: Decimal
    estimated_confirmation_ms: int
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def to_chain_id(self) -> Optional[str]:
        return self.metadata.get("toChainId")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.kind.value,
            "chainId": self.chain_id,
            "amount": self.amount,
            "estimatedFeeUsd": format_amount(self.estimated_fee_usd),
            "estimatedConfirmationMs": self.estimated_confirmation_ms,
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


@dataclass
class RouteDecision:
    source_chain: str
    destination_chain: str
    needs_bridge: bool
    steps: List[RouteStep]
    reason: str
    score: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceChain": self.source_chain,
            "destinationChain": self.destination_chain,
            "needsBridge": self.needs_bridge,
            "score": str(self.score),
            "reason": self.reason,
            "steps": [step.to_dict() for step in self.steps],
        }


@dataclass
class RouteResult:
    """Either a decision or the kind of routing failure, never both"""
    decision: Optional[RouteDecision] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.decision is not None

    @classmethod
    def ok(cls, decision: RouteDecision) -> "RouteResult":
        return cls(decision=decision)

    @classmethod
    def failed(cls, kind: ErrorKind, message: str) -> "RouteResult":
        return cls(error_kind=kind, error_message=message)

    def unwrap(self) -> RouteDecision:
        """Return the decision or raise the error matching the failure kind"""
        if self.decision is None:
            raise error_for(self.error_kind, self.error_message)
        return self.decision


@dataclass
class _BridgePlan:
    destination: ChainCost
    legs: List[Tuple[ChainCost, Decimal]]
    aggregate_fee_usd: Decimal
    total_time_ms: int
    score: Decimal


def _index_balances(balances: Iterable[BalanceSnapshot]) -> Dict[str, Decimal]:
    indexed: Dict[str, Decimal] = {}
    for snapshot in balances:
        amount = MonetaryDecimal.quantize_amount(snapshot.balance, "balance")
        indexed[snapshot.chain_id] = indexed.get(snapshot.chain_id, MonetaryDecimal.ZERO) + amount
    return indexed


def _pick_direct(
    amount: Decimal,
    eligible: Dict[str, Decimal],
    costs: Dict[str, ChainCost],
    policy: ScoringPolicy,
) -> Optional[RouteDecision]:
    best: Optional[Tuple[ChainCost, Decimal]] = None
    for chain_id in sorted(eligible):
        cost = costs.get(chain_id)
        if cost is None or eligible[chain_id] < amount:
            continue
        score = calculate_direct_score(cost, policy)
        if best is None or score < best[1]:
            best = (cost, score)

    if best is None:
        return None

    cost, score = best
    return RouteDecision(
        source_chain=cost.chain_id,
        destination_chain=cost.chain_id,
        needs_bridge=False,
        steps=[
            RouteStep(
                kind=StepKind.TRANSFER,
                chain_id=cost.chain_id,
                amount=format_amount(amount),
                estimated_fee_usd=cost.gas_fee_usd,
                estimated_confirmation_ms=cost.confirmation_ms,
            )
        ],
        reason=f"Direct transfer on {cost.chain_id} due to lowest gas score",
        score=score,
    )


def _plan_bridge_into(
    destination: ChainCost,
    amount: Decimal,
    eligible: Dict[str, Decimal],
    costs: Dict[str, ChainCost],
    policy: ScoringPolicy,
) -> Optional[_BridgePlan]:
    """Greedy funding of one destination; None when the sources run dry first"""
    remaining = amount - eligible.get(destination.chain_id, MonetaryDecimal.ZERO)

    # Ascending chain id first, then a stable sort by fee keeps ties deterministic
    sources = [
        costs[chain_id]
        for chain_id in sorted(eligible)
        if chain_id != destination.chain_id and eligible[chain_id] > 0 and chain_id in costs
    ]
    sources.sort(key=lambda cost: cost.bridge_fee_usd)

    legs: List[Tuple[ChainCost, Decimal]] = []
    for source in sources:
        if remaining <= 0:
            break
        drawn = min(remaining, eligible[source.chain_id])
        legs.append((source, drawn))
        remaining -= drawn

    if remaining > 0:
        return None

    aggregate_fee = sum((source.bridge_fee_usd for source, _ in legs), Decimal(0))
    aggregate_time = sum(source.bridge_time_ms for source, _ in legs)
    total_time = aggregate_time + destination.confirmation_ms
    return _BridgePlan(
        destination=destination,
        legs=legs,
        aggregate_fee_usd=aggregate_fee,
        total_time_ms=total_time,
        score=calculate_bridge_score(aggregate_fee, destination.gas_fee_usd, total_time, policy),
    )


def _pick_bridge(
    amount: Decimal,
    eligible: Dict[str, Decimal],
    costs: Dict[str, ChainCost],
    active_chain_ids: Iterable[str],
    policy: ScoringPolicy,
) -> Optional[RouteDecision]:
    best: Optional[_BridgePlan] = None
    for chain_id in sorted(set(active_chain_ids)):
        destination = costs.get(chain_id)
        if destination is None:
            continue
        if eligible.get(chain_id, MonetaryDecimal.ZERO) >= amount:
            continue
        plan = _plan_bridge_into(destination, amount, eligible, costs, policy)
        if plan is None:
            logger.debug(f"🔍 ROUTE_BRIDGE_INFEASIBLE: {chain_id} cannot be funded for {amount}")
            continue
        if best is None or plan.score < best.score:
            best = plan

    if best is None:
        return None

    destination_id = best.destination.chain_id
    steps = [
        RouteStep(
            kind=StepKind.BRIDGE,
            chain_id=source.chain_id,
            amount=format_amount(drawn),
            estimated_fee_usd=source.bridge_fee_usd,
            estimated_confirmation_ms=source.bridge_time_ms,
            metadata={"toChainId": destination_id},
        )
        for source, drawn in best.legs
    ]
    steps.append(
        RouteStep(
            kind=StepKind.TRANSFER,
            chain_id=destination_id,
            amount=format_amount(amount),
            estimated_fee_usd=best.destination.gas_fee_usd,
            estimated_confirmation_ms=best.destination.confirmation_ms,
        )
    )

    source_ids = [source.chain_id for source, _ in best.legs]
    source_chain = source_ids[0] if len(source_ids) == 1 else MULTI_SOURCE
    return RouteDecision(
        source_chain=source_chain,
        destination_chain=destination_id,
        needs_bridge=True,
        steps=steps,
        reason=f"Bridging from {', '.join(source_ids)} to {destination_id} to satisfy liquidity",
        score=best.score,
    )


def select_route(
    user_id: str,
    amount: Any,
    balances: Iterable[BalanceSnapshot],
    cost_snapshot: Iterable[ChainCost],
    active_chain_ids: Iterable[str],
    policy: Optional[ScoringPolicy] = None,
) -> RouteResult:
    """Score direct and bridged routes for `amount` and return the best one"""
    policy = policy or ScoringPolicy()

    try:
        normalized = MonetaryDecimal.positive_amount(amount)
    except InvalidAmount as e:
        return RouteResult.failed(ErrorKind.INVALID_AMOUNT, e.message)

    balances = list(balances)
    if not balances:
        return RouteResult.failed(ErrorKind.NO_BALANCES, "User has no balances to route from")

    active = set(active_chain_ids)
    eligible = _index_balances(b for b in balances if b.chain_id in active)
    if not eligible:
        return RouteResult.failed(ErrorKind.NO_ELIGIBLE_CHAINS, "User has no balances on active chains")

    costs = {cost.chain_id: cost for cost in cost_snapshot}

    decision = _pick_direct(normalized, eligible, costs, policy)
    if decision is None:
        decision = _pick_bridge(normalized, eligible, costs, active, policy)

    if decision is None:
        logger.warning(f"⚠️ ROUTE_UNAVAILABLE: user={user_id} amount={normalized}")
        return RouteResult.failed(
            ErrorKind.NO_VIABLE_ROUTE,
            "No combination of chains has sufficient liquidity for this transfer",
        )

    logger.info(
        f"🧭 ROUTE_SELECTED: user={user_id} amount={normalized} "
        f"{decision.source_chain}→{decision.destination_chain} "
        f"bridge={decision.needs_bridge} score={decision.score}"
    )
    return RouteResult.ok(decision)


__all__ = [
    "MULTI_SOURCE",
    "BalanceSnapshot",
    "ChainCost",
    "RouteDecision",
    "RouteResult",
    "RouteStep",
    "ScoringPolicy",
    "calculate_bridge_score",
    "calculate_direct_score",
    "select_route",
]
