"""
Settlement Executor - the external act of moving value on a chain

Only the interface matters to the transfer core: each call returns a receipt id
or raises SettlementFailed. SimulatedSettlementExecutor stands in for a real
network and can be told to fail on given chains.
"""

import asyncio
import logging
import random
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Protocol

from config import Config
from utils.exceptions import SettlementFailed

logger = logging.getLogger(__name__)


@dataclass
class SettlementReceipt:
    receipt_id: str
    latency_ms: int = 0
    status: str = "success"
    metadata: Dict[str, Any] = field(default_factory=dict)


class SettlementExecutor(Protocol):
    async def transfer(self, chain_id: str, from_user_id: str, to_user_id: str, amount: str) -> SettlementReceipt:
        ...

    async def bridge(self, from_chain_id: str, to_chain_id: str, user_id: str, amount: str) -> SettlementReceipt:
        ...


class SimulatedSettlementExecutor:
    """Succeeds with a random receipt id unless the chain is configured to fail"""

    def __init__(
        self,
        fail_on_chains: Optional[Iterable[str]] = None,
        sleep: Optional[bool] = None,
        min_latency_ms: Optional[int] = None,
        max_latency_ms: Optional[int] = None,
        seed: Optional[int] = None,
        history_size: int = 100,
    ):
        self.fail_on_chains = set(fail_on_chains or ())
        self.sleep = Config.SIMULATED_SETTLEMENT_SLEEP if sleep is None else sleep
        self.min_latency_ms = Config.SIMULATED_SETTLEMENT_MIN_MS if min_latency_ms is None else min_latency_ms
        self.max_latency_ms = Config.SIMULATED_SETTLEMENT_MAX_MS if max_latency_ms is None else max_latency_ms
        self._random = random.Random(seed)
        # Most recent calls only
        self.calls = deque(maxlen=history_size)

    async def transfer(self, chain_id: str, from_user_id: str, to_user_id: str, amount: str) -> SettlementReceipt:
        return await self._simulate_call("transfer", chain_id, {
            "chainId": chain_id,
            "fromUserId": from_user_id,
            "toUserId": to_user_id,
            "amount": amount,
        })

    async def bridge(self, from_chain_id: str, to_chain_id: str, user_id: str, amount: str) -> SettlementReceipt:
        return await self._simulate_call("bridge", from_chain_id, {
            "fromChainId": from_chain_id,
            "toChainId": to_chain_id,
            "userId": user_id,
            "amount": amount,
        })

    async def _simulate_call(self, action: str, chain_id: str, metadata: Dict[str, Any]) -> SettlementReceipt:
        self.calls.append((action, metadata))
        latency_ms = self._random.randint(self.min_latency_ms, max(self.min_latency_ms, self.max_latency_ms))
        if self.sleep:
            await asyncio.sleep(latency_ms / 1000)

        if chain_id in self.fail_on_chains:
            logger.error(f"❌ SETTLEMENT_FAILED: {action.upper()} on {chain_id} payload={metadata}")
            raise SettlementFailed(f"{action.capitalize()} settlement on {chain_id} failed")

        receipt_id = str(uuid.uuid4())
        logger.debug(
            f"⛓️ {action.upper()} simulated receiptId={receipt_id} latency={latency_ms}ms payload={metadata}"
        )
        return SettlementReceipt(receipt_id=receipt_id, latency_ms=latency_ms, metadata=metadata)
