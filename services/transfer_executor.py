"""
Transfer Executor - drives a chosen route to completion or failure

State machine:
    Transfer:      pending -> completed | failed
    TransferStep:  pending -> completed   (failed is recorded on the step that broke)

Steps run strictly one after another: each settlement call finishes before
the next step starts. A failure or a cancellation marks the transfer and its
pending step failed and re-raises. Database writes already handed to a worker
thread are allowed to finish first, so a step whose ledger mutation landed is
never recorded as failed. Steps already completed, and their ledger effects,
are kept as they are; nothing is compensated.
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from sqlalchemy.orm import sessionmaker

from config import Config
from database import managed_session
from models import StepKind, Transfer, TransferStatus, TransferStep
from services.ledger_service import BalanceLedger
from services.route_planner import RouteStep
from services.routing_service import RoutingService
from services.settlement_executor import SettlementExecutor, SettlementReceipt
from utils.background_task_runner import run_io_task
from utils.decimal_precision import MonetaryDecimal, format_amount
from utils.exceptions import (
    ErrorKind, InvalidTransferRequest, NotFound, RoutingUnavailable, SettlementFailed
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def step_to_dict(step: TransferStep) -> Dict[str, Any]:
    return {
        "id": step.id,
        "transferId": step.transfer_id,
        "position": step.position,
        "type": step.kind,
        "chainId": step.chain_id,
        "toChainId": step.to_chain_id,
        "amount": format_amount(step.amount),
        "feeUsd": format_amount(step.fee_usd),
        "status": step.status,
        "receiptId": step.receipt_id,
    }


def transfer_to_dict(transfer: Transfer) -> Dict[str, Any]:
    return {
        "transferId": transfer.id,
        "fromUserId": transfer.from_user_id,
        "toUserId": transfer.to_user_id,
        "amount": format_amount(transfer.amount),
        "status": transfer.status,
        "createdAt": transfer.created_at.isoformat() if transfer.created_at else None,
        "steps": [step_to_dict(step) for step in transfer.steps],
    }


class TransferExecutor:
    """Plans, persists and executes user-to-user transfers"""

    def __init__(
        self,
        session_factory: sessionmaker,
        routing_service: RoutingService,
        ledger: BalanceLedger,
        settlement: SettlementExecutor,
        settlement_timeout_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.routing_service = routing_service
        self.ledger = ledger
        self.settlement = settlement
        self.settlement_timeout_seconds = (
            Config.SETTLEMENT_TIMEOUT_SECONDS if settlement_timeout_seconds is None
            else settlement_timeout_seconds
        )

    async def create_transfer(self, from_user_id: str, to_user_id: str, amount: Any) -> Dict[str, Any]:
        if from_user_id == to_user_id:
            raise InvalidTransferRequest("Sender and receiver must differ")
        value = MonetaryDecimal.positive_amount(amount)

        # Routing failures propagate before anything is persisted
        route = await self.routing_service.select_route(from_user_id, value)

        transfer_id = str(uuid.uuid4())
        executed: List[Dict[str, Any]] = []
        try:
            await self._run_to_completion(self._persist_transfer, transfer_id, from_user_id, to_user_id, value)
            logger.info(
                f"🚀 TRANSFER_STARTED: {transfer_id} {from_user_id}→{to_user_id} amount={value} "
                f"steps={len(route.steps)}"
            )

            for position, route_step in enumerate(route.steps, start=1):
                step_id = await self._run_to_completion(self._persist_step, transfer_id, position, route_step)
                receipt = await self._settle_step(route_step, from_user_id, to_user_id)
                executed.append(await self._run_to_completion(
                    self._finish_step, step_id, route_step, from_user_id, to_user_id, receipt.receipt_id
                ))

            await self._run_to_completion(self._set_transfer_status, transfer_id, TransferStatus.COMPLETED)
        except asyncio.CancelledError:
            await self._run_to_completion(self._fail_transfer, transfer_id)
            logger.warning(
                f"🛑 TRANSFER_CANCELLED: {transfer_id} after {len(executed)}/{len(route.steps)} steps"
            )
            raise
        except Exception as e:
            await self._run_to_completion(self._fail_transfer, transfer_id)
            logger.error(
                f"❌ TRANSFER_FAILED: {transfer_id} after {len(executed)}/{len(route.steps)} steps: {e}"
            )
            raise

        logger.info(f"✅ TRANSFER_COMPLETED: {transfer_id} via {route.source_chain}→{route.destination_chain}")
        return {
            "transferId": transfer_id,
            "status": TransferStatus.COMPLETED.value,
            "route": route.to_dict(),
            "steps": executed,
        }

    async def get_transfer(self, transfer_id: str) -> Dict[str, Any]:
        return await run_io_task(self._load_transfer, transfer_id)

    # ------------------------------------------------------------------
    # Step execution
    # ------------------------------------------------------------------

    async def _settle_step(self, step: RouteStep, from_user_id: str, to_user_id: str) -> SettlementReceipt:
        """Settle externally; the ledger is only touched once a receipt exists"""
        if step.kind is StepKind.BRIDGE:
            if not step.to_chain_id:
                raise RoutingUnavailable("Bridge step lacked destination metadata", ErrorKind.NO_VIABLE_ROUTE)
            return await self._settle(
                self.settlement.bridge(step.chain_id, step.to_chain_id, from_user_id, step.amount)
            )
        return await self._settle(
            self.settlement.transfer(step.chain_id, from_user_id, to_user_id, step.amount)
        )

    def _finish_step(
        self, step_id: str, step: RouteStep, from_user_id: str, to_user_id: str, receipt_id: str
    ) -> Dict[str, Any]:
        """Apply the ledger mutation matching a settled step, then mark the step completed"""
        if step.kind is StepKind.BRIDGE:
            self.ledger.move_across_chains(from_user_id, step.chain_id, step.to_chain_id, step.amount)
        else:
            self.ledger.transfer_between_users(from_user_id, to_user_id, step.chain_id, step.amount)
        return self._complete_step(step_id, receipt_id)

    async def _settle(self, call: Awaitable[SettlementReceipt]) -> SettlementReceipt:
        if not self.settlement_timeout_seconds or self.settlement_timeout_seconds <= 0:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.settlement_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"🕐 SETTLEMENT_TIMEOUT: no receipt within {self.settlement_timeout_seconds}s")
            raise SettlementFailed(f"Settlement timed out after {self.settlement_timeout_seconds}s")

    @staticmethod
    async def _run_to_completion(func: Callable[..., T], *args) -> T:
        """
        Run a blocking write in the I/O pool and see it through even if the caller is cancelled

        The worker thread cannot be interrupted, so a cancelled caller waits for it to
        finish before the cancellation propagates. State recorded afterwards then
        reflects everything the write did.
        """
        pending = asyncio.ensure_future(run_io_task(func, *args))
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            await asyncio.gather(pending, return_exceptions=True)
            raise

    # ------------------------------------------------------------------
    # Persistence (each call is its own short transaction)
    # ------------------------------------------------------------------

    def _persist_transfer(self, transfer_id: str, from_user_id: str, to_user_id: str, amount) -> str:
        with managed_session(self.session_factory) as session:
            transfer = Transfer(
                id=transfer_id,
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                amount=amount,
                status=TransferStatus.PENDING.value,
            )
            session.add(transfer)
            session.flush()
            return transfer.id

    def _persist_step(self, transfer_id: str, position: int, step: RouteStep) -> str:
        with managed_session(self.session_factory) as session:
            row = TransferStep(
                transfer_id=transfer_id,
                position=position,
                kind=step.kind.value,
                chain_id=step.chain_id,
                to_chain_id=step.to_chain_id,
                amount=MonetaryDecimal.quantize_amount(step.amount),
                fee_usd=MonetaryDecimal.quantize_amount(step.estimated_fee_usd),
                status=TransferStatus.PENDING.value,
            )
            session.add(row)
            session.flush()
            return row.id

    def _complete_step(self, step_id: str, receipt_id: str) -> Dict[str, Any]:
        with managed_session(self.session_factory) as session:
            row = session.get(TransferStep, step_id)
            row.status = TransferStatus.COMPLETED.value
            row.receipt_id = receipt_id
            session.flush()
            logger.info(f"✅ STEP_COMPLETED: {row.transfer_id}#{row.position} {row.kind} on {row.chain_id}")
            return step_to_dict(row)

    def _fail_transfer(self, transfer_id: str) -> None:
        """Mark a pending transfer and its pending steps failed; completed steps stay as they are"""
        with managed_session(self.session_factory) as session:
            transfer = session.get(Transfer, transfer_id)
            if transfer is None:
                return
            if transfer.status == TransferStatus.PENDING.value:
                transfer.status = TransferStatus.FAILED.value
            for step in transfer.steps:
                if step.status == TransferStatus.PENDING.value:
                    step.status = TransferStatus.FAILED.value

    def _set_transfer_status(self, transfer_id: str, status: TransferStatus) -> None:
        with managed_session(self.session_factory) as session:
            transfer = session.get(Transfer, transfer_id)
            transfer.status = status.value

    def _load_transfer(self, transfer_id: str) -> Dict[str, Any]:
        with self.session_factory() as session:
            transfer = session.get(Transfer, transfer_id)
            if transfer is None:
                raise NotFound(f"Transfer {transfer_id} was not found")
            return transfer_to_dict(transfer)


__all__ = ["TransferExecutor", "step_to_dict", "transfer_to_dict"]
