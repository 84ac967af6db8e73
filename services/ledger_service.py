"""
Balance Ledger - authoritative per-(user, chain) balances with atomic mutations

Every mutation re-validates sufficiency under lock, so an earlier advisory read
(route planning, ensure_sufficient_balance) can never push a balance negative.
Writes are compare-and-set against the value just read, so a second process
sharing the database (where no row lock exists, e.g. SQLite) cannot spend the
same funds twice. Compound operations (debit + credit) commit together or not
at all.
"""

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from models import Chain, UserChainBalance
from services.route_planner import BalanceSnapshot
from utils.database_locking import BalanceKey, DatabaseLockingService, KeyedLockRegistry
from utils.decimal_precision import MonetaryDecimal, format_amount
from utils.exceptions import (
    InsufficientBalance, InvalidTransferRequest, LedgerConflict, NotFound
)

logger = logging.getLogger(__name__)

# Compare-and-set attempts before a mutation gives up with LedgerConflict
MAX_WRITE_ATTEMPTS = 3


class BalanceLedger:
    """Service for balance reads and atomic debit/credit operations"""

    def __init__(
        self,
        session_factory: sessionmaker,
        lock_registry: Optional[KeyedLockRegistry] = None,
        lock_timeout_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.lock_registry = lock_registry or KeyedLockRegistry()
        self.lock_timeout_seconds = lock_timeout_seconds

    # ------------------------------------------------------------------
    # Reads (unlocked point-in-time snapshots)
    # ------------------------------------------------------------------

    def get_balances(self, user_id: str) -> List[BalanceSnapshot]:
        with self.session_factory() as session:
            rows = session.execute(
                select(UserChainBalance)
                .where(UserChainBalance.user_id == user_id)
                .order_by(UserChainBalance.chain_id)
            ).scalars().all()
            return [
                BalanceSnapshot(chain_id=row.chain_id, balance=MonetaryDecimal.quantize_amount(row.balance))
                for row in rows
            ]

    def get_balance(self, user_id: str, chain_id: str) -> Decimal:
        with self.session_factory() as session:
            value = session.execute(
                select(UserChainBalance.balance).where(
                    UserChainBalance.user_id == user_id,
                    UserChainBalance.chain_id == chain_id,
                )
            ).scalar_one_or_none()
        if value is None:
            return MonetaryDecimal.ZERO
        return MonetaryDecimal.quantize_amount(value)

    def get_unified_balance(self, user_id: str) -> Dict[str, Any]:
        """Total across all chains plus the per-chain breakdown, as 6-digit strings"""
        balances = self.get_balances(user_id)
        total = sum((b.balance for b in balances), MonetaryDecimal.ZERO)
        return {
            "userId": user_id,
            "totalValue": format_amount(total),
            "perChain": [
                {"chain": b.chain_id, "balance": format_amount(b.balance)}
                for b in balances
            ],
        }

    def ensure_sufficient_balance(self, user_id: str, chain_id: str, amount: Any) -> None:
        """Advisory check only; debit re-validates under lock"""
        value = MonetaryDecimal.positive_amount(amount)
        if self.get_balance(user_id, chain_id) < value:
            raise InsufficientBalance(f"User {user_id} lacks funds on {chain_id}")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def debit(self, user_id: str, chain_id: str, amount: Any) -> Decimal:
        value = MonetaryDecimal.positive_amount(amount)
        key = (user_id, chain_id)
        with self._atomic([key]) as session:
            new_balance = self._debit_locked(session, key, value)
        logger.info(f"💸 LEDGER_DEBIT: user={user_id} chain={chain_id} amount={value} balance={new_balance}")
        return new_balance

    def credit(self, user_id: str, chain_id: str, amount: Any) -> Decimal:
        value = MonetaryDecimal.positive_amount(amount)
        key = (user_id, chain_id)
        with self._atomic([key]) as session:
            new_balance = self._credit_locked(session, key, value)
        logger.info(f"💰 LEDGER_CREDIT: user={user_id} chain={chain_id} amount={value} balance={new_balance}")
        return new_balance

    def move_across_chains(self, user_id: str, from_chain_id: str, to_chain_id: str, amount: Any) -> None:
        """Debit one chain and credit another for the same user, all-or-nothing"""
        if from_chain_id == to_chain_id:
            raise InvalidTransferRequest("Source and destination chains must differ")
        value = MonetaryDecimal.positive_amount(amount)
        source, target = (user_id, from_chain_id), (user_id, to_chain_id)
        with self._atomic([source, target]) as session:
            self._debit_locked(session, source, value)
            self._credit_locked(session, target, value)
        logger.info(f"🌉 LEDGER_MOVE: user={user_id} {from_chain_id}→{to_chain_id} amount={value}")

    def transfer_between_users(self, from_user_id: str, to_user_id: str, chain_id: str, amount: Any) -> None:
        """Debit the sender and credit the receiver on one chain, all-or-nothing"""
        if from_user_id == to_user_id:
            raise InvalidTransferRequest("Sender and receiver must differ")
        value = MonetaryDecimal.positive_amount(amount)
        sender, receiver = (from_user_id, chain_id), (to_user_id, chain_id)
        with self._atomic([sender, receiver]) as session:
            self._debit_locked(session, sender, value)
            self._credit_locked(session, receiver, value)
        logger.info(f"🔁 LEDGER_TRANSFER: {from_user_id}→{to_user_id} chain={chain_id} amount={value}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _atomic(self, keys: Iterable[BalanceKey]):
        """Lock keys (in-process and row-level), yield, then commit or roll back as one unit"""
        keys = list(keys)
        with self.lock_registry.hold(keys):
            session: Session = self.session_factory()
            try:
                DatabaseLockingService.lock_balance_rows(session, keys, self.lock_timeout_seconds)
                yield session
                session.flush()
                session.commit()
            except IntegrityError as e:
                session.rollback()
                logger.error(f"❌ LEDGER_CONFLICT: constraint violated for {keys}: {e.orig}")
                raise LedgerConflict(f"Balance update conflicted for {sorted(set(keys))}")
            except OperationalError as e:
                session.rollback()
                logger.error(f"🕐 LEDGER_CONFLICT: storage busy for {keys}: {e.orig}")
                raise LedgerConflict(f"Balance update conflicted for {sorted(set(keys))}")
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    @staticmethod
    def _read_balance(session: Session, key: BalanceKey) -> Optional[Decimal]:
        user_id, chain_id = key
        return session.execute(
            select(UserChainBalance.balance).where(
                UserChainBalance.user_id == user_id,
                UserChainBalance.chain_id == chain_id,
            )
        ).scalar_one_or_none()

    @staticmethod
    def _compare_and_set(session: Session, key: BalanceKey, expected: Decimal, new_balance: Decimal) -> bool:
        """Write new_balance only if the stored value is still `expected`"""
        user_id, chain_id = key
        result = session.execute(
            update(UserChainBalance)
            .where(
                UserChainBalance.user_id == user_id,
                UserChainBalance.chain_id == chain_id,
                UserChainBalance.balance == expected,
            )
            .values(balance=new_balance)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _debit_locked(self, session: Session, key: BalanceKey, amount: Decimal) -> Decimal:
        user_id, chain_id = key
        for _ in range(MAX_WRITE_ATTEMPTS):
            stored = self._read_balance(session, key)
            current = MonetaryDecimal.ZERO if stored is None else MonetaryDecimal.quantize_amount(stored)
            if stored is None or current < amount:
                logger.warning(
                    f"❌ LEDGER_DEBIT_REJECTED: user={user_id} chain={chain_id} "
                    f"requested={amount} available={current}"
                )
                raise InsufficientBalance(f"User {user_id} lacks funds on {chain_id}")
            new_balance = MonetaryDecimal.quantize_amount(current - amount)
            if self._compare_and_set(session, key, stored, new_balance):
                return new_balance
            logger.info(f"🔄 LEDGER_RETRY: balance for {key} changed underneath the debit, re-reading")
        raise LedgerConflict(f"Balance update conflicted for {[key]}")

    def _credit_locked(self, session: Session, key: BalanceKey, amount: Decimal) -> Decimal:
        user_id, chain_id = key
        for _ in range(MAX_WRITE_ATTEMPTS):
            stored = self._read_balance(session, key)
            if stored is None:
                if session.get(Chain, chain_id) is None:
                    raise NotFound(f"Chain {chain_id} was not found")
                # A concurrent insert of the same key fails the unique constraint here
                session.add(UserChainBalance(user_id=user_id, chain_id=chain_id, balance=amount))
                session.flush()
                return amount
            new_balance = MonetaryDecimal.quantize_amount(MonetaryDecimal.quantize_amount(stored) + amount)
            if self._compare_and_set(session, key, stored, new_balance):
                return new_balance
            logger.info(f"🔄 LEDGER_RETRY: balance for {key} changed underneath the credit, re-reading")
        raise LedgerConflict(f"Balance update conflicted for {[key]}")
