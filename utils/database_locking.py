"""
Database Row-Level Locking Utilities
Serializes balance mutations per (user_id, chain_id) with SELECT FOR UPDATE
plus an in-process keyed lock for backends without row locks (SQLite)
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from config import Config
from models import UserChainBalance
from utils.exceptions import LedgerConflict

logger = logging.getLogger(__name__)

BalanceKey = Tuple[str, str]  # (user_id, chain_id)


class KeyedLockRegistry:
    """One re-entrant lock per balance key, created on first use"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[BalanceKey, threading.RLock] = {}

    def _lock_for(self, key: BalanceKey) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, keys: Iterable[BalanceKey]):
        """Acquire every key in sorted order so two compound operations never deadlock"""
        ordered = sorted(set(keys))
        acquired: List[threading.RLock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()


class DatabaseLockingService:
    """Service for managing balance row locks with proper timeout handling"""

    DEFAULT_LOCK_TIMEOUT = Config.LOCK_TIMEOUT_SECONDS

    @staticmethod
    def _supports_row_locks(session: Session) -> bool:
        return session.get_bind().dialect.name == "postgresql"

    @classmethod
    def set_lock_timeout(cls, session: Session, timeout_seconds: Optional[int] = None):
        if not cls._supports_row_locks(session):
            return
        timeout = int(timeout_seconds or cls.DEFAULT_LOCK_TIMEOUT)
        session.execute(text(f"SET LOCAL lock_timeout = '{timeout}s'"))

    @classmethod
    def lock_balance_rows(
        cls,
        session: Session,
        keys: Iterable[BalanceKey],
        timeout_seconds: Optional[int] = None,
    ) -> Dict[BalanceKey, UserChainBalance]:
        """
        Lock the balance rows for the given keys with SELECT FOR UPDATE

        Rows are locked in sorted key order. Missing rows are simply absent from
        the result; a concurrent insert of the same key is caught by the unique
        constraint at flush time.

        Raises:
            LedgerConflict: If the lock could not be acquired within the timeout
        """
        ordered = sorted(set(keys))
        locked: Dict[BalanceKey, UserChainBalance] = {}
        try:
            cls.set_lock_timeout(session, timeout_seconds)
            for user_id, chain_id in ordered:
                row = session.execute(
                    select(UserChainBalance)
                    .where(
                        UserChainBalance.user_id == user_id,
                        UserChainBalance.chain_id == chain_id,
                    )
                    .with_for_update()
                ).scalar_one_or_none()
                if row is not None:
                    locked[(user_id, chain_id)] = row
        except OperationalError as e:
            logger.error(f"🕐 LOCK_TIMEOUT: Failed to lock balances {ordered}: {e}")
            raise LedgerConflict(f"Timed out waiting for balance lock on {ordered}")

        logger.debug(f"🔒 LOCKED: balance rows {ordered}")
        return locked
