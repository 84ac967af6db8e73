"""
StableRoute - Database Schema
=============================

Schema for routing a stable-value amount across independent chains:
- Chain catalog with active flags
- Per-(user, chain) balances that can never go negative
- Transfers and their ordered settlement steps
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from sqlalchemy import (
    Integer, String, Numeric, DateTime, Boolean, ForeignKey,
    UniqueConstraint, Index, CheckConstraint, func
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


# Fixed-point amounts: 6 fractional digits
AMOUNT_COLUMN = Numeric(38, 6)


# ============================================================================
# ENUMS - Business Logic Constants
# ============================================================================

class TransferStatus(Enum):
    """Lifecycle of a transfer and of each of its steps"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class StepKind(Enum):
    """Kind of settlement a route step performs"""
    BRIDGE = "bridge"        # Move the sender's value from one chain to another
    TRANSFER = "transfer"    # Same-chain payment from sender to receiver


# ============================================================================
# MODELS
# ============================================================================

class Chain(Base):
    """An independent value domain with its own fee/latency economics"""
    __tablename__ = 'chains'

    id: Mapped[str] = mapped_column(String(32), primary_key=True)  # polygon, ethereum, ...
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    native_token: Mapped[str] = mapped_column(String(16), nullable=False)
    settlement_address: Mapped[str] = mapped_column(String(128), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    balances: Mapped[List["UserChainBalance"]] = relationship("UserChainBalance", back_populates="chain")

    def __repr__(self):
        return f"<Chain {self.id} active={self.is_active}>"


class UserChainBalance(Base):
    """Authoritative balance of one user on one chain"""
    __tablename__ = 'user_chain_balances'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    chain_id: Mapped[str] = mapped_column(String(32), ForeignKey('chains.id'), nullable=False)
    balance: Mapped[Decimal] = mapped_column(AMOUNT_COLUMN, default=Decimal("0"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    chain: Mapped["Chain"] = relationship("Chain", back_populates="balances")

    __table_args__ = (
        UniqueConstraint('user_id', 'chain_id', name='uq_user_chain'),
        CheckConstraint('balance >= 0', name='ck_user_chain_balance_non_negative'),
        Index('ix_user_chain_balances_user', 'user_id'),
    )


class Transfer(Base):
    """A requested movement of value from one user to another"""
    __tablename__ = 'transfers'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    from_user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    to_user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(AMOUNT_COLUMN, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=TransferStatus.PENDING.value, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    steps: Mapped[List["TransferStep"]] = relationship(
        "TransferStep",
        back_populates="transfer",
        order_by="TransferStep.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_transfer_amount_positive'),
    )


class TransferStep(Base):
    """One settlement step of a transfer, executed in position order"""
    __tablename__ = 'transfer_steps'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    transfer_id: Mapped[str] = mapped_column(String(36), ForeignKey('transfers.id'), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    chain_id: Mapped[str] = mapped_column(String(32), nullable=False)
    to_chain_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)  # bridge legs only
    amount: Mapped[Decimal] = mapped_column(AMOUNT_COLUMN, nullable=False)
    fee_usd: Mapped[Decimal] = mapped_column(AMOUNT_COLUMN, default=Decimal("0"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=TransferStatus.PENDING.value, nullable=False)
    receipt_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    transfer: Mapped["Transfer"] = relationship("Transfer", back_populates="steps")

    __table_args__ = (
        UniqueConstraint('transfer_id', 'position', name='uq_transfer_step_position'),
    )
