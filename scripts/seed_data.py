#!/usr/bin/env python3
"""
Demo Data Seeder
Creates the demo chain catalog and starting balances for two demo users
"""

import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from database import SessionLocal, create_tables, engine, managed_session
from models import Chain, Transfer, TransferStep, UserChainBalance

DEMO_CHAINS = [
    {"id": "polygon", "name": "Polygon", "native_token": "MATIC",
     "settlement_address": "0x0000000000000000000000000000000000001010"},
    {"id": "ethereum", "name": "Ethereum", "native_token": "ETH",
     "settlement_address": "0x000000000000000000000000000000000000cEeE"},
    {"id": "arbitrum", "name": "Arbitrum One", "native_token": "ETH",
     "settlement_address": "0x000000000000000000000000000000000000aRb1"},
    {"id": "avalanche", "name": "Avalanche", "native_token": "AVAX",
     "settlement_address": "0x000000000000000000000000000000000000aVaX"},
    {"id": "base", "name": "Base", "native_token": "ETH",
     "settlement_address": "0x000000000000000000000000000000000000BaSe"},
]

DEMO_BALANCES = [
    ("user_1", "polygon", "250"),
    ("user_1", "ethereum", "75.5"),
    ("user_1", "arbitrum", "10"),
    ("user_1", "avalanche", "150"),
    ("user_2", "base", "25"),
    ("user_2", "polygon", "12"),
]


def seed(session_factory: sessionmaker = SessionLocal, reset: bool = True) -> None:
    with managed_session(session_factory) as session:
        if reset:
            session.execute(delete(TransferStep))
            session.execute(delete(Transfer))
            session.execute(delete(UserChainBalance))
            session.execute(delete(Chain))

        for chain in DEMO_CHAINS:
            session.merge(Chain(is_active=True, **chain))
        session.flush()

        for user_id, chain_id, balance in DEMO_BALANCES:
            existing = session.execute(
                select(UserChainBalance).where(
                    UserChainBalance.user_id == user_id,
                    UserChainBalance.chain_id == chain_id,
                )
            ).scalar_one_or_none()
            if existing is None:
                session.add(UserChainBalance(user_id=user_id, chain_id=chain_id, balance=Decimal(balance)))


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed demo chains and balances")
    parser.add_argument("--keep", action="store_true", help="Do not wipe existing rows first")
    args = parser.parse_args()

    create_tables(engine)
    seed(reset=not args.keep)
    print(f"Seeded {len(DEMO_CHAINS)} chains and {len(DEMO_BALANCES)} balances")
