"""
Database Infrastructure Tests
Engine construction, session management and configuration checks
"""

from decimal import Decimal

import pytest
from sqlalchemy.pool import QueuePool

from config import Config
from database import build_engine, build_session_factory, check_connection, create_tables, managed_session
from models import Chain, UserChainBalance
from scripts.seed_data import DEMO_BALANCES, DEMO_CHAINS, seed


class TestEngine:

    def test_in_memory_sqlite_hands_out_one_connection_at_a_time(self):
        engine = build_engine("sqlite://", echo=False)
        assert isinstance(engine.pool, QueuePool)
        assert engine.pool.size() == 1
        assert create_tables(engine) is True
        assert check_connection(engine) is True

    def test_connection_check_on_existing_database(self, engine):
        assert check_connection(engine) is True


class TestManagedSession:

    def test_commits_on_success(self, session_factory):
        with managed_session(session_factory) as session:
            session.add(Chain(id="base", name="Base", native_token="ETH", settlement_address="0xbase"))

        with session_factory() as session:
            assert session.get(Chain, "base") is not None

    def test_rolls_back_and_reraises(self, session_factory):
        with pytest.raises(RuntimeError):
            with managed_session(session_factory) as session:
                session.add(Chain(id="base", name="Base", native_token="ETH", settlement_address="0xbase"))
                session.flush()
                raise RuntimeError("boom")

        with session_factory() as session:
            assert session.get(Chain, "base") is None

    def test_session_factory_keeps_objects_usable_after_commit(self, engine):
        factory = build_session_factory(engine)
        with managed_session(factory) as session:
            chain = Chain(id="base", name="Base", native_token="ETH", settlement_address="0xbase")
            session.add(chain)
        assert chain.name == "Base"


class TestRoutingConfiguration:

    def test_default_weights(self):
        assert Config.ROUTE_FEE_WEIGHT == Decimal("0.7")
        assert Config.ROUTE_TIME_WEIGHT == Decimal("0.3")
        assert Config.validate_routing_configuration() is True

    def test_negative_weight_rejected(self, monkeypatch):
        monkeypatch.setattr(Config, "ROUTE_TIME_WEIGHT", Decimal("-0.1"))
        assert Config.validate_routing_configuration() is False


class TestSeedData:

    def test_seed_is_repeatable(self, session_factory, count_rows):
        seed(session_factory, reset=True)
        seed(session_factory, reset=False)

        assert count_rows(Chain) == len(DEMO_CHAINS)
        assert count_rows(UserChainBalance) == len(DEMO_BALANCES)

        with session_factory() as session:
            assert session.get(Chain, "avalanche").is_active is True
