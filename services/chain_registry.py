"""
Chain Registry - catalog of chains and which of them are currently active
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from database import managed_session
from models import Chain
from utils.background_task_runner import run_io_task
from utils.exceptions import NotFound

logger = logging.getLogger(__name__)


class ActiveChainSource(Protocol):
    async def get_active_chains(self) -> List[str]:
        ...


def chain_to_dict(chain: Chain) -> Dict[str, Any]:
    return {
        "id": chain.id,
        "name": chain.name,
        "nativeToken": chain.native_token,
        "settlementAddress": chain.settlement_address,
        "isActive": chain.is_active,
    }


class ChainRegistry:
    """Database-backed chain catalog"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def list_chains(self) -> List[Dict[str, Any]]:
        with self.session_factory() as session:
            chains = session.execute(select(Chain).order_by(Chain.id)).scalars().all()
            return [chain_to_dict(chain) for chain in chains]

    def get_chain(self, chain_id: str) -> Dict[str, Any]:
        with self.session_factory() as session:
            chain = session.get(Chain, chain_id)
            if chain is None:
                raise NotFound(f"Chain {chain_id} was not found")
            return chain_to_dict(chain)

    def active_chain_ids(self) -> List[str]:
        with self.session_factory() as session:
            return list(
                session.execute(
                    select(Chain.id).where(Chain.is_active.is_(True)).order_by(Chain.id)
                ).scalars().all()
            )

    async def get_active_chains(self) -> List[str]:
        return await run_io_task(self.active_chain_ids)

    def register_chain(
        self,
        chain_id: str,
        name: str,
        native_token: str,
        settlement_address: str,
        is_active: bool = True,
    ) -> Dict[str, Any]:
        """Create the chain or update it in place"""
        with managed_session(self.session_factory) as session:
            chain = session.get(Chain, chain_id)
            if chain is None:
                chain = Chain(id=chain_id)
                session.add(chain)
                logger.info(f"⛓️ CHAIN_REGISTERED: {chain_id}")
            chain.name = name
            chain.native_token = native_token
            chain.settlement_address = settlement_address
            chain.is_active = is_active
            session.flush()
            return chain_to_dict(chain)

    def set_active(self, chain_id: str, is_active: bool) -> Dict[str, Any]:
        with managed_session(self.session_factory) as session:
            chain = session.get(Chain, chain_id)
            if chain is None:
                raise NotFound(f"Chain {chain_id} was not found")
            chain.is_active = is_active
            logger.info(f"⛓️ CHAIN_STATUS: {chain_id} active={is_active}")
            return chain_to_dict(chain)


class StaticChainRegistry:
    """Fixed list of active chain ids"""

    def __init__(self, chain_ids: Optional[List[str]] = None):
        self._chain_ids = sorted(chain_ids or [])

    async def get_active_chains(self) -> List[str]:
        return list(self._chain_ids)
