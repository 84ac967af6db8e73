"""
Chain Routes
Read-only chain catalog
"""

from fastapi import APIRouter, Depends

from routes.dependencies import get_services
from services.app_services import AppServices
from utils.background_task_runner import run_io_task

router = APIRouter(prefix="/api/chains", tags=["chains"])


@router.get("")
async def list_chains(services: AppServices = Depends(get_services)):
    return await run_io_task(services.chain_registry.list_chains)


@router.get("/{chain_id}")
async def get_chain(chain_id: str, services: AppServices = Depends(get_services)):
    return await run_io_task(services.chain_registry.get_chain, chain_id)
