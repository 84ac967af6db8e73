"""
Balance Routes
Unified balance view and deposits into a user's chain balance
"""

import logging
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from routes.dependencies import get_services
from services.app_services import AppServices
from utils.background_task_runner import run_io_task
from utils.decimal_precision import MonetaryDecimal, format_amount

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["balances"])


class DepositRequest(BaseModel):
    userId: str = Field(min_length=1)
    chainId: str = Field(min_length=1)
    amount: str

    @field_validator("amount")
    @classmethod
    def amount_has_six_decimals_at_most(cls, value: str) -> str:
        if not MonetaryDecimal.has_valid_scale(value):
            raise ValueError("Amount must be a decimal number with at most 6 fractional digits")
        return value.strip()


@router.get("/users/{user_id}/balance")
async def get_user_balance(user_id: str, services: AppServices = Depends(get_services)):
    return await run_io_task(services.ledger.get_unified_balance, user_id)


@router.post("/balances/deposit")
async def deposit(body: DepositRequest, services: AppServices = Depends(get_services)):
    """Credit a user's balance on one chain (creates the balance if absent)"""
    new_balance = await run_io_task(services.ledger.credit, body.userId, body.chainId, body.amount)
    return {"userId": body.userId, "chainId": body.chainId, "balance": format_amount(new_balance)}
