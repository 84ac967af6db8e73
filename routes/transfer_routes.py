"""
Transfer Routes
Route preview, transfer creation and transfer lookup
"""

import logging
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator

from routes.dependencies import get_services
from services.app_services import AppServices
from utils.decimal_precision import MonetaryDecimal
from utils.exceptions import InvalidAmount

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["transfers"])


class CreateTransferRequest(BaseModel):
    fromUserId: str = Field(min_length=1)
    toUserId: str = Field(min_length=1)
    amount: str

    @field_validator("amount")
    @classmethod
    def amount_has_six_decimals_at_most(cls, value: str) -> str:
        if not MonetaryDecimal.has_valid_scale(value):
            raise ValueError("Amount must be a decimal number with at most 6 fractional digits")
        return value.strip()


@router.get("/routes")
async def preview_route(
    userId: str = Query(..., min_length=1),
    amount: str = Query(...),
    services: AppServices = Depends(get_services),
):
    """Best route for the user without executing anything"""
    if not MonetaryDecimal.has_valid_scale(amount):
        raise InvalidAmount("Amount must be a decimal number with at most 6 fractional digits")
    decision = await services.routing.select_route(userId, amount)
    return decision.to_dict()


@router.post("/transfers", status_code=201)
async def create_transfer(body: CreateTransferRequest, services: AppServices = Depends(get_services)):
    logger.info(f"📨 TRANSFER_REQUEST: {body.fromUserId}→{body.toUserId} amount={body.amount}")
    return await services.transfers.create_transfer(body.fromUserId, body.toUserId, body.amount)


@router.get("/transfers/{transfer_id}")
async def get_transfer(transfer_id: str, services: AppServices = Depends(get_services)):
    return await services.transfers.get_transfer(transfer_id)
