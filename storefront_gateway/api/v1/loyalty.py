"""Loyalty points endpoints"""

from fastapi import APIRouter, Depends

from storefront_gateway.api.dependencies import get_orchestrator
from storefront_gateway.api.v1.responses import to_response
from storefront_gateway.api.v1.schemas import RedeemRequest, TransactionResponse
from storefront_gateway.services.orchestrator import TransactionOrchestrator

router = APIRouter()


@router.get("/loyalty/{user_id}", response_model=TransactionResponse)
def get_balance(user_id: str, orchestrator: TransactionOrchestrator = Depends(get_orchestrator)):
    """Reconciled balance, tier, monetary value and transaction log"""
    return to_response(orchestrator.get_balance(user_id))


@router.post("/loyalty/{user_id}/redeem", response_model=TransactionResponse)
def redeem_points(
    user_id: str,
    request_body: RedeemRequest,
    orchestrator: TransactionOrchestrator = Depends(get_orchestrator),
):
    return to_response(orchestrator.redeem_points(user_id, request_body.points, request_body.reason))
