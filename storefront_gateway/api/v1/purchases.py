"""Purchase lifecycle endpoints: start, hand-off, approve, reject, cancel"""

from fastapi import APIRouter, Depends

from storefront_gateway.api.dependencies import get_orchestrator
from storefront_gateway.api.v1.responses import to_response
from storefront_gateway.api.v1.schemas import (
    ApproveRequest,
    BuyerActionRequest,
    RejectRequest,
    StartPurchaseRequest,
    TransactionResponse,
)
from storefront_gateway.services.orchestrator import TransactionOrchestrator

router = APIRouter()


@router.post("/purchases", response_model=TransactionResponse, status_code=201)
def start_purchase(
    request_body: StartPurchaseRequest,
    orchestrator: TransactionOrchestrator = Depends(get_orchestrator),
):
    """
    Open a payment for a product.

    Flow:
    1. Catalog lookup
    2. Fraud check (403 RISK_REJECTED when blocked)
    3. PENDING payment with payment instructions (201)
    """
    result = orchestrator.start_purchase(
        user_id=request_body.user_id,
        user_name=request_body.user_name,
        product_id=request_body.product_id,
        payment_method=request_body.payment_method.value if request_body.payment_method else None,
        ip_address=request_body.ip_address,
    )
    return to_response(result, success_status=201)


@router.get("/purchases/pending", response_model=TransactionResponse)
def get_pending_approvals(orchestrator: TransactionOrchestrator = Depends(get_orchestrator)):
    """Open payments awaiting an approver, newest first"""
    return to_response(orchestrator.get_pending_approvals())


@router.get("/purchases/{payment_id}", response_model=TransactionResponse)
def get_payment(payment_id: str, orchestrator: TransactionOrchestrator = Depends(get_orchestrator)):
    return to_response(orchestrator.get_payment(payment_id))


@router.post("/purchases/{payment_id}/processing", response_model=TransactionResponse)
def report_payment_sent(
    payment_id: str,
    request_body: BuyerActionRequest,
    orchestrator: TransactionOrchestrator = Depends(get_orchestrator),
):
    return to_response(orchestrator.report_payment_sent(payment_id, request_body.buyer_id))


@router.post("/purchases/{payment_id}/approve", response_model=TransactionResponse)
def approve_purchase(
    payment_id: str,
    request_body: ApproveRequest,
    orchestrator: TransactionOrchestrator = Depends(get_orchestrator),
):
    """Complete the payment; the response carries the delivered credential"""
    return to_response(orchestrator.approve_purchase(payment_id, request_body.approver_id))


@router.post("/purchases/{payment_id}/reject", response_model=TransactionResponse)
def reject_purchase(
    payment_id: str,
    request_body: RejectRequest,
    orchestrator: TransactionOrchestrator = Depends(get_orchestrator),
):
    return to_response(
        orchestrator.reject_purchase(payment_id, request_body.reason, request_body.rejecter_id)
    )


@router.post("/purchases/{payment_id}/cancel", response_model=TransactionResponse)
def cancel_purchase(
    payment_id: str,
    request_body: BuyerActionRequest,
    orchestrator: TransactionOrchestrator = Depends(get_orchestrator),
):
    return to_response(orchestrator.cancel_purchase(payment_id, request_body.buyer_id))
