"""Risk assessment and fraud reporting endpoints"""

from fastapi import APIRouter, Depends

from storefront_gateway.api.dependencies import get_orchestrator
from storefront_gateway.api.v1.responses import to_response
from storefront_gateway.api.v1.schemas import FraudReportRequest, TransactionResponse
from storefront_gateway.services.orchestrator import TransactionOrchestrator

router = APIRouter()


@router.get("/risk/{user_id}", response_model=TransactionResponse)
def assess_user(user_id: str, orchestrator: TransactionOrchestrator = Depends(get_orchestrator)):
    return to_response(orchestrator.assess_user(user_id))


@router.post("/risk/{user_id}/fraud-reports", response_model=TransactionResponse, status_code=201)
def report_fraud(
    user_id: str,
    request_body: FraudReportRequest,
    orchestrator: TransactionOrchestrator = Depends(get_orchestrator),
):
    """Block the user and record the report in the security audit trail"""
    result = orchestrator.report_fraud(
        user_id=user_id,
        payment_id=request_body.payment_id,
        fraud_type=request_body.fraud_type,
        evidence=request_body.evidence,
        reporter_id=request_body.reporter_id,
    )
    return to_response(result, success_status=201)
