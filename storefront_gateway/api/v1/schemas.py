"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from storefront_gateway.domain.exceptions import ErrorCode
from storefront_gateway.domain.models import (
    LoyaltyEntryStatus,
    LoyaltyReason,
    PaymentMethod,
    PaymentStatus,
    RiskTier,
    TransactionCheck,
)
from storefront_gateway.services.results import TransactionResult


# Requests


class StartPurchaseRequest(BaseModel):
    """Request body for POST /v1/purchases"""

    user_id: str = Field(..., min_length=1, description="Buyer identifier")
    user_name: str = Field(..., min_length=1, description="Buyer display name")
    product_id: str = Field(..., min_length=1, description="Catalog product identifier")
    payment_method: Optional[PaymentMethod] = None
    ip_address: Optional[str] = None


class BuyerActionRequest(BaseModel):
    """Request body for buyer-initiated payment actions"""

    buyer_id: str = Field(..., min_length=1)


class ApproveRequest(BaseModel):
    approver_id: str = Field(..., min_length=1)


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    rejecter_id: str = Field(..., min_length=1)


class RedeemRequest(BaseModel):
    """Request body for POST /v1/loyalty/{user_id}/redeem"""

    points: int = Field(..., description="Whole points to spend")
    reason: LoyaltyReason = LoyaltyReason.REDEEM


class FraudReportRequest(BaseModel):
    """Request body for POST /v1/risk/{user_id}/fraud-reports"""

    fraud_type: str = Field(..., min_length=1)
    payment_id: Optional[str] = None
    evidence: Dict[str, Any] = Field(default_factory=dict)
    reporter_id: Optional[str] = None


# Responses


class PaymentSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    buyer_id: str
    buyer_name: str
    product_id: str
    product_name: str
    amount: Decimal
    method: str
    status: PaymentStatus
    created_at: datetime
    expires_at: datetime
    completed_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    rejected_by: Optional[str] = None
    instruction_code: Optional[str] = None
    instruction_reference: Optional[str] = None


class LoyaltyChangeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    new_balance: int
    new_tier: int
    points: int
    duplicate: bool = False


class LoyaltyTransactionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: int
    reason: LoyaltyReason
    status: LoyaltyEntryStatus
    created_at: datetime
    expires_at: Optional[datetime] = None
    related_payment_id: Optional[str] = None
    related_product_id: Optional[str] = None


class LoyaltyBalanceSchema(BaseModel):
    """Reconciled points balance and its log, newest first"""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    balance: int
    lifetime_points: int
    tier: int
    value: Decimal
    transactions: List[LoyaltyTransactionSchema]


class RiskAssessmentSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    risk: RiskTier
    score: int
    factors: List[str]
    computed_at: datetime


class TransactionCheckSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    approved: bool
    score: int
    reasons: List[str]


class TransactionResponse(BaseModel):
    """Mirror of an orchestrator TransactionResult"""

    success: bool
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
    payment: Optional[PaymentSchema] = None
    credential: Optional[Dict[str, str]] = None
    loyalty: Optional[LoyaltyChangeSchema] = None
    risk: Optional[Union[TransactionCheckSchema, RiskAssessmentSchema]] = None
    balance: Optional[LoyaltyBalanceSchema] = None
    payments: List[PaymentSchema] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: TransactionResult) -> "TransactionResponse":
        risk = None
        if isinstance(result.risk, TransactionCheck):
            risk = TransactionCheckSchema.model_validate(result.risk)
        elif result.risk is not None:
            risk = RiskAssessmentSchema.model_validate(result.risk)

        return cls(
            success=result.success,
            error=result.error,
            message=result.message,
            payment=PaymentSchema.model_validate(result.payment) if result.payment else None,
            credential=result.credential,
            loyalty=LoyaltyChangeSchema.model_validate(result.loyalty) if result.loyalty else None,
            risk=risk,
            balance=LoyaltyBalanceSchema.model_validate(result.balance) if result.balance else None,
            payments=[PaymentSchema.model_validate(p) for p in result.payments],
        )


class AuditItem(BaseModel):
    """Single audit trail entry"""

    id: str
    action: str
    category: str
    severity: str
    actor_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: str


class AuditHistoryResponse(BaseModel):
    """Response for GET /v1/audit"""

    target_id: str
    entries: List[AuditItem]
