"""Structured outcome returned by every orchestrator operation"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from storefront_gateway.domain.exceptions import DomainException, ErrorCode
from storefront_gateway.domain.models import (
    LoyaltyBalance,
    LoyaltyChange,
    Payment,
    RiskAssessment,
    TransactionCheck,
)


@dataclass
class TransactionResult:
    """
    Success flag plus whichever payloads the operation produced.

    Business failures are reported through `error`/`message`, never raised.
    """

    success: bool
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
    payment: Optional[Payment] = None
    credential: Optional[Dict[str, str]] = None
    loyalty: Optional[LoyaltyChange] = None
    risk: Optional[Union[RiskAssessment, TransactionCheck]] = None
    balance: Optional[LoyaltyBalance] = None
    payments: List[Payment] = field(default_factory=list)

    @classmethod
    def failure(cls, error: ErrorCode, message: str, **payloads) -> "TransactionResult":
        return cls(success=False, error=error, message=message, **payloads)

    @classmethod
    def from_exception(cls, exc: DomainException) -> "TransactionResult":
        return cls.failure(exc.code, str(exc) or exc.code.value)
