"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


# Statuses from which every transition is still possible
OPEN_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)


class PaymentMethod(str, Enum):
    PIX = "PIX"
    MANUAL = "MANUAL"
    CREDIT_CARD = "CREDIT_CARD"
    CRYPTO = "CRYPTO"


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LoyaltyReason(str, Enum):
    PURCHASE = "PURCHASE"
    REDEEM = "REDEEM"
    BONUS = "BONUS"
    EXPIRATION = "EXPIRATION"
    REFERRAL = "REFERRAL"
    GIFT = "GIFT"


class LoyaltyEntryStatus(str, Enum):
    ACTIVE = "ACTIVE"
    USED = "USED"
    EXPIRED = "EXPIRED"


@dataclass
class Payment:
    """One purchase attempt and its lifecycle record"""

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
    delivery_data: Optional[Dict[str, Any]] = None
    instruction_code: Optional[str] = None
    instruction_reference: Optional[str] = None
    ip_address: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def is_overdue(self, now: datetime) -> bool:
        """Open payment whose window has elapsed"""
        return self.is_open and now > self.expires_at


@dataclass
class PaymentInstructions:
    """Presentation artifacts attached to a new payment"""

    code: str
    reference: str


@dataclass
class ProductListing:
    """Catalog view of a product"""

    id: str
    name: str
    price: Decimal
    available: bool
    sold: bool


@dataclass
class UserProfile:
    """Identity collaborator view of a user"""

    user_id: str
    created_at: datetime
    email: Optional[str] = None
    is_blocked: bool = False
    block_reason: Optional[str] = None


@dataclass
class UserActivity:
    """Single entry of a user's activity history"""

    action: str
    timestamp: datetime
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PurchaseRecord:
    """Completed purchase from the user's history"""

    product_id: str
    amount: Decimal
    method: str
    date: datetime


@dataclass
class RiskAssessment:
    """Cacheable user-level fraud assessment"""

    risk: RiskTier
    score: int
    factors: List[str]
    computed_at: datetime


@dataclass
class TransactionCheck:
    """Outcome of the transaction-level fraud check"""

    approved: bool
    score: int
    reasons: List[str]


@dataclass
class LoyaltyTransaction:
    """Entry in a user's append-only points log"""

    id: str
    amount: int
    reason: LoyaltyReason
    status: LoyaltyEntryStatus
    created_at: datetime
    expires_at: Optional[datetime] = None
    related_payment_id: Optional[str] = None
    related_product_id: Optional[str] = None
    actor_id: Optional[str] = None


@dataclass
class LoyaltyChange:
    """Result of a credit or debit"""

    user_id: str
    new_balance: int
    new_tier: int
    points: int
    duplicate: bool = False


@dataclass
class LoyaltyBalance:
    """Reconciled view of a loyalty account"""

    user_id: str
    balance: int
    lifetime_points: int
    tier: int
    value: Decimal
    transactions: List[LoyaltyTransaction]


@dataclass
class UserRiskSignals:
    """Risk metrics extracted from a user's profile and activity history"""

    account_age_days: float
    suspicious_email: bool
    activity_count: int
    purchase_attempts: int
    successful_purchases: int
    attempts_last_hour: int
    previously_reported: bool
    blocked: bool
