"""Domain-specific exceptions and the result codes they map to"""

from enum import Enum


class ErrorCode(str, Enum):
    """Business and infrastructure outcomes reported to callers"""

    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    ALREADY_REJECTED = "ALREADY_REJECTED"
    EXPIRED = "EXPIRED"
    PRODUCT_UNAVAILABLE = "PRODUCT_UNAVAILABLE"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INVALID_POINTS = "INVALID_POINTS"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    RISK_REJECTED = "RISK_REJECTED"
    NOT_OWNER = "NOT_OWNER"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    COLLABORATOR_UNAVAILABLE = "COLLABORATOR_UNAVAILABLE"


class DomainException(Exception):
    """Base exception for domain layer"""

    code = ErrorCode.INVALID_STATE


class PaymentNotFoundError(DomainException):
    """Payment id does not exist"""

    code = ErrorCode.NOT_FOUND


class InvalidStateError(DomainException):
    """Transition is not legal from the payment's current status"""

    code = ErrorCode.INVALID_STATE


class AlreadyCompletedError(InvalidStateError):
    """Payment was already approved"""

    code = ErrorCode.ALREADY_COMPLETED


class AlreadyRejectedError(InvalidStateError):
    """Payment was already rejected"""

    code = ErrorCode.ALREADY_REJECTED


class PaymentExpiredError(DomainException):
    """Payment window elapsed before the transition"""

    code = ErrorCode.EXPIRED


class ProductUnavailableError(DomainException):
    """Product is not available or was sold to a concurrent buyer"""

    code = ErrorCode.PRODUCT_UNAVAILABLE


class InvalidAmountError(DomainException):
    """Payment amount is negative"""

    code = ErrorCode.INVALID_AMOUNT


class InsufficientBalanceError(DomainException):
    """Loyalty debit exceeds the reconciled balance"""

    code = ErrorCode.INSUFFICIENT_BALANCE

    def __init__(self, balance: int, requested: int):
        super().__init__(f"Requested {requested} points but balance is {balance}")
        self.balance = balance
        self.requested = requested


class InvalidPointsError(DomainException):
    """Loyalty point amounts must be positive integers"""

    code = ErrorCode.INVALID_POINTS


class NotOwnerError(DomainException):
    """Buyer-initiated action on someone else's payment"""

    code = ErrorCode.NOT_OWNER


class StoreUnavailableError(DomainException):
    """Ledger store failed or timed out"""

    code = ErrorCode.STORE_UNAVAILABLE


class CollaboratorError(DomainException):
    """Catalog or identity service returned an error or is unavailable"""

    code = ErrorCode.COLLABORATOR_UNAVAILABLE
