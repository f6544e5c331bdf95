"""Transaction orchestrator: risk check -> payment lifecycle -> loyalty credit"""

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from storefront_gateway.config import settings
from storefront_gateway.domain.exceptions import (
    CollaboratorError,
    DomainException,
    ErrorCode,
    NotOwnerError,
)
from storefront_gateway.domain.loyalty import points_for_amount
from storefront_gateway.domain.models import LoyaltyChange, LoyaltyReason, Payment
from storefront_gateway.infrastructure.clients.catalog import CatalogClient
from storefront_gateway.infrastructure.clients.identity import IdentityClient
from storefront_gateway.infrastructure.observability.metrics import record_outcome
from storefront_gateway.services.loyalty_ledger import LoyaltyLedger
from storefront_gateway.services.payment_state_machine import PaymentStateMachine
from storefront_gateway.services.results import TransactionResult
from storefront_gateway.services.risk_engine import RiskEngine

logger = logging.getLogger(__name__)

CANCELLED_BY_BUYER = "cancelled_by_buyer"


class TransactionOrchestrator:
    """
    Facade sequencing the risk engine, payment state machine and loyalty ledger.

    Every public operation returns a TransactionResult. Domain failures are
    converted into error codes; only programming errors propagate.
    """

    def __init__(
        self,
        catalog: CatalogClient,
        identity: IdentityClient,
        risk: RiskEngine,
        payments: PaymentStateMachine,
        loyalty: LoyaltyLedger,
        points_per_unit: Optional[Decimal] = None,
    ):
        self.catalog = catalog
        self.identity = identity
        self.risk = risk
        self.payments = payments
        self.loyalty = loyalty
        self.points_per_unit = Decimal(
            settings.points_per_currency_unit if points_per_unit is None else points_per_unit
        )

    def _run(self, operation: str, action: Callable[[], TransactionResult]) -> TransactionResult:
        try:
            result = action()
        except DomainException as e:
            logger.warning(
                f"{operation} failed: {e}",
                extra={"operation": operation, "error_code": e.code.value},
            )
            result = TransactionResult.from_exception(e)

        record_outcome(operation, result.error.value if result.error else None)
        return result

    def _record_activity(self, user_id: str, action: str, data: Dict[str, Any]) -> None:
        """Best effort: a lost activity only weakens future risk scoring"""
        try:
            self.identity.record_activity(user_id, action, data)
        except CollaboratorError as e:
            logger.warning(f"Could not record {action} for {user_id}: {e}", extra={"user_id": user_id})

    def _require_owner(self, payment: Payment, buyer_id: str) -> None:
        if payment.buyer_id != buyer_id:
            raise NotOwnerError(f"Payment {payment.id} does not belong to {buyer_id}")

    # Purchases

    def start_purchase(
        self,
        user_id: str,
        user_name: str,
        product_id: str,
        payment_method: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> TransactionResult:
        """
        Open a payment for a product after the fraud check.

        Flow:
        1. Catalog lookup and store registration
        2. Transaction-level risk check
        3. PENDING payment with payment instructions
        4. PAYMENT_INITIATED activity
        """
        method = payment_method or settings.default_payment_method

        def action() -> TransactionResult:
            listing = self.catalog.get_product(product_id)
            if listing is None:
                return TransactionResult.failure(ErrorCode.NOT_FOUND, f"Product {product_id} not found")

            stored = self.payments.register_product(listing)
            if not stored.available or stored.sold:
                return TransactionResult.failure(
                    ErrorCode.PRODUCT_UNAVAILABLE, f"Product {product_id} is not available"
                )

            check = self.risk.assess_transaction(user_id, product_id, listing.price, method, ip_address)
            if not check.approved:
                return TransactionResult.failure(
                    ErrorCode.RISK_REJECTED,
                    "Purchase blocked by fraud check",
                    risk=check,
                )

            payment = self.payments.create(
                buyer_id=user_id,
                buyer_name=user_name,
                product_id=product_id,
                product_name=listing.name,
                amount=listing.price,
                method=method,
                ip_address=ip_address,
            )
            self._record_activity(
                user_id,
                "PAYMENT_INITIATED",
                {
                    "payment_id": payment.id,
                    "product_id": product_id,
                    "amount": str(payment.amount),
                    "payment_method": method,
                    "ip_address": ip_address,
                },
            )
            return TransactionResult(success=True, payment=payment, risk=check)

        return self._run("start_purchase", action)

    def report_payment_sent(self, payment_id: str, buyer_id: str) -> TransactionResult:
        def action() -> TransactionResult:
            self._require_owner(self.payments.get(payment_id), buyer_id)
            return TransactionResult(success=True, payment=self.payments.begin_processing(payment_id))

        return self._run("report_payment_sent", action)

    def approve_purchase(self, payment_id: str, approver_id: str) -> TransactionResult:
        """
        Approve a payment, deliver credentials and credit loyalty points.

        A failed loyalty credit does not undo the approval; the repair job
        picks the payment up later.
        """

        def action() -> TransactionResult:
            payment = self.payments.approve(payment_id, approver_id)

            loyalty = None
            try:
                loyalty = self.credit_purchase(payment)
            except DomainException as e:
                logger.error(
                    f"Loyalty credit for payment {payment_id} failed, left for repair: {e}",
                    extra={"payment_id": payment_id, "user_id": payment.buyer_id},
                )

            self._record_activity(
                payment.buyer_id,
                "PAYMENT_COMPLETED",
                {"payment_id": payment.id, "product_id": payment.product_id, "amount": str(payment.amount)},
            )
            self.risk.invalidate(payment.buyer_id)

            return TransactionResult(
                success=True,
                payment=payment,
                credential=payment.delivery_data,
                loyalty=loyalty,
            )

        return self._run("approve_purchase", action)

    def credit_purchase(self, payment: Payment) -> Optional[LoyaltyChange]:
        """
        PURCHASE credit for a completed payment; idempotent per payment.

        Returns None when the amount earns no points.
        """
        points = points_for_amount(payment.amount, self.points_per_unit)
        if points <= 0:
            return None
        return self.loyalty.credit(
            payment.buyer_id,
            points,
            reason=LoyaltyReason.PURCHASE,
            related_payment_id=payment.id,
            related_product_id=payment.product_id,
            actor_id=payment.approved_by,
        )

    def reject_purchase(self, payment_id: str, reason: str, rejecter_id: str) -> TransactionResult:
        def action() -> TransactionResult:
            payment = self.payments.reject(payment_id, reason, rejecter_id)
            self._record_activity(
                payment.buyer_id,
                "PAYMENT_REJECTED",
                {"payment_id": payment.id, "product_id": payment.product_id, "reason": reason},
            )
            return TransactionResult(success=True, payment=payment)

        return self._run("reject_purchase", action)

    def cancel_purchase(self, payment_id: str, buyer_id: str) -> TransactionResult:
        """Buyer withdraws an open payment; impossible once completed"""

        def action() -> TransactionResult:
            self._require_owner(self.payments.get(payment_id), buyer_id)
            payment = self.payments.reject(payment_id, CANCELLED_BY_BUYER, buyer_id)
            self._record_activity(
                buyer_id,
                "PAYMENT_REJECTED",
                {"payment_id": payment.id, "product_id": payment.product_id, "reason": CANCELLED_BY_BUYER},
            )
            return TransactionResult(success=True, payment=payment)

        return self._run("cancel_purchase", action)

    def get_payment(self, payment_id: str) -> TransactionResult:
        return self._run(
            "get_payment",
            lambda: TransactionResult(success=True, payment=self.payments.get(payment_id)),
        )

    def get_pending_approvals(self) -> TransactionResult:
        return self._run(
            "get_pending_approvals",
            lambda: TransactionResult(success=True, payments=self.payments.list_pending()),
        )

    # Loyalty

    def get_balance(self, user_id: str) -> TransactionResult:
        return self._run(
            "get_balance",
            lambda: TransactionResult(success=True, balance=self.loyalty.get_balance(user_id)),
        )

    def redeem_points(
        self,
        user_id: str,
        points: int,
        reason: LoyaltyReason = LoyaltyReason.REDEEM,
    ) -> TransactionResult:
        return self._run(
            "redeem_points",
            lambda: TransactionResult(
                success=True,
                loyalty=self.loyalty.debit(user_id, points, reason=reason, actor_id=user_id),
            ),
        )

    # Risk

    def assess_user(self, user_id: str) -> TransactionResult:
        return self._run(
            "assess_user",
            lambda: TransactionResult(success=True, risk=self.risk.assess_user(user_id)),
        )

    def report_fraud(
        self,
        user_id: str,
        payment_id: Optional[str],
        fraud_type: str,
        evidence: Optional[Dict[str, Any]] = None,
        reporter_id: Optional[str] = None,
    ) -> TransactionResult:
        def action() -> TransactionResult:
            if self.risk.report_fraud(user_id, payment_id, fraud_type, evidence, reporter_id):
                return TransactionResult(success=True)
            return TransactionResult.failure(
                ErrorCode.COLLABORATOR_UNAVAILABLE, "Identity service did not accept the fraud report"
            )

        return self._run("report_fraud", action)
