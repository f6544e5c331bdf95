"""Payment lifecycle: PENDING -> PROCESSING -> COMPLETED | REJECTED | EXPIRED"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from storefront_gateway.config import settings
from storefront_gateway.domain.credentials import generate_delivery_credentials
from storefront_gateway.domain.exceptions import (
    AlreadyCompletedError,
    AlreadyRejectedError,
    DomainException,
    InvalidAmountError,
    InvalidStateError,
    PaymentExpiredError,
    PaymentNotFoundError,
    ProductUnavailableError,
)
from storefront_gateway.domain.models import Payment, PaymentStatus, ProductListing
from storefront_gateway.infrastructure.clients.renderer import InstructionRenderer
from storefront_gateway.infrastructure.database.models import PaymentRecord
from storefront_gateway.infrastructure.database.repositories import (
    AuditRepository,
    PaymentRepository,
    ProductRepository,
    payment_to_domain,
)
from storefront_gateway.infrastructure.database.retry import retry_read, write_guard
from storefront_gateway.infrastructure.locks import KeyedLocks
from storefront_gateway.infrastructure.observability.logging import log_transition
from storefront_gateway.infrastructure.observability.metrics import payment_transition_counter
from storefront_gateway.utils.date_utils import Clock, utc_now

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
PRODUCT_UNAVAILABLE_REASON = "product_unavailable"


def _product_key(product_id: str) -> str:
    return f"product:{product_id}"


class PaymentStateMachine:
    """
    Owns every status change of a payment.

    Each operation runs in one transaction and changes status only through a
    conditional update guarded on the current status. Work on one product is
    additionally serialized in-process by a keyed lock.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        renderer: InstructionRenderer,
        clock: Clock = utc_now,
        locks: Optional[KeyedLocks] = None,
        expiration_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.renderer = renderer
        self.clock = clock
        self.locks = locks or KeyedLocks()
        self.expiration = timedelta(
            seconds=settings.payment_expiration_seconds if expiration_seconds is None else expiration_seconds
        )

    # Reads

    def _load(self, payment_id: str) -> Optional[Payment]:
        with self.session_factory() as db:
            record = PaymentRepository(db).get(payment_id)
            return payment_to_domain(record) if record is not None else None

    def _require(self, payment_id: str) -> Payment:
        payment = retry_read(lambda: self._load(payment_id), f"load payment {payment_id}")
        if payment is None:
            raise PaymentNotFoundError(f"Payment {payment_id} not found")
        return payment

    def get(self, payment_id: str) -> Payment:
        """Fetch a payment, expiring it first if its window has elapsed"""
        payment = self._require(payment_id)
        if payment.is_overdue(self.clock()):
            self.expire(payment_id)
            payment = self._require(payment_id)
        return payment

    def list_pending(self, limit: int = 100) -> List[Payment]:
        """Open payments awaiting a decision, newest first"""

        def read() -> List[Payment]:
            with self.session_factory() as db:
                return [payment_to_domain(r) for r in PaymentRepository(db).list_open(limit)]

        now = self.clock()
        pending = []
        for payment in retry_read(read, "list pending payments"):
            if payment.is_overdue(now):
                self.expire(payment.id)
                continue
            pending.append(payment)
        return pending

    def find_expired_ids(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[str]:
        now = now or self.clock()
        limit = limit or settings.sweep_batch_size

        def read() -> List[str]:
            with self.session_factory() as db:
                return PaymentRepository(db).find_overdue_ids(now, limit)

        return retry_read(read, "find overdue payments")

    def find_uncredited(self, min_amount: Decimal, limit: int = 100) -> List[Payment]:
        """Completed payments of at least min_amount whose loyalty credit was never written"""

        def read() -> List[Payment]:
            with self.session_factory() as db:
                records = PaymentRepository(db).find_completed_without_credit(limit, min_amount)
                return [payment_to_domain(r) for r in records]

        return retry_read(read, "find uncredited payments")

    # Writes

    def register_product(self, listing: ProductListing) -> ProductListing:
        """
        Make sure the store tracks this product; returns the store's view.

        The catalog only seeds the row. Once listed, the availability flags
        are owned by the store.
        """
        with write_guard(f"register product {listing.id}"):
            with self.session_factory() as db:
                record = ProductRepository(db).ensure_listed(listing, self.clock())
                db.commit()
                return ProductListing(
                    id=record.id,
                    name=record.name,
                    price=record.price,
                    available=record.available,
                    sold=record.sold,
                )

    def create(
        self,
        buyer_id: str,
        buyer_name: str,
        product_id: str,
        product_name: str,
        amount: Decimal,
        method: str,
        ip_address: Optional[str] = None,
    ) -> Payment:
        """
        Open a PENDING payment for an available product.

        Raises:
            InvalidAmountError: If amount is negative
            ProductUnavailableError: If the product is unknown, sold or delisted
        """
        amount = Decimal(amount)
        if amount < 0:
            raise InvalidAmountError(f"Payment amount must not be negative: {amount}")

        now = self.clock()
        payment = Payment(
            id=str(uuid.uuid4()),
            buyer_id=buyer_id,
            buyer_name=buyer_name,
            product_id=product_id,
            product_name=product_name,
            amount=amount,
            method=method,
            status=PaymentStatus.PENDING,
            created_at=now,
            expires_at=now + self.expiration,
            ip_address=ip_address,
        )
        instructions = self.renderer.render(payment)
        payment = replace(payment, instruction_code=instructions.code, instruction_reference=instructions.reference)

        with self.locks.hold(_product_key(product_id)):
            with write_guard(f"create payment for product {product_id}"):
                with self.session_factory() as db:
                    product = ProductRepository(db).get(product_id)
                    if product is None or not product.available or product.sold:
                        raise ProductUnavailableError(f"Product {product_id} is not available")

                    PaymentRepository(db).add(
                        PaymentRecord(
                            id=payment.id,
                            buyer_id=payment.buyer_id,
                            buyer_name=payment.buyer_name,
                            product_id=payment.product_id,
                            product_name=payment.product_name,
                            amount=payment.amount,
                            method=payment.method,
                            status=payment.status.value,
                            created_at=payment.created_at,
                            expires_at=payment.expires_at,
                            instruction_code=payment.instruction_code,
                            instruction_reference=payment.instruction_reference,
                            ip_address=payment.ip_address,
                        )
                    )
                    AuditRepository(db).record(
                        action="PAYMENT_CREATED",
                        category="TRANSACTION",
                        now=now,
                        actor_id=buyer_id,
                        target_id=payment.id,
                        details={"product_id": product_id, "amount": str(amount), "method": method},
                    )
                    db.commit()

        self._transitioned(payment.id, PaymentStatus.PENDING, buyer_id)
        return payment

    def begin_processing(self, payment_id: str) -> Payment:
        """Buyer reports having paid: PENDING -> PROCESSING"""
        payment = self._require(payment_id)
        now = self.clock()

        with self.locks.hold(_product_key(payment.product_id)):
            with write_guard(f"begin processing {payment_id}"):
                with self.session_factory() as db:
                    moved = PaymentRepository(db).transition(
                        payment_id,
                        PaymentStatus.PROCESSING,
                        from_statuses=(PaymentStatus.PENDING,),
                        not_expired_at=now,
                    )
                    if moved:
                        AuditRepository(db).record(
                            action="PAYMENT_PROCESSING",
                            category="TRANSACTION",
                            now=now,
                            actor_id=payment.buyer_id,
                            target_id=payment_id,
                        )
                        db.commit()

        if not moved:
            raise self._conflict(payment_id, now)

        self._transitioned(payment_id, PaymentStatus.PROCESSING, payment.buyer_id)
        return replace(payment, status=PaymentStatus.PROCESSING)

    def approve(self, payment_id: str, approver_id: str) -> Payment:
        """
        Complete a payment and sell its product atomically.

        The payment update and the product update commit together or not at
        all. If the product was sold in the meantime the payment is rejected
        with reason "product_unavailable".

        Returns: the completed payment, with delivery credentials attached

        Raises:
            PaymentNotFoundError, PaymentExpiredError, InvalidStateError,
            ProductUnavailableError
        """
        payment = self._require(payment_id)
        now = self.clock()
        credentials = generate_delivery_credentials()

        with self.locks.hold(_product_key(payment.product_id)):
            outcome = "approved"
            try:
                with write_guard(f"approve payment {payment_id}"):
                    with self.session_factory() as db:
                        if not PaymentRepository(db).transition(
                            payment_id,
                            PaymentStatus.COMPLETED,
                            not_expired_at=now,
                            completed_at=now,
                            approved_by=approver_id,
                            delivery_data=credentials,
                        ):
                            outcome = "conflict"
                        elif not ProductRepository(db).mark_sold(payment.product_id, payment.buyer_id, payment_id, now):
                            outcome = "unavailable"
                        else:
                            AuditRepository(db).record(
                                action="PAYMENT_APPROVED",
                                category="TRANSACTION",
                                now=now,
                                actor_id=approver_id,
                                target_id=payment_id,
                                details={"product_id": payment.product_id, "amount": str(payment.amount)},
                            )
                            db.commit()
            except IntegrityError:
                # Partial unique index on completed payments per product
                outcome = "unavailable"

            if outcome == "unavailable":
                self._reject(payment_id, PRODUCT_UNAVAILABLE_REASON, SYSTEM_ACTOR, now)
                raise ProductUnavailableError(f"Product {payment.product_id} was already sold")

        if outcome == "conflict":
            raise self._conflict(payment_id, now)

        self._transitioned(payment_id, PaymentStatus.COMPLETED, approver_id)
        return replace(
            payment,
            status=PaymentStatus.COMPLETED,
            completed_at=now,
            approved_by=approver_id,
            delivery_data=credentials,
        )

    def reject(self, payment_id: str, reason: str, rejecter_id: str) -> Payment:
        """
        Reject an open payment.

        Raises:
            PaymentNotFoundError
            AlreadyCompletedError: If the payment was approved
            AlreadyRejectedError: If the payment was already rejected
            InvalidStateError: If the payment expired
        """
        payment = self.get(payment_id)
        now = self.clock()

        with self.locks.hold(_product_key(payment.product_id)):
            moved = self._reject(payment_id, reason, rejecter_id, now)

        if not moved:
            current = self._require(payment_id)
            if current.status == PaymentStatus.COMPLETED:
                raise AlreadyCompletedError(f"Payment {payment_id} was already approved")
            if current.status == PaymentStatus.REJECTED:
                raise AlreadyRejectedError(f"Payment {payment_id} was already rejected")
            if current.is_overdue(now):
                self.expire(payment_id)
                current = self._require(payment_id)
            raise InvalidStateError(f"Payment {payment_id} is {current.status.value}")

        return replace(
            payment,
            status=PaymentStatus.REJECTED,
            rejected_at=now,
            rejection_reason=reason,
            rejected_by=rejecter_id,
        )

    def expire(self, payment_id: str) -> bool:
        """Expire an overdue open payment; False when there was nothing to do"""
        now = self.clock()
        with write_guard(f"expire payment {payment_id}"):
            with self.session_factory() as db:
                expired = PaymentRepository(db).expire(payment_id, now)
                if expired:
                    AuditRepository(db).record(
                        action="PAYMENT_EXPIRED",
                        category="TRANSACTION",
                        now=now,
                        target_id=payment_id,
                    )
                    db.commit()

        if expired:
            self._transitioned(payment_id, PaymentStatus.EXPIRED)
        return expired

    # Internals

    def _reject(self, payment_id: str, reason: str, rejecter_id: str, now: datetime) -> bool:
        with write_guard(f"reject payment {payment_id}"):
            with self.session_factory() as db:
                moved = PaymentRepository(db).transition(
                    payment_id,
                    PaymentStatus.REJECTED,
                    not_expired_at=now,
                    rejected_at=now,
                    rejection_reason=reason,
                    rejected_by=rejecter_id,
                )
                if moved:
                    AuditRepository(db).record(
                        action="PAYMENT_REJECTED",
                        category="TRANSACTION",
                        now=now,
                        actor_id=rejecter_id,
                        target_id=payment_id,
                        details={"reason": reason},
                    )
                    db.commit()

        if moved:
            self._transitioned(payment_id, PaymentStatus.REJECTED, rejecter_id, reason)
        return moved

    def _conflict(self, payment_id: str, now: datetime) -> DomainException:
        """Explain why a guarded transition matched no row"""
        current = self._require(payment_id)
        if current.status == PaymentStatus.EXPIRED:
            return PaymentExpiredError(f"Payment {payment_id} has expired")
        if current.is_overdue(now):
            self.expire(payment_id)
            return PaymentExpiredError(f"Payment {payment_id} has expired")
        return InvalidStateError(f"Payment {payment_id} is {current.status.value}")

    def _transitioned(
        self,
        payment_id: str,
        to_status: PaymentStatus,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        payment_transition_counter.labels(to_status=to_status.value).inc()
        log_transition(payment_id, to_status.value, actor_id=actor_id, reason=reason)
