"""Data access layer for the ledger store"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import and_, exists, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from storefront_gateway.domain.models import (
    OPEN_STATUSES,
    LoyaltyEntryStatus,
    LoyaltyReason,
    LoyaltyTransaction,
    Payment,
    PaymentStatus,
    ProductListing,
)
from storefront_gateway.infrastructure.database.models import (
    AuditEntry,
    LoyaltyAccountRecord,
    LoyaltyEntryRecord,
    PaymentRecord,
    ProductRecord,
)

OPEN_STATUS_VALUES = [s.value for s in OPEN_STATUSES]


def insert_if_absent(db: Session, model: type, **values: Any) -> None:
    """INSERT ... ON CONFLICT DO NOTHING on the primary key"""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql_insert(model).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite_insert(model).values(**values).on_conflict_do_nothing()
    else:
        raise NotImplementedError(f"Unsupported database dialect: {dialect}")
    db.execute(stmt)


def payment_to_domain(record: PaymentRecord) -> Payment:
    return Payment(
        id=record.id,
        buyer_id=record.buyer_id,
        buyer_name=record.buyer_name,
        product_id=record.product_id,
        product_name=record.product_name,
        amount=record.amount,
        method=record.method,
        status=PaymentStatus(record.status),
        created_at=record.created_at,
        expires_at=record.expires_at,
        completed_at=record.completed_at,
        approved_by=record.approved_by,
        rejected_at=record.rejected_at,
        rejection_reason=record.rejection_reason,
        rejected_by=record.rejected_by,
        delivery_data=record.delivery_data,
        instruction_code=record.instruction_code,
        instruction_reference=record.instruction_reference,
        ip_address=record.ip_address,
    )


def entry_to_domain(record: LoyaltyEntryRecord) -> LoyaltyTransaction:
    return LoyaltyTransaction(
        id=str(record.id),
        amount=record.amount,
        reason=LoyaltyReason(record.reason),
        status=LoyaltyEntryStatus(record.status),
        created_at=record.created_at,
        expires_at=record.expires_at,
        related_payment_id=record.related_payment_id,
        related_product_id=record.related_product_id,
        actor_id=record.actor_id,
    )


class ProductRepository:
    """Repository for product availability flags"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: str) -> Optional[ProductRecord]:
        return self.db.get(ProductRecord, product_id)

    def ensure_listed(self, listing: ProductListing, now: datetime) -> ProductRecord:
        """
        Register a catalog product the first time it is purchased.

        Existing rows are left untouched: once listed, the store owns the
        availability flags.
        """
        existing = self.get(listing.id)
        if existing is not None:
            return existing

        insert_if_absent(
            self.db,
            ProductRecord,
            id=listing.id,
            name=listing.name,
            price=listing.price,
            available=listing.available and not listing.sold,
            sold=listing.sold,
            listed_at=now,
        )
        return self.get(listing.id)

    def mark_sold(self, product_id: str, buyer_id: str, payment_id: str, now: datetime) -> bool:
        """Flip available -> sold only if nobody else got there first"""
        result = self.db.execute(
            update(ProductRecord)
            .where(
                ProductRecord.id == product_id,
                ProductRecord.available.is_(True),
                ProductRecord.sold.is_(False),
            )
            .values(
                available=False,
                sold=True,
                sold_to=buyer_id,
                sold_at=now,
                sold_payment_id=payment_id,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class PaymentRepository:
    """Repository for payments; every status change is a guarded update"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, record: PaymentRecord) -> PaymentRecord:
        self.db.add(record)
        self.db.flush()  # Get ID without committing
        return record

    def get(self, payment_id: str) -> Optional[PaymentRecord]:
        return self.db.get(PaymentRecord, payment_id, populate_existing=True)

    def transition(
        self,
        payment_id: str,
        to_status: PaymentStatus,
        from_statuses: Sequence[PaymentStatus] = OPEN_STATUSES,
        not_expired_at: Optional[datetime] = None,
        **values: Any,
    ) -> bool:
        """
        Conditionally move a payment to `to_status`.

        Equivalent to "UPDATE payment SET status = ? ... WHERE id = ? AND
        status IN (...)". Returns False when the guard matched no row.
        """
        conditions = [
            PaymentRecord.id == payment_id,
            PaymentRecord.status.in_([s.value for s in from_statuses]),
        ]
        if not_expired_at is not None:
            conditions.append(PaymentRecord.expires_at >= not_expired_at)

        result = self.db.execute(
            update(PaymentRecord)
            .where(and_(*conditions))
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def expire(self, payment_id: str, now: datetime) -> bool:
        """Open payment past its window -> EXPIRED; no-op otherwise"""
        result = self.db.execute(
            update(PaymentRecord)
            .where(
                PaymentRecord.id == payment_id,
                PaymentRecord.status.in_(OPEN_STATUS_VALUES),
                PaymentRecord.expires_at < now,
            )
            .values(status=PaymentStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_open(self, limit: int = 100) -> List[PaymentRecord]:
        """Fetch payments awaiting a decision, newest first"""
        return list(
            self.db.scalars(
                select(PaymentRecord)
                .where(PaymentRecord.status.in_(OPEN_STATUS_VALUES))
                .order_by(PaymentRecord.created_at.desc())
                .limit(limit)
            )
        )

    def find_overdue_ids(self, now: datetime, limit: int) -> List[str]:
        """Sweep query served by the (status, expires_at) index"""
        return list(
            self.db.scalars(
                select(PaymentRecord.id)
                .where(
                    PaymentRecord.status.in_(OPEN_STATUS_VALUES),
                    PaymentRecord.expires_at < now,
                )
                .order_by(PaymentRecord.expires_at)
                .limit(limit)
            )
        )

    def find_completed_without_credit(self, limit: int, min_amount: Decimal) -> List[PaymentRecord]:
        """Completed payments of at least min_amount with no PURCHASE loyalty entry referencing them"""
        credited = exists().where(
            LoyaltyEntryRecord.related_payment_id == PaymentRecord.id,
            LoyaltyEntryRecord.reason == LoyaltyReason.PURCHASE.value,
        )
        return list(
            self.db.scalars(
                select(PaymentRecord)
                .where(
                    PaymentRecord.status == PaymentStatus.COMPLETED.value,
                    PaymentRecord.amount >= min_amount,
                    ~credited,
                )
                .order_by(PaymentRecord.completed_at)
                .limit(limit)
            )
        )


class LoyaltyRepository:
    """Repository for loyalty accounts and their points log"""

    def __init__(self, db: Session):
        self.db = db

    def get_account(self, user_id: str, for_update: bool = False) -> Optional[LoyaltyAccountRecord]:
        stmt = select(LoyaltyAccountRecord).where(LoyaltyAccountRecord.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.scalars(stmt.execution_options(populate_existing=True)).first()

    def get_or_create_account(self, user_id: str, now: datetime) -> LoyaltyAccountRecord:
        account = self.get_account(user_id, for_update=True)
        if account is not None:
            return account

        insert_if_absent(
            self.db,
            LoyaltyAccountRecord,
            user_id=user_id,
            balance=0,
            lifetime_points=0,
            created_at=now,
            updated_at=now,
        )
        return self.get_account(user_id, for_update=True)

    def entries(self, user_id: str) -> List[LoyaltyEntryRecord]:
        return list(
            self.db.scalars(
                select(LoyaltyEntryRecord)
                .where(LoyaltyEntryRecord.user_id == user_id)
                .order_by(LoyaltyEntryRecord.id)
            )
        )

    def expirable_entries(self, user_id: str, now: datetime) -> List[LoyaltyEntryRecord]:
        """ACTIVE credits whose expiry has passed"""
        return list(
            self.db.scalars(
                select(LoyaltyEntryRecord)
                .where(
                    LoyaltyEntryRecord.user_id == user_id,
                    LoyaltyEntryRecord.status == LoyaltyEntryStatus.ACTIVE.value,
                    LoyaltyEntryRecord.expires_at <= now,
                )
                .order_by(LoyaltyEntryRecord.id)
            )
        )

    def mark_expired(self, entry_ids: Sequence[int]) -> None:
        self.db.execute(
            update(LoyaltyEntryRecord)
            .where(
                LoyaltyEntryRecord.id.in_(entry_ids),
                LoyaltyEntryRecord.status == LoyaltyEntryStatus.ACTIVE.value,
            )
            .values(status=LoyaltyEntryStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )

    def add_entry(
        self,
        user_id: str,
        amount: int,
        reason: LoyaltyReason,
        status: LoyaltyEntryStatus,
        now: datetime,
        expires_at: Optional[datetime] = None,
        related_payment_id: Optional[str] = None,
        related_product_id: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> LoyaltyEntryRecord:
        entry = LoyaltyEntryRecord(
            user_id=user_id,
            amount=amount,
            reason=reason.value,
            status=status.value,
            created_at=now,
            expires_at=expires_at,
            related_payment_id=related_payment_id,
            related_product_id=related_product_id,
            actor_id=actor_id,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def has_payment_entry(self, payment_id: str, reason: LoyaltyReason) -> bool:
        return self.db.scalar(
            select(
                exists().where(
                    LoyaltyEntryRecord.related_payment_id == payment_id,
                    LoyaltyEntryRecord.reason == reason.value,
                )
            )
        )


class AuditRepository:
    """Repository for the audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        action: str,
        category: str,
        now: datetime,
        severity: str = "INFO",
        actor_id: Optional[str] = None,
        target_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            action=action,
            category=category,
            severity=severity,
            actor_id=actor_id,
            target_id=target_id,
            details=details or {},
            created_at=now,
        )
        self.db.add(entry)
        return entry

    def list_for_target(self, target_id: str, limit: int = 50) -> List[AuditEntry]:
        """Fetch recent audit entries about one entity"""
        return list(
            self.db.scalars(
                select(AuditEntry)
                .where(AuditEntry.target_id == target_id)
                .order_by(AuditEntry.created_at.desc())
                .limit(limit)
            )
        )
