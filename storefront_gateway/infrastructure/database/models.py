"""SQLAlchemy ORM models for the ledger store"""

import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

from storefront_gateway.utils.date_utils import ensure_utc

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes on every backend, SQLite included"""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        return ensure_utc(value)


class ProductRecord(Base):
    """Availability flags for a sellable product"""

    __tablename__ = "product"

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    available = Column(Boolean, nullable=False, default=True)
    sold = Column(Boolean, nullable=False, default=False)
    sold_to = Column(Text, nullable=True)
    sold_at = Column(UTCDateTime, nullable=True)
    sold_payment_id = Column(String(36), nullable=True, unique=True)
    listed_at = Column(UTCDateTime, nullable=False)


class PaymentRecord(Base):
    """Purchase attempt, retained for audit after it terminates"""

    __tablename__ = "payment"

    id = Column(String(36), primary_key=True, default=_new_id)
    buyer_id = Column(Text, nullable=False)
    buyer_name = Column(Text, nullable=False)
    product_id = Column(Text, ForeignKey("product.id"), nullable=False)
    product_name = Column(Text, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(Text, nullable=False, default="PIX")
    status = Column(Text, nullable=False, default="PENDING")
    created_at = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    completed_at = Column(UTCDateTime, nullable=True)
    approved_by = Column(Text, nullable=True)
    rejected_at = Column(UTCDateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    rejected_by = Column(Text, nullable=True)
    delivery_data = Column(JSON, nullable=True)
    instruction_code = Column(Text, nullable=True)
    instruction_reference = Column(Text, nullable=True)
    ip_address = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_payment_status_expires_at", "status", "expires_at"),
        Index("ix_payment_buyer_status", "buyer_id", "status"),
        # At most one completed payment per product
        Index(
            "uq_payment_completed_product",
            "product_id",
            unique=True,
            sqlite_where=text("status = 'COMPLETED'"),
            postgresql_where=text("status = 'COMPLETED'"),
        ),
    )


class LoyaltyAccountRecord(Base):
    """Per-user points account; tier is derived, not stored"""

    __tablename__ = "loyalty_account"

    user_id = Column(Text, primary_key=True)
    balance = Column(BigInteger, nullable=False, default=0)
    lifetime_points = Column(BigInteger, nullable=False, default=0)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    entries = relationship(
        "LoyaltyEntryRecord",
        back_populates="account",
        order_by="LoyaltyEntryRecord.id",
    )


class LoyaltyEntryRecord(Base):
    """Append-only points log entry"""

    __tablename__ = "loyalty_transaction"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, ForeignKey("loyalty_account.user_id"), nullable=False)
    amount = Column(BigInteger, nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=True)
    related_payment_id = Column(String(36), nullable=True)
    related_product_id = Column(Text, nullable=True)
    actor_id = Column(Text, nullable=True)

    account = relationship("LoyaltyAccountRecord", back_populates="entries")

    __table_args__ = (
        UniqueConstraint("related_payment_id", "reason", name="uq_loyalty_payment_reason"),
        Index("ix_loyalty_user_status_expires", "user_id", "status", "expires_at"),
    )


class AuditEntry(Base):
    """Audit trail for state changes, written with the change itself"""

    __tablename__ = "audit_entry"

    id = Column(String(36), primary_key=True, default=_new_id)
    action = Column(Text, nullable=False)
    category = Column(Text, nullable=False)
    severity = Column(Text, nullable=False, default="INFO")
    actor_id = Column(Text, nullable=True)
    target_id = Column(Text, nullable=True, index=True)
    details = Column(JSON, nullable=True)
    created_at = Column(UTCDateTime, nullable=False)
