"""Loyalty points ledger: append-only log, lazy expiration, derived tiers"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from storefront_gateway.config import settings
from storefront_gateway.domain.exceptions import InsufficientBalanceError, InvalidPointsError
from storefront_gateway.domain.loyalty import calculate_tier, plan_expiration
from storefront_gateway.domain.models import (
    LoyaltyBalance,
    LoyaltyChange,
    LoyaltyEntryStatus,
    LoyaltyReason,
)
from storefront_gateway.infrastructure.database.models import LoyaltyAccountRecord
from storefront_gateway.infrastructure.database.repositories import LoyaltyRepository, entry_to_domain
from storefront_gateway.infrastructure.database.retry import retry_read, write_guard
from storefront_gateway.infrastructure.locks import KeyedLocks
from storefront_gateway.infrastructure.observability.metrics import loyalty_points_counter
from storefront_gateway.utils.date_utils import Clock, utc_now

logger = logging.getLogger(__name__)


def _loyalty_key(user_id: str) -> str:
    return f"loyalty:{user_id}"


def _validate_points(points: int) -> None:
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise InvalidPointsError(f"Points must be a positive integer, got {points!r}")


class LoyaltyLedger:
    """
    Per-user points accounts.

    Every read or write reconciles expirations first. For one user,
    reconciliation and mutation run under a keyed lock and a row lock on the
    account, so balance always equals the sum of the user's log entries.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Clock = utc_now,
        locks: Optional[KeyedLocks] = None,
        expiration_days: Optional[int] = None,
        points_value: Optional[Decimal] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.locks = locks or KeyedLocks()
        self.expiration = timedelta(
            days=settings.loyalty_expiration_days if expiration_days is None else expiration_days
        )
        self.points_value = Decimal(settings.points_value if points_value is None else points_value)

    def credit(
        self,
        user_id: str,
        points: int,
        reason: LoyaltyReason = LoyaltyReason.BONUS,
        related_payment_id: Optional[str] = None,
        related_product_id: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> LoyaltyChange:
        """
        Add points that expire after the configured window.

        A credit referencing a payment is applied at most once per reason;
        repeats return the current balance with duplicate=True.
        """
        _validate_points(points)
        now = self.clock()

        with self.locks.hold(_loyalty_key(user_id)):
            try:
                with write_guard(f"loyalty credit for {user_id}"):
                    with self.session_factory() as db:
                        repo = LoyaltyRepository(db)
                        if related_payment_id and repo.has_payment_entry(related_payment_id, reason):
                            return self._duplicate(db, user_id, now)

                        account = repo.get_or_create_account(user_id, now)
                        self._reconcile(repo, account, now)

                        repo.add_entry(
                            user_id=user_id,
                            amount=points,
                            reason=reason,
                            status=LoyaltyEntryStatus.ACTIVE,
                            now=now,
                            expires_at=now + self.expiration,
                            related_payment_id=related_payment_id,
                            related_product_id=related_product_id,
                            actor_id=actor_id,
                        )
                        account.balance += points
                        account.lifetime_points += points
                        account.updated_at = now
                        change = self._change(account, points)
                        db.commit()
            except IntegrityError:
                # Same payment credited by another process between check and insert
                with write_guard(f"loyalty credit for {user_id}"):
                    with self.session_factory() as db:
                        return self._duplicate(db, user_id, now)

        loyalty_points_counter.labels(direction="credited").inc(points)
        logger.info(
            f"Credited {points} points to {user_id}",
            extra={"user_id": user_id, "points": points, "reason": reason.value, "payment_id": related_payment_id},
        )
        return change

    def debit(
        self,
        user_id: str,
        points: int,
        reason: LoyaltyReason = LoyaltyReason.REDEEM,
        related_payment_id: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> LoyaltyChange:
        """
        Spend points from the reconciled balance.

        Raises:
            InvalidPointsError: If points is not a positive integer
            InsufficientBalanceError: If points exceed the balance after expiration
        """
        _validate_points(points)
        now = self.clock()

        with self.locks.hold(_loyalty_key(user_id)):
            with write_guard(f"loyalty debit for {user_id}"):
                with self.session_factory() as db:
                    repo = LoyaltyRepository(db)
                    account = repo.get_account(user_id, for_update=True)
                    if account is None:
                        raise InsufficientBalanceError(balance=0, requested=points)

                    self._reconcile(repo, account, now)
                    if account.balance < points:
                        db.commit()
                        raise InsufficientBalanceError(balance=account.balance, requested=points)

                    repo.add_entry(
                        user_id=user_id,
                        amount=-points,
                        reason=reason,
                        status=LoyaltyEntryStatus.USED,
                        now=now,
                        related_payment_id=related_payment_id,
                        actor_id=actor_id,
                    )
                    account.balance -= points
                    account.updated_at = now
                    change = self._change(account, -points)
                    db.commit()

        loyalty_points_counter.labels(direction="debited").inc(points)
        logger.info(
            f"Debited {points} points from {user_id}",
            extra={"user_id": user_id, "points": points, "reason": reason.value},
        )
        return change

    def get_balance(self, user_id: str) -> LoyaltyBalance:
        """Reconciled balance view; unknown users get an empty view"""

        def account_exists() -> bool:
            with self.session_factory() as db:
                return LoyaltyRepository(db).get_account(user_id) is not None

        if not retry_read(account_exists, f"load loyalty account {user_id}"):
            return LoyaltyBalance(
                user_id=user_id,
                balance=0,
                lifetime_points=0,
                tier=calculate_tier(0),
                value=self._value(0),
                transactions=[],
            )

        now = self.clock()
        with self.locks.hold(_loyalty_key(user_id)):
            with write_guard(f"loyalty balance for {user_id}"):
                with self.session_factory() as db:
                    repo = LoyaltyRepository(db)
                    account = repo.get_account(user_id, for_update=True)
                    self._reconcile(repo, account, now)
                    entries = [entry_to_domain(e) for e in repo.entries(user_id)]
                    db.commit()

        return LoyaltyBalance(
            user_id=user_id,
            balance=account.balance,
            lifetime_points=account.lifetime_points,
            tier=calculate_tier(account.lifetime_points),
            value=self._value(account.balance),
            transactions=list(reversed(entries)),
        )

    def reconcile(self, user_id: str) -> int:
        """Expire lapsed credits now; returns the points debited"""
        now = self.clock()
        with self.locks.hold(_loyalty_key(user_id)):
            with write_guard(f"loyalty reconcile for {user_id}"):
                with self.session_factory() as db:
                    repo = LoyaltyRepository(db)
                    account = repo.get_account(user_id, for_update=True)
                    if account is None:
                        return 0
                    debited = self._reconcile(repo, account, now)
                    db.commit()
        return debited

    def _reconcile(self, repo: LoyaltyRepository, account: LoyaltyAccountRecord, now: datetime) -> int:
        """
        Flip lapsed ACTIVE credits to EXPIRED and append one EXPIRATION debit.

        Runs inside the caller's transaction. A second pass finds nothing to
        flip, so it is idempotent.
        """
        lapsed = repo.expirable_entries(account.user_id, now)
        plan = plan_expiration([entry_to_domain(e) for e in lapsed], account.balance, now)
        if plan.is_empty:
            return 0

        repo.mark_expired([int(entry_id) for entry_id in plan.expired_ids])
        if plan.debit_points:
            repo.add_entry(
                user_id=account.user_id,
                amount=-plan.debit_points,
                reason=LoyaltyReason.EXPIRATION,
                status=LoyaltyEntryStatus.USED,
                now=now,
            )
            account.balance -= plan.debit_points
            account.updated_at = now
            loyalty_points_counter.labels(direction="expired").inc(plan.debit_points)

        logger.info(
            f"Expired {plan.expired_points} points for {account.user_id}",
            extra={"user_id": account.user_id, "expired_points": plan.expired_points, "debited": plan.debit_points},
        )
        return plan.debit_points

    def _change(self, account: LoyaltyAccountRecord, points: int, duplicate: bool = False) -> LoyaltyChange:
        return LoyaltyChange(
            user_id=account.user_id,
            new_balance=account.balance,
            new_tier=calculate_tier(account.lifetime_points),
            points=points,
            duplicate=duplicate,
        )

    def _duplicate(self, db: Session, user_id: str, now: datetime) -> LoyaltyChange:
        """Reconciled balance of an account whose credit was already applied"""
        logger.info(f"Loyalty credit already applied for {user_id}", extra={"user_id": user_id})
        repo = LoyaltyRepository(db)
        account = repo.get_account(user_id, for_update=True)
        if account is None:
            return LoyaltyChange(user_id=user_id, new_balance=0, new_tier=calculate_tier(0), points=0, duplicate=True)
        self._reconcile(repo, account, now)
        change = self._change(account, 0, duplicate=True)
        db.commit()
        return change

    def _value(self, balance: int) -> Decimal:
        return (Decimal(balance) * self.points_value).quantize(Decimal("0.01"))
