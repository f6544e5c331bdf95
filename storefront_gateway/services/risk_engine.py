"""Risk engine: user and transaction fraud checks over identity data"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import sessionmaker

from storefront_gateway.config import settings
from storefront_gateway.domain.exceptions import CollaboratorError
from storefront_gateway.domain.models import RiskAssessment, RiskTier, TransactionCheck
from storefront_gateway.domain.scoring import (
    assess_user_risk,
    evaluate_transaction,
    transaction_risk_factors,
)
from storefront_gateway.infrastructure.cache.risk_cache import RiskAssessmentCache
from storefront_gateway.infrastructure.clients.identity import IdentityClient
from storefront_gateway.infrastructure.database.repositories import AuditRepository
from storefront_gateway.infrastructure.database.retry import write_guard
from storefront_gateway.infrastructure.observability.logging import log_risk_fail_open
from storefront_gateway.infrastructure.observability.metrics import (
    record_risk_decision,
    risk_fail_open_counter,
)
from storefront_gateway.utils.date_utils import Clock, utc_now

logger = logging.getLogger(__name__)

USER_HISTORY_LIMIT = 100
TRANSACTION_HISTORY_LIMIT = 50


class RiskEngine:
    """
    Scores users and purchase attempts.

    Both checks fail open: a broken collaborator or cache yields an
    approving result that is logged at ERROR and counted.
    """

    def __init__(
        self,
        identity: IdentityClient,
        session_factory: sessionmaker,
        cache: Optional[RiskAssessmentCache] = None,
        clock: Clock = utc_now,
        suspicious_domains: Optional[Iterable[str]] = None,
    ):
        self.identity = identity
        self.session_factory = session_factory
        self.cache = cache
        self.clock = clock
        self.suspicious_domains = list(
            settings.suspicious_email_domains if suspicious_domains is None else suspicious_domains
        )

    def assess_user(self, user_id: str) -> RiskAssessment:
        now = self.clock()
        try:
            if self.cache is not None:
                cached = self.cache.get(user_id)
                if cached is not None:
                    return cached

            profile = self.identity.get_user_profile(user_id)
            history = self.identity.get_user_history(user_id, limit=USER_HISTORY_LIMIT)
            assessment = assess_user_risk(profile, history, now, self.suspicious_domains)

            if self.cache is not None:
                self.cache.set(user_id, assessment)
            return assessment

        except Exception as e:
            risk_fail_open_counter.labels(stage="user").inc()
            log_risk_fail_open("user", user_id, e)
            return RiskAssessment(risk=RiskTier.LOW, score=0, factors=["assessment_error"], computed_at=now)

    def assess_transaction(
        self,
        user_id: str,
        product_id: str,
        amount: Decimal,
        payment_method: str,
        ip_address: Optional[str] = None,
    ) -> TransactionCheck:
        """
        Layer per-attempt factors over the user's base assessment.

        Flow:
        1. Base assessment (cached, fail-open)
        2. Purchase history and recent activity from identity
        3. Combined score; high-tier users are rejected outright
        """
        now = self.clock()
        base = self.assess_user(user_id)

        try:
            purchases = self.identity.get_purchase_history(user_id)
            activities = self.identity.get_user_history(user_id, limit=TRANSACTION_HISTORY_LIMIT)
            factors = transaction_risk_factors(
                product_id=product_id,
                amount=amount,
                payment_method=payment_method,
                ip_address=ip_address,
                purchases=purchases,
                activities=activities,
                now=now,
            )
            check = evaluate_transaction(base, factors)

        except Exception as e:
            risk_fail_open_counter.labels(stage="transaction").inc()
            log_risk_fail_open("transaction", user_id, e)
            check = TransactionCheck(approved=True, score=0, reasons=["verification_error"])

        record_risk_decision(check.approved)
        if not check.approved:
            logger.warning(
                f"Purchase attempt rejected by risk check for user {user_id}",
                extra={"user_id": user_id, "product_id": product_id, "score": check.score, "reasons": check.reasons},
            )
        return check

    def invalidate(self, user_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(user_id)

    def report_fraud(
        self,
        user_id: str,
        payment_id: Optional[str],
        fraud_type: str,
        evidence: Optional[Dict[str, Any]] = None,
        reporter_id: Optional[str] = None,
    ) -> bool:
        """
        Flag a user as fraudulent and block the account.

        Returns False when the identity service could not be updated.

        Raises:
            StoreUnavailableError: If the audit entry cannot be written
        """
        details = {"payment_id": payment_id, "fraud_type": fraud_type, "evidence": evidence or {}}

        try:
            self.identity.record_activity(user_id, "FRAUD_DETECTED", details)
            self.identity.block_user(user_id, reason=f"fraud:{fraud_type}", evidence=details)
        except CollaboratorError as e:
            logger.error(f"Fraud report for user {user_id} not applied: {e}", extra={"user_id": user_id})
            return False

        self.invalidate(user_id)

        now = self.clock()
        with write_guard(f"fraud report for {user_id}"):
            with self.session_factory() as db:
                AuditRepository(db).record(
                    action="FRAUD_REPORTED",
                    category="SECURITY",
                    severity="WARNING",
                    now=now,
                    actor_id=reporter_id,
                    target_id=user_id,
                    details=details,
                )
                db.commit()

        logger.warning(f"User {user_id} reported for fraud", extra={"user_id": user_id, "fraud_type": fraud_type})
        return True
