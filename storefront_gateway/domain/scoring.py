"""Fraud risk scoring - core business logic for purchase gating"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from storefront_gateway.domain.models import (
    PurchaseRecord,
    RiskAssessment,
    RiskTier,
    TransactionCheck,
    UserActivity,
    UserProfile,
    UserRiskSignals,
)

MAX_SCORE = 100
MEDIUM_RISK_THRESHOLD = 60
HIGH_RISK_THRESHOLD = 80
TRANSACTION_FACTOR_WEIGHT = 15

ATTEMPT_ACTIONS = {"PAYMENT_INITIATED"}
SUCCESS_ACTIONS = {"PAYMENT_COMPLETED", "PRODUCT_PURCHASE"}
REPORT_ACTIONS = {"REPORTED_BY_ADMIN", "FRAUD_DETECTED"}


def _email_domain(email: Optional[str]) -> Optional[str]:
    if not email or "@" not in email:
        return None
    return email.rsplit("@", 1)[1].strip().lower()


def analyze_user(
    profile: UserProfile,
    history: Sequence[UserActivity],
    now: datetime,
    suspicious_domains: Iterable[str],
) -> UserRiskSignals:
    """
    Extract risk signals from a profile and its activity history.

    Requirements:
    - Account age measured in fractional days against `now`
    - Attempt/success counts over the whole supplied history
    - Rapid attempts counted over the rolling hour before `now`
    """
    account_age_days = (now - profile.created_at).total_seconds() / 86400

    domain = _email_domain(profile.email)
    suspicious = domain is not None and domain in {d.lower() for d in suspicious_domains}

    attempts = [a for a in history if a.action in ATTEMPT_ACTIONS]
    successes = [a for a in history if a.action in SUCCESS_ACTIONS]
    hour_ago = now - timedelta(hours=1)

    return UserRiskSignals(
        account_age_days=account_age_days,
        suspicious_email=suspicious,
        activity_count=len(history),
        purchase_attempts=len(attempts),
        successful_purchases=len(successes),
        attempts_last_hour=sum(1 for a in attempts if a.timestamp > hour_ago),
        previously_reported=any(a.action in REPORT_ACTIONS for a in history),
        blocked=profile.is_blocked,
    )


def calculate_risk_score(signals: UserRiskSignals) -> Tuple[int, List[str]]:
    """
    Additive fraud score from 0 (lowest risk) to 100 (highest risk).

    Weights:
    - account age: < 1 day +30, < 7 days +20, < 30 days +10
    - suspicious email domain +25
    - no activity history +15
    - more than 5 attempts converting under 30% +15
    - prior fraud report +40
    - 3+ attempts in the last hour +20
    - blocked account pins the score to 100

    Returns: (score, ordered factor tags)
    """
    score = 0
    factors: List[str] = []

    if signals.account_age_days < 1:
        score += 30
        factors.append("very_new_account")
    elif signals.account_age_days < 7:
        score += 20
        factors.append("new_account")
    elif signals.account_age_days < 30:
        score += 10
        factors.append("recent_account")

    if signals.suspicious_email:
        score += 25
        factors.append("suspicious_email_domain")

    if signals.activity_count == 0:
        score += 15
        factors.append("no_activity_history")
    else:
        if (
            signals.purchase_attempts > 5
            and signals.successful_purchases / signals.purchase_attempts < 0.3
        ):
            score += 15
            factors.append("high_failure_rate")

        if signals.previously_reported:
            score += 40
            factors.append("previously_reported")

        if signals.attempts_last_hour >= 3:
            score += 20
            factors.append("rapid_purchase_attempts")

    if signals.blocked:
        score = MAX_SCORE
        factors.append("account_blocked")

    return min(score, MAX_SCORE), factors


def determine_risk_tier(score: int) -> RiskTier:
    """Map score to tier; boundaries belong to the riskier tier"""
    if score >= HIGH_RISK_THRESHOLD:
        return RiskTier.HIGH
    elif score >= MEDIUM_RISK_THRESHOLD:
        return RiskTier.MEDIUM
    else:
        return RiskTier.LOW


def assess_user_risk(
    profile: Optional[UserProfile],
    history: Sequence[UserActivity],
    now: datetime,
    suspicious_domains: Iterable[str],
) -> RiskAssessment:
    """
    Main entry point for user-level assessment.

    Unknown profiles are treated as medium risk rather than rejected outright.
    """
    if profile is None:
        return RiskAssessment(
            risk=RiskTier.MEDIUM,
            score=50,
            factors=["new_user", "unknown_profile"],
            computed_at=now,
        )

    signals = analyze_user(profile, history, now, suspicious_domains)
    score, factors = calculate_risk_score(signals)

    return RiskAssessment(
        risk=determine_risk_tier(score),
        score=score,
        factors=factors,
        computed_at=now,
    )


def transaction_risk_factors(
    product_id: str,
    amount: Decimal,
    payment_method: str,
    ip_address: Optional[str],
    purchases: Sequence[PurchaseRecord],
    activities: Sequence[UserActivity],
    now: datetime,
) -> List[str]:
    """Per-attempt factors layered on top of the user's base score"""
    factors: List[str] = []

    if purchases:
        average = sum((Decimal(p.amount) for p in purchases), Decimal("0")) / len(purchases)
        if Decimal(amount) > average * 3:
            factors.append("amount_much_higher_than_average")

    week_ago = now - timedelta(days=7)
    if any(p.product_id == product_id and p.date > week_ago for p in purchases):
        factors.append("repeated_purchase")

    past_methods = {p.method for p in purchases}
    if len(past_methods) == 1 and payment_method not in past_methods:
        factors.append("unusual_payment_method")

    if ip_address:
        known_ips = {
            a.data.get("ip_address") for a in activities if a.data and a.data.get("ip_address")
        }
        if known_ips and ip_address not in known_ips:
            factors.append("new_ip_address")

    return factors


def evaluate_transaction(base: RiskAssessment, factors: List[str]) -> TransactionCheck:
    """
    Combine user assessment with transaction factors.

    A user already in the high tier is rejected without looking further;
    otherwise the combined score must stay below the high threshold.
    """
    if base.risk == RiskTier.HIGH:
        return TransactionCheck(approved=False, score=base.score, reasons=list(base.factors))

    score = min(base.score + TRANSACTION_FACTOR_WEIGHT * len(factors), MAX_SCORE)

    return TransactionCheck(
        approved=score < HIGH_RISK_THRESHOLD,
        score=score,
        reasons=list(base.factors) + factors,
    )
