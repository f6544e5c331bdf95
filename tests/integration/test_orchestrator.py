"""Orchestrator tests: cross-component flows and error translation"""

from datetime import timedelta
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from storefront_gateway.domain.exceptions import ErrorCode, StoreUnavailableError
from storefront_gateway.domain.models import LoyaltyReason, PaymentStatus, PurchaseRecord, RiskTier


def test_start_purchase_opens_payment(orchestrator, identity, listed_payment):
    assert listed_payment.status == PaymentStatus.PENDING
    assert listed_payment.product_name == "Premium Account"
    assert identity.actions("buyer_1") == ["PAYMENT_INITIATED"]
    _, _, data = identity.recorded[0]
    assert data["payment_id"] == listed_payment.id


def test_start_purchase_reports_risk_check(orchestrator):
    result = orchestrator.start_purchase("buyer_1", "Buyer One", "prod_2", payment_method="PIX")

    assert result.success
    assert result.risk.approved is True
    assert result.payment.method == "PIX"


def test_start_purchase_unknown_product(orchestrator):
    result = orchestrator.start_purchase("buyer_1", "Buyer One", "nope")

    assert result.success is False
    assert result.error == ErrorCode.NOT_FOUND


def test_start_purchase_catalog_down(orchestrator, catalog):
    catalog.fail = True

    result = orchestrator.start_purchase("buyer_1", "Buyer One", "prod_1")

    assert result.error == ErrorCode.COLLABORATOR_UNAVAILABLE


def test_blocked_user_is_risk_rejected(orchestrator, identity, payments, clock):
    identity.add_user("bad_actor", created_at=clock.now - timedelta(days=400), is_blocked=True)

    result = orchestrator.start_purchase("bad_actor", "Bad Actor", "prod_1")

    assert result.error == ErrorCode.RISK_REJECTED
    assert result.risk.approved is False
    assert "account_blocked" in result.risk.reasons
    assert payments.list_pending() == []


def test_new_user_large_purchase_is_flagged(orchestrator, identity, clock):
    identity.add_user(
        "newbie",
        created_at=clock.now - timedelta(hours=2),
        purchases=[
            PurchaseRecord(product_id="old", amount=Decimal("20.00"), method="PIX", date=clock.now - timedelta(days=10))
        ],
    )

    result = orchestrator.start_purchase("newbie", "Newbie", "prod_big")

    assert "very_new_account" in result.risk.reasons
    assert "amount_much_higher_than_average" in result.risk.reasons
    assert result.risk.score >= 60


def test_sold_product_cannot_be_purchased_again(orchestrator, listed_payment):
    orchestrator.approve_purchase(listed_payment.id, "admin_1")

    result = orchestrator.start_purchase("buyer_2", "Buyer Two", "prod_1")

    assert result.error == ErrorCode.PRODUCT_UNAVAILABLE


def test_approve_purchase_delivers_and_credits(orchestrator, identity, risk_cache, listed_payment, store):
    orchestrator.assess_user("buyer_1")
    assert "buyer_1" in risk_cache.entries

    result = orchestrator.approve_purchase(listed_payment.id, "admin_1")

    assert result.success
    assert result.payment.status == PaymentStatus.COMPLETED
    assert set(result.credential) == {"login", "password"}
    assert result.loyalty.points == 59
    assert result.loyalty.new_balance == 59
    assert "PAYMENT_COMPLETED" in identity.actions("buyer_1")
    assert "buyer_1" not in risk_cache.entries

    [entry] = store.entries("buyer_1")
    assert entry.reason == LoyaltyReason.PURCHASE.value
    assert entry.related_payment_id == listed_payment.id
    assert entry.related_product_id == "prod_1"


def test_approve_twice_does_not_double_credit(orchestrator, listed_payment, store):
    orchestrator.approve_purchase(listed_payment.id, "admin_1")

    result = orchestrator.approve_purchase(listed_payment.id, "admin_1")

    assert result.success is False
    assert result.error == ErrorCode.INVALID_STATE
    assert store.account("buyer_1").balance == 59
    assert len(store.entries("buyer_1")) == 1


def test_approve_after_expiry(orchestrator, listed_payment, clock, store):
    clock.advance(seconds=1801)

    result = orchestrator.approve_purchase(listed_payment.id, "admin_1")

    assert result.error == ErrorCode.EXPIRED
    assert store.payment(listed_payment.id).status == "EXPIRED"
    assert store.account("buyer_1") is None


def test_loyalty_failure_keeps_approval(orchestrator, listed_payment, monkeypatch, store):
    def broken_credit(*args, **kwargs):
        raise StoreUnavailableError("loyalty store down")

    monkeypatch.setattr(orchestrator.loyalty, "credit", broken_credit)

    result = orchestrator.approve_purchase(listed_payment.id, "admin_1")

    assert result.success
    assert result.credential is not None
    assert result.loyalty is None
    assert store.payment(listed_payment.id).status == "COMPLETED"


def test_reject_purchase_records_activity(orchestrator, identity, listed_payment):
    result = orchestrator.reject_purchase(listed_payment.id, "no payment received", "admin_1")

    assert result.success
    assert result.payment.rejection_reason == "no payment received"
    assert identity.actions("buyer_1")[-1] == "PAYMENT_REJECTED"


def test_reject_after_approval(orchestrator, listed_payment):
    orchestrator.approve_purchase(listed_payment.id, "admin_1")

    result = orchestrator.reject_purchase(listed_payment.id, "oops", "admin_1")

    assert result.error == ErrorCode.ALREADY_COMPLETED


def test_reject_overdue_purchase_leaves_it_expired(orchestrator, listed_payment, clock, store):
    clock.advance(seconds=1801)

    result = orchestrator.reject_purchase(listed_payment.id, "late", "admin_1")

    assert result.success is False
    assert result.error == ErrorCode.INVALID_STATE
    assert store.payment(listed_payment.id).status == "EXPIRED"


def test_cancel_purchase_by_owner(orchestrator, listed_payment, store):
    result = orchestrator.cancel_purchase(listed_payment.id, "buyer_1")

    assert result.success
    record = store.payment(listed_payment.id)
    assert record.status == "REJECTED"
    assert record.rejection_reason == "cancelled_by_buyer"
    assert record.rejected_by == "buyer_1"


def test_cancel_purchase_by_someone_else(orchestrator, listed_payment, store):
    result = orchestrator.cancel_purchase(listed_payment.id, "buyer_2")

    assert result.error == ErrorCode.NOT_OWNER
    assert store.payment(listed_payment.id).status == "PENDING"


def test_cancel_cannot_follow_completion(orchestrator, listed_payment):
    orchestrator.approve_purchase(listed_payment.id, "admin_1")

    result = orchestrator.cancel_purchase(listed_payment.id, "buyer_1")

    assert result.error == ErrorCode.ALREADY_COMPLETED


def test_report_payment_sent(orchestrator, listed_payment):
    assert orchestrator.report_payment_sent(listed_payment.id, "buyer_2").error == ErrorCode.NOT_OWNER

    result = orchestrator.report_payment_sent(listed_payment.id, "buyer_1")

    assert result.success
    assert result.payment.status == PaymentStatus.PROCESSING
    assert orchestrator.get_pending_approvals().payments[0].status == PaymentStatus.PROCESSING


def test_redeem_points(orchestrator, listed_payment):
    orchestrator.approve_purchase(listed_payment.id, "admin_1")

    redeemed = orchestrator.redeem_points("buyer_1", 50)
    assert redeemed.success
    assert redeemed.loyalty.new_balance == 9

    too_much = orchestrator.redeem_points("buyer_1", 100)
    assert too_much.error == ErrorCode.INSUFFICIENT_BALANCE

    invalid = orchestrator.redeem_points("buyer_1", 0)
    assert invalid.error == ErrorCode.INVALID_POINTS

    balance = orchestrator.get_balance("buyer_1").balance
    assert balance.balance == 9
    assert balance.lifetime_points == 59


def test_identity_write_failure_does_not_block_purchase(orchestrator, identity):
    identity.fail_writes = True

    result = orchestrator.start_purchase("buyer_1", "Buyer One", "prod_1")

    assert result.success


def test_get_payment_unknown(orchestrator):
    assert orchestrator.get_payment("missing").error == ErrorCode.NOT_FOUND


def test_store_outage_surfaces_as_store_unavailable(orchestrator, listed_payment, monkeypatch):
    def broken_session():
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    monkeypatch.setattr("storefront_gateway.infrastructure.database.retry.time.sleep", lambda seconds: None)
    monkeypatch.setattr(orchestrator.payments, "session_factory", broken_session)

    result = orchestrator.get_payment(listed_payment.id)

    assert result.success is False
    assert result.error == ErrorCode.STORE_UNAVAILABLE


def test_assess_user_and_report_fraud(orchestrator, identity, store):
    assessment = orchestrator.assess_user("buyer_1").risk
    assert assessment.risk == RiskTier.LOW

    result = orchestrator.report_fraud("buyer_1", None, "chargeback", {"note": "bank dispute"}, "admin_1")

    assert result.success
    assert identity.blocked["buyer_1"] == "fraud:chargeback"
    assert "FRAUD_DETECTED" in identity.actions("buyer_1")
    assert store.audit_actions("buyer_1") == ["FRAUD_REPORTED"]


def test_report_fraud_identity_down(orchestrator, identity):
    identity.fail_writes = True

    result = orchestrator.report_fraud("buyer_1", None, "chargeback")

    assert result.error == ErrorCode.COLLABORATOR_UNAVAILABLE
