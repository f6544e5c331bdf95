"""Races between approvals, rejections and loyalty writes"""

from concurrent.futures import ThreadPoolExecutor

from storefront_gateway.domain.exceptions import ErrorCode
from storefront_gateway.domain.models import LoyaltyReason
from storefront_gateway.infrastructure.clients.renderer import PixInstructionRenderer
from storefront_gateway.infrastructure.locks import KeyedLocks
from storefront_gateway.services.payment_state_machine import PaymentStateMachine


def _race(*calls):
    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(call) for call in calls]
        return [f.result() for f in futures]


def test_concurrent_approvals_sell_product_once(orchestrator, store):
    first = orchestrator.start_purchase("buyer_1", "Buyer One", "prod_1").payment
    second = orchestrator.start_purchase("buyer_2", "Buyer Two", "prod_1").payment

    results = _race(
        lambda: orchestrator.approve_purchase(first.id, "admin_1"),
        lambda: orchestrator.approve_purchase(second.id, "admin_2"),
    )

    assert sorted(r.success for r in results) == [False, True]
    [loser] = [r for r in results if not r.success]
    assert loser.error == ErrorCode.PRODUCT_UNAVAILABLE

    statuses = sorted(store.payment(p.id).status for p in (first, second))
    assert statuses == ["COMPLETED", "REJECTED"]
    assert store.product("prod_1").sold is True


def test_store_guard_alone_prevents_double_sale(payments, session_factory, clock, catalog, store):
    """Two state machines with separate lock registries, as in two processes"""
    other = PaymentStateMachine(session_factory, PixInstructionRenderer(), clock=clock, locks=KeyedLocks())
    listing = payments.register_product(catalog.products["prod_1"])
    first = payments.create("buyer_1", "B1", "prod_1", listing.name, listing.price, "PIX")
    second = payments.create("buyer_2", "B2", "prod_1", listing.name, listing.price, "PIX")

    def attempt(machine, payment_id):
        try:
            machine.approve(payment_id, "admin")
            return "approved"
        except Exception as e:
            return getattr(e, "code", e)

    outcomes = _race(lambda: attempt(payments, first.id), lambda: attempt(other, second.id))

    assert sorted(map(str, outcomes)) == sorted(["approved", str(ErrorCode.PRODUCT_UNAVAILABLE)])
    statuses = [store.payment(p.id).status for p in (first, second)]
    assert statuses.count("COMPLETED") == 1


def test_approve_and_reject_race_has_one_winner(orchestrator, listed_payment, store):
    results = _race(
        lambda: orchestrator.approve_purchase(listed_payment.id, "admin_1"),
        lambda: orchestrator.reject_purchase(listed_payment.id, "suspicious", "admin_2"),
    )

    assert sum(r.success for r in results) == 1
    record = store.payment(listed_payment.id)
    if record.status == "COMPLETED":
        assert record.rejected_by is None
        assert store.account("buyer_1").balance == 59
    else:
        assert record.status == "REJECTED"
        assert record.approved_by is None
        assert store.account("buyer_1") is None


def test_concurrent_credits_keep_balance_consistent(loyalty, store):
    _race(*[lambda: loyalty.credit("user_1", 10) for _ in range(8)])

    account = store.account("user_1")
    assert account.balance == 80
    assert account.lifetime_points == 80
    assert sum(e.amount for e in store.entries("user_1")) == 80


def test_concurrent_duplicate_purchase_credit_applies_once(loyalty, store):
    changes = _race(
        *[
            lambda: loyalty.credit("user_1", 59, reason=LoyaltyReason.PURCHASE, related_payment_id="pay_1")
            for _ in range(4)
        ]
    )

    assert sum(not c.duplicate for c in changes) == 1
    assert store.account("user_1").balance == 59
