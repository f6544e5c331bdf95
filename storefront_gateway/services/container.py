"""Wiring of collaborators, store and services into one orchestrator"""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from storefront_gateway.config import settings
from storefront_gateway.infrastructure.cache.risk_cache import RiskAssessmentCache
from storefront_gateway.infrastructure.clients.catalog import CatalogClient
from storefront_gateway.infrastructure.clients.identity import IdentityClient
from storefront_gateway.infrastructure.clients.renderer import PixInstructionRenderer
from storefront_gateway.infrastructure.database.session import get_session_factory
from storefront_gateway.infrastructure.locks import KeyedLocks
from storefront_gateway.services.loyalty_ledger import LoyaltyLedger
from storefront_gateway.services.orchestrator import TransactionOrchestrator
from storefront_gateway.services.payment_state_machine import PaymentStateMachine
from storefront_gateway.services.risk_engine import RiskEngine
from storefront_gateway.utils.date_utils import Clock, utc_now

logger = logging.getLogger(__name__)


def build_orchestrator(
    session_factory: Optional[sessionmaker] = None,
    catalog: Optional[CatalogClient] = None,
    identity: Optional[IdentityClient] = None,
    cache: Optional[RiskAssessmentCache] = None,
    clock: Clock = utc_now,
) -> TransactionOrchestrator:
    """Assemble the orchestrator from settings, overriding any collaborator given"""
    session_factory = session_factory or get_session_factory()
    catalog = catalog or CatalogClient()
    identity = identity or IdentityClient()
    if cache is None and settings.redis_url:
        cache = RiskAssessmentCache.from_url(settings.redis_url)
    if cache is None:
        logger.info("Risk assessment cache disabled (REDIS_URL not set)")

    locks = KeyedLocks()
    return TransactionOrchestrator(
        catalog=catalog,
        identity=identity,
        risk=RiskEngine(identity, session_factory, cache=cache, clock=clock),
        payments=PaymentStateMachine(session_factory, PixInstructionRenderer(), clock=clock, locks=locks),
        loyalty=LoyaltyLedger(session_factory, clock=clock, locks=locks),
    )
