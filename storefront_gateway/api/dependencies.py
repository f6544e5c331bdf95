"""Dependency injection for FastAPI endpoints"""

from functools import lru_cache

from fastapi import Request

from storefront_gateway.services.container import build_orchestrator
from storefront_gateway.services.orchestrator import TransactionOrchestrator


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


@lru_cache(maxsize=1)
def get_orchestrator() -> TransactionOrchestrator:
    """Process-wide orchestrator; shares keyed locks across requests"""
    return build_orchestrator()
