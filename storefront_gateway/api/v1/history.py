"""GET /v1/audit - Fetch the audit trail of a payment or user"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront_gateway.api.v1.schemas import AuditHistoryResponse, AuditItem
from storefront_gateway.infrastructure.database.repositories import AuditRepository
from storefront_gateway.infrastructure.database.session import get_db

router = APIRouter()


@router.get("/audit", response_model=AuditHistoryResponse)
def get_audit_history(
    target_id: str = Query(..., description="Payment or user identifier"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """
    Retrieve recent audit entries about one entity.

    Returns:
        Transaction and security events, newest first
    """
    audit_repo = AuditRepository(db)
    entries = audit_repo.list_for_target(target_id, limit=limit)

    items = [
        AuditItem(
            id=e.id,
            action=e.action,
            category=e.category,
            severity=e.severity,
            actor_id=e.actor_id,
            details=e.details or {},
            created_at=e.created_at.isoformat(),
        )
        for e in entries
    ]

    return AuditHistoryResponse(target_id=target_id, entries=items)
