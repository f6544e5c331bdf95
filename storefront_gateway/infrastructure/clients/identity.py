"""Identity API HTTP client for profiles, activity history, and account status"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from storefront_gateway.config import settings
from storefront_gateway.domain.exceptions import CollaboratorError
from storefront_gateway.domain.models import PurchaseRecord, UserActivity, UserProfile
from storefront_gateway.infrastructure.clients.base import CollaboratorClient
from storefront_gateway.utils.date_utils import parse_timestamp


class IdentityClient(CollaboratorClient):
    """Client for the platform identity service"""

    service = "identity"

    def __init__(self, base_url: str | None = None, timeout: float | None = None, http_client: httpx.Client | None = None):
        super().__init__(base_url or settings.identity_api_base, timeout, http_client)

    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        data = self._get_json(f"/users/{user_id}")
        if data is None:
            return None

        try:
            return UserProfile(
                user_id=user_id,
                created_at=parse_timestamp(data["created_at"]),
                email=data.get("email"),
                is_blocked=bool(data.get("is_blocked", False)),
                block_reason=data.get("block_reason"),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise CollaboratorError(f"Invalid profile data from identity: {e}") from e

    def get_user_history(self, user_id: str, limit: int = 100) -> List[UserActivity]:
        """Most recent activities first, at most `limit` entries"""
        data = self._get_json(f"/users/{user_id}/history", params={"limit": limit})
        if data is None:
            return []

        try:
            return [
                UserActivity(
                    action=item["action"],
                    timestamp=parse_timestamp(item["timestamp"]),
                    data=item.get("data") or {},
                )
                for item in data.get("activities", [])
            ]
        except (KeyError, ValueError, TypeError) as e:
            raise CollaboratorError(f"Invalid history data from identity: {e}") from e

    def get_purchase_history(self, user_id: str) -> List[PurchaseRecord]:
        data = self._get_json(f"/users/{user_id}/purchases")
        if data is None:
            return []

        try:
            return [
                PurchaseRecord(
                    product_id=str(item["product_id"]),
                    amount=Decimal(str(item["amount"])),
                    method=item.get("method", "PIX"),
                    date=parse_timestamp(item["date"]),
                )
                for item in data.get("purchases", [])
            ]
        except (KeyError, ValueError, TypeError, InvalidOperation) as e:
            raise CollaboratorError(f"Invalid purchase data from identity: {e}") from e

    def record_activity(self, user_id: str, action: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Append an activity; feeds the attempt/success ratios used in scoring"""
        self._post_json(f"/users/{user_id}/activities", {"action": action, "data": data or {}})

    def block_user(self, user_id: str, reason: str, evidence: Optional[Dict[str, Any]] = None) -> None:
        self._post_json(f"/users/{user_id}/block", {"reason": reason, "evidence": evidence or {}})
