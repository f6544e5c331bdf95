"""Redis-backed cache for user-level risk assessments"""

import json
import logging
from typing import Optional

import redis

from storefront_gateway.config import settings
from storefront_gateway.domain.models import RiskAssessment, RiskTier
from storefront_gateway.utils.date_utils import parse_timestamp

logger = logging.getLogger(__name__)

KEY_PREFIX = "risk:assessment:"


class RiskAssessmentCache:
    """
    Caches the user-level assessment for risk_cache_ttl_seconds.

    Cache failures never fail an assessment: reads miss, writes are dropped.
    """

    def __init__(self, client: redis.Redis, ttl_seconds: int | None = None):
        self.client = client
        self.ttl_seconds = ttl_seconds or settings.risk_cache_ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int | None = None) -> "RiskAssessmentCache":
        return cls(redis.Redis.from_url(url, decode_responses=True), ttl_seconds)

    @staticmethod
    def _key(user_id: str) -> str:
        return f"{KEY_PREFIX}{user_id}"

    def get(self, user_id: str) -> Optional[RiskAssessment]:
        try:
            raw = self.client.get(self._key(user_id))
        except redis.RedisError as e:
            logger.warning(f"Risk cache read failed for {user_id}: {e}")
            return None
        if raw is None:
            return None

        try:
            data = json.loads(raw)
            return RiskAssessment(
                risk=RiskTier(data["risk"]),
                score=int(data["score"]),
                factors=list(data["factors"]),
                computed_at=parse_timestamp(data["computed_at"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding malformed risk cache entry for {user_id}: {e}")
            return None

    def set(self, user_id: str, assessment: RiskAssessment) -> None:
        payload = json.dumps(
            {
                "risk": assessment.risk.value,
                "score": assessment.score,
                "factors": assessment.factors,
                "computed_at": assessment.computed_at.isoformat(),
            }
        )
        try:
            self.client.set(self._key(user_id), payload, ex=self.ttl_seconds)
        except redis.RedisError as e:
            logger.warning(f"Risk cache write failed for {user_id}: {e}")

    def invalidate(self, user_id: str) -> None:
        try:
            self.client.delete(self._key(user_id))
        except redis.RedisError as e:
            logger.warning(f"Risk cache invalidation failed for {user_id}: {e}")
