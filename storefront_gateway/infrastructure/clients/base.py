"""Shared HTTP plumbing for catalog and identity collaborators"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from storefront_gateway.config import settings
from storefront_gateway.domain.exceptions import CollaboratorError
from storefront_gateway.infrastructure.observability.metrics import collaborator_failure_counter

logger = logging.getLogger(__name__)


class CollaboratorClient:
    """JSON-over-HTTP client with bounded retries for idempotent reads"""

    service = "collaborator"

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        http_client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.http_max_retries
        self.backoff_base = settings.http_backoff_base
        self._http = http_client or httpx.Client(timeout=self.timeout)

    def close(self) -> None:
        self._http.close()

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        GET a JSON document; None when the collaborator answers 404.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base...
        - Retries on 5xx errors and network failures
        - 4xx other than 404 fail immediately

        Raises:
            CollaboratorError: On timeout, HTTP errors, or retries exhausted
        """
        attempt = 0
        while True:
            try:
                response = self._http.get(f"{self.base_url}{path}", params=params)
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    collaborator_failure_counter.labels(service=self.service).inc()
                    raise CollaboratorError(f"{self.service} error: {e.response.status_code}") from e
                error: Exception = e
            except httpx.TimeoutException as e:
                error = e
            except httpx.RequestError as e:
                error = e
            except ValueError as e:
                collaborator_failure_counter.labels(service=self.service).inc()
                raise CollaboratorError(f"Invalid JSON from {self.service}: {e}") from e

            attempt += 1
            collaborator_failure_counter.labels(service=self.service).inc()
            if attempt > self.max_retries:
                raise CollaboratorError(f"{self.service} unavailable after {attempt} attempts: {error}") from error

            backoff = self.backoff_base * (2 ** (attempt - 1))
            logger.warning(f"{self.service} GET {path} failed, retrying in {backoff}s: {error}")
            time.sleep(backoff)

    def _post_json(self, path: str, payload: Dict[str, Any]) -> None:
        """POST once; state-changing calls are never blindly resubmitted"""
        try:
            response = self._http.post(f"{self.base_url}{path}", json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            collaborator_failure_counter.labels(service=self.service).inc()
            raise CollaboratorError(f"{self.service} timeout after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            collaborator_failure_counter.labels(service=self.service).inc()
            raise CollaboratorError(f"{self.service} error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            collaborator_failure_counter.labels(service=self.service).inc()
            raise CollaboratorError(f"{self.service} unreachable: {e}") from e
