"""Catalog API HTTP client for product lookups"""

from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from storefront_gateway.config import settings
from storefront_gateway.domain.exceptions import CollaboratorError
from storefront_gateway.domain.models import ProductListing
from storefront_gateway.infrastructure.clients.base import CollaboratorClient


class CatalogClient(CollaboratorClient):
    """Client for the external product catalog"""

    service = "catalog"

    def __init__(self, base_url: str | None = None, timeout: float | None = None, http_client: httpx.Client | None = None):
        super().__init__(base_url or settings.catalog_api_base, timeout, http_client)

    def get_product(self, product_id: str) -> Optional[ProductListing]:
        """
        Fetch a product's price and availability.

        Raises:
            CollaboratorError: On timeout, HTTP errors, or invalid response
        """
        data = self._get_json(f"/products/{product_id}")
        if data is None:
            return None

        try:
            return ProductListing(
                id=str(data["id"]),
                name=data["name"],
                price=Decimal(str(data["price"])),
                available=bool(data["available"]),
                sold=bool(data.get("sold", False)),
            )
        except (KeyError, TypeError, InvalidOperation) as e:
            raise CollaboratorError(f"Invalid product data from catalog: {e}") from e
