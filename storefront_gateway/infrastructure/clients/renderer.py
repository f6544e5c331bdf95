"""Payment instruction renderer: BR Code text plus a scannable QR reference"""

from typing import Protocol
from urllib.parse import urlencode

from storefront_gateway.config import settings
from storefront_gateway.domain.instructions import build_brcode
from storefront_gateway.domain.models import Payment, PaymentInstructions


class InstructionRenderer(Protocol):
    def render(self, payment: Payment) -> PaymentInstructions: ...


class PixInstructionRenderer:
    """
    Static PIX charge rendered from settings.

    The QR reference is an image URL; the core stores both values opaquely.
    """

    def __init__(
        self,
        pix_key: str | None = None,
        beneficiary_name: str | None = None,
        city: str | None = None,
        qr_base_url: str | None = None,
    ):
        self.pix_key = pix_key or settings.pix_key
        self.beneficiary_name = beneficiary_name or settings.pix_beneficiary_name
        self.city = city or settings.pix_city
        self.qr_base_url = qr_base_url or settings.qr_render_base_url

    def render(self, payment: Payment) -> PaymentInstructions:
        code = build_brcode(
            pix_key=self.pix_key,
            beneficiary_name=self.beneficiary_name,
            city=self.city,
            amount=payment.amount,
            reference=payment.id,
        )
        reference = f"{self.qr_base_url}?{urlencode({'size': '300x300', 'data': code})}"
        return PaymentInstructions(code=code, reference=reference)
