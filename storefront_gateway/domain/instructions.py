"""PIX BR Code payload generation for payment instructions"""

import binascii
import re
import unicodedata
from decimal import Decimal
from typing import List, Tuple

GUI_PIX = "br.gov.bcb.pix"
CURRENCY_BRL = "986"
COUNTRY_BR = "BR"
MERCHANT_CATEGORY_UNSPECIFIED = "0000"

MAX_NAME_LENGTH = 25
MAX_CITY_LENGTH = 15
MAX_TXID_LENGTH = 25


def _field(field_id: str, value: str) -> str:
    """Encode one EMV TLV field: 2-digit id, 2-digit length, value"""
    if len(value) > 99:
        raise ValueError(f"EMV field {field_id} exceeds 99 characters")
    return f"{field_id}{len(value):02d}{value}"


def _ascii(text: str, limit: int) -> str:
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return normalized.strip()[:limit]


def _txid(reference: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9]", "", reference)[:MAX_TXID_LENGTH]
    return cleaned or "***"


def crc16_ccitt(payload: str) -> str:
    """CRC-16/CCITT-FALSE (poly 0x1021, init 0xFFFF) as 4 uppercase hex digits"""
    return f"{binascii.crc_hqx(payload.encode('utf-8'), 0xFFFF):04X}"


def build_brcode(
    pix_key: str,
    beneficiary_name: str,
    city: str,
    amount: Decimal,
    reference: str,
) -> str:
    """
    Build a static PIX "copia e cola" payload (EMV merchant-presented mode).

    This is an unsigned static charge. A PSP-issued dynamic charge would be
    needed for payer verification; approval stays manual.

    Example:
        build_brcode("key@example.com", "Storefront", "Sao Paulo", Decimal("59.90"), "abc")
        -> "00020126...5405 59.90...6304XXXX" (spaces added for readability)
    """
    fields: List[Tuple[str, str]] = [
        ("00", "01"),
        ("26", _field("00", GUI_PIX) + _field("01", pix_key)),
        ("52", MERCHANT_CATEGORY_UNSPECIFIED),
        ("53", CURRENCY_BRL),
    ]
    if amount > 0:
        fields.append(("54", f"{Decimal(amount):.2f}"))
    fields += [
        ("58", COUNTRY_BR),
        ("59", _ascii(beneficiary_name, MAX_NAME_LENGTH)),
        ("60", _ascii(city, MAX_CITY_LENGTH)),
        ("62", _field("05", _txid(reference))),
    ]

    body = "".join(_field(field_id, value) for field_id, value in fields) + "6304"
    return body + crc16_ccitt(body)
