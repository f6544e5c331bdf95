"""Delivery credentials handed to the buyer on approval"""

import secrets
from typing import Dict


def generate_delivery_credentials() -> Dict[str, str]:
    """Random login/password pair for the delivered account"""
    login = f"user_{secrets.token_hex(4)}"
    password = secrets.token_urlsafe(12).replace("-", "").replace("_", "")
    return {"login": login, "password": password}
