"""Mock catalog and identity collaborators for local development and persona tests"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

app = FastAPI(title="Mock Collaborator Server", version="1.0.0")


def _ago(**kwargs: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(**kwargs)).isoformat()


PRODUCTS: Dict[str, Dict[str, Any]] = {
    "acc_basic": {"id": "acc_basic", "name": "Basic Streaming Account", "price": "19.90", "available": True},
    "acc_premium": {"id": "acc_premium", "name": "Premium Streaming Account", "price": "59.90", "available": True},
    "acc_gold": {"id": "acc_gold", "name": "Gold Gaming Account", "price": "349.00", "available": True},
    "acc_retired": {"id": "acc_retired", "name": "Retired Account", "price": "9.90", "available": False},
}

USERS: Dict[str, Dict[str, Any]] = {
    # Long-standing buyer with a steady PIX history
    "user_trusted": {
        "profile": {"created_at": _ago(days=730), "email": "ana@example.com"},
        "history": [
            {"action": "LOGIN", "timestamp": _ago(days=1), "data": {"ip_address": "177.10.0.1"}},
            {"action": "PAYMENT_COMPLETED", "timestamp": _ago(days=20)},
        ],
        "purchases": [
            {"product_id": "acc_old_1", "amount": "49.90", "method": "PIX", "date": _ago(days=20)},
            {"product_id": "acc_old_2", "amount": "69.90", "method": "PIX", "date": _ago(days=45)},
        ],
    },
    # Signed up two hours ago from a disposable mailbox
    "user_fresh": {
        "profile": {"created_at": _ago(hours=2), "email": "zz91@tempmail.com"},
        "history": [],
        "purchases": [],
    },
    # Reported before, now hammering checkout from a new address
    "user_rapid": {
        "profile": {"created_at": _ago(days=200), "email": "rapid@example.com"},
        "history": [
            {"action": "PAYMENT_INITIATED", "timestamp": _ago(minutes=5)},
            {"action": "PAYMENT_INITIATED", "timestamp": _ago(minutes=15)},
            {"action": "PAYMENT_INITIATED", "timestamp": _ago(minutes=25)},
            {"action": "REPORTED_BY_ADMIN", "timestamp": _ago(days=30)},
            {"action": "LOGIN", "timestamp": _ago(days=2), "data": {"ip_address": "189.5.5.5"}},
        ],
        "purchases": [{"product_id": "acc_basic", "amount": "19.90", "method": "PIX", "date": _ago(days=60)}],
    },
    "user_blocked": {
        "profile": {
            "created_at": _ago(days=400),
            "email": "blocked@example.com",
            "is_blocked": True,
            "block_reason": "chargeback",
        },
        "history": [{"action": "LOGIN", "timestamp": _ago(days=3)}],
        "purchases": [],
    },
}


class ActivityIn(BaseModel):
    action: str
    data: Dict[str, Any] = {}


class BlockIn(BaseModel):
    reason: str
    evidence: Dict[str, Any] = {}


def _user(user_id: str) -> Dict[str, Any]:
    user = USERS.get(user_id)
    if user is None or user["profile"] is None:
        raise HTTPException(status_code=404, detail="user not found")
    return user


@app.get("/health")
def health(): return {"status": "ok"}


@app.get("/products/{product_id}")
def get_product(product_id: str):
    product = PRODUCTS.get(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="product not found")
    return product


@app.get("/users/{user_id}")
def get_user(user_id: str):
    return _user(user_id)["profile"]


@app.get("/users/{user_id}/history")
def get_history(user_id: str, limit: int = 100):
    activities: List[Dict[str, Any]] = sorted(_user(user_id)["history"], key=lambda a: a["timestamp"], reverse=True)
    return {"activities": activities[:limit]}


@app.get("/users/{user_id}/purchases")
def get_purchases(user_id: str):
    return {"purchases": _user(user_id)["purchases"]}


@app.post("/users/{user_id}/activities", status_code=201)
def record_activity(user_id: str, body: ActivityIn):
    user = USERS.setdefault(user_id, {"profile": None, "history": [], "purchases": []})
    user["history"].append({"action": body.action, "timestamp": _ago(seconds=0), "data": body.data})
    return {"status": "recorded"}


@app.post("/users/{user_id}/block")
def block_user(user_id: str, body: BlockIn):
    profile = _user(user_id)["profile"]
    profile["is_blocked"] = True
    profile["block_reason"] = body.reason
    return {"status": "blocked"}
