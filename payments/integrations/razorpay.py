import json
import logging

import requests
from django.conf import settings
from requests import RequestException
from requests.auth import HTTPBasicAuth

logger = logging.getLogger(__name__)


class GatewayError(Exception): pass


def _base_url() -> str:
    return settings.RAZORPAY_BASE_URL.rstrip("/")


def _auth() -> HTTPBasicAuth:
    key_id = settings.RAZORPAY_KEY_ID
    key_secret = settings.RAZORPAY_KEY_SECRET
    if not (key_id and key_secret):
        raise GatewayError("Missing RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET")
    return HTTPBasicAuth(key_id, key_secret)


def _receipt_ref(ref: str) -> str:
    return str(ref or "")[:40]  # gateway limit


def _hint(status_code: int) -> str:
    if status_code == 401: return "Check RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET."
    if status_code == 400: return "Bad request: amount/currency/receipt."
    if status_code in (404, 500, 502, 503): return f"Gateway error {status_code}."
    return f"HTTP {status_code}"


def _parse(resp) -> dict:
    try:
        return resp.json()
    except ValueError:
        return {"raw": resp.text}


def create_order(*, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> dict:
    """Open a gateway order for ``amount_minor`` (paise). Returns the order entity."""
    if amount_minor <= 0:
        raise GatewayError("Order amount must be positive")
    payload = {
        "amount": int(amount_minor),
        "currency": currency or "INR",
        "receipt": _receipt_ref(receipt),
        "notes": notes or {},
    }
    url = f"{_base_url()}/v1/orders"
    try:
        resp = requests.post(url, json=payload, auth=_auth(), timeout=settings.RAZORPAY_TIMEOUT)
    except RequestException as e:
        raise GatewayError(f"Gateway request failed: {e}")
    data = _parse(resp)
    if resp.status_code == 200 and data.get("id"):
        return data
    raise GatewayError(f"Create order failed: {_hint(resp.status_code)} Response: {json.dumps(data)[:800]}")


def fetch_order(order_id: str) -> dict:
    url = f"{_base_url()}/v1/orders/{order_id}"
    try:
        resp = requests.get(url, auth=_auth(), timeout=settings.RAZORPAY_TIMEOUT)
    except RequestException as e:
        raise GatewayError(f"Gateway request failed: {e}")
    data = _parse(resp)
    if resp.status_code == 200:
        return data
    raise GatewayError(f"Order status failed: {_hint(resp.status_code)} Response: {json.dumps(data)[:800]}")
