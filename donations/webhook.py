import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.models import WebhookEvent
from payments.utils import verify_webhook_signature
from .exceptions import AmountMismatch, DonationNotFound, SignatureInvalid
from .services import confirm_payment, fail_payment

logger = logging.getLogger(__name__)

SUCCESS_EVENTS = {"payment.captured", "order.paid"}
FAILURE_EVENTS = {"payment.failed"}


def _authenticate(request) -> bytes:
    body = request.body
    if not verify_webhook_signature(body, request.headers.get("X-Razorpay-Signature")):
        raise SignatureInvalid("webhook signature mismatch")
    return body


def _entities(event: dict) -> tuple[dict, dict]:
    payload = event.get("payload") or {}
    payment = (payload.get("payment") or {}).get("entity") or {}
    order = (payload.get("order") or {}).get("entity") or {}
    return payment, order


def _record(event_id, event_type, outcome, order_id="", payment_id="", amount=None, payload=None):
    WebhookEvent.objects.create(
        event_id=event_id or None,
        event_type=event_type,
        gateway_order_id=order_id or "",
        gateway_payment_id=payment_id or "",
        reported_amount=amount,
        outcome=outcome,
        payload=payload or {},
    )


def _as_int(value):
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    return n if n >= 0 else None


def _ok():
    return JsonResponse({"status": "ok"})


@csrf_exempt
@require_POST
def razorpay_webhook(request):
    """Sole authority for moving a donation out of PENDING.

    Every authenticated delivery is answered 200 (including duplicates and
    rejected amounts) so the gateway stops retrying; what happened is kept in
    ``WebhookEvent`` for operators.
    """
    try:
        body = _authenticate(request)
    except SignatureInvalid:
        logger.warning("Rejected webhook with invalid signature from %s", request.META.get("REMOTE_ADDR"))
        return JsonResponse({"message": "Invalid signature"}, status=400)

    try:
        event = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        event = None
    if not isinstance(event, dict):
        logger.warning("Signed webhook with unparseable body")
        return JsonResponse({"message": "Invalid JSON"}, status=400)

    event_id = request.headers.get("X-Razorpay-Event-Id", "")
    event_type = str(event.get("event") or "")
    payment, order = _entities(event)
    order_id = payment.get("order_id") or order.get("id") or ""
    payment_id = payment.get("id") or ""
    logger.info("Webhook %s received for order %s", event_type, order_id or "-")

    if event_type in SUCCESS_EVENTS:
        if event_type == "order.paid" and not payment:
            amount = _as_int(order.get("amount_paid"))
        else:
            amount = _as_int(payment.get("amount"))
        try:
            result = confirm_payment(order_id, payment_id, amount)
        except DonationNotFound:
            logger.warning("Webhook %s for unknown order %s", event_type, order_id)
            _record(event_id, event_type, WebhookEvent.UNKNOWN_ORDER, order_id, payment_id, amount, event)
            return _ok()
        except AmountMismatch:
            _record(event_id, event_type, WebhookEvent.AMOUNT_MISMATCH, order_id, payment_id, amount, event)
            return _ok()
        outcome = WebhookEvent.APPLIED if result.applied else WebhookEvent.DUPLICATE
        _record(event_id, event_type, outcome, order_id, payment_id, amount, event)
        return _ok()

    if event_type in FAILURE_EVENTS:
        try:
            result = fail_payment(order_id, payment_id)
        except DonationNotFound:
            logger.warning("Failure webhook for unknown order %s", order_id)
            _record(event_id, event_type, WebhookEvent.UNKNOWN_ORDER, order_id, payment_id, payload=event)
            return _ok()
        outcome = WebhookEvent.FAILED if result.applied else WebhookEvent.DUPLICATE
        _record(event_id, event_type, outcome, order_id, payment_id, _as_int(payment.get("amount")), event)
        return _ok()

    _record(event_id, event_type, WebhookEvent.IGNORED, order_id, payment_id, payload=event)
    return JsonResponse({"status": "ignored"})
