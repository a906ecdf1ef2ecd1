"""Utility helpers for the payments app."""

import hashlib
import hmac
import logging

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)


def webhook_signature(body: bytes) -> str:
    """Return the hex HMAC-SHA256 the gateway computes over a webhook body.

    The key is ``settings.RAZORPAY_WEBHOOK_SECRET`` (the secret configured for
    the webhook in the gateway dashboard, not the API key secret).  A missing
    secret raises :class:`ImproperlyConfigured` after logging an error.
    """

    secret = getattr(settings, "RAZORPAY_WEBHOOK_SECRET", "")
    if not secret:
        logger.error("RAZORPAY_WEBHOOK_SECRET missing in settings")
        raise ImproperlyConfigured(
            "RAZORPAY_WEBHOOK_SECRET setting is required to verify webhooks"
        )
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, received_sig: str | None) -> bool:
    """Constant-time comparison of the received signature against the body."""

    expected = webhook_signature(body)
    return hmac.compare_digest(expected, (received_sig or "").strip())
