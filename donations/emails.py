from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.conf import settings
import logging

from .receipts import receipt_context, receipt_filename, render_receipt

logger = logging.getLogger(__name__)


def _from_email():
    return getattr(settings, "DONATIONS_FROM_EMAIL", None) or getattr(settings, "DEFAULT_FROM_EMAIL", "noreply@gurudevashram.org")


def _fail_silently() -> bool:
    return getattr(settings, "EMAIL_FAIL_SILENTLY", True)


def send_receipt_email(donation) -> bool:
    """Mail the receipt to the donor. Returns True when the backend accepted it."""
    ctx = receipt_context(donation)
    subject = f"Receipt: {donation.receipt_number} (Gurudev Ashram)"
    text = render_to_string("emails/email_receipt.txt", ctx)
    msg = EmailMultiAlternatives(subject, text, _from_email(), [donation.donor_email])
    msg.attach(receipt_filename(donation), render_receipt(donation), "application/pdf")
    try:
        sent = msg.send(fail_silently=_fail_silently())
    except Exception:
        logger.exception("Failed to email receipt %s", donation.receipt_number)
        return False
    if not sent:
        logger.warning("Receipt email for %s was not sent", donation.receipt_number)
    return bool(sent)
