import datetime
import re
import secrets
import string
import time

from django.conf import settings
from django.utils import timezone

PAN_RE = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
AADHAAR_RE = re.compile(r"^[0-9]{12}$")


def normalize_email(email: str | None) -> str | None:
    return email.strip().lower() if email else None


def normalize_mobile(mobile: str | None) -> str:
    # keep a leading + and digits only
    raw = (mobile or "").strip()
    digits = re.sub(r"\D", "", raw)
    return f"+{digits}" if raw.startswith("+") and digits else digits


def to_minor_units(amount: int) -> int:
    """Rupees to paise."""
    return int(amount) * 100


def format_receipt_number(seq: int, when: datetime.datetime) -> str:
    # e.g., GRD-2026-000042
    prefix = getattr(settings, "RECEIPT_PREFIX", "GRD")
    return f"{prefix}-{timezone.localtime(when).year}-{seq:06d}"


def gen_cash_reference() -> str:
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"CASH-{int(time.time() * 1000)}-{suffix}"


def gen_otp(n=6):
    return ''.join(secrets.choice(string.digits) for _ in range(n))


def expiry(minutes=15):
    return timezone.now() + datetime.timedelta(minutes=minutes)


def age_on(dob: datetime.date, today: datetime.date | None = None) -> int:
    today = today or timezone.localdate()
    years = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        years -= 1
    return years
