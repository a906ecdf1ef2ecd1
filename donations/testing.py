"""Fixtures shared by the test modules of donations, payments and collectors."""
import datetime
import hashlib
import hmac
import json
from unittest.mock import Mock, patch

from django.conf import settings
from django.contrib.auth import get_user_model

from collectors.models import Collector
from .auth import issue_token
from .models import Donation, DonationHead
from .services import create_donation


def make_head(key="annadan", name="Annadan Seva", **extra):
    return DonationHead.objects.create(key=key, name=name, **extra)


def donor_data(head, amount=500, **overrides):
    """Cleaned ``DonationForm`` data for a valid adult donor."""
    data = {
        "name": "Asha Verma",
        "mobile": "9876543210",
        "email": "asha@example.com",
        "email_opt_in": False,
        "address_line": "12 Temple Road",
        "city": "Gorakhpur",
        "state": "UP",
        "country": "India",
        "pincode": "273001",
        "dob": datetime.date(1985, 6, 15),
        "id_number": "ABCDE1234F",
        "anonymous_display": False,
        "donation_head": head,
        "amount": amount,
        "referral_code": "",
    }
    data.update(overrides)
    return data


def donor_payload(head_key="annadan", amount=500, **overrides):
    """JSON body for ``POST /api/donations``."""
    body = {
        "name": "Asha Verma",
        "mobile": "9876543210",
        "email": "asha@example.com",
        "address_line": "12 Temple Road",
        "city": "Gorakhpur",
        "pincode": "273001",
        "dob": "1985-06-15",
        "id_number": "abcde1234f",
        "donation_head": head_key,
        "amount": amount,
    }
    body.update(overrides)
    return body


def make_donation(head, amount=500, order_id=None, **overrides) -> Donation:
    user = overrides.pop("user", None)
    donation = create_donation(donor_data(head, amount, **overrides), user=user)
    if order_id:
        Donation.objects.filter(pk=donation.pk).update(
            gateway_order_id=order_id, order_amount_minor=amount * 100, currency="INR",
        )
        donation.refresh_from_db()
    return donation


def make_collector(code="COLAB12", full_name="Ravi Kumar", username=None, disabled=False) -> Collector:
    user = get_user_model().objects.create_user(username=username or code.lower(), password="x")
    collector = Collector.objects.create(user=user, full_name=full_name, disabled=disabled, referral_code=code)
    return collector


def make_staff(username="admin"):
    return get_user_model().objects.create_user(username=username, password="x", is_staff=True)


def bearer(user) -> dict:
    return {"HTTP_AUTHORIZATION": f"Bearer {issue_token(user)}"}


def signed(body: dict) -> tuple[bytes, str]:
    raw = json.dumps(body).encode()
    sig = hmac.new(settings.RAZORPAY_WEBHOOK_SECRET.encode(), raw, hashlib.sha256).hexdigest()
    return raw, sig


def captured_event(order_id, amount_minor, payment_id="pay_1"):
    return {
        "event": "payment.captured",
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "order_id": order_id,
                    "amount": amount_minor,
                    "currency": "INR",
                    "status": "captured",
                }
            }
        },
    }


def failed_event(order_id, payment_id="pay_1"):
    return {
        "event": "payment.failed",
        "payload": {"payment": {"entity": {"id": payment_id, "order_id": order_id, "status": "failed"}}},
    }


def frozen_clock(at: float):
    """Pin the clock the request throttle reads to ``at`` (epoch seconds)."""
    return patch("donations.throttle.time", Mock(**{"time.return_value": at}))
