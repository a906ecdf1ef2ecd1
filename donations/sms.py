import logging

import requests
from django.conf import settings
from requests import RequestException

logger = logging.getLogger(__name__)


class SmsError(Exception): pass


def send_sms(mobile: str, message: str) -> None:
    """Hand a text message to the SMS provider's HTTP API."""
    url = getattr(settings, "SMS_API_URL", "")
    if not url:
        raise SmsError("Missing SMS_API_URL")
    payload = {
        "to": mobile,
        "sender": getattr(settings, "SMS_SENDER_ID", ""),
        "message": message,
    }
    headers = {"Authorization": f"Bearer {settings.SMS_API_KEY}"}
    try:
        resp = requests.post(url, json=payload, headers=headers, timeout=15)
    except RequestException as e:
        raise SmsError(f"SMS request failed: {e}")
    if resp.status_code >= 400:
        logger.error("SMS provider rejected message to %s: status=%s text=%s",
                     mobile, resp.status_code, resp.text[:200])
        raise SmsError(f"SMS provider returned HTTP {resp.status_code}")


def send_otp_sms(mobile: str, code: str) -> None:
    minutes = getattr(settings, "OTP_TTL_MINUTES", 5)
    send_sms(mobile, f"{code} is your Gurudev Ashram donation OTP. Valid for {minutes} minutes.")
