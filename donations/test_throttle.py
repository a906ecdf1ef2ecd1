import json
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase, override_settings
from django.urls import reverse

from .testing import frozen_clock, make_head
from .throttle import hit


@override_settings(RATE_LIMITS_ENABLED=True)
class OtpThrottleTests(TestCase):
    def setUp(self):
        cache.clear()
        make_head()
        clock = frozen_clock(3100.0)
        clock.start()
        self.addCleanup(clock.stop)

    def _send(self, mobile, ip="10.0.0.1"):
        with patch("donations.views.send_otp_sms"):
            return self.client.post(
                reverse("donations:send_otp"), data=json.dumps({"mobile": mobile}),
                content_type="application/json", REMOTE_ADDR=ip,
            )

    def test_three_codes_per_mobile(self):
        for _ in range(3):
            self.assertEqual(self._send("9876543210").status_code, 200)
        with self.assertLogs("donations.throttle", level="WARNING"):
            resp = self._send("9876543210", ip="10.0.0.2")
        other = self._send("9999988888")
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp["Retry-After"], "200")
        self.assertEqual(resp.json()["retryAfter"], 200)
        self.assertIn("mobile number", resp.json()["message"])
        self.assertEqual(other.status_code, 200)

    def test_mobile_counted_after_normalizing(self):
        for mobile in ("9876543210", "98765 43210", "98765-43210"):
            self.assertEqual(self._send(mobile).status_code, 200)
        self.assertEqual(self._send("(98765) 43210").status_code, 429)

    def test_five_requests_per_ip(self):
        mobiles = [f"98765432{n:02d}" for n in range(6)]
        codes = [self._send(m).status_code for m in mobiles]
        self.assertEqual(codes, [200] * 5 + [429])
        self.assertEqual(self._send(mobiles[5], ip="10.0.0.9").status_code, 200)

    def test_window_rolls_over(self):
        for _ in range(3):
            self._send("9876543210")
        self.assertEqual(self._send("9876543210").status_code, 429)
        with frozen_clock(3300.0):
            self.assertEqual(self._send("9876543210").status_code, 200)

    @override_settings(RATE_LIMITS_ENABLED=False)
    def test_disabled(self):
        codes = {self._send("9876543210").status_code for _ in range(8)}
        self.assertEqual(codes, {200})


@override_settings(RATE_LIMITS_ENABLED=True)
class DonationCreateThrottleTests(TestCase):
    def setUp(self):
        cache.clear()
        clock = frozen_clock(3100.0)
        clock.start()
        self.addCleanup(clock.stop)

    def _post(self, name, ip="10.0.0.1"):
        return self.client.post(reverse(f"donations:{name}"), data="{}", content_type="application/json", REMOTE_ADDR=ip)

    def test_ten_attempts_per_minute(self):
        codes = [self._post("create").status_code for _ in range(10)]
        resp = self._post("create")
        self.assertEqual(set(codes), {400})
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp["Retry-After"], "20")

    def test_order_creation_shares_the_budget(self):
        for _ in range(10):
            self._post("create")
        self.assertEqual(self._post("create_order").status_code, 429)
        self.assertEqual(self._post("create_order", ip="10.0.0.2").status_code, 400)


@override_settings(RATE_LIMITS={"otp_ip": (2, 60)})
class HitCounterTests(TestCase):
    def setUp(self):
        cache.clear()

    def test_counts_per_identity(self):
        with frozen_clock(120.0):
            self.assertEqual([hit("otp_ip", "a") for _ in range(3)], [0, 0, 60])
            self.assertEqual(hit("otp_ip", "b"), 0)
