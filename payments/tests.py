import hashlib
import hmac
from io import StringIO
from unittest.mock import Mock, patch

from django.core.exceptions import ImproperlyConfigured
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from requests import Timeout

from donations.models import Donation
from donations.testing import make_donation, make_head
from . import utils
from .integrations import razorpay
from .models import ReviewFlag


class WebhookSignatureTests(SimpleTestCase):
    """Tests for the ``webhook_signature`` helpers."""

    def test_matches_hmac_sha256_hex(self):
        body = b'{"event":"payment.captured"}'
        expected = hmac.new(b"whsec_test", body, hashlib.sha256).hexdigest()
        self.assertEqual(utils.webhook_signature(body), expected)
        self.assertTrue(utils.verify_webhook_signature(body, expected))

    def test_any_byte_change_fails(self):
        sig = utils.webhook_signature(b'{"amount":50000}')
        self.assertFalse(utils.verify_webhook_signature(b'{"amount":50001}', sig))
        self.assertFalse(utils.verify_webhook_signature(b'{"amount":50000}', None))

    @override_settings(RAZORPAY_WEBHOOK_SECRET="")
    def test_missing_secret(self):
        with self.assertLogs("payments.utils", level="ERROR"):
            with self.assertRaises(ImproperlyConfigured):
                utils.webhook_signature(b"{}")


class RazorpayClientTests(SimpleTestCase):
    def test_create_order_posts_with_basic_auth(self):
        resp = Mock(status_code=200)
        resp.json.return_value = {"id": "order_1", "amount": 50000}
        with patch("payments.integrations.razorpay.requests.post", return_value=resp) as post:
            data = razorpay.create_order(amount_minor=50000, currency="INR", receipt="x" * 60)

        self.assertEqual(data["id"], "order_1")
        self.assertEqual(post.call_args.args[0], "https://api.razorpay.com/v1/orders")
        auth = post.call_args.kwargs["auth"]
        self.assertEqual((auth.username, auth.password), ("rzp_test_key", "rzp_test_secret"))
        self.assertEqual(len(post.call_args.kwargs["json"]["receipt"]), 40)

    def test_non_200_raises(self):
        resp = Mock(status_code=401)
        resp.json.return_value = {"error": {"description": "Authentication failed"}}
        with patch("payments.integrations.razorpay.requests.post", return_value=resp):
            with self.assertRaisesMessage(razorpay.GatewayError, "RAZORPAY_KEY_ID"):
                razorpay.create_order(amount_minor=100, currency="INR", receipt="r")

    def test_timeout_raises(self):
        with patch("payments.integrations.razorpay.requests.post", side_effect=Timeout("slow")):
            with self.assertRaises(razorpay.GatewayError):
                razorpay.create_order(amount_minor=100, currency="INR", receipt="r")

    def test_zero_amount_never_sent(self):
        with patch("payments.integrations.razorpay.requests.post") as post:
            with self.assertRaises(razorpay.GatewayError):
                razorpay.create_order(amount_minor=0, currency="INR", receipt="r")
        post.assert_not_called()

    @override_settings(RAZORPAY_KEY_SECRET="")
    def test_missing_credentials(self):
        with self.assertRaises(razorpay.GatewayError):
            razorpay.create_order(amount_minor=100, currency="INR", receipt="r")

    def test_fetch_order(self):
        resp = Mock(status_code=200)
        resp.json.return_value = {"id": "order_1", "status": "paid"}
        with patch("payments.integrations.razorpay.requests.get", return_value=resp) as get:
            data = razorpay.fetch_order("order_1")
        self.assertEqual(data["status"], "paid")
        self.assertEqual(get.call_args.args[0], "https://api.razorpay.com/v1/orders/order_1")


class AuditGatewayOrdersTests(TestCase):
    def setUp(self):
        head = make_head()
        self.paid = make_donation(head, 500, order_id="order_paid")
        self.open = make_donation(head, 700, order_id="order_open")
        Donation.objects.update(created_at=timezone.now() - timezone.timedelta(hours=1))

    def _fetch(self, order_id):
        return {"id": order_id, "status": "paid" if order_id == "order_paid" else "attempted", "amount_paid": 50000}

    def test_flags_paid_orders_without_changing_state(self):
        out = StringIO()
        with patch("payments.management.commands.audit_gateway_orders.fetch_order", side_effect=self._fetch):
            call_command("audit_gateway_orders", "--sleep", "0", stdout=out)
            call_command("audit_gateway_orders", "--sleep", "0", stdout=out)

        flag = ReviewFlag.objects.get()
        self.assertEqual(flag.donation_id, self.paid.pk)
        self.assertEqual(flag.reason, ReviewFlag.GATEWAY_PAID_NO_WEBHOOK)
        self.paid.refresh_from_db()
        self.assertEqual(self.paid.status, Donation.PENDING)
        self.assertIn("order_open: attempted", out.getvalue())

    def test_gateway_errors_reported(self):
        out = StringIO()
        with patch("payments.management.commands.audit_gateway_orders.fetch_order",
                   side_effect=razorpay.GatewayError("down")):
            call_command("audit_gateway_orders", "--sleep", "0", stdout=out)
        self.assertIn("down", out.getvalue())
        self.assertFalse(ReviewFlag.objects.exists())
