import json
from unittest.mock import Mock, patch

from django.test import TestCase
from django.urls import reverse
from requests import ConnectionError as RequestsConnectionError

from collectors.models import CollectorLedger
from payments.integrations.razorpay import GatewayError
from .exceptions import DonationNotFound, InvalidState
from .models import Donation, Receipt
from .services import confirm_payment, issue_order
from .testing import make_collector, make_donation, make_head


def gateway_response(order_id="order_abc", status_code=200):
    resp = Mock(status_code=status_code, text="")
    resp.json.return_value = {"id": order_id, "status": "created"} if status_code == 200 else {"error": {}}
    return resp


class IssueOrderTests(TestCase):
    def setUp(self):
        self.donation = make_donation(make_head(), 500)

    def test_creates_order_in_paise(self):
        with patch("payments.integrations.razorpay.requests.post", return_value=gateway_response()) as post:
            info = issue_order(self.donation.pk)

        self.assertEqual(info.gateway_order_id, "order_abc")
        self.assertEqual(info.amount_minor, 50000)
        self.assertEqual(info.currency, "INR")
        payload = post.call_args.kwargs["json"]
        self.assertEqual(payload["amount"], 50000)
        self.assertEqual(payload["receipt"], str(self.donation.pk))
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.gateway_order_id, "order_abc")
        self.assertEqual(self.donation.order_amount_minor, 50000)

    def test_second_call_reuses_order(self):
        with patch("payments.integrations.razorpay.requests.post", return_value=gateway_response()) as post:
            first = issue_order(self.donation.pk)
            second = issue_order(self.donation.pk)
        self.assertEqual(first, second)
        post.assert_called_once()

    def test_gateway_failure_leaves_donation_untouched(self):
        with patch("payments.integrations.razorpay.requests.post", return_value=gateway_response(status_code=500)):
            with self.assertLogs("donations.services", level="ERROR") as cm:
                with self.assertRaises(GatewayError):
                    issue_order(self.donation.pk)
        self.assertIn(str(self.donation.pk), cm.output[0])
        self.donation.refresh_from_db()
        self.assertIsNone(self.donation.gateway_order_id)
        self.assertEqual(self.donation.status, Donation.PENDING)

    def test_terminal_donation_rejected(self):
        with patch("payments.integrations.razorpay.requests.post", return_value=gateway_response()):
            issue_order(self.donation.pk)
        confirm_payment("order_abc", "pay_1", 50000)
        with patch("payments.integrations.razorpay.requests.post") as post:
            with self.assertRaises(InvalidState):
                issue_order(self.donation.pk)
        post.assert_not_called()

    def test_unknown_donation(self):
        with self.assertRaises(DonationNotFound):
            issue_order("2b1f4c7e-0000-4000-8000-000000000000")


class CreateOrderViewTests(TestCase):
    def setUp(self):
        self.donation = make_donation(make_head(), 500)
        self.url = reverse("donations:create_order")

    def _post(self, body):
        return self.client.post(self.url, data=json.dumps(body), content_type="application/json")

    def test_returns_checkout_parameters(self):
        with patch("payments.integrations.razorpay.requests.post", return_value=gateway_response()):
            resp = self._post({"donationId": str(self.donation.pk)})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {
            "gatewayOrderId": "order_abc", "amount": 50000, "currency": "INR", "keyId": "rzp_test_key",
        })

    def test_unknown_donation_404(self):
        resp = self._post({"donationId": "2b1f4c7e-0000-4000-8000-000000000000"})
        self.assertEqual(resp.status_code, 404)

    def test_missing_id_400(self):
        self.assertEqual(self._post({}).status_code, 400)

    def test_gateway_down_502(self):
        with patch("payments.integrations.razorpay.requests.post", side_effect=RequestsConnectionError("down")):
            with self.assertLogs("donations.services", level="ERROR"):
                resp = self._post({"donationId": str(self.donation.pk)})
        self.assertEqual(resp.status_code, 502)

    def test_terminal_409(self):
        Donation.objects.filter(pk=self.donation.pk).update(status=Donation.FAILED)
        resp = self._post({"donationId": str(self.donation.pk)})
        self.assertEqual(resp.status_code, 409)


class InterleavedCallTests(TestCase):
    """A second caller slips in while the first one is between read and write."""

    def setUp(self):
        self.head = make_head()

    def test_concurrent_order_calls_share_one_order(self):
        donation = make_donation(self.head, 500)
        state = {}

        def post(*args, **kwargs):
            if "inner" not in state:
                state["inner"] = None
                # the competing call runs to completion before ours returns
                state["inner"] = issue_order(donation.pk)
                return gateway_response("order_A")
            return gateway_response("order_B")

        with patch("payments.integrations.razorpay.requests.post", side_effect=post) as mocked:
            with self.assertLogs("donations.services", level="WARNING") as cm:
                outer = issue_order(donation.pk)

        self.assertEqual(mocked.call_count, 2)
        self.assertEqual(outer, state["inner"])
        self.assertEqual(outer.gateway_order_id, "order_B")
        donation.refresh_from_db()
        self.assertEqual(donation.gateway_order_id, "order_B")
        self.assertTrue(any("order_A" in line for line in cm.output))

    def test_confirmation_that_loses_the_update_applies_nothing(self):
        make_collector("COLAB12")
        donation = make_donation(self.head, 500, order_id="order_1", referral_code="COLAB12")
        real = Donation.__dict__["is_terminal"]
        state = {}

        def racing(instance):
            if "inner" not in state:
                state["inner"] = None
                # another delivery confirms between our read and our update
                state["inner"] = confirm_payment("order_1", "pay_first", 50000)
            return real.fget(instance)

        with patch.object(Donation, "is_terminal", property(racing)):
            outer = confirm_payment("order_1", "pay_second", 50000)

        self.assertTrue(state["inner"].applied)
        self.assertFalse(outer.applied)
        self.assertEqual(outer.donation.status, Donation.SUCCESS)
        self.assertEqual(Receipt.objects.filter(donation=donation).count(), 1)
        ledger = CollectorLedger.objects.get(referral_code="COLAB12")
        self.assertEqual((ledger.total_amount, ledger.donation_count), (500, 1))
        donation.refresh_from_db()
        self.assertEqual(donation.gateway_payment_id, "pay_first")
