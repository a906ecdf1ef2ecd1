import json
from unittest.mock import Mock, patch

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from collectors.models import CollectorLedger
from .models import Donation, OtpCode
from .services import confirm_payment
from .testing import bearer, donor_payload, make_collector, make_donation, make_head, make_staff


class CreateDonationViewTests(TestCase):
    def setUp(self):
        make_head()

    def _post(self, body, **extra):
        return self.client.post(reverse("donations:create"), data=json.dumps(body),
                                content_type="application/json", **extra)

    def test_creates_pending_donation(self):
        resp = self._post(donor_payload(amount=1001))
        self.assertEqual(resp.status_code, 201)
        d = Donation.objects.get(pk=resp.json()["donationId"])
        self.assertEqual(d.status, Donation.PENDING)
        self.assertEqual(d.amount, 1001)
        self.assertEqual(d.id_number, "ABCDE1234F")
        self.assertFalse(d.otp_verified)
        self.assertIsNone(d.user)

    def test_form_errors_returned(self):
        resp = self._post(donor_payload(id_number="bad"))
        self.assertEqual(resp.status_code, 400)
        self.assertIn("id_number", resp.json()["errors"])

    def test_invalid_json(self):
        resp = self.client.post(reverse("donations:create"), data="{", content_type="application/json")
        self.assertEqual(resp.status_code, 400)

    def test_referral_echoed(self):
        make_collector("COLAB12", "Ravi Kumar")
        resp = self._post(donor_payload(referral_code="colab12"))
        self.assertEqual(resp.json()["collectorName"], "Ravi Kumar")

    def test_bad_referral_still_creates(self):
        with self.assertLogs("collectors.services", level="WARNING"):
            resp = self._post(donor_payload(referral_code="ZZZZ99"))
        self.assertEqual(resp.status_code, 201)
        self.assertIsNone(resp.json()["collectorName"])

    def test_signed_in_donor_is_linked(self):
        user = get_user_model().objects.create_user(username="asha", password="x")
        resp = self._post(donor_payload(), **bearer(user))
        self.assertEqual(Donation.objects.get(pk=resp.json()["donationId"]).user, user)


class OtpViewTests(TestCase):
    def setUp(self):
        make_head()

    def _post(self, name, body):
        return self.client.post(reverse(f"donations:{name}"), data=json.dumps(body), content_type="application/json")

    def _request_code(self, mobile="9876543210"):
        with patch("donations.views.send_otp_sms") as send:
            resp = self._post("send_otp", {"mobile": mobile})
        self.assertEqual(resp.status_code, 200)
        return send.call_args.args[1]

    def test_verified_mobile_marks_donation(self):
        code = self._request_code()
        resp = self._post("verify_otp", {"mobile": "9876543210", "otp": code})
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["verified"])

        resp = self._post("create", donor_payload())
        self.assertTrue(Donation.objects.get(pk=resp.json()["donationId"]).otp_verified)

    def test_other_mobile_not_marked(self):
        code = self._request_code()
        self._post("verify_otp", {"mobile": "9876543210", "otp": code})
        resp = self._post("create", donor_payload(mobile="9999988888"))
        self.assertFalse(Donation.objects.get(pk=resp.json()["donationId"]).otp_verified)

    def test_wrong_code_counts_attempt(self):
        code = self._request_code()
        wrong = "000000" if code != "000000" else "111111"
        resp = self._post("verify_otp", {"mobile": "9876543210", "otp": wrong})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(OtpCode.objects.get().attempts, 1)

    def test_attempt_cap(self):
        code = self._request_code()
        OtpCode.objects.update(attempts=5)
        resp = self._post("verify_otp", {"mobile": "9876543210", "otp": code})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Too many attempts")

    def test_sms_is_posted_to_provider(self):
        with patch("donations.sms.requests.post", return_value=Mock(status_code=200)) as post:
            resp = self._post("send_otp", {"mobile": "9876543210"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(post.call_args.args[0], "https://sms.example.com/send")
        self.assertEqual(post.call_args.kwargs["json"]["to"], "9876543210")
        self.assertEqual(post.call_args.kwargs["headers"]["Authorization"], "Bearer sms-key")

    def test_sms_failure_502(self):
        with patch("donations.sms.requests.post", return_value=Mock(status_code=500, text="boom")):
            with self.assertLogs("donations", level="ERROR"):
                resp = self._post("send_otp", {"mobile": "9876543210"})
        self.assertEqual(resp.status_code, 502)

    def test_short_mobile_rejected(self):
        self.assertEqual(self._post("send_otp", {"mobile": "123"}).status_code, 400)


class StatusReceiptViewTests(TestCase):
    def setUp(self):
        self.donation = make_donation(make_head(), 500, order_id="order_1")

    def test_status_pending(self):
        resp = self.client.get(reverse("donations:status", args=[self.donation.pk]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"id": str(self.donation.pk), "status": "PENDING", "display": "processing"})

    def test_status_confirmed(self):
        confirm_payment("order_1", "pay_1", 50000)
        resp = self.client.get(reverse("donations:status", args=[self.donation.pk]))
        self.assertEqual(resp.json()["display"], "confirmed")

    def test_status_unknown(self):
        resp = self.client.get(reverse("donations:status", args=["2b1f4c7e-0000-4000-8000-000000000000"]))
        self.assertEqual(resp.status_code, 404)

    def test_receipt_not_ready(self):
        resp = self.client.get(reverse("donations:receipt", args=[self.donation.pk]))
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "ReceiptNotReady")

    def test_receipt_download_is_stable(self):
        confirm_payment("order_1", "pay_1", 50000)
        url = reverse("donations:receipt", args=[self.donation.pk])
        first = self.client.get(url)
        second = self.client.get(url)
        self.assertEqual(first.status_code, 200)
        self.donation.refresh_from_db()
        self.assertEqual(first["Content-Type"], "application/pdf")
        self.assertIn(f'filename="receipt-{self.donation.receipt_number}.pdf"', first["Content-Disposition"])
        self.assertEqual(first.content, second.content)


class ListingViewTests(TestCase):
    def setUp(self):
        self.head = make_head(preset_amounts=[501, 1001], display_order=1)
        make_head(key="closed", name="Closed", is_active=False)

    def test_donation_heads_lists_active_only(self):
        resp = self.client.get(reverse("donations:donation_heads"))
        data = resp.json()["data"]
        self.assertEqual([h["key"] for h in data], ["annadan"])
        self.assertEqual(data[0]["presetAmounts"], [501, 1001])

    def test_my_donations_requires_token(self):
        self.assertEqual(self.client.get(reverse("donations:my_donations")).status_code, 401)

    def test_my_donations(self):
        user = get_user_model().objects.create_user(username="asha", password="x")
        mine = make_donation(self.head, 500, user=user)
        make_donation(self.head, 700)
        resp = self.client.get(reverse("donations:my_donations"), **bearer(user))
        self.assertEqual([d["id"] for d in resp.json()["data"]], [str(mine.pk)])
        self.assertIsNone(resp.json()["data"][0]["receiptUrl"])

    def test_my_donations_links_stored_receipt(self):
        user = get_user_model().objects.create_user(username="asha", password="x")
        make_donation(self.head, 500, order_id="order_1", user=user)
        with self.captureOnCommitCallbacks(execute=True):
            confirm_payment("order_1", "pay_1", 50000)
        row = self.client.get(reverse("donations:my_donations"), **bearer(user)).json()["data"][0]
        self.assertTrue(row["receiptNumber"])
        self.assertTrue(row["receiptUrl"].startswith("/media/receipts/receipt-"))
        self.assertTrue(row["receiptUrl"].endswith(".pdf"))

    def test_admin_list_filters(self):
        staff = make_staff()
        make_donation(self.head, 500, order_id="order_1")
        make_donation(self.head, 700)
        confirm_payment("order_1", "pay_1", 50000)

        resp = self.client.get(reverse("donations:admin_donations"), {"status": "SUCCESS"}, **bearer(staff))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([d["amount"] for d in resp.json()["data"]], [500])

    def test_admin_list_requires_staff(self):
        user = get_user_model().objects.create_user(username="asha", password="x")
        resp = self.client.get(reverse("donations:admin_donations"), **bearer(user))
        self.assertEqual(resp.status_code, 403)


class CashDonationViewTests(TestCase):
    def setUp(self):
        make_head()
        self.staff = make_staff()
        self.url = reverse("donations:admin_cash_donation")

    def _post(self, body, **extra):
        return self.client.post(self.url, data=json.dumps(body), content_type="application/json", **extra)

    def test_records_success_with_receipt(self):
        body = donor_payload(amount=2100)
        del body["mobile"]
        with self.assertLogs("donations.services", level="INFO") as cm:
            resp = self._post(body, **bearer(self.staff))
        self.assertEqual(resp.status_code, 201)
        data = resp.json()
        self.assertEqual(data["status"], "SUCCESS")
        self.assertRegex(data["receiptNumber"], r"^GRD-\d{4}-\d{6}$")
        self.assertRegex(data["transactionRef"], r"^CASH-\d+-[A-Z0-9]{9}$")
        self.assertTrue(any("[ADMIN AUDIT] CashDonation" in line for line in cm.output))

        d = Donation.objects.get(pk=data["donationId"])
        self.assertEqual(d.payment_method, Donation.CASH)
        self.assertEqual(d.donor_mobile, "N/A")
        self.assertEqual(d.added_by, self.staff)
        self.assertIsNone(d.gateway_order_id)

    def test_payment_date_sets_created_at(self):
        resp = self._post(donor_payload(payment_date="2026-03-01T10:00:00+05:30"), **bearer(self.staff))
        d = Donation.objects.get(pk=resp.json()["donationId"])
        self.assertEqual(d.created_at.date().isoformat(), "2026-03-01")

    def test_cash_ignores_referral(self):
        make_collector("COLAB12")
        resp = self._post(donor_payload(referral_code="COLAB12"), **bearer(self.staff))
        d = Donation.objects.get(pk=resp.json()["donationId"])
        self.assertEqual(d.referral_code, "")
        self.assertFalse(CollectorLedger.objects.filter(donation_count__gt=0).exists())

    def test_cash_cannot_get_gateway_order(self):
        resp = self._post(donor_payload(), **bearer(self.staff))
        order = self.client.post(reverse("donations:create_order"),
                                 data=json.dumps({"donationId": resp.json()["donationId"]}),
                                 content_type="application/json")
        self.assertEqual(order.status_code, 409)

    def test_requires_admin(self):
        self.assertEqual(self._post(donor_payload()).status_code, 401)
        user = get_user_model().objects.create_user(username="vol", password="x")
        self.assertEqual(self._post(donor_payload(), **bearer(user)).status_code, 403)
        self.assertFalse(Donation.objects.exists())
