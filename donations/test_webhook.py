from django.core import mail
from django.core.files.storage import default_storage
from django.test import TestCase, override_settings
from django.urls import reverse

from collectors.models import CollectorLedger
from payments.models import ReviewFlag, WebhookEvent
from .models import Donation, Receipt
from .testing import (
    captured_event, failed_event, make_collector, make_donation, make_head, signed,
)


@override_settings(EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend')
class RazorpayWebhookTests(TestCase):
    def setUp(self):
        self.head = make_head()
        self.donation = make_donation(self.head, 500, order_id="order_1")

    def _post(self, payload: dict, signature=None, event_id="evt_1"):
        raw, sig = signed(payload)
        return self.client.post(
            reverse('donations:razorpay_webhook'),
            data=raw,
            content_type='application/json',
            HTTP_X_RAZORPAY_SIGNATURE=sig if signature is None else signature,
            HTTP_X_RAZORPAY_EVENT_ID=event_id,
        )

    def test_captured_payment_marks_success(self):
        resp = self._post(captured_event("order_1", 50000))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, 'SUCCESS')
        self.assertEqual(self.donation.gateway_payment_id, 'pay_1')
        self.assertIsNotNone(self.donation.confirmed_at)
        self.assertTrue(self.donation.receipt_number)
        self.assertEqual(WebhookEvent.objects.get().outcome, WebhookEvent.APPLIED)

    def test_order_paid_without_payment_entity(self):
        payload = {"event": "order.paid", "payload": {"order": {"entity": {"id": "order_1", "amount_paid": 50000}}}}
        resp = self._post(payload)
        self.assertEqual(resp.status_code, 200)
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, 'SUCCESS')

    def test_duplicate_delivery_is_idempotent(self):
        make_collector("COLAB12")
        referred = make_donation(self.head, 500, order_id="order_2", referral_code="COLAB12")
        self._post(captured_event("order_2", 50000), event_id="evt_a")
        resp = self._post(captured_event("order_2", 50000), event_id="evt_a")

        self.assertEqual(resp.status_code, 200)
        referred.refresh_from_db()
        self.assertEqual(referred.status, 'SUCCESS')
        self.assertEqual(Receipt.objects.filter(donation=referred).count(), 1)
        ledger = CollectorLedger.objects.get(referral_code="COLAB12")
        self.assertEqual((ledger.total_amount, ledger.donation_count), (500, 1))
        outcomes = list(WebhookEvent.objects.order_by("received_at", "pk").values_list("outcome", flat=True))
        self.assertEqual(outcomes, [WebhookEvent.APPLIED, WebhookEvent.DUPLICATE])

    def test_failure_after_success_is_ignored(self):
        self._post(captured_event("order_1", 50000))
        self._post(failed_event("order_1"), event_id="evt_2")
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, 'SUCCESS')

    def test_payment_failed(self):
        resp = self._post(failed_event("order_1", "pay_9"))
        self.assertEqual(resp.status_code, 200)
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, 'FAILED')
        self.assertIsNone(self.donation.receipt_number)

    def test_amount_mismatch_fails_and_flags(self):
        with self.assertLogs("donations.services", level="ERROR") as cm:
            resp = self._post(captured_event("order_1", 100))
        self.assertEqual(resp.status_code, 200)
        self.assertIn("AMOUNT MISMATCH", cm.output[0])
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, 'FAILED')
        self.assertIsNone(self.donation.receipt_number)
        flag = ReviewFlag.objects.get(donation=self.donation)
        self.assertEqual(flag.reason, ReviewFlag.AMOUNT_MISMATCH)
        self.assertEqual(flag.detail["expected"], 50000)
        self.assertEqual(flag.detail["reported"], 100)
        self.assertEqual(WebhookEvent.objects.get().outcome, WebhookEvent.AMOUNT_MISMATCH)

    def test_bad_signature_rejected_without_writes(self):
        with self.assertLogs("donations.webhook", level="WARNING"):
            resp = self._post(captured_event("order_1", 50000), signature="deadbeef")
        self.assertEqual(resp.status_code, 400)
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, 'PENDING')
        self.assertFalse(WebhookEvent.objects.exists())

    def test_missing_signature_rejected(self):
        raw, _ = signed(captured_event("order_1", 50000))
        with self.assertLogs("donations.webhook", level="WARNING"):
            resp = self.client.post(reverse('donations:razorpay_webhook'), data=raw, content_type='application/json')
        self.assertEqual(resp.status_code, 400)

    def test_unknown_order_acknowledged(self):
        resp = self._post(captured_event("order_missing", 50000))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(WebhookEvent.objects.get().outcome, WebhookEvent.UNKNOWN_ORDER)

    def test_other_events_ignored(self):
        resp = self._post({"event": "refund.created", "payload": {}})
        self.assertEqual(resp.json(), {"status": "ignored"})
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, 'PENDING')

    def test_signed_garbage_is_bad_request(self):
        resp = self._post(["not", "an", "object"])
        self.assertEqual(resp.status_code, 400)

    def test_get_not_allowed(self):
        resp = self.client.get(reverse('donations:razorpay_webhook'))
        self.assertEqual(resp.status_code, 405)


@override_settings(EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend')
class AfterCommitTests(TestCase):
    def test_receipt_stored_and_emailed_after_commit(self):
        donation = make_donation(make_head(), 500, order_id="order_1", email_opt_in=True)
        raw, sig = signed(captured_event("order_1", 50000))
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            self.client.post(
                reverse('donations:razorpay_webhook'), data=raw, content_type='application/json',
                HTTP_X_RAZORPAY_SIGNATURE=sig,
            )
        self.assertEqual(len(callbacks), 1)
        receipt = Receipt.objects.get(donation=donation)
        self.assertTrue(receipt.file_path)
        self.assertTrue(default_storage.exists(receipt.file_path))
        self.assertIsNotNone(receipt.emailed_at)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(receipt.number, mail.outbox[0].subject)
        name, content, mimetype = mail.outbox[0].attachments[0]
        self.assertEqual(name, f"receipt-{receipt.number}.pdf")
        self.assertEqual(mimetype, "application/pdf")
        self.assertTrue(content.startswith(b"%PDF"))

    def test_no_email_without_opt_in(self):
        make_donation(make_head(), 500, order_id="order_1")
        raw, sig = signed(captured_event("order_1", 50000))
        with self.captureOnCommitCallbacks(execute=True):
            self.client.post(
                reverse('donations:razorpay_webhook'), data=raw, content_type='application/json',
                HTTP_X_RAZORPAY_SIGNATURE=sig,
            )
        self.assertEqual(len(mail.outbox), 0)
        self.assertEqual(Donation.objects.get().status, 'SUCCESS')
