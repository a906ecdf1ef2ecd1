import datetime
import re

from django.conf import settings
from django.test import TestCase

from collectors.models import CollectorLedger
from .exceptions import DonationNotFound, ImmutableFieldError, ReceiptNotReady
from .forms import CashDonationForm, DonationForm
from .models import Donation, OtpCode, Receipt
from .receipts import receipt_context, render_receipt
from .services import (
    confirm_payment, create_cash_donation, create_donation, get_receipt, get_status,
    issue_otp, verify_otp,
)
from .testing import donor_data, make_collector, make_donation, make_head, make_staff
from .utils import format_receipt_number, gen_cash_reference, normalize_mobile


class DonationFormTests(TestCase):
    def setUp(self):
        self.head = make_head(min_amount=100)

    def _form(self, **overrides):
        data = {
            "name": "Asha Verma",
            "mobile": "98765 43210",
            "address_line": "12 Temple Road",
            "city": "Gorakhpur",
            "dob": "1985-06-15",
            "id_number": "abcde1234f",
            "donation_head": "annadan",
            "amount": 500,
        }
        data.update(overrides)
        return DonationForm(data)

    def test_valid_data_is_normalized(self):
        form = self._form()
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data["id_number"], "ABCDE1234F")
        self.assertEqual(form.cleaned_data["mobile"], "9876543210")
        self.assertEqual(form.cleaned_data["donation_head"], self.head)

    def test_bad_pan_rejected(self):
        form = self._form(id_number="ABCD1234F")
        self.assertFalse(form.is_valid())
        self.assertIn("id_number", form.errors)

    def test_minor_rejected(self):
        dob = datetime.date.today() - datetime.timedelta(days=365 * 10)
        form = self._form(dob=dob.isoformat())
        self.assertFalse(form.is_valid())
        self.assertIn("dob", form.errors)

    def test_amount_below_head_minimum(self):
        form = self._form(amount=50)
        self.assertFalse(form.is_valid())
        self.assertIn("amount", form.errors)

    def test_inactive_head_rejected(self):
        make_head(key="closed", name="Closed", is_active=False)
        form = self._form(donation_head="closed")
        self.assertFalse(form.is_valid())
        self.assertIn("donation_head", form.errors)

    def test_mobile_required_online_but_not_for_cash(self):
        self.assertIn("mobile", self._form(mobile="").errors)
        cash = CashDonationForm({
            "name": "Asha Verma", "address_line": "x", "city": "y", "dob": "1985-06-15",
            "id_number": "ABCDE1234F", "donation_head": "annadan", "amount": 500,
        })
        self.assertTrue(cash.is_valid(), cash.errors)

    def test_aadhaar_accepted_online(self):
        form = self._form(id_type="AADHAAR", id_number="1234 5678 9012")
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data["id_type"], "AADHAAR")
        self.assertEqual(form.cleaned_data["id_number"], "123456789012")

    def test_aadhaar_must_be_twelve_digits(self):
        form = self._form(id_type="AADHAAR", id_number="12345678901")
        self.assertFalse(form.is_valid())
        self.assertIn("id_number", form.errors)

    def test_pan_checked_against_pan_pattern_only(self):
        form = self._form(id_type="PAN", id_number="123456789012")
        self.assertFalse(form.is_valid())
        self.assertIn("id_number", form.errors)

    def test_unknown_id_type_rejected(self):
        form = self._form(id_type="PASSPORT")
        self.assertFalse(form.is_valid())
        self.assertIn("id_type", form.errors)

    def test_cash_accepts_pan_only(self):
        cash = CashDonationForm({
            "name": "Asha Verma", "address_line": "x", "city": "y", "dob": "1985-06-15",
            "id_type": "AADHAAR", "id_number": "123456789012", "donation_head": "annadan", "amount": 500,
        })
        self.assertFalse(cash.is_valid())
        self.assertIn("id_type", cash.errors)


class CreateDonationTests(TestCase):
    def setUp(self):
        self.head = make_head()

    def test_created_pending_with_snapshot(self):
        d = create_donation(donor_data(self.head, 750))
        self.assertEqual(d.status, Donation.PENDING)
        self.assertEqual(d.payment_method, Donation.ONLINE)
        self.assertEqual(d.donation_head_name, "Annadan Seva")
        self.assertEqual(d.amount, 750)
        self.assertIsNone(d.gateway_order_id)
        self.assertIsNone(d.receipt_number)

    def test_valid_referral_attributes(self):
        make_collector("COLAB12", "Ravi Kumar")
        d = create_donation(donor_data(self.head, referral_code=" colab12 "))
        self.assertEqual(d.referral_code, "COLAB12")
        self.assertEqual(d.collector_name, "Ravi Kumar")

    def test_invalid_referral_does_not_block(self):
        with self.assertLogs("collectors.services", level="WARNING"):
            d = create_donation(donor_data(self.head, referral_code="NOPE99"))
        self.assertEqual(d.referral_code, "")
        self.assertEqual(d.collector_name, "")

    def test_disabled_collector_not_attributed(self):
        make_collector("COLAB12", disabled=True)
        with self.assertLogs("collectors.services", level="WARNING"):
            d = create_donation(donor_data(self.head, referral_code="COLAB12"))
        self.assertEqual(d.referral_code, "")

    def test_id_type_is_snapshotted(self):
        d = create_donation(donor_data(self.head, id_type="AADHAAR", id_number="123456789012"))
        d = Donation.objects.get(pk=d.pk)
        self.assertEqual((d.id_type, d.id_number), ("AADHAAR", "123456789012"))


class WriteOnceFieldTests(TestCase):
    def setUp(self):
        self.donation = make_donation(make_head())

    def test_amount_cannot_change(self):
        d = Donation.objects.get(pk=self.donation.pk)
        d.amount = 1
        with self.assertRaises(ImmutableFieldError):
            d.save()
        self.assertEqual(Donation.objects.get(pk=d.pk).amount, 500)

    def test_donor_name_cannot_change(self):
        d = Donation.objects.get(pk=self.donation.pk)
        d.donor_name = "Someone Else"
        with self.assertRaises(ImmutableFieldError):
            d.save()

    def test_lifecycle_fields_can_change(self):
        d = Donation.objects.get(pk=self.donation.pk)
        d.otp_verified = True
        d.save()
        self.assertTrue(Donation.objects.get(pk=d.pk).otp_verified)

    def test_freshly_created_instance_is_guarded(self):
        d = create_donation(donor_data(make_head(key="gau", name="Gau Seva"), 750))
        d.amount = 1
        with self.assertRaises(ImmutableFieldError):
            d.save()
        self.assertEqual(Donation.objects.get(pk=d.pk).amount, 750)

    def test_guard_survives_a_lifecycle_save(self):
        d = create_donation(donor_data(make_head(key="gau", name="Gau Seva"), 750))
        d.otp_verified = True
        d.save()
        d.donor_name = "Someone Else"
        with self.assertRaises(ImmutableFieldError):
            d.save()

    def test_cash_instance_is_guarded(self):
        data = donor_data(make_head(key="gau", name="Gau Seva"), 1000, mobile="")
        d = create_cash_donation(data, admin=make_staff())
        d.id_number = "ZZZZZ9999Z"
        with self.assertRaises(ImmutableFieldError):
            d.save()
        self.assertEqual(Donation.objects.get(pk=d.pk).id_number, "ABCDE1234F")


class OtpVerificationTests(TestCase):
    def setUp(self):
        self.code = issue_otp("9876543210")
        self.wrong = "000000" if self.code != "000000" else "111111"

    def test_each_wrong_guess_is_counted(self):
        self.assertEqual(verify_otp("9876543210", self.wrong), (False, "Invalid code"))
        self.assertEqual(verify_otp("9876543210", self.wrong), (False, "Invalid code"))
        self.assertEqual(OtpCode.objects.get().attempts, 2)

    def test_count_taken_from_the_row_not_the_loaded_copy(self):
        OtpCode.objects.update(attempts=settings.OTP_MAX_ATTEMPTS - 1)
        self.assertEqual(verify_otp("9876543210", self.wrong), (False, "Invalid code"))
        self.assertEqual(verify_otp("9876543210", self.code), (False, "Too many attempts"))
        self.assertEqual(OtpCode.objects.get().attempts, settings.OTP_MAX_ATTEMPTS)

    def test_correct_code_consumes_it(self):
        self.assertEqual(verify_otp("9876543210", self.code), (True, ""))
        self.assertEqual(verify_otp("9876543210", self.code), (False, "No active OTP"))


class CollectorLedgerScenarioTests(TestCase):
    """Ledger totals always equal the SUCCESS donations attributed to a code."""

    def setUp(self):
        self.head = make_head()
        make_collector("COLAB12", "Ravi Kumar")

    def _pay(self, amount, order_id):
        d = make_donation(self.head, amount, order_id=order_id, referral_code="COLAB12")
        confirm_payment(order_id, f"pay_{order_id}", amount * 100)
        return d

    def test_first_donation_500(self):
        self._pay(500, "order_a")
        ledger = CollectorLedger.objects.get(referral_code="COLAB12")
        self.assertEqual((ledger.total_amount, ledger.donation_count), (500, 1))

    def test_second_donation_600(self):
        self._pay(500, "order_a")
        self._pay(600, "order_b")
        ledger = CollectorLedger.objects.get(referral_code="COLAB12")
        self.assertEqual((ledger.total_amount, ledger.donation_count), (1100, 2))

    def test_pending_and_failed_do_not_count(self):
        self._pay(500, "order_a")
        make_donation(self.head, 900, order_id="order_c", referral_code="COLAB12")
        ledger = CollectorLedger.objects.get(referral_code="COLAB12")
        self.assertEqual(ledger.total_amount, 500)

    def test_duplicate_confirmation_counts_once(self):
        self._pay(500, "order_a")
        result = confirm_payment("order_a", "pay_order_a", 50000)
        self.assertFalse(result.applied)
        ledger = CollectorLedger.objects.get(referral_code="COLAB12")
        self.assertEqual((ledger.total_amount, ledger.donation_count), (500, 1))


class StatusAndReceiptTests(TestCase):
    def setUp(self):
        self.donation = make_donation(make_head(), 500, order_id="order_1")

    def test_status_is_a_pure_read(self):
        self.assertEqual(get_status(self.donation.pk), "PENDING")
        self.assertEqual(get_status(self.donation.pk), "PENDING")

    def test_unknown_donation(self):
        with self.assertRaises(DonationNotFound):
            get_status("2b1f4c7e-0000-4000-8000-000000000000")
        with self.assertRaises(DonationNotFound):
            get_status("not-a-uuid")

    def test_receipt_gated_on_success(self):
        with self.assertRaises(ReceiptNotReady):
            get_receipt(self.donation.pk)

    def test_receipt_number_and_reproducible_render(self):
        confirm_payment("order_1", "pay_1", 50000)
        d = get_receipt(self.donation.pk)
        self.assertRegex(d.receipt_number, r"^GRD-\d{4}-\d{6}$")
        self.assertEqual(Receipt.objects.get(donation=d).number, d.receipt_number)
        first = render_receipt(d)
        second = render_receipt(Donation.objects.get(pk=d.pk))
        self.assertEqual(first, second)
        self.assertTrue(first.startswith(b"%PDF"))
        self.assertIn(d.receipt_number.encode(), first)
        self.assertIn(b"pay_1", first)

    def test_cash_receipt_dated_on_payment_day(self):
        admin = make_staff()
        data = donor_data(make_head(key="gau", name="Gau Seva"), 1000, mobile="")
        data["payment_date"] = datetime.datetime(2026, 3, 1, 10, tzinfo=datetime.timezone.utc)
        donation = create_cash_donation(data, admin=admin)
        ctx = receipt_context(Donation.objects.get(pk=donation.pk))
        self.assertEqual(ctx["issued_on"], datetime.date(2026, 3, 1))
        self.assertEqual(ctx["payment_method"], "Cash")


class UtilsTests(TestCase):
    def test_receipt_number_format(self):
        when = datetime.datetime(2026, 5, 1, 12, tzinfo=datetime.timezone.utc)
        self.assertEqual(format_receipt_number(42, when), "GRD-2026-000042")

    def test_cash_reference_shape(self):
        self.assertTrue(re.fullmatch(r"CASH-\d{13}-[A-Z0-9]{9}", gen_cash_reference()))

    def test_normalize_mobile(self):
        self.assertEqual(normalize_mobile(" +91 98765-43210 "), "+919876543210")
        self.assertEqual(normalize_mobile(None), "")
