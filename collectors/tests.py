import json
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.urls import reverse

from donations.services import confirm_payment
from donations.testing import bearer, frozen_clock, make_collector, make_donation, make_head, make_staff
from .models import Collector, CollectorLedger
from .services import (
    CODE_ALPHABET, INVALID_CODE_MESSAGE, assign_referral_code, get_top_collectors, record_attribution,
    resolve_collector,
)


class ReferralCodeTests(TestCase):
    def test_assign_is_idempotent(self):
        user = get_user_model().objects.create_user(username="ravi", password="x")
        collector = Collector.objects.create(user=user, full_name="Ravi Kumar")
        code = assign_referral_code(collector)
        self.assertEqual(assign_referral_code(collector), code)
        self.assertTrue(code.startswith("COL"))
        self.assertTrue(all(c in CODE_ALPHABET for c in code[3:]))
        self.assertTrue(CollectorLedger.objects.filter(referral_code=code, collector=collector).exists())

    def test_resolve_normalizes(self):
        collector = make_collector("COLAB12")
        self.assertEqual(resolve_collector("  colab12 "), collector)

    def test_resolve_rejects(self):
        make_collector("COLOFF1", disabled=True, username="off")
        make_collector("COLNONM", full_name="", username="noname")
        with self.assertLogs("collectors.services", level="WARNING") as cm:
            self.assertIsNone(resolve_collector("COLOFF1"))
            self.assertIsNone(resolve_collector("COLNONM"))
            self.assertIsNone(resolve_collector("UNKNOWN"))
        self.assertEqual(len(cm.output), 3)
        self.assertIsNone(resolve_collector("AB"))
        self.assertIsNone(resolve_collector(None))


class RecordAttributionTests(TestCase):
    def test_creates_missing_ledger_row(self):
        record_attribution("COLXYZ9", 250)
        record_attribution("COLXYZ9", 250)
        ledger = CollectorLedger.objects.get(referral_code="COLXYZ9")
        self.assertEqual((ledger.total_amount, ledger.donation_count), (500, 2))


class ReferralApiTests(TestCase):
    def test_validate_valid(self):
        make_collector("COLAB12", "Ravi Kumar")
        resp = self.client.get(reverse("collectors:validate_referral", args=["colab12"]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"valid": True, "collectorName": "Ravi Kumar"})

    def test_invalid_and_disabled_look_the_same(self):
        make_collector("COLOFF1", disabled=True)
        with self.assertLogs("collectors.services", level="WARNING"):
            unknown = self.client.get(reverse("collectors:validate_referral", args=["COLNOPE"]))
            disabled = self.client.get(reverse("collectors:validate_referral", args=["COLOFF1"]))
        self.assertEqual(unknown.status_code, 200)
        self.assertEqual(unknown.json(), disabled.json())
        self.assertEqual(unknown.json(), {"valid": False, "error": INVALID_CODE_MESSAGE})

    @override_settings(RATE_LIMITS_ENABLED=True)
    def test_validation_is_throttled_per_ip(self):
        cache.clear()
        make_collector("COLAB12", "Ravi Kumar")
        url = reverse("collectors:validate_referral", args=["COLAB12"])
        with frozen_clock(3100.0):
            codes = [self.client.get(url, REMOTE_ADDR="10.0.0.1").status_code for _ in range(31)]
        self.assertEqual(codes, [200] * 30 + [429])
        self.assertEqual(self.client.get(url, REMOTE_ADDR="10.0.0.2").status_code, 200)


class LeaderboardTests(TestCase):
    def setUp(self):
        self.head = make_head()
        make_collector("COLAAA1", "First", username="a")
        make_collector("COLBBB2", "Second", username="b")

    def _pay(self, code, amount, order_id):
        make_donation(self.head, amount, order_id=order_id, referral_code=code)
        confirm_payment(order_id, f"pay_{order_id}", amount * 100)

    def test_ranked_by_total(self):
        self._pay("COLAAA1", 500, "o1")
        self._pay("COLBBB2", 600, "o2")
        self._pay("COLBBB2", 100, "o3")
        board = self.client.get(reverse("collectors:leaderboard_top")).json()["data"]
        self.assertEqual([(r["rank"], r["referralCode"], r["totalAmount"]) for r in board],
                         [(1, "COLBBB2", 700), (2, "COLAAA1", 500)])
        self.assertEqual(board[0]["donationCount"], 2)

    def test_collectors_without_donations_hidden(self):
        self.assertEqual(get_top_collectors(), [])

    def test_dashboard_honours_anonymity(self):
        make_donation(self.head, 500, order_id="o1", referral_code="COLAAA1", anonymous_display=True)
        confirm_payment("o1", "pay_1", 50000)
        user = Collector.objects.get(referral_code="COLAAA1").user
        resp = self.client.get(reverse("collectors:me"), **bearer(user))
        data = resp.json()
        self.assertEqual(data["totalAmount"], 500)
        self.assertEqual(data["recentDonations"][0]["donorName"], "Anonymous")
        self.assertEqual(data["top5Collectors"][0]["referralCode"], "COLAAA1")

    def test_dashboard_for_non_collector(self):
        user = get_user_model().objects.create_user(username="donor", password="x")
        self.assertEqual(self.client.get(reverse("collectors:me"), **bearer(user)).status_code, 403)


class AdminCollectorApiTests(TestCase):
    def setUp(self):
        self.staff = make_staff()
        self.collector = make_collector("COLAB12")

    def test_toggle_flips_and_audits(self):
        url = reverse("collectors:admin_toggle", args=[self.collector.pk])
        with self.assertLogs("collectors.services", level="INFO") as cm:
            resp = self.client.post(url, data=json.dumps({"reason": "left team"}),
                                    content_type="application/json", **bearer(self.staff))
        self.assertTrue(resp.json()["disabled"])
        self.assertIn("Action: DISABLED", cm.output[0])
        self.assertIn("left team", cm.output[0])

        resp = self.client.post(url, **bearer(self.staff))
        self.assertFalse(resp.json()["disabled"])

    def test_toggle_requires_admin(self):
        url = reverse("collectors:admin_toggle", args=[self.collector.pk])
        self.assertEqual(self.client.post(url).status_code, 401)
        self.assertEqual(self.client.post(url, **bearer(self.collector.user)).status_code, 403)

    def test_summary(self):
        head = make_head()
        make_donation(head, 500, order_id="o1", referral_code="COLAB12")
        make_donation(head, 300, order_id="o2")
        confirm_payment("o1", "p1", 50000)
        confirm_payment("o2", "p2", 30000)
        resp = self.client.get(reverse("collectors:admin_summary"), **bearer(self.staff))
        self.assertEqual(resp.json(), {
            "activeCollectors": 1,
            "withReferral": {"count": 1, "amount": 500},
            "withoutReferral": {"count": 1, "amount": 300},
        })


class VerifyCollectorLedgerTests(TestCase):
    def setUp(self):
        make_collector("COLAB12")
        make_donation(make_head(), 500, order_id="o1", referral_code="COLAB12")
        confirm_payment("o1", "p1", 50000)

    def test_in_sync(self):
        out = StringIO()
        call_command("verify_collector_ledger", stdout=out)
        self.assertIn("matches", out.getvalue())

    def test_drift_reported_then_fixed(self):
        CollectorLedger.objects.filter(referral_code="COLAB12").update(total_amount=999)
        out = StringIO()
        call_command("verify_collector_ledger", stdout=out)
        self.assertIn("out of sync", out.getvalue())
        self.assertEqual(CollectorLedger.objects.get().total_amount, 999)

        call_command("verify_collector_ledger", "--fix", stdout=StringIO())
        ledger = CollectorLedger.objects.get()
        self.assertEqual((ledger.total_amount, ledger.donation_count), (500, 1))
