from io import StringIO

import jwt
from django.conf import settings
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.utils import timezone

from .auth import TOKEN_AUDIENCE, user_from_token
from .models import Donation
from .testing import make_donation, make_head, make_staff


class ReportPendingDonationsTests(TestCase):
    def test_lists_stale_pending_without_changing_them(self):
        head = make_head()
        stale = make_donation(head, 500, order_id="order_old")
        Donation.objects.filter(pk=stale.pk).update(created_at=timezone.now() - timezone.timedelta(hours=2))
        fresh = make_donation(head, 700)

        out = StringIO()
        call_command("report_pending_donations", stdout=out)
        output = out.getvalue()

        self.assertIn(str(stale.pk), output)
        self.assertNotIn(str(fresh.pk), output)
        self.assertIn("1 donation(s) still PENDING", output)
        stale.refresh_from_db()
        self.assertEqual(stale.status, Donation.PENDING)

    def test_nothing_pending(self):
        out = StringIO()
        call_command("report_pending_donations", stdout=out)
        self.assertIn("No stale pending donations", out.getvalue())


class IssueAdminTokenTests(TestCase):
    def test_prints_token_for_staff(self):
        staff = make_staff()
        out = StringIO()
        call_command("issue_admin_token", "admin", stdout=out)
        token = out.getvalue().strip()
        self.assertEqual(user_from_token(token), staff)
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"], audience=TOKEN_AUDIENCE)
        self.assertTrue(payload["staff"])

    def test_unknown_user(self):
        with self.assertRaises(CommandError):
            call_command("issue_admin_token", "ghost")

    def test_tampered_token_rejected(self):
        make_staff()
        out = StringIO()
        call_command("issue_admin_token", "admin", stdout=out)
        self.assertIsNone(user_from_token(out.getvalue().strip() + "x"))
