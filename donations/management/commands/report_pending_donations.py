from django.core.management.base import BaseCommand
from django.utils import timezone

from donations.models import Donation


class Command(BaseCommand):
    help = "List PENDING donations older than N minutes (read-only; the webhook decides outcomes)"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=100, help="Max donations to list")
        parser.add_argument("--older-than-minutes", type=int, default=30)

    def handle(self, *args, **opts):
        cutoff = timezone.now() - timezone.timedelta(minutes=opts["older_than_minutes"])
        qs = Donation.objects.filter(status=Donation.PENDING, created_at__lt=cutoff).order_by("created_at")
        total = qs.count()
        if not total:
            self.stdout.write(self.style.SUCCESS("No stale pending donations."))
            return

        for d in qs[: opts["max"]]:
            order = d.gateway_order_id or "no order"
            self.stdout.write(
                f"{d.pk}  {timezone.localtime(d.created_at):%Y-%m-%d %H:%M}  ₹{d.amount}  "
                f"{d.donation_head_name}  {order}"
            )
        self.stdout.write(self.style.WARNING(f"{total} donation(s) still PENDING."))
