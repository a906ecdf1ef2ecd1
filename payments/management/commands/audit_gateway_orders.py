import time
from django.core.management.base import BaseCommand
from django.utils import timezone

from donations.models import Donation
from payments.integrations.razorpay import GatewayError, fetch_order
from payments.models import ReviewFlag


class Command(BaseCommand):
    help = "Ask the gateway about stale PENDING orders and flag paid ones that never got a webhook"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=50)
        parser.add_argument("--sleep", type=float, default=0.5)
        parser.add_argument("--older-than-minutes", type=int, default=15)

    def handle(self, *args, **opts):
        cutoff = timezone.now() - timezone.timedelta(minutes=opts["older_than_minutes"])
        qs = (
            Donation.objects.filter(status=Donation.PENDING, gateway_order_id__isnull=False, created_at__lt=cutoff)
            .order_by("created_at")[: opts["max"]]
        )

        if not qs.exists():
            self.stdout.write(self.style.SUCCESS("No pending orders to audit."))
            return

        flagged = 0
        for d in qs:
            try:
                data = fetch_order(d.gateway_order_id)
            except GatewayError as e:
                self.stdout.write(self.style.WARNING(f"{d.gateway_order_id}: {e}"))
                continue
            status = str(data.get("status") or "").lower()
            # report only; the donation stays PENDING until a webhook arrives
            if status == "paid":
                _, created = ReviewFlag.objects.get_or_create(
                    donation=d, reason=ReviewFlag.GATEWAY_PAID_NO_WEBHOOK, resolved=False,
                    defaults={"detail": {"gateway_status": status, "amount_paid": data.get("amount_paid")}},
                )
                if created:
                    flagged += 1
                self.stdout.write(self.style.ERROR(f"{d.gateway_order_id}: paid at gateway, no webhook (donation {d.pk})"))
            else:
                self.stdout.write(f"{d.gateway_order_id}: {status or 'unknown'}")
            time.sleep(opts["sleep"])

        self.stdout.write(self.style.SUCCESS(f"Audit done, {flagged} new review flag(s)."))
