from django.core.management.base import BaseCommand, CommandError

from donations.exceptions import DonationNotFound
from donations.polling import poll_status
from donations.services import get_status


class Command(BaseCommand):
    help = "Poll a donation's status the way the checkout page does"

    def add_arguments(self, parser):
        parser.add_argument("donation_id")
        parser.add_argument("--interval", type=float, default=None)
        parser.add_argument("--max-wait", type=float, default=None)

    def handle(self, *args, **opts):
        donation_id = opts["donation_id"]
        try:
            get_status(donation_id)
        except DonationNotFound:
            raise CommandError(f"Donation {donation_id} not found")

        result = poll_status(lambda: get_status(donation_id), interval=opts["interval"], max_wait=opts["max_wait"])
        line = f"{donation_id}: {result.status} ({result.display}) after {result.attempts} check(s)"
        if result.timed_out:
            self.stdout.write(self.style.WARNING(line))
        else:
            self.stdout.write(self.style.SUCCESS(line))
