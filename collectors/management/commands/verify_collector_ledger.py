from django.core.management.base import BaseCommand

from collectors.services import ledger_discrepancies, rebuild_ledger


class Command(BaseCommand):
    help = "Compare collector ledger totals with SUCCESS donations; --fix rebuilds the rows that drifted"

    def add_arguments(self, parser):
        parser.add_argument("--fix", action="store_true")

    def handle(self, *args, **opts):
        rows = ledger_discrepancies()
        if not rows:
            self.stdout.write(self.style.SUCCESS("Collector ledger matches donations."))
            return

        for row in rows:
            want_amount, want_count = row["expected"]
            have_amount, have_count = row["recorded"]
            self.stdout.write(self.style.WARNING(
                f"{row['referral_code']}: ledger ₹{have_amount}/{have_count}, donations ₹{want_amount}/{want_count}"
            ))
            if opts["fix"]:
                rebuild_ledger(row["referral_code"])

        if opts["fix"]:
            self.stdout.write(self.style.SUCCESS(f"Rebuilt {len(rows)} ledger row(s)."))
        else:
            self.stdout.write(self.style.ERROR(f"{len(rows)} ledger row(s) out of sync; rerun with --fix."))
