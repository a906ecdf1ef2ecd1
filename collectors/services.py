"""Referral codes, collector attribution and the leaderboard.

There is no commission system here: attribution exists purely so fundraisers
can see what they helped raise.
"""
import logging
import secrets

from django.db import IntegrityError, transaction
from django.db.models import Count, F, Sum

from donations.models import Donation
from .models import Collector, CollectorLedger

logger = logging.getLogger(__name__)

# no O/0/I/1, they get misread on printed cards
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_PREFIX = "COL"
MIN_CODE_LENGTH = 4
INVALID_CODE_MESSAGE = "Invalid or inactive referral code"


def normalize_code(code) -> str:
    if not code or not isinstance(code, str):
        return ""
    return code.strip().upper()


def generate_referral_code(max_attempts=10) -> str:
    for _ in range(max_attempts):
        code = CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))
        if not Collector.objects.filter(referral_code=code).exists():
            return code
    # astronomically unlikely; the unique index still guards us
    return CODE_PREFIX + secrets.token_hex(4).upper()


def assign_referral_code(collector: Collector, max_retries=2) -> str:
    """Give ``collector`` a permanent referral code. Idempotent."""
    for attempt in range(max_retries):
        collector.refresh_from_db(fields=["referral_code"])
        if collector.referral_code:
            return collector.referral_code
        code = generate_referral_code()
        try:
            with transaction.atomic():
                updated = Collector.objects.filter(pk=collector.pk, referral_code__isnull=True) \
                    .update(referral_code=code)
                if updated:
                    CollectorLedger.objects.update_or_create(
                        referral_code=code, defaults={"collector": collector},
                    )
        except IntegrityError:
            if attempt < max_retries - 1:
                logger.warning("Referral code collision for collector %s, retrying", collector.pk)
                continue
            raise
    collector.refresh_from_db(fields=["referral_code"])
    return collector.referral_code


def resolve_collector(code) -> Collector | None:
    """Map a referral code to an active collector, or ``None``.

    Never raises: a bad code must not stop a donation.
    """
    code = normalize_code(code)
    if len(code) < MIN_CODE_LENGTH:
        return None
    collector = Collector.objects.select_related("user").filter(referral_code=code).first()
    if collector is None:
        logger.warning("Invalid referral code: %s", code)
        return None
    if collector.disabled:
        logger.warning("Collector disabled: %s", code)
        return None
    if not collector.display_name:
        logger.warning("Collector has no name: %s", code)
        return None
    return collector


def validate_referral_code(code) -> dict:
    # same answer for every kind of invalid, so codes can't be enumerated
    collector = resolve_collector(code)
    if collector is None:
        return {"valid": False, "error": INVALID_CODE_MESSAGE}
    return {"valid": True, "collectorName": collector.display_name}


def record_attribution(referral_code: str, amount: int) -> None:
    """Add one SUCCESS donation of ``amount`` to the code's ledger.

    Must be called inside the transaction that commits the donation.
    """
    updated = CollectorLedger.objects.filter(referral_code=referral_code).update(
        total_amount=F("total_amount") + amount,
        donation_count=F("donation_count") + 1,
    )
    if updated:
        return
    # code predates its ledger row
    collector = Collector.objects.filter(referral_code=referral_code).first()
    try:
        with transaction.atomic():
            CollectorLedger.objects.create(
                referral_code=referral_code, collector=collector,
                total_amount=amount, donation_count=1,
            )
    except IntegrityError:
        # a concurrent commit created it first
        CollectorLedger.objects.filter(referral_code=referral_code).update(
            total_amount=F("total_amount") + amount,
            donation_count=F("donation_count") + 1,
        )


def get_top_collectors(limit=5) -> list:
    rows = (
        CollectorLedger.objects.filter(donation_count__gt=0)
        .select_related("collector__user")
        .order_by("-total_amount", "referral_code")[:limit]
    )
    board = []
    for rank, row in enumerate(rows, start=1):
        name = row.collector.display_name if row.collector else ""
        board.append({
            "rank": rank,
            "referralCode": row.referral_code,
            "collectorName": name or "Unknown Collector",
            "totalAmount": row.total_amount,
            "donationCount": row.donation_count,
        })
    return board


def get_collector_stats(collector: Collector) -> dict:
    ledger = CollectorLedger.objects.filter(referral_code=collector.referral_code).first() \
        if collector.referral_code else None
    return {
        "referralCode": collector.referral_code,
        "collectorName": collector.display_name,
        "totalAmount": ledger.total_amount if ledger else 0,
        "donationCount": ledger.donation_count if ledger else 0,
    }


def get_collector_dashboard(collector: Collector) -> dict:
    recent = []
    if collector.referral_code:
        qs = Donation.objects.filter(
            referral_code=collector.referral_code, status=Donation.SUCCESS,
        ).order_by("-confirmed_at")[:10]
        recent = [
            {
                "donorName": d.display_name,
                "amount": d.amount,
                "cause": d.donation_head_name,
                "date": d.confirmed_at.isoformat() if d.confirmed_at else None,
            }
            for d in qs
        ]
    return {
        **get_collector_stats(collector),
        "top5Collectors": get_top_collectors(5),
        "recentDonations": recent,
    }


def toggle_collector(collector: Collector, *, admin, reason="") -> Collector:
    previous = collector.disabled
    collector.disabled = not previous
    collector.save(update_fields=["disabled", "updated_at"])
    logger.info(
        "[ADMIN AUDIT] CollectorToggle | Admin: %s | Collector: %s (%s) | Action: %s | Reason: %s",
        admin.pk, collector.pk, collector.display_name,
        "DISABLED" if collector.disabled else "ENABLED", reason or "Not specified",
    )
    return collector


def collector_summary() -> dict:
    success = Donation.objects.filter(status=Donation.SUCCESS)
    with_ref = success.exclude(referral_code="").aggregate(count=Count("id"), amount=Sum("amount"))
    without_ref = success.filter(referral_code="").aggregate(count=Count("id"), amount=Sum("amount"))
    return {
        "activeCollectors": CollectorLedger.objects.filter(donation_count__gt=0).count(),
        "withReferral": {"count": with_ref["count"], "amount": with_ref["amount"] or 0},
        "withoutReferral": {"count": without_ref["count"], "amount": without_ref["amount"] or 0},
    }


def ledger_discrepancies() -> list:
    """Compare every ledger row with the SUCCESS aggregate it summarizes."""
    actual = {
        row["referral_code"]: (row["total"] or 0, row["count"])
        for row in Donation.objects.filter(status=Donation.SUCCESS).exclude(referral_code="")
        .values("referral_code").annotate(total=Sum("amount"), count=Count("id"))
    }
    recorded = {
        row.referral_code: (row.total_amount, row.donation_count)
        for row in CollectorLedger.objects.all()
    }
    out = []
    for code in sorted(set(actual) | set(recorded)):
        want = actual.get(code, (0, 0))
        have = recorded.get(code, (0, 0))
        if want != have:
            out.append({"referral_code": code, "expected": want, "recorded": have})
    return out


@transaction.atomic
def rebuild_ledger(referral_code: str) -> CollectorLedger:
    agg = Donation.objects.filter(status=Donation.SUCCESS, referral_code=referral_code) \
        .aggregate(total=Sum("amount"), count=Count("id"))
    ledger, _ = CollectorLedger.objects.select_for_update().get_or_create(
        referral_code=referral_code,
        defaults={"collector": Collector.objects.filter(referral_code=referral_code).first()},
    )
    ledger.total_amount = agg["total"] or 0
    ledger.donation_count = agg["count"]
    ledger.save(update_fields=["total_amount", "donation_count", "updated_at"])
    return ledger
