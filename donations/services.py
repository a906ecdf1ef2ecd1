import logging
from dataclasses import dataclass

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from collectors.services import record_attribution, resolve_collector
from payments.integrations import razorpay
from payments.models import ReviewFlag
from .exceptions import AmountMismatch, DonationNotFound, InvalidState, ReceiptNotReady
from .models import Donation, OtpCode, Receipt
from .utils import expiry, format_receipt_number, gen_cash_reference, gen_otp, to_minor_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderInfo:
    gateway_order_id: str
    amount_minor: int
    currency: str


@dataclass(frozen=True)
class CommitResult:
    donation: Donation
    applied: bool  # False when another delivery already finished it


def _snapshot_fields(data: dict) -> dict:
    head = data["donation_head"]
    return dict(
        donor_name=data["name"],
        donor_mobile=data.get("mobile") or "N/A",
        donor_email=data.get("email") or "",
        email_opt_in=bool(data.get("email_opt_in")) and bool(data.get("email")),
        address_line=data.get("address_line", ""),
        city=data.get("city", ""),
        state=data.get("state", ""),
        country=data.get("country") or "India",
        pincode=data.get("pincode", ""),
        donor_dob=data["dob"],
        id_type=data.get("id_type") or "PAN",
        id_number=data["id_number"],
        anonymous_display=bool(data.get("anonymous_display")),
        donation_head=head,
        donation_head_name=head.name,
        amount=data["amount"],
    )


def get_donation(donation_id) -> Donation:
    try:
        return Donation.objects.get(pk=donation_id)
    except (Donation.DoesNotExist, ValidationError):
        raise DonationNotFound(str(donation_id))


@transaction.atomic
def create_donation(data: dict, *, user=None, otp_verified=False) -> Donation:
    """Create a PENDING online donation from validated ``DonationForm`` data."""
    collector = resolve_collector(data.get("referral_code"))
    donation = Donation.objects.create(
        **_snapshot_fields(data),
        referral_code=collector.referral_code if collector else "",
        collector_name=collector.display_name if collector else "",
        payment_method=Donation.ONLINE,
        status=Donation.PENDING,
        user=user if user is not None and user.is_authenticated else None,
        otp_verified=otp_verified,
    )
    logger.info("Donation %s created: ₹%s for %s (referral=%s)",
                donation.pk, donation.amount, donation.donation_head_name, donation.referral_code or "-")
    return donation


def issue_order(donation_id) -> OrderInfo:
    """Create the gateway order for a donation, or return the one it already has."""
    with transaction.atomic():
        try:
            donation = Donation.objects.select_for_update().get(pk=donation_id)
        except (Donation.DoesNotExist, ValidationError):
            raise DonationNotFound(str(donation_id))
        if donation.is_terminal:
            raise InvalidState(f"Donation {donation.pk} is already {donation.status}")
        if donation.gateway_order_id:
            return OrderInfo(donation.gateway_order_id, donation.order_amount_minor, donation.currency)

        amount_minor = to_minor_units(donation.amount)
        currency = getattr(settings, "DONATION_CURRENCY", "INR")
        try:
            order = razorpay.create_order(
                amount_minor=amount_minor,
                currency=currency,
                receipt=str(donation.pk),
                notes={"donation_id": str(donation.pk), "cause": donation.donation_head_name},
            )
        except razorpay.GatewayError:
            logger.exception("Gateway order creation failed for donation %s", donation.pk)
            raise

        stored = Donation.objects.filter(pk=donation.pk, gateway_order_id__isnull=True).update(
            gateway_order_id=order["id"], order_amount_minor=amount_minor, currency=currency,
        )
        if not stored:
            # a concurrent call stored its order first; hand out that one
            donation.refresh_from_db(fields=["gateway_order_id", "order_amount_minor", "currency"])
            logger.warning("Donation %s: discarding orphan gateway order %s, keeping %s",
                           donation.pk, order["id"], donation.gateway_order_id)
            return OrderInfo(donation.gateway_order_id, donation.order_amount_minor, donation.currency)
        logger.info("Donation %s: gateway order %s for %s paise", donation.pk, order["id"], amount_minor)
        return OrderInfo(order["id"], amount_minor, currency)


def _issue_receipt(donation: Donation) -> Receipt:
    receipt = Receipt.objects.create(donation=donation)
    receipt.number = format_receipt_number(receipt.pk, donation.confirmed_at)
    receipt.save(update_fields=["number"])
    Donation.objects.filter(pk=donation.pk, receipt_number__isnull=True) \
        .update(receipt_number=receipt.number)
    donation.receipt_number = receipt.number
    return receipt


def _after_success(donation_id):
    # runs after commit; anything failing here must not undo the payment
    from .emails import send_receipt_email
    from .receipts import store_receipt

    receipt = Receipt.objects.select_related("donation").get(donation_id=donation_id)
    try:
        store_receipt(receipt)
    except Exception:
        logger.exception("Could not store receipt %s", receipt.number)
    donation = receipt.donation
    if donation.email_opt_in and donation.donor_email and receipt.emailed_at is None:
        if send_receipt_email(donation):
            Receipt.objects.filter(pk=receipt.pk).update(emailed_at=timezone.now())


def confirm_payment(gateway_order_id: str, gateway_payment_id: str, reported_amount: int) -> CommitResult:
    """Move a PENDING donation to SUCCESS on an authenticated gateway event.

    Raises ``DonationNotFound`` for unknown orders and ``AmountMismatch`` when
    the gateway reports a different amount than the one fixed at order time
    (the donation is failed and flagged before raising).
    """
    donation = Donation.objects.filter(gateway_order_id=gateway_order_id).first()
    if donation is None:
        raise DonationNotFound(gateway_order_id)
    if donation.is_terminal:
        return CommitResult(donation, False)

    if reported_amount != donation.order_amount_minor:
        with transaction.atomic():
            moved = Donation.objects.filter(pk=donation.pk, status=Donation.PENDING) \
                .update(status=Donation.FAILED, gateway_payment_id=gateway_payment_id)
            if moved:
                ReviewFlag.objects.create(
                    donation=donation, reason=ReviewFlag.AMOUNT_MISMATCH,
                    detail={
                        "expected": donation.order_amount_minor,
                        "reported": reported_amount,
                        "gateway_payment_id": gateway_payment_id,
                    },
                )
        if not moved:
            donation.refresh_from_db()
            return CommitResult(donation, False)
        logger.error(
            "AMOUNT MISMATCH donation=%s order=%s expected=%s reported=%s; marked FAILED for review",
            donation.pk, gateway_order_id, donation.order_amount_minor, reported_amount,
        )
        raise AmountMismatch(donation.order_amount_minor, reported_amount)

    now = timezone.now()
    with transaction.atomic():
        moved = Donation.objects.filter(pk=donation.pk, status=Donation.PENDING).update(
            status=Donation.SUCCESS, gateway_payment_id=gateway_payment_id, confirmed_at=now,
        )
        if not moved:
            donation.refresh_from_db()
            return CommitResult(donation, False)
        donation.refresh_from_db()
        if donation.referral_code:
            record_attribution(donation.referral_code, donation.amount)
        _issue_receipt(donation)
        transaction.on_commit(lambda: _after_success(donation.pk))

    logger.info("Donation %s SUCCESS (payment %s, receipt %s)",
                donation.pk, gateway_payment_id, donation.receipt_number)
    return CommitResult(donation, True)


def fail_payment(gateway_order_id: str, gateway_payment_id: str = "") -> CommitResult:
    donation = Donation.objects.filter(gateway_order_id=gateway_order_id).first()
    if donation is None:
        raise DonationNotFound(gateway_order_id)
    moved = Donation.objects.filter(pk=donation.pk, status=Donation.PENDING) \
        .update(status=Donation.FAILED, gateway_payment_id=gateway_payment_id)
    donation.refresh_from_db()
    if moved:
        logger.info("Donation %s FAILED (payment %s)", donation.pk, gateway_payment_id or "-")
    return CommitResult(donation, bool(moved))


def create_cash_donation(data: dict, *, admin) -> Donation:
    """Record cash handed over in person. Born SUCCESS, never sees the gateway."""
    payment_date = data.get("payment_date")
    with transaction.atomic():
        donation = Donation(
            **_snapshot_fields(data),
            payment_method=Donation.CASH,
            status=Donation.SUCCESS,
            gateway_payment_id=gen_cash_reference(),
            added_by=admin,
        )
        now = timezone.now()
        donation.confirmed_at = now
        donation.created_at = payment_date or now
        donation.save(force_insert=True)
        _issue_receipt(donation)
        transaction.on_commit(lambda: _after_success(donation.pk))
    logger.info("[ADMIN AUDIT] CashDonation | Admin: %s | Donation: %s | ₹%s | Receipt: %s",
                admin.pk, donation.pk, donation.amount, donation.receipt_number)
    return donation


def get_status(donation_id) -> str:
    try:
        status = Donation.objects.filter(pk=donation_id).values_list("status", flat=True).first()
    except ValidationError:
        status = None
    if status is None:
        raise DonationNotFound(str(donation_id))
    return status


def get_receipt(donation_id) -> Donation:
    donation = get_donation(donation_id)
    if donation.status != Donation.SUCCESS or not donation.receipt_number:
        raise ReceiptNotReady(str(donation.pk))
    return donation


# --- OTP (mobile verification before checkout) ---

@transaction.atomic
def issue_otp(mobile: str, minutes=None) -> str:
    minutes = minutes or settings.OTP_TTL_MINUTES
    OtpCode.objects.filter(mobile=mobile, consumed=False).update(consumed=True)
    code = gen_otp()
    OtpCode.objects.create(mobile=mobile, code_hash=make_password(code), expires_at=expiry(minutes))
    return code


def verify_otp(mobile: str, code: str) -> tuple[bool, str]:
    otp = OtpCode.objects.filter(mobile=mobile, consumed=False).order_by("-created_at").first()
    if not otp:
        return False, "No active OTP"
    if otp.expires_at < timezone.now():
        return False, "OTP expired"
    # the attempt is counted before checking, and only while under the cap
    counted = OtpCode.objects.filter(pk=otp.pk, attempts__lt=settings.OTP_MAX_ATTEMPTS) \
        .update(attempts=F("attempts") + 1)
    if not counted:
        return False, "Too many attempts"
    if not check_password(code, otp.code_hash):
        return False, "Invalid code"
    if not OtpCode.objects.filter(pk=otp.pk, consumed=False).update(consumed=True):
        return False, "No active OTP"
    return True, ""
