import json
import logging

from django.conf import settings
from django.http import HttpResponse, JsonResponse
from django.utils.dateparse import parse_date
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from payments.integrations.razorpay import GatewayError
from .auth import admin_token_required, bearer_user, token_required
from .exceptions import DonationNotFound, InvalidState, ReceiptNotReady
from .forms import CashDonationForm, DonationForm
from .models import Donation, DonationHead, Receipt
from .receipts import receipt_filename, receipt_url, render_receipt
from .services import (
    create_cash_donation, create_donation, get_receipt, get_status, issue_order,
    issue_otp, verify_otp,
)
from .sms import SmsError, send_otp_sms
from .throttle import body_mobile, rate_limited
from .utils import normalize_mobile

logger = logging.getLogger(__name__)

VERIFIED_MOBILE_SESSION_KEY = "verified_mobile"
DISPLAY = {Donation.SUCCESS: "confirmed", Donation.FAILED: "failed"}
DONATION_LIMIT_MESSAGE = "Too many donation attempts. Please wait a moment."


def _json_body(request):
    try: return json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError): return None


def _bad_request(message, errors=None):
    body = {"message": message}
    if errors:
        body["errors"] = errors
    return JsonResponse(body, status=400)


def _form_errors(form):
    return {field: [str(e) for e in errs] for field, errs in form.errors.items()}


@require_GET
def donation_heads(request):
    heads = DonationHead.objects.filter(is_active=True)
    return JsonResponse({
        "data": [
            {
                "key": h.key,
                "name": h.name,
                "description": h.description,
                "minAmount": h.min_amount,
                "presetAmounts": h.preset_amounts,
            }
            for h in heads
        ]
    })


# --- creation + order ---

@csrf_exempt
@require_POST
@rate_limited("donation_create", message=DONATION_LIMIT_MESSAGE)
def create(request):
    body = _json_body(request)
    if not isinstance(body, dict):
        return _bad_request("Invalid JSON body")
    form = DonationForm(body)
    if not form.is_valid():
        return _bad_request("Invalid donation data", _form_errors(form))

    data = form.cleaned_data
    verified = request.session.get(VERIFIED_MOBILE_SESSION_KEY)
    donation = create_donation(
        data,
        user=bearer_user(request),
        otp_verified=bool(verified) and verified == data["mobile"],
    )
    return JsonResponse({
        "message": "Donation initiated",
        "donationId": str(donation.pk),
        "status": donation.status,
        "collectorName": donation.collector_name or None,
    }, status=201)


@csrf_exempt
@require_POST
@rate_limited("donation_create", message=DONATION_LIMIT_MESSAGE)
def create_order(request):
    body = _json_body(request)
    donation_id = (body or {}).get("donationId") if isinstance(body, dict) else None
    if not donation_id:
        return _bad_request("Donation ID required")
    try:
        order = issue_order(donation_id)
    except DonationNotFound:
        return JsonResponse({"message": "Donation not found"}, status=404)
    except InvalidState:
        return JsonResponse({"message": "Donation is no longer payable"}, status=409)
    except GatewayError:
        return JsonResponse({"message": "Failed to create payment order"}, status=502)
    return JsonResponse({
        "gatewayOrderId": order.gateway_order_id,
        "amount": order.amount_minor,
        "currency": order.currency,
        "keyId": settings.RAZORPAY_KEY_ID,
    })


# --- polling + receipt (donation id acts as the access token) ---

@require_GET
def donation_status(request, donation_id):
    try:
        status = get_status(donation_id)
    except DonationNotFound:
        return JsonResponse({"status": "NOT_FOUND"}, status=404)
    return JsonResponse({"id": str(donation_id), "status": status, "display": DISPLAY.get(status, "processing")})


@require_GET
def donation_receipt(request, donation_id):
    try:
        donation = get_receipt(donation_id)
    except DonationNotFound:
        return JsonResponse({"message": "Donation not found"}, status=404)
    except ReceiptNotReady:
        return JsonResponse({"message": "Receipt not available for this donation", "code": "ReceiptNotReady"}, status=409)
    resp = HttpResponse(render_receipt(donation), content_type="application/pdf")
    resp["Content-Disposition"] = f'attachment; filename="{receipt_filename(donation)}"'
    return resp


@require_GET
@token_required
def my_donations(request):
    qs = Donation.objects.filter(user=request.user).order_by("-created_at")
    receipts = {r.donation_id: r for r in Receipt.objects.filter(donation__user=request.user)}
    return JsonResponse({
        "data": [
            {
                "id": str(d.pk),
                "cause": d.donation_head_name,
                "amount": d.amount,
                "status": d.status,
                "receiptNumber": d.receipt_number,
                "receiptUrl": receipt_url(receipts.get(d.pk)),
                "createdAt": d.created_at.isoformat(),
            }
            for d in qs
        ]
    })


# --- OTP (mobile verification) ---

@csrf_exempt
@require_POST
@rate_limited("otp_ip", message="Too many OTP requests. Try again later.")
@rate_limited("otp_mobile", key=body_mobile, message="Too many OTP requests for this mobile number. Try again later.")
def send_otp(request):
    body = _json_body(request) or {}
    mobile = normalize_mobile(body.get("mobile") if isinstance(body, dict) else "")
    if not 10 <= len(mobile.lstrip("+")) <= 15:
        return _bad_request("Valid mobile number required")
    code = issue_otp(mobile)
    try:
        send_otp_sms(mobile, code)
    except SmsError:
        logger.exception("Could not send OTP to %s", mobile)
        return JsonResponse({"message": "Could not send OTP, please retry"}, status=502)
    return JsonResponse({"message": "OTP sent"})


@csrf_exempt
@require_POST
def check_otp(request):
    body = _json_body(request) or {}
    if not isinstance(body, dict):
        body = {}
    mobile = normalize_mobile(body.get("mobile"))
    code = str(body.get("otp") or "").strip()
    if not mobile or not code:
        return _bad_request("Mobile and OTP required")
    ok, reason = verify_otp(mobile, code)
    if not ok:
        return _bad_request(reason)
    request.session[VERIFIED_MOBILE_SESSION_KEY] = mobile
    return JsonResponse({"message": "Mobile verified", "verified": True})


# --- admin ---

@csrf_exempt
@require_POST
@admin_token_required
def admin_cash_donation(request):
    body = _json_body(request)
    if not isinstance(body, dict):
        return _bad_request("Invalid JSON body")
    form = CashDonationForm(body)
    if not form.is_valid():
        return _bad_request("Invalid donation data", _form_errors(form))
    donation = create_cash_donation(form.cleaned_data, admin=request.user)
    return JsonResponse({
        "message": "CASH donation recorded successfully",
        "donationId": str(donation.pk),
        "receiptNumber": donation.receipt_number,
        "transactionRef": donation.gateway_payment_id,
        "paymentMethod": donation.payment_method,
        "status": donation.status,
    }, status=201)


@require_GET
@admin_token_required
def admin_donations(request):
    qs = Donation.objects.all()
    status = request.GET.get("status")
    method = request.GET.get("payment_method")
    start = parse_date(request.GET.get("start_date") or "")
    end = parse_date(request.GET.get("end_date") or "")
    if status:
        qs = qs.filter(status=status)
    if method:
        qs = qs.filter(payment_method__in=method.split(","))
    if start:
        qs = qs.filter(created_at__date__gte=start)
    if end:
        qs = qs.filter(created_at__date__lte=end)

    # Very light pagination
    try:
        page = max(int(request.GET.get("page", "1")), 1)
    except ValueError:
        page = 1
    page_size = 50
    start_idx = (page - 1) * page_size
    items = list(qs[start_idx:start_idx + page_size + 1])
    return JsonResponse({
        "page": page,
        "hasNext": len(items) > page_size,
        "data": [
            {
                "id": str(d.pk),
                "donorName": d.donor_name,
                "mobile": d.donor_mobile,
                "cause": d.donation_head_name,
                "amount": d.amount,
                "paymentMethod": d.payment_method,
                "status": d.status,
                "referralCode": d.referral_code or None,
                "receiptNumber": d.receipt_number,
                "gatewayOrderId": d.gateway_order_id,
                "createdAt": d.created_at.isoformat(),
                "confirmedAt": d.confirmed_at.isoformat() if d.confirmed_at else None,
            }
            for d in items[:page_size]
        ],
    })
