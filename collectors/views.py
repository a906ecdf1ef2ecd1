import json

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from donations.auth import admin_token_required, token_required
from donations.throttle import rate_limited
from .models import Collector
from .services import (
    collector_summary, get_collector_dashboard, get_top_collectors, toggle_collector,
    validate_referral_code,
)


@require_GET
@rate_limited("public_api")
def validate_referral(request, code):
    # always 200; the body says whether the code is usable
    return JsonResponse(validate_referral_code(code))


@require_GET
def leaderboard_top(request):
    try:
        limit = min(max(int(request.GET.get("limit", "5")), 1), 50)
    except ValueError:
        limit = 5
    return JsonResponse({"data": get_top_collectors(limit)})


@require_GET
@token_required
def my_dashboard(request):
    collector = Collector.objects.select_related("user").filter(user=request.user).first()
    if collector is None:
        return JsonResponse({"message": "Not a collector"}, status=403)
    return JsonResponse(get_collector_dashboard(collector))


@csrf_exempt
@require_POST
@admin_token_required
def admin_toggle(request, collector_id):
    collector = Collector.objects.select_related("user").filter(pk=collector_id).first()
    if collector is None:
        return JsonResponse({"message": "Collector not found"}, status=404)
    try:
        body = json.loads(request.body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError):
        body = {}
    reason = body.get("reason", "") if isinstance(body, dict) else ""
    collector = toggle_collector(collector, admin=request.user, reason=reason)
    return JsonResponse({
        "id": collector.pk,
        "referralCode": collector.referral_code,
        "disabled": collector.disabled,
    })


@require_GET
@admin_token_required
def admin_summary(request):
    return JsonResponse(collector_summary())
