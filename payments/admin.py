from django.contrib import admin
from .models import ReviewFlag, WebhookEvent


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ("received_at", "event_type", "gateway_order_id", "gateway_payment_id", "reported_amount", "outcome")
    search_fields = ("event_id", "gateway_order_id", "gateway_payment_id")
    list_filter = ("outcome", "event_type", "received_at")
    readonly_fields = ("event_id", "event_type", "gateway_order_id", "gateway_payment_id",
                       "reported_amount", "outcome", "payload", "received_at")


@admin.register(ReviewFlag)
class ReviewFlagAdmin(admin.ModelAdmin):
    list_display = ("donation", "reason", "resolved", "created_at")
    list_filter = ("reason", "resolved")
    readonly_fields = ("donation", "reason", "detail", "created_at")
