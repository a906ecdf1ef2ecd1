from django.db import models


class WebhookEvent(models.Model):
    """Every authenticated gateway callback, with what we did about it."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    AMOUNT_MISMATCH = "amount_mismatch"
    FAILED = "failed"
    IGNORED = "ignored"
    UNKNOWN_ORDER = "unknown_order"
    OUTCOME_CHOICES = [
        (APPLIED, "Applied"),
        (DUPLICATE, "Duplicate"),
        (AMOUNT_MISMATCH, "Amount mismatch"),
        (FAILED, "Marked failed"),
        (IGNORED, "Ignored"),
        (UNKNOWN_ORDER, "Unknown order"),
    ]

    event_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    event_type = models.CharField(max_length=64, db_index=True)
    gateway_order_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    gateway_payment_id = models.CharField(max_length=64, blank=True, default="")
    reported_amount = models.PositiveBigIntegerField(null=True, blank=True)
    outcome = models.CharField(max_length=24, choices=OUTCOME_CHOICES)
    payload = models.JSONField(default=dict, blank=True)
    received_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-received_at",)

    def __str__(self):
        return f"{self.event_type} {self.gateway_order_id} ({self.outcome})"


class ReviewFlag(models.Model):
    """A donation an operator needs to look at by hand."""

    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    GATEWAY_PAID_NO_WEBHOOK = "GATEWAY_PAID_NO_WEBHOOK"
    REASON_CHOICES = [
        (AMOUNT_MISMATCH, "Webhook amount differs from order"),
        (GATEWAY_PAID_NO_WEBHOOK, "Gateway reports paid, no webhook received"),
    ]

    donation = models.ForeignKey("donations.Donation", on_delete=models.PROTECT, related_name="review_flags")
    reason = models.CharField(max_length=32, choices=REASON_CHOICES, db_index=True)
    detail = models.JSONField(default=dict, blank=True)
    resolved = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"{self.reason} {self.donation_id}"
