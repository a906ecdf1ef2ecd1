from django.conf import settings
from django.db import models


class Collector(models.Model):
    """A fundraiser whose referral code donors may quote."""

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="collector")
    full_name = models.CharField(max_length=150, blank=True, default="")
    referral_code = models.CharField(max_length=16, unique=True, null=True, blank=True)
    disabled = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self) -> str:
        return f"{self.referral_code or '-'} - {self.display_name}".strip()

    @property
    def display_name(self) -> str:
        return self.full_name or self.user.get_full_name()


class CollectorLedger(models.Model):
    """Running totals of SUCCESS donations attributed to a referral code.

    Only ever changed through ``F()`` increments inside the reconciliation
    transaction (or rebuilt wholesale by ``verify_collector_ledger --fix``).
    """

    referral_code = models.CharField(max_length=16, unique=True)
    collector = models.OneToOneField(
        Collector, null=True, blank=True, on_delete=models.SET_NULL, related_name="ledger",
    )
    total_amount = models.PositiveBigIntegerField(default=0)
    donation_count = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-total_amount",)

    def __str__(self):
        return f"{self.referral_code}: ₹{self.total_amount} ({self.donation_count})"
