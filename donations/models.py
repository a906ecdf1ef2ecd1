import uuid

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import DEFERRED
from django.utils import timezone

from .exceptions import ImmutableFieldError


class DonationHead(models.Model):
    """A cause donors can give to (e.g. "annadan", "education")."""

    key = models.SlugField(max_length=64, unique=True)
    name = models.CharField(max_length=128)
    description = models.CharField(max_length=500, blank=True, default="")
    min_amount = models.PositiveIntegerField(null=True, blank=True)
    preset_amounts = models.JSONField(default=list, blank=True)
    display_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("display_order", "name")

    def __str__(self):
        return self.name


class Donation(models.Model):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    STATUS_CHOICES = [
        (PENDING, "PENDING"),
        (SUCCESS, "SUCCESS"),
        (FAILED, "FAILED"),
    ]
    TERMINAL_STATUSES = (SUCCESS, FAILED)

    ONLINE = "ONLINE"
    CASH = "CASH"
    METHOD_CHOICES = [(ONLINE, "Online"), (CASH, "Cash")]

    # captured at creation and never changed afterwards
    WRITE_ONCE_FIELDS = (
        "donor_name", "donor_mobile", "donor_email", "email_opt_in",
        "address_line", "city", "state", "country", "pincode",
        "donor_dob", "id_type", "id_number", "anonymous_display",
        "donation_head_id", "donation_head_name", "amount",
        "referral_code", "collector_name", "payment_method",
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # --- donor snapshot ---
    donor_name = models.CharField(max_length=128)
    donor_mobile = models.CharField(max_length=16)
    donor_email = models.EmailField(blank=True, default="")
    email_opt_in = models.BooleanField(default=False)
    address_line = models.CharField(max_length=256, blank=True, default="")
    city = models.CharField(max_length=64, blank=True, default="")
    state = models.CharField(max_length=64, blank=True, default="")
    country = models.CharField(max_length=64, blank=True, default="India")
    pincode = models.CharField(max_length=10, blank=True, default="")
    donor_dob = models.DateField()
    id_type = models.CharField(max_length=8, default="PAN")
    id_number = models.CharField(max_length=16)
    anonymous_display = models.BooleanField(default=False)

    # --- what was donated ---
    donation_head = models.ForeignKey(DonationHead, on_delete=models.PROTECT, related_name="donations")
    donation_head_name = models.CharField(max_length=128)
    amount = models.PositiveIntegerField(validators=[MinValueValidator(1)])  # rupees
    referral_code = models.CharField(max_length=16, blank=True, default="", db_index=True)
    collector_name = models.CharField(max_length=128, blank=True, default="")
    payment_method = models.CharField(max_length=8, choices=METHOD_CHOICES, default=ONLINE, db_index=True)

    # --- gateway / lifecycle ---
    gateway_order_id = models.CharField(max_length=64, null=True, blank=True, unique=True)
    order_amount_minor = models.PositiveBigIntegerField(null=True, blank=True)  # paise, fixed at order time
    currency = models.CharField(max_length=3, blank=True, default="")
    gateway_payment_id = models.CharField(max_length=64, blank=True, default="")
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, db_index=True, default=PENDING)
    receipt_number = models.CharField(max_length=32, null=True, blank=True, unique=True)

    # --- context ---
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.PROTECT, related_name="donations",
    )
    added_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.PROTECT, related_name="recorded_donations",
    )
    otp_verified = models.BooleanField(default=False)

    created_at = models.DateTimeField(db_index=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["referral_code", "status"], name="donations_d_referra_5c1f0e_idx"),
            models.Index(fields=["user", "created_at"], name="donations_d_user_id_8a2b4d_idx"),
        ]

    def __str__(self):
        return f"{self.id} {self.status} ₹{self.amount}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_values = dict(zip(field_names, values))
        return instance

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def display_state(self) -> str:
        return {self.SUCCESS: "confirmed", self.FAILED: "failed"}.get(self.status, "processing")

    @property
    def display_name(self) -> str:
        return "Anonymous" if self.anonymous_display else self.donor_name

    @property
    def full_address(self) -> str:
        parts = [self.address_line, self.city, self.state, self.country, self.pincode]
        return ", ".join(p for p in parts if p)

    def save(self, *args, **kwargs):
        if self.created_at is None:
            self.created_at = timezone.now()
        loaded = getattr(self, "_loaded_values", None)
        if loaded and not self._state.adding:
            changed = [
                f for f in self.WRITE_ONCE_FIELDS
                if loaded.get(f, DEFERRED) is not DEFERRED and getattr(self, f) != loaded[f]
            ]
            if changed:
                raise ImmutableFieldError(f"write-once fields changed: {', '.join(changed)}")
        super().save(*args, **kwargs)
        # what is now stored is the baseline for the next save of this instance
        deferred = self.get_deferred_fields()
        self._loaded_values = {
            **(loaded or {}),
            **{f: getattr(self, f) for f in self.WRITE_ONCE_FIELDS if f not in deferred},
        }


class Receipt(models.Model):
    donation = models.OneToOneField(Donation, on_delete=models.PROTECT, related_name="receipt")
    number = models.CharField(max_length=32, null=True, unique=True)
    file_path = models.CharField(max_length=256, blank=True, default="")
    issued_at = models.DateTimeField(auto_now_add=True)
    emailed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return self.number or f"Receipt#{self.pk}"


class OtpCode(models.Model):
    """SMS OTP used to confirm the donor's mobile before checkout."""

    mobile = models.CharField(max_length=16, db_index=True)
    code_hash = models.CharField(max_length=128)
    expires_at = models.DateTimeField()
    consumed = models.BooleanField(default=False)
    attempts = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
