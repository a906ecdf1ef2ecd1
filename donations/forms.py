from django import forms
from django.core.exceptions import ValidationError

from .models import DonationHead
from .utils import AADHAAR_RE, PAN_RE, age_on, normalize_email, normalize_mobile

MIN_DONOR_AGE = 18
ID_TYPES = [("PAN", "PAN"), ("AADHAAR", "Aadhaar")]


class DonorSnapshotForm(forms.Form):
    """Donor details exactly as they will appear on the receipt."""

    name = forms.CharField(max_length=128)
    mobile = forms.CharField(max_length=16)
    email = forms.EmailField(required=False)
    email_opt_in = forms.BooleanField(required=False)
    address_line = forms.CharField(max_length=256)
    city = forms.CharField(max_length=64)
    state = forms.CharField(max_length=64, required=False)
    country = forms.CharField(max_length=64, required=False)
    pincode = forms.RegexField(regex=r"^\d{6}$", required=False)
    dob = forms.DateField()
    id_type = forms.ChoiceField(choices=ID_TYPES, required=False)
    id_number = forms.CharField(max_length=16)
    anonymous_display = forms.BooleanField(required=False)
    donation_head = forms.SlugField(max_length=64)
    amount = forms.IntegerField(min_value=1)

    def clean_name(self):
        name = self.cleaned_data["name"].strip()
        if len(name) < 2:
            raise ValidationError("Name must be at least 2 characters")
        return name

    def clean_mobile(self):
        mobile = normalize_mobile(self.cleaned_data.get("mobile"))
        if mobile and not 10 <= len(mobile.lstrip("+")) <= 15:
            raise ValidationError("Invalid mobile number")
        return mobile

    def clean_email(self):
        return normalize_email(self.cleaned_data.get("email")) or ""

    def clean_id_type(self):
        return self.cleaned_data.get("id_type") or "PAN"

    def clean_id_number(self):
        return "".join(self.cleaned_data["id_number"].split()).upper()

    def clean_dob(self):
        dob = self.cleaned_data["dob"]
        if age_on(dob) < MIN_DONOR_AGE:
            raise ValidationError("Donor must be 18 years or older")
        return dob

    def clean_donation_head(self):
        key = self.cleaned_data["donation_head"].strip().lower()
        head = DonationHead.objects.filter(key=key, is_active=True).first()
        if head is None:
            raise ValidationError("Unknown donation head")
        return head

    def clean(self):
        cleaned = super().clean()
        id_type, id_number = cleaned.get("id_type"), cleaned.get("id_number")
        if id_number and id_type == "PAN" and not PAN_RE.match(id_number):
            self.add_error("id_number", "Invalid PAN format (e.g., ABCDE1234F)")
        elif id_number and id_type == "AADHAAR" and not AADHAAR_RE.match(id_number):
            self.add_error("id_number", "Invalid Aadhaar number (12 digits)")
        head = cleaned.get("donation_head")
        amount = cleaned.get("amount")
        if head and amount and head.min_amount and amount < head.min_amount:
            self.add_error("amount", f"Minimum donation for {head.name} is ₹{head.min_amount}")
        return cleaned


class DonationForm(DonorSnapshotForm):
    """Public online donation: mobile is mandatory, referral code optional."""

    referral_code = forms.CharField(max_length=32, required=False)


class CashDonationForm(DonorSnapshotForm):
    """Admin-recorded cash donation. Cash donors may not give a mobile."""

    mobile = forms.CharField(max_length=16, required=False)
    id_type = forms.ChoiceField(choices=[("PAN", "PAN")], required=False)
    payment_date = forms.DateTimeField(required=False)
