from django.contrib import admin
from .models import DonationHead, Donation, Receipt, OtpCode


@admin.register(DonationHead)
class DonationHeadAdmin(admin.ModelAdmin):
    list_display = ("key", "name", "min_amount", "display_order", "is_active")
    list_filter = ("is_active",)
    search_fields = ("key", "name")
    prepopulated_fields = {"key": ("name",)}


@admin.register(Donation)
class DonationAdmin(admin.ModelAdmin):
    list_display = ("id", "donor_name", "amount", "donation_head_name", "payment_method", "status",
                    "referral_code", "receipt_number", "created_at")
    list_filter = ("status", "payment_method", "created_at")
    search_fields = ("id", "donor_name", "donor_mobile", "donor_email", "gateway_order_id",
                     "gateway_payment_id", "receipt_number", "referral_code")
    # status only moves through the webhook; nothing here is editable
    readonly_fields = [f.name for f in Donation._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Receipt)
class ReceiptAdmin(admin.ModelAdmin):
    list_display = ("number", "donation", "issued_at", "emailed_at")
    search_fields = ("number",)
    readonly_fields = ("donation", "number", "file_path", "issued_at", "emailed_at")

    def has_delete_permission(self, request, obj=None):
        return False


admin.site.register(OtpCode)
