from django.contrib import admin, messages

from .models import Collector, CollectorLedger
from .services import assign_referral_code


@admin.register(Collector)
class CollectorAdmin(admin.ModelAdmin):
    list_display = ("referral_code", "display_name", "user", "disabled", "created_at")
    list_filter = ("disabled",)
    search_fields = ("referral_code", "full_name", "user__username", "user__email")
    readonly_fields = ("referral_code", "created_at", "updated_at")
    actions = ["assign_codes"]

    @admin.action(description="Assign referral codes")
    def assign_codes(self, request, queryset):
        for collector in queryset:
            assign_referral_code(collector)
        self.message_user(request, f"{queryset.count()} collector(s) have referral codes", messages.SUCCESS)


@admin.register(CollectorLedger)
class CollectorLedgerAdmin(admin.ModelAdmin):
    list_display = ("referral_code", "collector", "total_amount", "donation_count", "updated_at")
    search_fields = ("referral_code",)
    readonly_fields = ("referral_code", "collector", "total_amount", "donation_count", "updated_at")

    def has_add_permission(self, request):
        return False
