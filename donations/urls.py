from django.urls import path

from . import views, webhook

app_name = "donations"
urlpatterns = [
    path("donation-heads", views.donation_heads, name="donation_heads"),
    path("donations", views.create, name="create"),
    path("donations/order", views.create_order, name="create_order"),
    path("donations/mine", views.my_donations, name="my_donations"),
    path("donations/<uuid:donation_id>/status", views.donation_status, name="status"),
    path("donations/<uuid:donation_id>/receipt", views.donation_receipt, name="receipt"),

    # mobile verification
    path("donations/send-otp", views.send_otp, name="send_otp"),
    path("donations/verify-otp", views.check_otp, name="verify_otp"),

    # webhook lives here
    path("webhooks/razorpay", webhook.razorpay_webhook, name="razorpay_webhook"),

    path("admin/donations", views.admin_donations, name="admin_donations"),
    path("admin/donations/cash", views.admin_cash_donation, name="admin_cash_donation"),
]
