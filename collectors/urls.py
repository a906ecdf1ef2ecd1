from django.urls import path

from . import views

app_name = "collectors"
urlpatterns = [
    path("referral/validate/<str:code>", views.validate_referral, name="validate_referral"),
    path("leaderboard/top", views.leaderboard_top, name="leaderboard_top"),
    path("collectors/me", views.my_dashboard, name="me"),
    path("admin/collectors/summary", views.admin_summary, name="admin_summary"),
    path("admin/collectors/<int:collector_id>/toggle", views.admin_toggle, name="admin_toggle"),
]
