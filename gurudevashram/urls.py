from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("donations.urls")),
    path("api/", include("collectors.urls")),
]

handler404 = "gurudevashram.views.error_404_view"
handler500 = "gurudevashram.views.error_500_view"
