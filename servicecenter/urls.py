from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path("booking/", include(("booking.urls", "booking"), namespace="booking")),
    path("katalog/", include(("katalog.urls", "katalog"), namespace="katalog")),
]
