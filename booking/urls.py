from django.urls import path
from . import views

app_name = "booking"

urlpatterns = [
    path("availability/", views.AvailabilityView.as_view(), name="availability"),
    path("book/", views.ServiceCreateView.as_view(), name="book"),
    path("api/mine/", views.MyServiceAPI.as_view(), name="mine_api"),
    path("api/tracking/", views.MyTrackingAPI.as_view(), name="tracking_api"),
    path("api/services/", views.ServiceListView.as_view(), name="service-list"),
    path("api/services/<str:pk>/", views.ServiceDetailView.as_view(), name="service-detail"),
    path("cancel/<str:pk>/", views.ServiceCancelView.as_view(), name="service-cancel"),
    path("waktu/", views.WaktuListView.as_view(), name="waktu-list"),
    path("waktu/<str:pk>/", views.WaktuDetailView.as_view(), name="waktu-detail"),
    path("api/revenue/monthly/", views.MonthlyRevenueView.as_view(), name="revenue-monthly"),
]
