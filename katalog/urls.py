from django.urls import path
from . import views

app_name = "katalog"

urlpatterns = [
    path("handphone/", views.HandphoneListView.as_view(), name="handphone-list"),
    path("handphone/<str:pk>/", views.HandphoneDetailView.as_view(), name="handphone-detail"),
    path("kendala/", views.KendalaListView.as_view(), name="kendala-list"),
    path("pergantian-barang/", views.PergantianBarangListView.as_view(), name="barang-list"),
    path("pergantian-barang/<str:pk>/", views.PergantianBarangDetailView.as_view(), name="barang-detail"),
]
