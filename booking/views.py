import logging

from django.utils import timezone
from rest_framework import permissions, status, views
from rest_framework.response import Response

from . import errors, reports, services
from .models import Service, ServiceStatus, Waktu
from .serializers import (
    AvailabilitySerializer,
    ServiceCreateSerializer,
    ServiceSerializer,
    ServiceUpdateSerializer,
    TrackingSerializer,
    WaktuSerializer,
)

logger = logging.getLogger(__name__)


def _error(exc: errors.BookingError):
    return Response(exc.as_dict(), status=exc.status_code)


def _invalid(serializer, message="All fields are required"):
    return Response(
        {"error": errors.ValidationError.label, "detail": message, "fields": serializer.errors},
        status=status.HTTP_400_BAD_REQUEST,
    )


def _service_queryset():
    return (
        Service.objects
        .select_related("user", "handphone", "waktu")
        .prefetch_related("kendala__pergantian_barang")
    )


def _is_admin(request) -> bool:
    user = getattr(request, "user", None)
    return bool(user is not None and user.is_authenticated and user.is_staff)


class IsAdminOrReadOnly(permissions.BasePermission):
    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return _is_admin(request)


class AvailabilityView(views.APIView):
    """
    GET ?date=YYYY-MM-DD[&waktu=<id>]

    Ketersediaan dihitung dari tabel Service per tanggal, bukan dari flag
    Waktu.is_available.
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        date_str = request.query_params.get("date")
        waktu_id = request.query_params.get("waktu")
        if not date_str:
            return Response({"error": errors.ValidationError.label, "detail": "missing date"},
                            status=status.HTTP_400_BAD_REQUEST)
        try:
            if waktu_id:
                free = services.is_slot_free(waktu_id, date_str)
                return Response({"waktu": waktu_id, "date": date_str, "free": free}, status=200)
            rows = services.slot_availability(date_str)
        except errors.BookingError as e:
            return _error(e)
        return Response(AvailabilitySerializer(rows, many=True).data, status=200)


class ServiceCreateView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = ServiceCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)
        try:
            service = services.create_service(request.user, serializer.validated_data)
        except errors.BookingError as e:
            return _error(e)
        service = _service_queryset().get(pk=service.pk)
        return Response(
            {"message": "Service created successfully", "data": ServiceSerializer(service).data},
            status=status.HTTP_201_CREATED,
        )


class MyServiceAPI(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        qs = _service_queryset().filter(user=request.user).order_by("-created_at")
        data = ServiceSerializer(qs, many=True).data
        return Response({"content": data, "count": len(data)}, status=200)


class MyTrackingAPI(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        qs = _service_queryset().filter(user=request.user).order_by("-created_at")
        data = TrackingSerializer(qs, many=True).data
        return Response({"content": data, "count": len(data)}, status=200)


class ServiceListView(views.APIView):
    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        qs = _service_queryset()
        status_filter = request.query_params.get("status")
        user_filter = request.query_params.get("user")
        tempat = request.query_params.get("tempat")
        if status_filter:
            if status_filter not in ServiceStatus.values:
                return Response({"error": errors.ValidationError.label, "detail": "bad status",
                                 "fields": {"status": ["Status tidak valid"]}},
                                status=status.HTTP_400_BAD_REQUEST)
            qs = qs.filter(status=status_filter)
        if user_filter:
            if not user_filter.isdecimal():
                return Response({"error": errors.ValidationError.label, "detail": "bad user",
                                 "fields": {"user": ["ID user harus berupa angka"]}},
                                status=status.HTTP_400_BAD_REQUEST)
            qs = qs.filter(user_id=int(user_filter))
        if tempat:
            qs = qs.filter(tempat__icontains=tempat)
        data = ServiceSerializer(qs, many=True).data
        return Response({"content": data, "count": len(data)}, status=200)


class ServiceDetailView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        try:
            service = services._get_or_404(_service_queryset(), pk, "Service")
        except errors.NotFound as e:
            return _error(e)
        if not _is_admin(request) and service.user_id != request.user.pk:
            return Response({"error": "Forbidden", "detail": "You are not authorized to view this service"},
                            status=status.HTTP_403_FORBIDDEN)
        return Response({"content": ServiceSerializer(service).data}, status=200)

    def put(self, request, pk):
        if not _is_admin(request):
            return Response({"error": "Forbidden", "detail": "Only admin can update services"},
                            status=status.HTTP_403_FORBIDDEN)
        serializer = ServiceUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer, "Invalid update payload")
        data = dict(serializer.validated_data)
        notify = data.pop("notify", False)
        try:
            service = services.update_service(pk, data, notify=notify)
        except errors.BookingError as e:
            return _error(e)
        service = _service_queryset().get(pk=service.pk)
        return Response({"message": "Service updated successfully", "data": ServiceSerializer(service).data},
                        status=200)

    patch = put

    def delete(self, request, pk):
        if not _is_admin(request):
            return Response({"error": "Forbidden", "detail": "Only admin can delete services"},
                            status=status.HTTP_403_FORBIDDEN)
        try:
            summary = services.delete_service(pk)
        except errors.BookingError as e:
            return _error(e)
        return Response({"message": "Service deleted successfully", "data": summary}, status=200)


class ServiceCancelView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        try:
            service = services.cancel_service(pk, request.user)
        except errors.BookingError as e:
            return _error(e)
        return Response({"status": service.status}, status=200)


class WaktuListView(views.APIView):
    permission_classes = [IsAdminOrReadOnly]

    def get(self, request):
        qs = Waktu.objects.all()
        nama = (request.query_params.get("nama_shift") or "").strip()
        if nama:
            qs = qs.filter(nama_shift__icontains=nama)
        data = WaktuSerializer(qs, many=True).data
        return Response({"content": data, "count": len(data)}, status=200)

    def post(self, request):
        serializer = WaktuSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer, "Invalid shift data")
        clash = serializer.overlapping(serializer.validated_data)
        if clash is not None:
            return Response(
                {"error": errors.Conflict.label,
                 "detail": f"Jam shift overlap dengan shift '{clash.nama_shift}' ({clash.jam_range})"},
                status=status.HTTP_409_CONFLICT,
            )
        waktu = serializer.save()
        logger.info("Shift %s dibuat", waktu.nama_shift)
        return Response({"message": "Waktu shift created successfully", "data": WaktuSerializer(waktu).data},
                        status=status.HTTP_201_CREATED)


class WaktuDetailView(views.APIView):
    permission_classes = [IsAdminOrReadOnly]

    def get(self, request, pk):
        try:
            waktu = services._get_or_404(Waktu.objects.all(), pk, "Waktu")
        except errors.NotFound as e:
            return _error(e)
        return Response({"content": WaktuSerializer(waktu).data}, status=200)

    def put(self, request, pk):
        try:
            waktu = services._get_or_404(Waktu.objects.all(), pk, "Waktu")
        except errors.NotFound as e:
            return _error(e)
        serializer = WaktuSerializer(waktu, data=request.data, partial=True)
        if not serializer.is_valid():
            return _invalid(serializer, "Invalid shift data")
        clash = serializer.overlapping(serializer.validated_data)
        if clash is not None:
            return Response(
                {"error": errors.Conflict.label,
                 "detail": f"Jam shift overlap dengan shift '{clash.nama_shift}' ({clash.jam_range})"},
                status=status.HTTP_409_CONFLICT,
            )
        waktu = serializer.save()
        return Response({"message": "Waktu updated successfully", "data": WaktuSerializer(waktu).data},
                        status=200)

    patch = put

    def delete(self, request, pk):
        try:
            summary = services.delete_waktu(pk)
        except errors.BookingError as e:
            return _error(e)
        return Response({"message": "Waktu deleted successfully", "data": summary}, status=200)


class MonthlyRevenueView(views.APIView):
    """GET ?year=YYYY (default tahun berjalan), khusus admin."""
    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        raw = request.query_params.get("year")
        if raw:
            try:
                year = int(raw)
            except ValueError:
                year = None
            if year is None or not 1 <= year <= 9999:
                return Response({"error": errors.ValidationError.label, "detail": "bad year",
                                 "fields": {"year": ["Tahun tidak valid"]}},
                                status=status.HTTP_400_BAD_REQUEST)
        else:
            year = timezone.localdate().year
        return Response(reports.monthly_revenue(year), status=200)
