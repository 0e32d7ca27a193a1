import logging
from decimal import Decimal, InvalidOperation

from django.db.models import ProtectedError, Q
from rest_framework import permissions, status, views
from rest_framework.response import Response

from .utils import is_uuid
from .models import Handphone, KendalaHandphone, PergantianBarang
from .serializers import (
    HandphoneSerializer,
    KendalaCreateSerializer,
    KendalaSerializer,
    PergantianBarangDetailSerializer,
)

logger = logging.getLogger(__name__)


class IsAdminOrReadOnly(permissions.BasePermission):
    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return bool(request.user and request.user.is_authenticated and request.user.is_staff)


def _not_found(label):
    return Response({"error": "Not found", "detail": f"{label} tidak ditemukan"},
                    status=status.HTTP_404_NOT_FOUND)


class HandphoneListView(views.APIView):
    permission_classes = [IsAdminOrReadOnly]

    def get(self, request):
        qs = Handphone.objects.prefetch_related("kendala__pergantian_barang")
        q = (request.query_params.get("q") or "").strip()
        if q:
            qs = qs.filter(Q(brand__icontains=q) | Q(tipe__icontains=q))
        data = HandphoneSerializer(qs, many=True).data
        return Response({"content": data, "count": len(data)}, status=200)

    def post(self, request):
        serializer = HandphoneSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": "Validation failed", "detail": "Data handphone tidak valid",
                             "fields": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        hp = serializer.save()
        logger.info("Handphone %s ditambahkan", hp)
        return Response({"message": "Handphone created successfully", "data": HandphoneSerializer(hp).data},
                        status=status.HTTP_201_CREATED)


class HandphoneDetailView(views.APIView):
    permission_classes = [IsAdminOrReadOnly]

    def _get(self, pk):
        if not is_uuid(pk):
            return None
        return Handphone.objects.prefetch_related("kendala__pergantian_barang").filter(pk=pk).first()

    def get(self, request, pk):
        hp = self._get(pk)
        if hp is None:
            return _not_found("Handphone")
        return Response({"content": HandphoneSerializer(hp).data}, status=200)

    def delete(self, request, pk):
        hp = self._get(pk)
        if hp is None:
            return _not_found("Handphone")
        name = str(hp)
        try:
            hp.delete()
        except ProtectedError:
            return Response({"error": "Conflict", "detail": f"{name} masih dipakai oleh service"},
                            status=status.HTTP_409_CONFLICT)
        logger.info("Handphone %s dihapus", name)
        return Response({"message": "Handphone deleted successfully"}, status=200)


class KendalaListView(views.APIView):
    """GET ?handphone=<id> mengembalikan kendala milik handphone tersebut."""
    permission_classes = [IsAdminOrReadOnly]

    def get(self, request):
        hp_id = request.query_params.get("handphone")
        if not hp_id:
            return Response({"error": "Validation failed", "detail": "missing handphone"},
                            status=status.HTTP_400_BAD_REQUEST)
        if not is_uuid(hp_id) or not Handphone.objects.filter(pk=hp_id).exists():
            return _not_found("Handphone")
        qs = KendalaHandphone.objects.filter(handphone_id=hp_id).prefetch_related("pergantian_barang")
        data = KendalaSerializer(qs, many=True).data
        return Response({"content": data, "count": len(data)}, status=200)

    def post(self, request):
        serializer = KendalaCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": "Validation failed", "detail": "Data kendala tidak valid",
                             "fields": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        kendala = serializer.save()
        return Response({"message": "Kendala created successfully", "data": KendalaSerializer(kendala).data},
                        status=status.HTTP_201_CREATED)


def _parse_harga(value, name):
    try:
        harga = Decimal(value)
    except InvalidOperation:
        harga = None
    if harga is None or not harga.is_finite():
        raise ValueError(f"bad {name}")
    return harga


def _barang_queryset():
    return PergantianBarang.objects.select_related("kendala__handphone")


def _duplicate_barang(serializer):
    clash = serializer.duplicate(serializer.validated_data)
    if clash is None:
        return None
    return Response({"error": "Conflict", "detail": f"Barang dengan nama '{clash.nama_barang}' sudah ada"},
                    status=status.HTTP_409_CONFLICT)


class PergantianBarangListView(views.APIView):
    """GET ?nama_barang=&min_harga=&max_harga=, diurutkan dari harga termurah."""
    permission_classes = [IsAdminOrReadOnly]

    def get(self, request):
        qs = _barang_queryset()
        nama = (request.query_params.get("nama_barang") or "").strip()
        if nama:
            qs = qs.filter(nama_barang__icontains=nama)
        try:
            for param, lookup in (("min_harga", "harga__gte"), ("max_harga", "harga__lte")):
                raw = request.query_params.get(param)
                if raw:
                    qs = qs.filter(**{lookup: _parse_harga(raw, param)})
        except ValueError as e:
            return Response({"error": "Validation failed", "detail": str(e)},
                            status=status.HTTP_400_BAD_REQUEST)
        data = PergantianBarangDetailSerializer(qs, many=True).data
        return Response({"content": data, "count": len(data)}, status=200)

    def post(self, request):
        serializer = PergantianBarangDetailSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": "Validation failed", "detail": "All fields are required",
                             "fields": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        conflict = _duplicate_barang(serializer)
        if conflict is not None:
            return conflict
        barang = serializer.save()
        logger.info("Sparepart %s ditambahkan", barang)
        return Response({"message": "Pergantian barang created successfully",
                         "data": PergantianBarangDetailSerializer(barang).data},
                        status=status.HTTP_201_CREATED)


class PergantianBarangDetailView(views.APIView):
    permission_classes = [permissions.IsAdminUser]

    def _get(self, pk):
        if not is_uuid(pk):
            return None
        return _barang_queryset().filter(pk=pk).first()

    def get(self, request, pk):
        barang = self._get(pk)
        if barang is None:
            return _not_found("Pergantian barang")
        return Response({"content": PergantianBarangDetailSerializer(barang).data}, status=200)

    def put(self, request, pk):
        barang = self._get(pk)
        if barang is None:
            return _not_found("Pergantian barang")
        serializer = PergantianBarangDetailSerializer(barang, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response({"error": "Validation failed", "detail": "Data sparepart tidak valid",
                             "fields": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        conflict = _duplicate_barang(serializer)
        if conflict is not None:
            return conflict
        barang = serializer.save()
        return Response({"message": "Pergantian barang updated successfully",
                         "data": PergantianBarangDetailSerializer(barang).data}, status=200)

    patch = put

    def delete(self, request, pk):
        barang = self._get(pk)
        if barang is None:
            return _not_found("Pergantian barang")
        summary = {"id": str(barang.pk), "nama_barang": barang.nama_barang}
        barang.delete()
        logger.info("Sparepart %s dihapus", summary["nama_barang"])
        return Response({"message": "Pergantian barang deleted successfully", "data": summary}, status=200)
