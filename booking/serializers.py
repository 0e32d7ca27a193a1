# booking/serializers.py
from rest_framework import serializers

from katalog.serializers import KendalaSerializer
from .models import Service, ServiceStatus, Waktu

JAM_FORMAT = "%H:%M"


class WaktuSerializer(serializers.ModelSerializer):
    jam_mulai = serializers.TimeField(format=JAM_FORMAT, input_formats=[JAM_FORMAT])
    jam_selesai = serializers.TimeField(format=JAM_FORMAT, input_formats=[JAM_FORMAT])

    class Meta:
        model = Waktu
        fields = ["id", "nama_shift", "jam_mulai", "jam_selesai", "is_available", "created_at", "updated_at"]
        # flag hanya diubah lewat booking.services
        read_only_fields = ["is_available", "created_at", "updated_at"]
        # duplikat nama dicek manual (case-insensitive)
        validators = []

    def validate_nama_shift(self, value):
        value = value.strip()
        qs = Waktu.objects.filter(nama_shift__iexact=value)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError(f"Shift dengan nama '{value}' sudah ada")
        return value

    def validate(self, attrs):
        start = attrs.get("jam_mulai", getattr(self.instance, "jam_mulai", None))
        end = attrs.get("jam_selesai", getattr(self.instance, "jam_selesai", None))
        if start is not None and end is not None and start >= end:
            raise serializers.ValidationError({"jam_mulai": "Jam mulai harus lebih awal dari jam selesai"})
        return attrs

    def overlapping(self, attrs):
        """Shift lain yang rentang jamnya beririsan dengan data ini."""
        start = attrs.get("jam_mulai", getattr(self.instance, "jam_mulai", None))
        end = attrs.get("jam_selesai", getattr(self.instance, "jam_selesai", None))
        qs = Waktu.objects.filter(jam_mulai__lt=end, jam_selesai__gt=start)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        return qs.first()


class AvailabilitySerializer(serializers.Serializer):
    waktu = WaktuSerializer(read_only=True)
    free = serializers.BooleanField(read_only=True)


class ServiceCreateSerializer(serializers.Serializer):
    waktu_id = serializers.CharField()
    tanggal_pesan = serializers.CharField()
    handphone_id = serializers.CharField()
    tempat = serializers.CharField(max_length=255)
    kendala_ids = serializers.ListField(child=serializers.CharField(), required=False)
    alamat = serializers.CharField(required=False, allow_blank=True)
    google_maps_link = serializers.CharField(max_length=500, required=False, allow_blank=True)
    status = serializers.CharField(required=False)


class ServiceUpdateSerializer(serializers.Serializer):
    status = serializers.CharField(required=False)
    waktu_id = serializers.CharField(required=False)
    tanggal_pesan = serializers.CharField(required=False)
    handphone_id = serializers.CharField(required=False)
    tempat = serializers.CharField(max_length=255, required=False, allow_blank=True)
    kendala_ids = serializers.ListField(child=serializers.CharField(), required=False)
    alamat = serializers.CharField(required=False, allow_blank=True)
    google_maps_link = serializers.CharField(max_length=500, required=False, allow_blank=True)
    notify = serializers.BooleanField(required=False, default=False)


class CustomerSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.SerializerMethodField()
    email = serializers.EmailField()

    def get_name(self, user):
        return user.get_full_name() or user.username


class ServiceSerializer(serializers.ModelSerializer):
    user = CustomerSerializer(read_only=True)
    handphone = serializers.SerializerMethodField()
    kendala = KendalaSerializer(many=True, read_only=True)
    waktu = WaktuSerializer(read_only=True)
    estimasi_biaya = serializers.SerializerMethodField()

    class Meta:
        model = Service
        fields = [
            "id", "status", "tempat", "alamat", "google_maps_link", "tanggal_pesan",
            "user", "handphone", "kendala", "waktu", "estimasi_biaya",
            "created_at", "updated_at",
        ]

    def get_handphone(self, obj):
        return {"id": str(obj.handphone.id), "brand": obj.handphone.brand, "tipe": obj.handphone.tipe}

    def get_estimasi_biaya(self, obj):
        return obj.estimasi_biaya()


def tracking_steps(service):
    status = service.status
    created = service.created_at.isoformat()
    updated = service.updated_at.isoformat()
    cancelled = status == ServiceStatus.CANCELLED
    after_pending = status in (
        ServiceStatus.IN_PROGRESS, ServiceStatus.MENUNGGU_PEMBAYARAN, ServiceStatus.COMPLETED,
    )
    after_progress = status in (ServiceStatus.MENUNGGU_PEMBAYARAN, ServiceStatus.COMPLETED)
    return [
        {
            "id": 1,
            "title": "Belum dikerjakan",
            "description": "Pesanan Anda sedang dalam antrian",
            "completed": after_pending,
            "timestamp": created,
        },
        {
            "id": 2,
            "title": "Sedang dikerjakan",
            "description": "Teknisi sedang mengerjakan perbaikan perangkat Anda",
            "completed": after_progress,
            "timestamp": updated if after_pending else None,
        },
        {
            "id": 3,
            "title": "Menunggu Pembayaran",
            "description": "Perbaikan sudah selesai, perangkat siap diambil setelah pembayaran",
            "completed": status == ServiceStatus.COMPLETED,
            "timestamp": updated if after_progress else None,
        },
        {
            "id": 4,
            "title": "Pesanan dibatalkan" if cancelled else "Selesai",
            "description": (
                "Pesanan dibatalkan, silakan hubungi admin untuk informasi lebih lanjut"
                if cancelled else "Pembayaran diterima dan perangkat siap diambil"
            ),
            "completed": status in (ServiceStatus.COMPLETED, ServiceStatus.CANCELLED),
            "timestamp": updated if status in (ServiceStatus.COMPLETED, ServiceStatus.CANCELLED) else None,
        },
    ]


class TrackingSerializer(serializers.ModelSerializer):
    service_id = serializers.UUIDField(source="id", read_only=True)
    handphone = serializers.SerializerMethodField()
    issues = serializers.SerializerMethodField()
    waktu = WaktuSerializer(read_only=True)
    steps = serializers.SerializerMethodField()

    class Meta:
        model = Service
        fields = [
            "service_id", "status", "tempat", "alamat", "google_maps_link", "tanggal_pesan",
            "created_at", "updated_at", "handphone", "issues", "waktu", "steps",
        ]

    def get_handphone(self, obj):
        return {"id": str(obj.handphone.id), "brand": obj.handphone.brand, "tipe": obj.handphone.tipe}

    def get_issues(self, obj):
        return [{"id": str(k.id), "topik_masalah": k.topik_masalah} for k in obj.kendala.all()]

    def get_steps(self, obj):
        return tracking_steps(obj)
