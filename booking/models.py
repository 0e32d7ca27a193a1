import uuid
from django.conf import settings
from django.db import models
from django.db.models import Q
from django.db.models.functions import Lower

from katalog.models import Handphone, KendalaHandphone


class Waktu(models.Model):
    """
    Shift yang bisa dipesan pelanggan, misalnya 'Shift Pagi' 09:00-12:00.

    `is_available` hanya cache kasar per shift (bukan per tanggal) dan hanya
    boleh diubah oleh booking.services. Ketersediaan per tanggal selalu dihitung
    dari tabel Service.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    nama_shift = models.CharField(max_length=100)
    jam_mulai = models.TimeField()
    jam_selesai = models.TimeField()
    is_available = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['jam_mulai']
        verbose_name = "Waktu Shift"
        verbose_name_plural = "Waktu Shift"
        constraints = [
            models.UniqueConstraint(Lower("nama_shift"), name="uniq_nama_shift"),
        ]

    def __str__(self):
        return f"{self.nama_shift} ({self.jam_range})"

    @property
    def jam_range(self):
        return f"{self.jam_mulai:%H:%M} - {self.jam_selesai:%H:%M}"


class ServiceStatus(models.TextChoices):
    PENDING = "PENDING", "Menunggu"
    IN_PROGRESS = "IN_PROGRESS", "Sedang Dikerjakan"
    MENUNGGU_PEMBAYARAN = "MENUNGGU_PEMBAYARAN", "Menunggu Pembayaran"
    COMPLETED = "COMPLETED", "Selesai"
    CANCELLED = "CANCELLED", "Dibatalkan"


STATUS_TRANSITIONS = {
    ServiceStatus.PENDING: {
        ServiceStatus.IN_PROGRESS,
        ServiceStatus.COMPLETED,
        ServiceStatus.CANCELLED,
    },
    ServiceStatus.IN_PROGRESS: {
        ServiceStatus.PENDING,
        ServiceStatus.MENUNGGU_PEMBAYARAN,
        ServiceStatus.COMPLETED,
        ServiceStatus.CANCELLED,
    },
    ServiceStatus.MENUNGGU_PEMBAYARAN: {
        ServiceStatus.COMPLETED,
    },
    ServiceStatus.COMPLETED: set(),
    ServiceStatus.CANCELLED: set(),
}

INITIAL_STATUSES = (ServiceStatus.PENDING, ServiceStatus.IN_PROGRESS)


def can_transition(old_status, new_status) -> bool:
    if old_status == new_status:
        return True
    return new_status in STATUS_TRANSITIONS.get(old_status, set())


def is_active(status) -> bool:
    return status != ServiceStatus.CANCELLED


class Service(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="services")
    handphone = models.ForeignKey(Handphone, on_delete=models.PROTECT, related_name="services")
    kendala = models.ManyToManyField(KendalaHandphone, blank=True, related_name="services")
    waktu = models.ForeignKey(Waktu, on_delete=models.PROTECT, related_name="services")
    tanggal_pesan = models.DateField(db_index=True)
    status = models.CharField(max_length=24, choices=ServiceStatus.choices, default=ServiceStatus.PENDING)
    tempat = models.CharField(max_length=255)
    alamat = models.TextField(blank=True)
    google_maps_link = models.URLField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            # satu shift hanya boleh dipakai satu service aktif per tanggal
            models.UniqueConstraint(
                fields=["waktu", "tanggal_pesan"],
                condition=~Q(status=ServiceStatus.CANCELLED),
                name="uniq_service_aktif_per_shift",
            ),
        ]

    def __str__(self):
        return f"{self.handphone} - {self.waktu.nama_shift} {self.tanggal_pesan:%Y-%m-%d} [{self.status}]"

    @property
    def is_active(self):
        return is_active(self.status)

    def customer_name(self):
        return self.user.get_full_name() or self.user.username

    def total_harga_sparepart(self):
        total = 0
        for k in self.kendala.all():
            for barang in k.pergantian_barang.all():
                total += int(barang.harga)
        return total

    def estimasi_biaya(self):
        return self.total_harga_sparepart() + settings.BOOKING_SERVICE_FEE
