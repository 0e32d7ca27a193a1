import uuid
from django.db import models
from django.db.models.functions import Lower


class Handphone(models.Model):
    """
    Model handphone yang bisa diservis, misalnya 'Samsung Galaxy A54 5G'.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    brand = models.CharField(max_length=50)
    tipe = models.CharField(max_length=100)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['brand', 'tipe']
        verbose_name = "Handphone"
        verbose_name_plural = "Handphone"
        constraints = [
            models.UniqueConstraint(Lower("brand"), Lower("tipe"), name="uniq_handphone_brand_tipe"),
        ]

    def __str__(self):
        return f"{self.brand} {self.tipe}"


class KendalaHandphone(models.Model):
    """
    Kendala (jenis kerusakan) yang bisa dipilih pelanggan untuk satu model handphone.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    handphone = models.ForeignKey(Handphone, on_delete=models.CASCADE, related_name="kendala")
    topik_masalah = models.CharField(max_length=150)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['topik_masalah']
        verbose_name = "Kendala Handphone"
        verbose_name_plural = "Kendala Handphone"
        constraints = [
            models.UniqueConstraint("handphone", Lower("topik_masalah"), name="uniq_kendala_per_handphone"),
        ]

    def __str__(self):
        return f"{self.topik_masalah} ({self.handphone})"


class PergantianBarang(models.Model):
    """
    Sparepart pengganti beserta harganya (Rupiah). Satu kendala bisa butuh
    beberapa sparepart; sparepart yang belum dikaitkan ke kendala boleh ada.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    kendala = models.ForeignKey(
        KendalaHandphone,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="pergantian_barang",
    )
    nama_barang = models.CharField(max_length=255)
    harga = models.DecimalField(max_digits=12, decimal_places=0, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['harga', '-created_at']
        verbose_name = "Pergantian Barang"
        verbose_name_plural = "Pergantian Barang"

    def __str__(self):
        return f"{self.nama_barang} - Rp{int(self.harga):,}"
