from rest_framework import serializers
from .models import Handphone, KendalaHandphone, PergantianBarang


class PergantianBarangSerializer(serializers.ModelSerializer):
    class Meta:
        model = PergantianBarang
        fields = ["id", "nama_barang", "harga"]


class KendalaSerializer(serializers.ModelSerializer):
    pergantian_barang = PergantianBarangSerializer(many=True, read_only=True)

    class Meta:
        model = KendalaHandphone
        fields = ["id", "handphone", "topik_masalah", "pergantian_barang"]


class HandphoneSerializer(serializers.ModelSerializer):
    kendala = KendalaSerializer(many=True, read_only=True)

    class Meta:
        model = Handphone
        fields = ["id", "brand", "tipe", "kendala"]
        validators = []

    def validate(self, attrs):
        brand = attrs["brand"].strip()
        tipe = attrs["tipe"].strip()
        if Handphone.objects.filter(brand__iexact=brand, tipe__iexact=tipe).exists():
            raise serializers.ValidationError(f"Handphone {brand} {tipe} sudah ada")
        attrs["brand"], attrs["tipe"] = brand, tipe
        return attrs


class KendalaCreateSerializer(serializers.Serializer):
    handphone_id = serializers.PrimaryKeyRelatedField(
        queryset=Handphone.objects.all(), source="handphone"
    )
    topik_masalah = serializers.CharField(max_length=150)
    nama_barang = serializers.CharField(max_length=255, required=False, allow_blank=True)
    harga = serializers.DecimalField(max_digits=12, decimal_places=0, required=False, min_value=0)

    def validate(self, attrs):
        hp = attrs["handphone"]
        topik = attrs["topik_masalah"].strip()
        if hp.kendala.filter(topik_masalah__iexact=topik).exists():
            raise serializers.ValidationError(f"Kendala '{topik}' untuk HP {hp} sudah ada")
        attrs["topik_masalah"] = topik
        return attrs

    def create(self, validated):
        kendala = KendalaHandphone.objects.create(
            handphone=validated["handphone"],
            topik_masalah=validated["topik_masalah"],
        )
        nama_barang = (validated.get("nama_barang") or "").strip()
        if nama_barang:
            PergantianBarang.objects.create(
                kendala=kendala,
                nama_barang=nama_barang,
                harga=validated.get("harga") or 0,
            )
        return kendala


class PergantianBarangDetailSerializer(serializers.ModelSerializer):
    kendala_id = serializers.PrimaryKeyRelatedField(
        queryset=KendalaHandphone.objects.all(), source="kendala", required=False, allow_null=True
    )
    harga = serializers.DecimalField(max_digits=12, decimal_places=0, min_value=0)
    kendala = serializers.SerializerMethodField()

    class Meta:
        model = PergantianBarang
        fields = ["id", "nama_barang", "harga", "kendala_id", "kendala", "created_at", "updated_at"]
        read_only_fields = ["created_at", "updated_at"]

    def validate_nama_barang(self, value):
        return value.strip()

    def get_kendala(self, obj):
        k = obj.kendala
        if k is None:
            return None
        hp = k.handphone
        return {
            "id": str(k.id),
            "topik_masalah": k.topik_masalah,
            "handphone": {"id": str(hp.id), "brand": hp.brand, "tipe": hp.tipe},
        }

    def duplicate(self, attrs):
        """Barang lain dengan nama sama (case-insensitive), dicek sebelum simpan."""
        nama = attrs.get("nama_barang")
        if not nama:
            return None
        qs = PergantianBarang.objects.filter(nama_barang__iexact=nama)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        return qs.first()
