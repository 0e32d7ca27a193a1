import json
import os
import tempfile
from datetime import date, time
from io import StringIO

from django.contrib.auth.models import User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from booking.models import Service, Waktu
from .models import Handphone, KendalaHandphone, PergantianBarang

FIXTURE = os.path.join(os.path.dirname(__file__), "fixtures", "handphone.json")


class KatalogBaseTest(TestCase):
    def setUp(self):
        self.api_client = APIClient()
        self.user = User.objects.create_user(username="budi", password="12345")
        self.admin = User.objects.create_user(username="admin", password="12345", is_staff=True)
        self.hp = Handphone.objects.create(brand="Samsung", tipe="Galaxy A54 5G")
        self.lcd = KendalaHandphone.objects.create(handphone=self.hp, topik_masalah="LCD pecah")
        PergantianBarang.objects.create(kendala=self.lcd, nama_barang="LCD Samsung A54", harga=1450000)


class KatalogModelTests(KatalogBaseTest):
    def test_str(self):
        self.assertEqual(str(self.hp), "Samsung Galaxy A54 5G")
        self.assertEqual(str(self.lcd.pergantian_barang.get()), "LCD Samsung A54 - Rp1,450,000")


class HandphoneViewTests(KatalogBaseTest):
    def test_list_is_public(self):
        res = self.api_client.get(reverse("katalog:handphone-list"))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["content"][0]["kendala"][0]["topik_masalah"], "LCD pecah")

    def test_search(self):
        Handphone.objects.create(brand="Xiaomi", tipe="Redmi Note 12")
        res = self.api_client.get(reverse("katalog:handphone-list"), {"q": "redmi"})
        self.assertEqual(res.data["count"], 1)

    def test_create_requires_admin(self):
        self.api_client.login(username="budi", password="12345")
        res = self.api_client.post(reverse("katalog:handphone-list"),
                                   {"brand": "Oppo", "tipe": "Reno 8"}, format="json")
        self.assertEqual(res.status_code, 403)

    def test_create_duplicate_case_insensitive(self):
        self.api_client.login(username="admin", password="12345")
        res = self.api_client.post(reverse("katalog:handphone-list"),
                                   {"brand": "samsung", "tipe": "galaxy a54 5g"}, format="json")
        self.assertEqual(res.status_code, 400)
        res = self.api_client.post(reverse("katalog:handphone-list"),
                                   {"brand": "Oppo", "tipe": "Reno 8"}, format="json")
        self.assertEqual(res.status_code, 201)

    def test_detail_unknown(self):
        res = self.api_client.get(reverse("katalog:handphone-detail", args=["abc"]))
        self.assertEqual(res.status_code, 404)

    def test_delete_used_handphone_conflict(self):
        waktu = Waktu.objects.create(nama_shift="Shift A", jam_mulai=time(9), jam_selesai=time(12))
        Service.objects.create(user=self.user, handphone=self.hp, waktu=waktu,
                               tanggal_pesan=date(2025, 1, 15), tempat="Depok")
        self.api_client.login(username="admin", password="12345")
        res = self.api_client.delete(reverse("katalog:handphone-detail", args=[self.hp.pk]))
        self.assertEqual(res.status_code, 409)

    def test_delete_cascades_kendala(self):
        self.api_client.login(username="admin", password="12345")
        res = self.api_client.delete(reverse("katalog:handphone-detail", args=[self.hp.pk]))
        self.assertEqual(res.status_code, 200)
        self.assertFalse(KendalaHandphone.objects.exists())


class KendalaViewTests(KatalogBaseTest):
    def test_list_by_handphone(self):
        res = self.api_client.get(reverse("katalog:kendala-list"), {"handphone": str(self.hp.pk)})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["content"][0]["pergantian_barang"][0]["nama_barang"], "LCD Samsung A54")

    def test_list_requires_handphone(self):
        res = self.api_client.get(reverse("katalog:kendala-list"))
        self.assertEqual(res.status_code, 400)

    def test_create_with_sparepart(self):
        self.api_client.login(username="admin", password="12345")
        res = self.api_client.post(reverse("katalog:kendala-list"), {
            "handphone_id": str(self.hp.pk),
            "topik_masalah": "Baterai drop",
            "nama_barang": "Baterai Samsung A54",
            "harga": "350000",
        }, format="json")
        self.assertEqual(res.status_code, 201)
        kendala = KendalaHandphone.objects.get(topik_masalah="Baterai drop")
        self.assertEqual(kendala.pergantian_barang.get().harga, 350000)

    def test_create_duplicate_rejected(self):
        self.api_client.login(username="admin", password="12345")
        res = self.api_client.post(reverse("katalog:kendala-list"), {
            "handphone_id": str(self.hp.pk),
            "topik_masalah": "lcd PECAH",
        }, format="json")
        self.assertEqual(res.status_code, 400)


class PergantianBarangViewTests(KatalogBaseTest):
    def setUp(self):
        super().setUp()
        self.murah = PergantianBarang.objects.create(nama_barang="Speaker buzzer", harga=85000)

    def test_list_filters_by_price(self):
        url = reverse("katalog:barang-list")
        res = self.api_client.get(url)
        self.assertEqual(res.status_code, 200)
        self.assertEqual([b["nama_barang"] for b in res.data["content"]], ["Speaker buzzer", "LCD Samsung A54"])

        res = self.api_client.get(url, {"min_harga": "100000"})
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["content"][0]["kendala"]["handphone"]["tipe"], "Galaxy A54 5G")

        res = self.api_client.get(url, {"max_harga": "100000", "nama_barang": "speaker"})
        self.assertEqual(res.data["count"], 1)
        self.assertIsNone(res.data["content"][0]["kendala"])

    def test_list_bad_price_filter(self):
        res = self.api_client.get(reverse("katalog:barang-list"), {"min_harga": "murah"})
        self.assertEqual(res.status_code, 400)

    def test_create_requires_admin(self):
        self.api_client.login(username="budi", password="12345")
        res = self.api_client.post(reverse("katalog:barang-list"),
                                   {"nama_barang": "Baterai", "harga": 300000}, format="json")
        self.assertEqual(res.status_code, 403)

    def test_create_linked_to_kendala(self):
        self.api_client.login(username="admin", password="12345")
        res = self.api_client.post(reverse("katalog:barang-list"), {
            "nama_barang": "Frame LCD A54",
            "harga": 120000,
            "kendala_id": str(self.lcd.pk),
        }, format="json")
        self.assertEqual(res.status_code, 201)
        self.assertEqual(self.lcd.pergantian_barang.count(), 2)

    def test_create_duplicate_name_conflict(self):
        self.api_client.login(username="admin", password="12345")
        res = self.api_client.post(reverse("katalog:barang-list"),
                                   {"nama_barang": "speaker BUZZER", "harga": 90000}, format="json")
        self.assertEqual(res.status_code, 409)

    def test_create_negative_price_rejected(self):
        self.api_client.login(username="admin", password="12345")
        res = self.api_client.post(reverse("katalog:barang-list"),
                                   {"nama_barang": "Baterai", "harga": -1}, format="json")
        self.assertEqual(res.status_code, 400)
        self.assertIn("harga", res.data["fields"])

    def test_detail_is_admin_only(self):
        url = reverse("katalog:barang-detail", args=[self.murah.pk])
        self.assertIn(self.api_client.get(url).status_code, (401, 403))
        self.api_client.login(username="admin", password="12345")
        res = self.api_client.get(url)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["content"]["nama_barang"], "Speaker buzzer")

    def test_update(self):
        self.api_client.login(username="admin", password="12345")
        url = reverse("katalog:barang-detail", args=[self.murah.pk])
        res = self.api_client.patch(url, {"nama_barang": "Speaker Buzzer", "harga": 95000}, format="json")
        self.assertEqual(res.status_code, 200)
        self.murah.refresh_from_db()
        self.assertEqual(self.murah.harga, 95000)

        res = self.api_client.patch(url, {"nama_barang": "lcd samsung a54"}, format="json")
        self.assertEqual(res.status_code, 409)

    def test_delete(self):
        self.api_client.login(username="admin", password="12345")
        res = self.api_client.delete(reverse("katalog:barang-detail", args=[self.murah.pk]))
        self.assertEqual(res.status_code, 200)
        self.assertFalse(PergantianBarang.objects.filter(pk=self.murah.pk).exists())
        res = self.api_client.delete(reverse("katalog:barang-detail", args=["tidak-ada"]))
        self.assertEqual(res.status_code, 404)


class SeedKatalogTests(TestCase):
    def test_seed_fixture_is_idempotent(self):
        out = StringIO()
        call_command("seed_katalog", FIXTURE, stdout=out)
        self.assertIn("Impor selesai", out.getvalue())
        self.assertEqual(Handphone.objects.count(), 3)
        kendala_total = KendalaHandphone.objects.count()
        barang_total = PergantianBarang.objects.count()

        call_command("seed_katalog", FIXTURE, stdout=StringIO())
        self.assertEqual(Handphone.objects.count(), 3)
        self.assertEqual(KendalaHandphone.objects.count(), kendala_total)
        self.assertEqual(PergantianBarang.objects.count(), barang_total)

    def test_seed_updates_price(self):
        rows = [{"brand": "Samsung", "tipe": "A54", "kendalas": [
            {"masalah": "LCD pecah", "sparepart": "LCD", "harga": 100}]}]
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False, encoding="utf-8") as f:
            json.dump(rows, f)
        self.addCleanup(os.remove, f.name)
        call_command("seed_katalog", f.name, stdout=StringIO())

        rows[0]["kendalas"][0]["harga"] = 250
        with open(f.name, "w", encoding="utf-8") as fh:
            json.dump(rows, fh)
        call_command("seed_katalog", f.name, stdout=StringIO())
        self.assertEqual(PergantianBarang.objects.get().harga, 250)

    def test_missing_file(self):
        with self.assertRaises(CommandError):
            call_command("seed_katalog", "/tidak/ada.json", stdout=StringIO())
