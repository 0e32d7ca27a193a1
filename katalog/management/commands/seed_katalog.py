import json
from decimal import Decimal, InvalidOperation

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from katalog.models import Handphone, KendalaHandphone, PergantianBarang


class Command(BaseCommand):
    help = 'Memuat data handphone, kendala dan sparepart dari file JSON ke dalam basis data'

    def add_arguments(self, parser):
        parser.add_argument('json_file', type=str, help='Path ke file JSON yang akan diimpor')

    @transaction.atomic
    def handle(self, *args, **options):
        json_file_path = options['json_file']
        self.stdout.write(self.style.SUCCESS(f"Memulai impor dari '{json_file_path}'..."))

        try:
            with open(json_file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            raise CommandError(f"File tidak ditemukan di '{json_file_path}'")
        except json.JSONDecodeError as e:
            raise CommandError(f"Gagal mendekode JSON dari file: {e}")

        hp_count = 0
        kendala_count = 0
        barang_count = 0

        for hp_data in data:
            brand = hp_data['brand'].strip()
            tipe = hp_data['tipe'].strip()
            hp = Handphone.objects.filter(brand__iexact=brand, tipe__iexact=tipe).first()
            if hp is None:
                hp = Handphone.objects.create(brand=brand, tipe=tipe)
                hp_count += 1

            for k in hp_data.get('kendalas', []):
                topik = k['masalah'].strip()
                kendala = hp.kendala.filter(topik_masalah__iexact=topik).first()
                if kendala is None:
                    kendala = KendalaHandphone.objects.create(handphone=hp, topik_masalah=topik)
                    kendala_count += 1

                sparepart = (k.get('sparepart') or '').strip()
                if not sparepart:
                    continue
                try:
                    harga = Decimal(str(k.get('harga') or 0))
                except InvalidOperation:
                    raise CommandError(f"Harga tidak valid untuk '{sparepart}' ({brand} {tipe})")
                barang = kendala.pergantian_barang.filter(nama_barang__iexact=sparepart).first()
                if barang is None:
                    PergantianBarang.objects.create(kendala=kendala, nama_barang=sparepart, harga=harga)
                    barang_count += 1
                elif barang.harga != harga:
                    barang.harga = harga
                    barang.save(update_fields=['harga', 'updated_at'])

        self.stdout.write(self.style.SUCCESS(
            f"Impor selesai! {hp_count} handphone baru, {kendala_count} kendala baru, "
            f"{barang_count} sparepart baru dibuat."
        ))
