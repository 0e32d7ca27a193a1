from django.contrib import admin
from .models import Handphone, KendalaHandphone, PergantianBarang


class KendalaInline(admin.TabularInline):
    model = KendalaHandphone
    extra = 0


@admin.register(Handphone)
class HandphoneAdmin(admin.ModelAdmin):
    list_display = ('brand', 'tipe', 'created_at')
    search_fields = ('brand', 'tipe')
    list_filter = ('brand',)
    inlines = [KendalaInline]


@admin.register(KendalaHandphone)
class KendalaHandphoneAdmin(admin.ModelAdmin):
    list_display = ('topik_masalah', 'handphone')
    search_fields = ('topik_masalah', 'handphone__brand', 'handphone__tipe')


@admin.register(PergantianBarang)
class PergantianBarangAdmin(admin.ModelAdmin):
    list_display = ('nama_barang', 'kendala', 'harga')
    search_fields = ('nama_barang',)
