from django.contrib import admin, messages
from .models import Waktu, Service, ServiceStatus
from . import errors, services


@admin.register(Waktu)
class WaktuAdmin(admin.ModelAdmin):
    list_display = ('nama_shift', 'jam_mulai', 'jam_selesai', 'is_available')
    search_fields = ('nama_shift',)
    # flag hanya diubah oleh booking.services
    readonly_fields = ('is_available',)


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'handphone', 'waktu', 'tanggal_pesan', 'status', 'tempat', 'created_at')
    list_filter = ('status', 'waktu', 'created_at')
    search_fields = ('user__username', 'handphone__brand', 'handphone__tipe', 'tempat')
    # jadwal dan status diubah lewat API agar flag shift tetap konsisten
    readonly_fields = ('status', 'waktu', 'tanggal_pesan')
    filter_horizontal = ('kendala',)
    date_hierarchy = 'tanggal_pesan'

    def has_add_permission(self, request):
        # service baru hanya dibuat lewat booking.services.create_service
        return False

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.status == ServiceStatus.IN_PROGRESS:
            return False
        return super().has_delete_permission(request, obj)

    def delete_model(self, request, obj):
        try:
            services.delete_service(obj.pk)
        except errors.BookingError as e:
            messages.error(request, f"{obj}: {e.message}")

    def delete_queryset(self, request, queryset):
        for service in queryset:
            try:
                services.delete_service(service.pk)
            except errors.BookingError as e:
                messages.error(request, f"{service}: {e.message}")
