import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from .models import Service, ServiceStatus

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    ServiceStatus.PENDING: (
        "Pesanan Anda Sedang Menunggu",
        "Pesanan service Anda telah diterima dan sedang dalam antrian. "
        "Tim kami akan segera memproses pesanan Anda.",
    ),
    ServiceStatus.IN_PROGRESS: (
        "Pesanan Anda Sedang Dikerjakan",
        "Pesanan service Anda sedang dalam proses pengerjaan oleh teknisi kami.",
    ),
    ServiceStatus.MENUNGGU_PEMBAYARAN: (
        "Pesanan Anda Menunggu Pembayaran",
        "Perbaikan sudah selesai. Perangkat Anda siap diambil setelah pembayaran.",
    ),
    ServiceStatus.COMPLETED: (
        "Pesanan Anda Telah Selesai",
        "Pesanan service Anda telah selesai dikerjakan. Perangkat Anda siap untuk diambil.",
    ),
    ServiceStatus.CANCELLED: (
        "Pesanan Anda Dibatalkan",
        "Pesanan service Anda telah dibatalkan. Jika ada pertanyaan, silakan hubungi kami.",
    ),
}


def build_context(service, old_status, new_status):
    title, message = STATUS_MESSAGES[new_status]
    return {
        "title": title,
        "message": message,
        "user_name": service.customer_name(),
        "service_id": str(service.pk),
        "device": str(service.handphone),
        "old_status": ServiceStatus(old_status).label,
        "new_status": ServiceStatus(new_status).label,
        "scheduled_date": service.tanggal_pesan,
        "scheduled_time": service.waktu.jam_range,
        "shift": service.waktu.nama_shift,
        "problems": [k.topik_masalah for k in service.kendala.all()],
        "total_sparepart": service.total_harga_sparepart(),
        "service_fee": settings.BOOKING_SERVICE_FEE,
        "total": service.estimasi_biaya(),
    }


def send_status_update(service_id, old_status, new_status):
    """
    Kirim email perubahan status ke pemilik service.

    Dipanggil setelah transaksi commit; kegagalan hanya dicatat di log dan
    tidak memengaruhi hasil update.
    """
    try:
        service = (
            Service.objects
            .select_related("user", "handphone", "waktu")
            .prefetch_related("kendala__pergantian_barang")
            .get(pk=service_id)
        )
        recipient = service.user.email
        if not recipient:
            logger.info("Service %s: pelanggan tidak punya email, notifikasi dilewati", service_id)
            return False

        context = build_context(service, old_status, new_status)
        subject = f"{context['title']} - Bukhari Service Center"
        text_body = render_to_string("booking/email/status_update.txt", context)
        html_body = render_to_string("booking/email/status_update.html", context)

        msg = EmailMultiAlternatives(subject, text_body, settings.DEFAULT_FROM_EMAIL, [recipient])
        msg.attach_alternative(html_body, "text/html")
        msg.send()
    except Exception:
        logger.exception("Gagal mengirim notifikasi status service %s", service_id)
        return False

    logger.info("Notifikasi status %s -> %s terkirim ke %s", old_status, new_status, recipient)
    return True
