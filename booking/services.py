"""
Koordinator booking shift.

Aturan utama: untuk satu shift (Waktu) dan satu tanggal, paling banyak satu
Service yang statusnya bukan CANCELLED. Pengecekan konflik, penulisan Service
dan perubahan flag `Waktu.is_available` selalu dijalankan dalam satu transaksi.
Baris Waktu yang terlibat dikunci dengan select_for_update (selalu sebelum
baris Service), dan partial unique index `uniq_service_aktif_per_shift`
menjadi penjaga terakhir kalau dua transaksi tetap lolos bersamaan.
"""
import logging
import time
from contextlib import contextmanager
from datetime import date, datetime
from functools import partial

from django.conf import settings
from django.db import IntegrityError, OperationalError, connection, transaction
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from katalog.models import Handphone, KendalaHandphone
from katalog.utils import is_uuid

from . import errors, notifications
from .models import (
    INITIAL_STATUSES,
    Service,
    ServiceStatus,
    Waktu,
    can_transition,
    is_active,
)

logger = logging.getLogger(__name__)


def _get_or_404(queryset, pk, label):
    obj = queryset.filter(pk=pk).first() if is_uuid(pk) else None
    if obj is None:
        raise errors.NotFound(f"{label} tidak ditemukan")
    return obj


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_tanggal(value, field="tanggal_pesan") -> date:
    """
    Terima 'YYYY-MM-DD' atau datetime ISO-8601. Tanggal diambil apa adanya
    dari input, tanpa konversi zona waktu.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if _blank(value) or not isinstance(value, str):
        raise errors.ValidationError(f"{field} wajib diisi", field)

    s = value.strip()
    try:
        parsed = parse_date(s)
        if parsed is None:
            dt = parse_datetime(s)
            parsed = dt.date() if dt is not None else None
    except ValueError:
        parsed = None
    if parsed is None:
        raise errors.ValidationError(f"Format tanggal tidak valid untuk {field}", field)
    return parsed


def parse_status(value) -> str:
    if value not in ServiceStatus.values:
        raise errors.ValidationError(
            f"Status tidak valid. Pilih salah satu: {', '.join(ServiceStatus.values)}",
            "status",
        )
    return ServiceStatus(value)


def _resolve_handphone(handphone_id):
    hp = Handphone.objects.filter(pk=handphone_id).first() if is_uuid(handphone_id) else None
    if hp is None:
        raise errors.ValidationError("Handphone tidak ditemukan", "handphone_id")
    return hp


def _resolve_kendala(handphone, kendala_ids):
    ids = [str(k) for k in (kendala_ids or [])]
    if not all(is_uuid(k) for k in ids):
        raise errors.ValidationError("ID kendala tidak valid", "kendala_ids")

    found = list(KendalaHandphone.objects.filter(pk__in=ids))
    if len(found) != len(set(ids)):
        raise errors.ValidationError("Sebagian kendala tidak ditemukan", "kendala_ids")

    for k in found:
        if k.handphone_id != handphone.pk:
            raise errors.ValidationError(
                f"Kendala '{k.topik_masalah}' bukan untuk {handphone}", "kendala_ids"
            )
    return found


# --- Transaksi ---

# percobaan ulang kalau shift service dipindah admin lain sebelum sempat dikunci
LOCK_ATTEMPTS = 3
# interval (jumlah instruksi VM) pengecekan batas waktu eksekusi di sqlite
SQLITE_PROGRESS_STEPS = 1000


class _StaleSchedule(Exception):
    pass


def _sqlite_deadline(seconds):
    deadline = time.monotonic() + seconds
    return lambda: time.monotonic() > deadline


def _apply_timeouts():
    if connection.vendor == "postgresql":
        with connection.cursor() as cursor:
            cursor.execute(
                "SELECT set_config('lock_timeout', %s, true), set_config('statement_timeout', %s, true)",
                [f"{settings.BOOKING_LOCK_TIMEOUT_MS}ms", f"{settings.BOOKING_STATEMENT_TIMEOUT_MS}ms"],
            )
    elif connection.vendor == "sqlite":
        # tunggu lock diatur lewat OPTIONS["timeout"]; ini membatasi waktu eksekusi,
        # sqlite membatalkan query dengan OperationalError("interrupted")
        connection.connection.set_progress_handler(
            _sqlite_deadline(settings.BOOKING_STATEMENT_TIMEOUT_MS / 1000), SQLITE_PROGRESS_STEPS
        )


def _clear_timeouts():
    if connection.vendor == "sqlite" and connection.connection is not None:
        connection.connection.set_progress_handler(None, 0)


@contextmanager
def booking_transaction():
    try:
        with transaction.atomic():
            _apply_timeouts()
            try:
                yield
            finally:
                _clear_timeouts()
    except OperationalError as e:
        logger.error("Transaksi booking gagal: %s", e)
        raise errors.BookingUnavailable("Sistem booking sedang sibuk, silakan coba lagi.") from e


def _lock_waktu(*pks):
    ids = sorted({str(pk) for pk in pks})
    return {str(w.pk): w for w in Waktu.objects.select_for_update().filter(pk__in=ids).order_by("pk")}


def _set_available(waktu, available):
    Waktu.objects.filter(pk=waktu.pk).update(is_available=available, updated_at=timezone.now())
    waktu.is_available = available


def _reconcile_flags(old_waktu, new_waktu, old_status, new_status):
    if not is_active(old_status):
        return
    if not is_active(new_status):
        _set_available(old_waktu, True)
    elif new_waktu.pk != old_waktu.pk:
        _set_available(old_waktu, True)
        _set_available(new_waktu, False)


# --- Query konflik ---

def active_services_on(waktu, tanggal, exclude_pk=None):
    qs = Service.objects.filter(waktu=waktu, tanggal_pesan=tanggal).exclude(status=ServiceStatus.CANCELLED)
    if exclude_pk is not None:
        qs = qs.exclude(pk=exclude_pk)
    return qs


def find_blocking_service(waktu, tanggal, exclude_pk=None):
    return (
        active_services_on(waktu, tanggal, exclude_pk)
        .select_related("user", "waktu")
        .order_by("created_at")
        .first()
    )


def _shift_conflict(waktu, tanggal, blocking):
    logger.warning(
        "Konflik shift %s tanggal %s (diblok service %s)",
        waktu.nama_shift, tanggal, getattr(blocking, "pk", None),
    )
    return errors.ShiftConflict(waktu, tanggal, blocking)


def _race_conflict(waktu, tanggal, exclude_pk=None):
    blocking = (
        active_services_on(waktu, tanggal, exclude_pk)
        .select_related("user", "waktu")
        .first()
    )
    return _shift_conflict(waktu, tanggal, blocking)


# --- Operasi booking ---

def create_service(user, data):
    tanggal = parse_tanggal(data.get("tanggal_pesan"))
    status = parse_status(data.get("status") or ServiceStatus.PENDING)
    if status not in INITIAL_STATUSES:
        raise errors.ValidationError("Status awal harus PENDING atau IN_PROGRESS", "status")
    if _blank(data.get("tempat")):
        raise errors.ValidationError("Tempat wajib diisi", "tempat")

    waktu = _get_or_404(Waktu.objects.all(), data.get("waktu_id"), "Waktu")
    handphone = _resolve_handphone(data.get("handphone_id"))
    kendala = _resolve_kendala(handphone, data.get("kendala_ids"))

    try:
        with booking_transaction():
            waktu = _lock_waktu(waktu.pk)[str(waktu.pk)]
            blocking = find_blocking_service(waktu, tanggal)
            if blocking is not None:
                raise _shift_conflict(waktu, tanggal, blocking)

            service = Service.objects.create(
                user=user,
                handphone=handphone,
                waktu=waktu,
                tanggal_pesan=tanggal,
                status=status,
                tempat=data["tempat"].strip(),
                alamat=data.get("alamat") or "",
                google_maps_link=data.get("google_maps_link") or "",
            )
            if kendala:
                service.kendala.set(kendala)
            _set_available(waktu, False)
    except IntegrityError as e:
        raise _race_conflict(waktu, tanggal) from e

    logger.info("Service %s dibuat untuk %s pada %s %s", service.pk, user, waktu.nama_shift, tanggal)
    return service


def update_service(service_id, data, notify=False):
    service = _get_or_404(Service.objects.all(), service_id, "Service")

    status = None
    if not _blank(data.get("status")):
        status = parse_status(data["status"])

    tanggal = None
    if not _blank(data.get("tanggal_pesan")):
        tanggal = parse_tanggal(data["tanggal_pesan"])

    waktu_pk = None
    if not _blank(data.get("waktu_id")):
        waktu_pk = _get_or_404(Waktu.objects.all(), data["waktu_id"], "Waktu").pk

    fields = {}
    if "tempat" in data and data["tempat"] is not None:
        if _blank(data["tempat"]):
            raise errors.ValidationError("Tempat tidak boleh kosong", "tempat")
        fields["tempat"] = data["tempat"].strip()
    for name in ("alamat", "google_maps_link"):
        if data.get(name) is not None:
            fields[name] = data[name]

    handphone = service.handphone
    if not _blank(data.get("handphone_id")):
        handphone = _resolve_handphone(data["handphone_id"])
        fields["handphone"] = handphone

    kendala = None
    if data.get("kendala_ids") is not None or "handphone" in fields:
        ids = data.get("kendala_ids")
        if ids is None:
            ids = list(service.kendala.values_list("pk", flat=True))
        kendala = _resolve_kendala(handphone, ids)

    for _ in range(LOCK_ATTEMPTS):
        try:
            return _apply_update(service, status, tanggal, waktu_pk, fields, kendala, notify)
        except _StaleSchedule:
            logger.warning("Shift service %s berubah sebelum dikunci, mencoba ulang", service.pk)
            service = _get_or_404(Service.objects.all(), service.pk, "Service")
    raise errors.BookingUnavailable("Service sedang diubah oleh admin lain, silakan coba lagi.")


def _apply_update(service, status, tanggal, waktu_pk, fields, kendala, notify):
    target_pk = waktu_pk or service.waktu_id
    target = None
    try:
        with booking_transaction():
            locked = _lock_waktu(service.waktu_id, target_pk)
            service = Service.objects.select_for_update().filter(pk=service.pk).first()
            if service is None:
                raise errors.NotFound("Service tidak ditemukan")
            if str(service.waktu_id) not in locked:
                raise _StaleSchedule()

            old_status = service.status
            new_status = status or old_status
            old_waktu = locked[str(service.waktu_id)]
            target = locked[str(target_pk)]
            tanggal = tanggal or service.tanggal_pesan
            schedule_touched = target.pk != old_waktu.pk or tanggal != service.tanggal_pesan

            if not can_transition(old_status, new_status):
                raise errors.ValidationError(
                    f"Status tidak bisa diubah dari {old_status} ke {new_status}", "status"
                )

            if schedule_touched and is_active(new_status):
                blocking = find_blocking_service(target, tanggal, exclude_pk=service.pk)
                if blocking is not None:
                    raise _shift_conflict(target, tanggal, blocking)

            for name, value in fields.items():
                setattr(service, name, value)
            service.waktu = target
            service.tanggal_pesan = tanggal
            service.status = new_status
            service.save()
            if kendala is not None:
                service.kendala.set(kendala)

            _reconcile_flags(old_waktu, target, old_status, new_status)

            if notify and new_status != old_status:
                transaction.on_commit(
                    partial(notifications.send_status_update, service.pk, old_status, new_status)
                )
    except IntegrityError as e:
        raise _race_conflict(target, tanggal, exclude_pk=service.pk) from e

    logger.info("Service %s diperbarui (status %s -> %s)", service.pk, old_status, new_status)
    return service


def cancel_service(service_id, user, notify=False):
    service = _get_or_404(Service.objects.filter(user=user), service_id, "Service")
    if service.status != ServiceStatus.PENDING:
        raise errors.Conflict("Hanya service yang masih menunggu yang bisa dibatalkan")
    return update_service(service.pk, {"status": ServiceStatus.CANCELLED}, notify=notify)


def delete_service(service_id):
    service = _get_or_404(Service.objects.select_related("user", "handphone"), service_id, "Service")
    if service.status == ServiceStatus.IN_PROGRESS:
        raise errors.Conflict("Service yang sedang dikerjakan tidak bisa dihapus")

    summary = {
        "id": str(service.pk),
        "customer": service.customer_name(),
        "device": str(service.handphone),
        "status": service.status,
    }

    for _ in range(LOCK_ATTEMPTS):
        try:
            with booking_transaction():
                waktu = _lock_waktu(service.waktu_id).get(str(service.waktu_id))
                locked = Service.objects.select_for_update().filter(pk=service.pk).first()
                if locked is None:
                    raise errors.NotFound("Service tidak ditemukan")
                if waktu is None or locked.waktu_id != waktu.pk:
                    raise _StaleSchedule()
                if locked.status == ServiceStatus.IN_PROGRESS:
                    raise errors.Conflict("Service yang sedang dikerjakan tidak bisa dihapus")
                locked.delete()
                _set_available(waktu, True)
        except _StaleSchedule:
            logger.warning("Shift service %s berubah sebelum dikunci, mencoba ulang", service.pk)
            service = _get_or_404(Service.objects.all(), service.pk, "Service")
            continue

        logger.info("Service %s dihapus", summary["id"])
        return summary

    raise errors.BookingUnavailable("Service sedang diubah oleh admin lain, silakan coba lagi.")


# --- Ketersediaan per tanggal ---

def is_slot_free(waktu_id, tanggal) -> bool:
    waktu = _get_or_404(Waktu.objects.all(), waktu_id, "Waktu")
    tanggal = parse_tanggal(tanggal, field="date")
    return not active_services_on(waktu, tanggal).exists()


def slot_availability(tanggal):
    tanggal = parse_tanggal(tanggal, field="date")
    taken = set(
        Service.objects.filter(tanggal_pesan=tanggal)
        .exclude(status=ServiceStatus.CANCELLED)
        .values_list("waktu_id", flat=True)
    )
    return [{"waktu": w, "free": w.pk not in taken} for w in Waktu.objects.all()]


def delete_waktu(waktu_id):
    waktu = _get_or_404(Waktu.objects.all(), waktu_id, "Waktu")
    used = waktu.services.count()
    if used:
        raise errors.Conflict(f"Shift tidak bisa dihapus, masih dipakai oleh {used} service")
    summary = {"id": str(waktu.pk), "nama_shift": waktu.nama_shift}
    waktu.delete()
    logger.info("Shift %s dihapus", summary["nama_shift"])
    return summary
