"""
Error yang dilempar booking.services.

Semua error validasi/konflik dilempar sebelum ada penulisan ke database,
sehingga view cukup menerjemahkannya menjadi response tanpa perlu rollback.
"""


class BookingError(Exception):
    status_code = 400
    label = "Bad request"

    def __init__(self, message, field=None, details=None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details or {}

    def as_dict(self):
        data = {"error": self.label, "detail": self.message}
        if self.field:
            data["fields"] = {self.field: [self.message]}
        if self.details:
            data["details"] = self.details
        return data


class ValidationError(BookingError):
    status_code = 400
    label = "Validation failed"


class NotFound(BookingError):
    status_code = 404
    label = "Not found"


class Conflict(BookingError):
    status_code = 409
    label = "Conflict"


class ShiftConflict(Conflict):
    """Shift sudah dipakai service aktif lain pada tanggal yang sama."""

    def __init__(self, waktu, tanggal, blocking=None):
        self.waktu = waktu
        self.tanggal = tanggal
        self.blocking = blocking
        message = (
            f'Shift "{waktu.nama_shift}" ({waktu.jam_range}) sudah terisi '
            f'untuk tanggal {tanggal:%Y-%m-%d}'
        )
        details = {}
        if blocking is not None:
            message += f" oleh {blocking.customer_name()}"
            details["existing_service"] = {
                "id": str(blocking.id),
                "user": blocking.customer_name(),
                "shift": blocking.waktu.nama_shift,
                "time": blocking.waktu.jam_range,
            }
        super().__init__(message, details=details)


class BookingUnavailable(BookingError):
    """Timeout lock/eksekusi atau database tidak tersedia; aman untuk dicoba ulang."""
    status_code = 503
    label = "Service unavailable"
