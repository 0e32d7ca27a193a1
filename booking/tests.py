from datetime import date, time
from unittest import mock, skipUnless

from django.contrib import admin
from django.contrib.auth.models import User
from django.contrib.messages.storage.cookie import CookieStorage
from django.core import mail
from django.db import IntegrityError, OperationalError, connection, transaction
from django.test import RequestFactory, TestCase, override_settings
from django.urls import reverse
from rest_framework.test import APIClient

from katalog.models import Handphone, KendalaHandphone, PergantianBarang

from . import errors, notifications, reports, services
from .models import Service, ServiceStatus, Waktu, can_transition
from .serializers import tracking_steps

TANGGAL = "2025-01-15"


class BookingBaseTest(TestCase):
    def setUp(self):
        self.api_client = APIClient()
        self.user = User.objects.create_user(
            username="budi", password="12345", email="budi@example.com", first_name="Budi"
        )
        self.other = User.objects.create_user(username="sari", password="12345", email="sari@example.com")
        self.admin = User.objects.create_user(username="admin", password="12345", is_staff=True)

        self.shift_a = Waktu.objects.create(nama_shift="Shift A", jam_mulai=time(9), jam_selesai=time(12))
        self.shift_b = Waktu.objects.create(nama_shift="Shift B", jam_mulai=time(13), jam_selesai=time(16))

        self.hp = Handphone.objects.create(brand="Samsung", tipe="Galaxy S21")
        self.lcd = KendalaHandphone.objects.create(handphone=self.hp, topik_masalah="LCD pecah")
        PergantianBarang.objects.create(kendala=self.lcd, nama_barang="LCD Galaxy S21", harga=1500000)
        self.baterai = KendalaHandphone.objects.create(handphone=self.hp, topik_masalah="Baterai drop")

    def payload(self, waktu=None, tanggal=TANGGAL, **extra):
        data = {
            "waktu_id": str((waktu or self.shift_a).pk),
            "tanggal_pesan": tanggal,
            "handphone_id": str(self.hp.pk),
            "kendala_ids": [str(self.lcd.pk)],
            "tempat": "Depok",
        }
        data.update(extra)
        return data

    def book(self, user=None, **kwargs):
        return services.create_service(user or self.user, self.payload(**kwargs))

    def reload(self, obj):
        obj.refresh_from_db()
        return obj


class StatusTransitionTests(TestCase):
    def test_same_status_always_allowed(self):
        for status in ServiceStatus.values:
            self.assertTrue(can_transition(status, status))

    def test_terminal_statuses(self):
        self.assertFalse(can_transition(ServiceStatus.COMPLETED, ServiceStatus.PENDING))
        self.assertFalse(can_transition(ServiceStatus.CANCELLED, ServiceStatus.PENDING))
        self.assertFalse(can_transition(ServiceStatus.CANCELLED, ServiceStatus.IN_PROGRESS))

    def test_payment_only_after_work(self):
        self.assertTrue(can_transition(ServiceStatus.IN_PROGRESS, ServiceStatus.MENUNGGU_PEMBAYARAN))
        self.assertFalse(can_transition(ServiceStatus.PENDING, ServiceStatus.MENUNGGU_PEMBAYARAN))
        self.assertTrue(can_transition(ServiceStatus.MENUNGGU_PEMBAYARAN, ServiceStatus.COMPLETED))
        self.assertFalse(can_transition(ServiceStatus.MENUNGGU_PEMBAYARAN, ServiceStatus.CANCELLED))


class CreateServiceTests(BookingBaseTest):
    def test_create_success_marks_shift_unavailable(self):
        service = self.book()
        self.assertEqual(service.status, ServiceStatus.PENDING)
        self.assertEqual(service.tanggal_pesan, date(2025, 1, 15))
        self.assertEqual(list(service.kendala.all()), [self.lcd])
        self.assertFalse(self.reload(self.shift_a).is_available)
        self.assertTrue(self.reload(self.shift_b).is_available)

    def test_same_shift_same_date_conflict(self):
        first = self.book()
        with self.assertRaises(errors.ShiftConflict) as ctx:
            self.book(user=self.other)
        exc = ctx.exception
        self.assertIn('Shift "Shift A" (09:00 - 12:00) sudah terisi untuk tanggal 2025-01-15', exc.message)
        self.assertIn("Budi", exc.message)
        self.assertEqual(exc.details["existing_service"]["id"], str(first.pk))
        self.assertEqual(Service.objects.count(), 1)

    def test_same_shift_different_date_succeeds(self):
        self.book()
        service = self.book(user=self.other, tanggal="2025-01-16")
        self.assertEqual(service.tanggal_pesan, date(2025, 1, 16))
        self.assertEqual(Service.objects.count(), 2)

    def test_datetime_input_keeps_written_date(self):
        service = self.book(tanggal="2025-01-15T23:30:00+07:00")
        self.assertEqual(service.tanggal_pesan, date(2025, 1, 15))

    def test_cancelled_service_does_not_block(self):
        Service.objects.create(
            user=self.other, handphone=self.hp, waktu=self.shift_a,
            tanggal_pesan=date(2025, 1, 15), status=ServiceStatus.CANCELLED, tempat="Bogor",
        )
        service = self.book()
        self.assertEqual(service.status, ServiceStatus.PENDING)

    def test_initial_status_in_progress_allowed(self):
        service = self.book(status=ServiceStatus.IN_PROGRESS)
        self.assertEqual(service.status, ServiceStatus.IN_PROGRESS)

    def test_initial_status_completed_rejected(self):
        with self.assertRaises(errors.ValidationError):
            self.book(status=ServiceStatus.COMPLETED)
        self.assertTrue(self.reload(self.shift_a).is_available)

    def test_invalid_date_rejected(self):
        with self.assertRaises(errors.ValidationError) as ctx:
            self.book(tanggal="15/01/2025")
        self.assertEqual(ctx.exception.field, "tanggal_pesan")

    def test_unknown_waktu_is_not_found(self):
        data = self.payload(waktu_id="bukan-uuid")
        with self.assertRaises(errors.NotFound):
            services.create_service(self.user, data)

    def test_unknown_handphone_is_validation_error(self):
        with self.assertRaises(errors.ValidationError) as ctx:
            self.book(handphone_id="7f0c6a4e-0000-4000-8000-000000000000")
        self.assertEqual(ctx.exception.field, "handphone_id")

    def test_kendala_from_other_handphone_rejected(self):
        other_hp = Handphone.objects.create(brand="Xiaomi", tipe="Redmi Note 10")
        asing = KendalaHandphone.objects.create(handphone=other_hp, topik_masalah="Speaker mati")
        with self.assertRaises(errors.ValidationError) as ctx:
            self.book(kendala_ids=[str(asing.pk)])
        self.assertEqual(ctx.exception.field, "kendala_ids")
        self.assertEqual(Service.objects.count(), 0)

    def test_race_is_caught_by_unique_index(self):
        first = self.book()
        with mock.patch("booking.services.find_blocking_service", return_value=None):
            with self.assertRaises(errors.ShiftConflict) as ctx:
                self.book(user=self.other)
        self.assertEqual(ctx.exception.details["existing_service"]["id"], str(first.pk))
        self.assertEqual(Service.objects.count(), 1)

    def test_lock_timeout_becomes_unavailable(self):
        with mock.patch("booking.services._apply_timeouts", side_effect=OperationalError("lock timeout")):
            with self.assertRaises(errors.BookingUnavailable):
                self.book()
        self.assertEqual(Service.objects.count(), 0)
        self.assertTrue(self.reload(self.shift_a).is_available)

    def test_database_constraint_rejects_second_active_row(self):
        self.book()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Service.objects.create(
                    user=self.other, handphone=self.hp, waktu=self.shift_a,
                    tanggal_pesan=date(2025, 1, 15), tempat="Bogor",
                )


class UpdateServiceTests(BookingBaseTest):
    def test_cancel_releases_shift(self):
        service = self.book()
        services.update_service(service.pk, {"status": ServiceStatus.CANCELLED})
        self.assertEqual(self.reload(service).status, ServiceStatus.CANCELLED)
        self.assertTrue(self.reload(self.shift_a).is_available)
        other = self.book(user=self.other)
        self.assertEqual(other.waktu, self.shift_a)

    def test_move_to_other_shift_swaps_flags(self):
        service = self.book()
        services.update_service(service.pk, {"waktu_id": str(self.shift_b.pk)})
        self.assertEqual(self.reload(service).waktu, self.shift_b)
        self.assertTrue(self.reload(self.shift_a).is_available)
        self.assertFalse(self.reload(self.shift_b).is_available)

    def test_move_into_taken_shift_conflicts(self):
        self.book(waktu=self.shift_b, user=self.other)
        service = self.book()
        with self.assertRaises(errors.ShiftConflict):
            services.update_service(service.pk, {"waktu_id": str(self.shift_b.pk)})
        self.assertEqual(self.reload(service).waktu, self.shift_a)
        self.assertFalse(self.reload(self.shift_a).is_available)

    def test_resubmitting_own_schedule_is_not_a_conflict(self):
        service = self.book()
        services.update_service(service.pk, {
            "waktu_id": str(self.shift_a.pk),
            "tanggal_pesan": TANGGAL,
            "tempat": "Jakarta",
        })
        self.assertEqual(self.reload(service).tempat, "Jakarta")

    def test_status_only_update_skips_conflict_check(self):
        service = self.book()
        with mock.patch("booking.services.find_blocking_service") as finder:
            services.update_service(service.pk, {"status": ServiceStatus.IN_PROGRESS})
        finder.assert_not_called()
        self.assertEqual(self.reload(service).status, ServiceStatus.IN_PROGRESS)

    def test_illegal_transition_rejected(self):
        service = self.book()
        services.update_service(service.pk, {"status": ServiceStatus.COMPLETED})
        with self.assertRaises(errors.ValidationError) as ctx:
            services.update_service(service.pk, {"status": ServiceStatus.PENDING})
        self.assertEqual(ctx.exception.field, "status")

    def test_unknown_status_rejected(self):
        service = self.book()
        with self.assertRaises(errors.ValidationError):
            services.update_service(service.pk, {"status": "SELESAI"})

    def test_unknown_service_not_found(self):
        with self.assertRaises(errors.NotFound):
            services.update_service("2b4c2f7e-0000-4000-8000-000000000000", {"status": ServiceStatus.CANCELLED})

    def test_cancel_and_move_does_not_claim_new_shift(self):
        service = self.book()
        services.update_service(service.pk, {
            "status": ServiceStatus.CANCELLED,
            "waktu_id": str(self.shift_b.pk),
        })
        self.assertTrue(self.reload(self.shift_a).is_available)
        self.assertTrue(self.reload(self.shift_b).is_available)

    def test_notification_sent_after_commit(self):
        service = self.book()
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            services.update_service(service.pk, {"status": ServiceStatus.IN_PROGRESS}, notify=True)
        self.assertEqual(len(callbacks), 1)
        self.assertEqual(len(mail.outbox), 1)
        msg = mail.outbox[0]
        self.assertEqual(msg.to, ["budi@example.com"])
        self.assertIn("Sedang Dikerjakan", msg.subject)
        self.assertIn("Menunggu -> Sedang Dikerjakan", msg.body)

    def test_no_notification_without_status_change(self):
        service = self.book()
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            services.update_service(service.pk, {"tempat": "Bekasi"}, notify=True)
        self.assertEqual(callbacks, [])
        self.assertEqual(mail.outbox, [])

    def test_notification_failure_does_not_break_update(self):
        service = self.book()
        with mock.patch("booking.notifications.EmailMultiAlternatives.send", side_effect=OSError("smtp down")):
            with self.assertLogs("booking.notifications", level="ERROR"):
                with self.captureOnCommitCallbacks(execute=True):
                    services.update_service(service.pk, {"status": ServiceStatus.IN_PROGRESS}, notify=True)
        self.assertEqual(self.reload(service).status, ServiceStatus.IN_PROGRESS)

    def test_notification_skipped_without_email(self):
        self.other.email = ""
        self.other.save()
        service = self.book(user=self.other)
        self.assertFalse(
            notifications.send_status_update(service.pk, ServiceStatus.PENDING, ServiceStatus.IN_PROGRESS)
        )
        self.assertEqual(mail.outbox, [])


class CancelAndDeleteTests(BookingBaseTest):
    def test_owner_cancels_pending(self):
        service = self.book()
        services.cancel_service(service.pk, self.user)
        self.assertEqual(self.reload(service).status, ServiceStatus.CANCELLED)
        self.assertTrue(self.reload(self.shift_a).is_available)

    def test_cancel_by_other_user_not_found(self):
        service = self.book()
        with self.assertRaises(errors.NotFound):
            services.cancel_service(service.pk, self.other)

    def test_cancel_in_progress_conflict(self):
        service = self.book(status=ServiceStatus.IN_PROGRESS)
        with self.assertRaises(errors.Conflict):
            services.cancel_service(service.pk, self.user)

    def test_delete_in_progress_refused(self):
        service = self.book(status=ServiceStatus.IN_PROGRESS)
        with self.assertRaises(errors.Conflict):
            services.delete_service(service.pk)
        self.assertTrue(Service.objects.filter(pk=service.pk).exists())
        self.assertFalse(self.reload(self.shift_a).is_available)

    def test_delete_pending_releases_shift(self):
        service = self.book()
        summary = services.delete_service(service.pk)
        self.assertEqual(summary["customer"], "Budi")
        self.assertEqual(summary["device"], "Samsung Galaxy S21")
        self.assertFalse(Service.objects.filter(pk=service.pk).exists())
        self.assertTrue(self.reload(self.shift_a).is_available)

    def test_delete_waktu_in_use_refused(self):
        self.book()
        with self.assertRaises(errors.Conflict):
            services.delete_waktu(self.shift_a.pk)
        summary = services.delete_waktu(self.shift_b.pk)
        self.assertEqual(summary["nama_shift"], "Shift B")


class ReadPathTests(BookingBaseTest):
    def test_estimasi_biaya_includes_service_fee(self):
        service = self.book()
        self.assertEqual(service.total_harga_sparepart(), 1500000)
        self.assertEqual(service.estimasi_biaya(), 1538000)

    def test_cost_sums_every_part_of_a_fault(self):
        PergantianBarang.objects.create(kendala=self.lcd, nama_barang="Frame LCD S21", harga=200000)
        service = self.book()
        self.assertEqual(service.total_harga_sparepart(), 1700000)
        self.assertEqual(service.estimasi_biaya(), 1738000)

    def test_slot_availability_is_per_date(self):
        self.book()
        rows = {r["waktu"].nama_shift: r["free"] for r in services.slot_availability(TANGGAL)}
        self.assertEqual(rows, {"Shift A": False, "Shift B": True})
        self.assertTrue(services.is_slot_free(self.shift_a.pk, "2025-01-16"))

    def test_tracking_steps_follow_status(self):
        service = self.book()
        steps = tracking_steps(service)
        self.assertEqual(len(steps), 4)
        self.assertFalse(any(s["completed"] for s in steps))

        services.update_service(service.pk, {"status": ServiceStatus.CANCELLED})
        steps = tracking_steps(self.reload(service))
        self.assertEqual(steps[3]["title"], "Pesanan dibatalkan")
        self.assertTrue(steps[3]["completed"])


class BookingViewTests(BookingBaseTest):
    def setUp(self):
        super().setUp()
        self.api_client.login(username="budi", password="12345")

    def test_book_requires_login(self):
        self.api_client.logout()
        res = self.api_client.post(reverse("booking:book"), self.payload(), format="json")
        self.assertIn(res.status_code, (401, 403))

    def test_book_success(self):
        res = self.api_client.post(reverse("booking:book"), self.payload(), format="json")
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.data["data"]["status"], ServiceStatus.PENDING)
        self.assertEqual(res.data["data"]["estimasi_biaya"], 1538000)

    def test_book_missing_fields(self):
        res = self.api_client.post(reverse("booking:book"), {"tempat": "Depok"}, format="json")
        self.assertEqual(res.status_code, 400)
        self.assertIn("waktu_id", res.data["fields"])

    def test_book_conflict_returns_409(self):
        self.book(user=self.other)
        res = self.api_client.post(reverse("booking:book"), self.payload(), format="json")
        self.assertEqual(res.status_code, 409)
        self.assertIn("existing_service", res.data["details"])

    def test_book_busy_returns_503(self):
        with mock.patch("booking.services._apply_timeouts", side_effect=OperationalError("statement timeout")):
            res = self.api_client.post(reverse("booking:book"), self.payload(), format="json")
        self.assertEqual(res.status_code, 503)

    def test_availability_requires_date(self):
        res = self.api_client.get(reverse("booking:availability"))
        self.assertEqual(res.status_code, 400)

    def test_availability_single_shift(self):
        self.book()
        res = self.api_client.get(reverse("booking:availability"), {"waktu": str(self.shift_a.pk), "date": TANGGAL})
        self.assertEqual(res.status_code, 200)
        self.assertFalse(res.data["free"])

    def test_availability_all_shifts(self):
        res = self.api_client.get(reverse("booking:availability"), {"date": TANGGAL})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(len(res.data), 2)

    def test_my_services_and_tracking(self):
        self.book()
        self.book(user=self.other, waktu=self.shift_b)
        res = self.api_client.get(reverse("booking:mine_api"))
        self.assertEqual(res.data["count"], 1)
        res = self.api_client.get(reverse("booking:tracking_api"))
        self.assertEqual(len(res.data["content"][0]["steps"]), 4)

    def test_cancel_view(self):
        service = self.book()
        res = self.api_client.post(reverse("booking:service-cancel", args=[service.pk]))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["status"], ServiceStatus.CANCELLED)

    def test_detail_forbidden_for_other_user(self):
        service = self.book(user=self.other)
        res = self.api_client.get(reverse("booking:service-detail", args=[service.pk]))
        self.assertEqual(res.status_code, 403)

    def test_non_admin_cannot_update(self):
        service = self.book()
        res = self.api_client.patch(
            reverse("booking:service-detail", args=[service.pk]),
            {"status": ServiceStatus.COMPLETED}, format="json",
        )
        self.assertEqual(res.status_code, 403)


class AdminViewTests(BookingBaseTest):
    def setUp(self):
        super().setUp()
        self.api_client.login(username="admin", password="12345")

    def test_list_filters_by_status(self):
        self.book()
        self.book(user=self.other, waktu=self.shift_b, status=ServiceStatus.IN_PROGRESS)
        res = self.api_client.get(reverse("booking:service-list"), {"status": ServiceStatus.IN_PROGRESS})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["count"], 1)
        res = self.api_client.get(reverse("booking:service-list"), {"status": "ASAL"})
        self.assertEqual(res.status_code, 400)

    def test_list_filters_by_user(self):
        self.book()
        self.book(user=self.other, waktu=self.shift_b)
        res = self.api_client.get(reverse("booking:service-list"), {"user": str(self.other.pk)})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["count"], 1)
        res = self.api_client.get(reverse("booking:service-list"), {"user": "abc"})
        self.assertEqual(res.status_code, 400)
        self.assertIn("user", res.data["fields"])

    def test_update_with_notification(self):
        service = self.book()
        url = reverse("booking:service-detail", args=[service.pk])
        with self.captureOnCommitCallbacks(execute=True):
            res = self.api_client.patch(url, {"status": ServiceStatus.IN_PROGRESS, "notify": True}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["data"]["status"], ServiceStatus.IN_PROGRESS)
        self.assertEqual(len(mail.outbox), 1)

    def test_update_illegal_transition_400(self):
        service = self.book()
        services.update_service(service.pk, {"status": ServiceStatus.CANCELLED})
        res = self.api_client.patch(
            reverse("booking:service-detail", args=[service.pk]),
            {"status": ServiceStatus.PENDING}, format="json",
        )
        self.assertEqual(res.status_code, 400)
        self.assertIn("status", res.data["fields"])

    def test_delete_in_progress_409(self):
        service = self.book(status=ServiceStatus.IN_PROGRESS)
        res = self.api_client.delete(reverse("booking:service-detail", args=[service.pk]))
        self.assertEqual(res.status_code, 409)

    def test_delete_unknown_404(self):
        res = self.api_client.delete(reverse("booking:service-detail", args=["tidak-ada"]))
        self.assertEqual(res.status_code, 404)


class WaktuViewTests(BookingBaseTest):
    def setUp(self):
        super().setUp()
        self.api_client.login(username="admin", password="12345")

    def test_list_is_public(self):
        self.api_client.logout()
        res = self.api_client.get(reverse("booking:waktu-list"))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["content"][0]["jam_mulai"], "09:00")

    def test_create_shift(self):
        res = self.api_client.post(
            reverse("booking:waktu-list"),
            {"nama_shift": "Shift Malam", "jam_mulai": "18:00", "jam_selesai": "21:00"},
            format="json",
        )
        self.assertEqual(res.status_code, 201)
        self.assertTrue(res.data["data"]["is_available"])

    def test_create_requires_admin(self):
        self.api_client.login(username="budi", password="12345")
        res = self.api_client.post(
            reverse("booking:waktu-list"),
            {"nama_shift": "Shift Malam", "jam_mulai": "18:00", "jam_selesai": "21:00"},
            format="json",
        )
        self.assertEqual(res.status_code, 403)

    def test_duplicate_name_case_insensitive(self):
        res = self.api_client.post(
            reverse("booking:waktu-list"),
            {"nama_shift": "shift a", "jam_mulai": "18:00", "jam_selesai": "21:00"},
            format="json",
        )
        self.assertEqual(res.status_code, 400)
        self.assertIn("nama_shift", res.data["fields"])

    def test_start_must_precede_end(self):
        res = self.api_client.post(
            reverse("booking:waktu-list"),
            {"nama_shift": "Shift Malam", "jam_mulai": "21:00", "jam_selesai": "18:00"},
            format="json",
        )
        self.assertEqual(res.status_code, 400)

    def test_overlap_conflict(self):
        res = self.api_client.post(
            reverse("booking:waktu-list"),
            {"nama_shift": "Shift Siang", "jam_mulai": "11:00", "jam_selesai": "14:00"},
            format="json",
        )
        self.assertEqual(res.status_code, 409)

    def test_update_own_range_is_not_overlap(self):
        res = self.api_client.patch(
            reverse("booking:waktu-detail", args=[self.shift_a.pk]),
            {"jam_mulai": "08:00"}, format="json",
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["data"]["jam_mulai"], "08:00")

    def test_is_available_is_read_only(self):
        self.api_client.patch(
            reverse("booking:waktu-detail", args=[self.shift_a.pk]),
            {"is_available": False}, format="json",
        )
        self.assertTrue(self.reload(self.shift_a).is_available)

    def test_delete_in_use_409(self):
        self.book()
        res = self.api_client.delete(reverse("booking:waktu-detail", args=[self.shift_a.pk]))
        self.assertEqual(res.status_code, 409)
        res = self.api_client.delete(reverse("booking:waktu-detail", args=[self.shift_b.pk]))
        self.assertEqual(res.status_code, 200)


class ScheduleRetryTests(BookingBaseTest):
    """Shift service dipindah admin lain di antara pembacaan awal dan penguncian."""

    def setUp(self):
        super().setUp()
        self.service = self.book()
        self.stale = Service.objects.get(pk=self.service.pk)
        services.update_service(self.service.pk, {"waktu_id": str(self.shift_b.pk)})
        self.real_get = services._get_or_404

    def stale_once(self):
        served = []

        def lookup(queryset, pk, label):
            if label == "Service" and not served:
                served.append(pk)
                return self.stale
            return self.real_get(queryset, pk, label)
        return lookup

    def test_update_retries_with_fresh_schedule(self):
        with mock.patch("booking.services._get_or_404", side_effect=self.stale_once()):
            with self.assertLogs("booking.services", level="WARNING"):
                services.update_service(self.service.pk, {"tempat": "Bekasi"})
        service = self.reload(self.service)
        self.assertEqual(service.tempat, "Bekasi")
        self.assertEqual(service.waktu, self.shift_b)
        self.assertTrue(self.reload(self.shift_a).is_available)
        self.assertFalse(self.reload(self.shift_b).is_available)

    def test_update_gives_up_after_repeated_moves(self):
        def always_stale(queryset, pk, label):
            return self.stale if label == "Service" else self.real_get(queryset, pk, label)

        with mock.patch("booking.services._get_or_404", side_effect=always_stale):
            with self.assertLogs("booking.services", level="WARNING") as logs:
                with self.assertRaises(errors.BookingUnavailable):
                    services.update_service(self.service.pk, {"tempat": "Bekasi"})
        self.assertEqual(len(logs.records), services.LOCK_ATTEMPTS)
        self.assertEqual(self.reload(self.service).tempat, "Depok")

    def test_delete_releases_current_shift(self):
        with mock.patch("booking.services._get_or_404", side_effect=self.stale_once()):
            with self.assertLogs("booking.services", level="WARNING"):
                services.delete_service(self.service.pk)
        self.assertFalse(Service.objects.filter(pk=self.service.pk).exists())
        self.assertTrue(self.reload(self.shift_b).is_available)


class ExecutionDeadlineTests(BookingBaseTest):
    def test_deadline_checks_monotonic_clock(self):
        with mock.patch("booking.services.time.monotonic", side_effect=[100.0, 100.5, 101.5]):
            expired = services._sqlite_deadline(1)
            self.assertFalse(expired())
            self.assertTrue(expired())

    @skipUnless(connection.vendor == "sqlite", "batas waktu progress handler khusus sqlite")
    @override_settings(BOOKING_STATEMENT_TIMEOUT_MS=-1)
    @mock.patch("booking.services.SQLITE_PROGRESS_STEPS", 1)
    def test_sqlite_interrupts_slow_transaction(self):
        with self.assertLogs("booking.services", level="ERROR"):
            with self.assertRaises(errors.BookingUnavailable):
                self.book()
        self.assertEqual(Service.objects.count(), 0)
        self.assertTrue(self.reload(self.shift_a).is_available)

    @skipUnless(connection.vendor == "sqlite", "batas waktu progress handler khusus sqlite")
    def test_handler_cleared_after_transaction(self):
        self.book()
        with mock.patch("booking.services._sqlite_deadline", return_value=lambda: True):
            with self.assertRaises(errors.BookingUnavailable):
                self.book(user=self.other, waktu=self.shift_b)
        self.assertEqual(Service.objects.count(), 1)


class ServiceAdminTests(BookingBaseTest):
    def setUp(self):
        super().setUp()
        self.model_admin = admin.site._registry[Service]
        self.superuser = User.objects.create_superuser("root", "root@example.com", "12345")

    def request(self):
        request = RequestFactory().post("/admin/booking/service/")
        request.user = self.superuser
        request._messages = CookieStorage(request)
        return request

    def test_add_disabled(self):
        self.assertFalse(self.model_admin.has_add_permission(self.request()))

    def test_delete_permission_follows_status(self):
        pending = self.book()
        in_progress = self.book(user=self.other, waktu=self.shift_b, status=ServiceStatus.IN_PROGRESS)
        request = self.request()
        self.assertTrue(self.model_admin.has_delete_permission(request, pending))
        self.assertFalse(self.model_admin.has_delete_permission(request, in_progress))

    def test_delete_model_releases_shift(self):
        service = self.book()
        self.model_admin.delete_model(self.request(), service)
        self.assertFalse(Service.objects.filter(pk=service.pk).exists())
        self.assertTrue(self.reload(self.shift_a).is_available)

    def test_delete_model_keeps_in_progress(self):
        service = self.book(status=ServiceStatus.IN_PROGRESS)
        request = self.request()
        self.model_admin.delete_model(request, service)
        self.assertTrue(Service.objects.filter(pk=service.pk).exists())
        self.assertFalse(self.reload(self.shift_a).is_available)
        self.assertEqual(len(list(request._messages)), 1)

    def test_delete_queryset_skips_in_progress(self):
        pending = self.book()
        in_progress = self.book(user=self.other, waktu=self.shift_b, status=ServiceStatus.IN_PROGRESS)
        request = self.request()
        self.model_admin.delete_queryset(request, Service.objects.all())
        self.assertEqual(list(Service.objects.values_list("pk", flat=True)), [in_progress.pk])
        self.assertFalse(Service.objects.filter(pk=pending.pk).exists())
        self.assertTrue(self.reload(self.shift_a).is_available)
        self.assertFalse(self.reload(self.shift_b).is_available)
        self.assertEqual(len(list(request._messages)), 1)


class RevenueReportTests(BookingBaseTest):
    def complete(self, **kwargs):
        service = self.book(**kwargs)
        services.update_service(service.pk, {"status": ServiceStatus.COMPLETED})
        return service

    def setUp(self):
        super().setUp()
        self.complete()
        self.complete(waktu=self.shift_b, kendala_ids=[])
        self.complete(tanggal="2025-03-02")
        self.book(tanggal="2025-03-03")
        self.complete(tanggal="2024-12-31")

    def test_monthly_breakdown(self):
        report = reports.monthly_revenue(2025)
        months = report["monthly_revenue"]
        self.assertEqual(len(months), 12)

        januari = months[0]
        self.assertEqual(januari["month_name"], "Januari")
        self.assertEqual(januari["total_orders"], 2)
        self.assertEqual(januari["revenue_from_parts"], 1500000)
        self.assertEqual(januari["revenue_from_service"], 76000)
        self.assertEqual(januari["total_revenue"], 1576000)
        self.assertEqual(januari["average_order_value"], 788000)

        self.assertEqual(months[2]["total_revenue"], 1538000)
        self.assertEqual(months[2]["total_orders"], 1)
        self.assertEqual(months[1]["total_revenue"], 0)
        self.assertEqual(months[1]["average_order_value"], 0)

    def test_summary(self):
        summary = reports.monthly_revenue(2025)["summary"]
        self.assertEqual(summary["year_total"], 3114000)
        self.assertEqual(summary["year_total_orders"], 3)
        self.assertEqual(summary["total_parts_revenue"], 3000000)
        self.assertEqual(summary["total_service_revenue"], 114000)
        self.assertEqual(summary["best_month"], {"month": "Januari", "revenue": 1576000, "orders": 2})
        self.assertEqual(summary["months_with_revenue"], 2)
        self.assertEqual(summary["average_monthly_revenue"], 1557000)

    def test_empty_year(self):
        summary = reports.monthly_revenue(2023)["summary"]
        self.assertEqual(summary["year_total"], 0)
        self.assertEqual(summary["average_order_value"], 0)

    def test_view_is_admin_only(self):
        url = reverse("booking:revenue-monthly")
        self.api_client.login(username="budi", password="12345")
        self.assertEqual(self.api_client.get(url, {"year": "2025"}).status_code, 403)

        self.api_client.login(username="admin", password="12345")
        res = self.api_client.get(url, {"year": "2025"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["summary"]["year_total"], 3114000)

    def test_view_bad_year(self):
        self.api_client.login(username="admin", password="12345")
        res = self.api_client.get(reverse("booking:revenue-monthly"), {"year": "abc"})
        self.assertEqual(res.status_code, 400)
        self.assertIn("year", res.data["fields"])
