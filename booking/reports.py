"""
Laporan pendapatan bulanan dari service yang sudah COMPLETED.

Pendapatan satu service = total harga sparepart dari kendala yang dipilih
ditambah biaya jasa flat (BOOKING_SERVICE_FEE). Bulan diambil dari tanggal_pesan.
"""
from django.conf import settings

from .models import Service, ServiceStatus

NAMA_BULAN = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]


def _avg(total, count):
    return round(total / count, 2) if count else 0


def monthly_revenue(year: int) -> dict:
    fee = settings.BOOKING_SERVICE_FEE
    services = (
        Service.objects
        .filter(status=ServiceStatus.COMPLETED, tanggal_pesan__year=year)
        .prefetch_related("kendala__pergantian_barang")
    )

    per_month = {m: {"orders": 0, "parts": 0, "service": 0} for m in range(1, 13)}
    for service in services:
        row = per_month[service.tanggal_pesan.month]
        row["orders"] += 1
        row["parts"] += service.total_harga_sparepart()
        row["service"] += fee

    year_total = sum(r["parts"] + r["service"] for r in per_month.values())

    months = []
    for m in range(1, 13):
        row = per_month[m]
        total = row["parts"] + row["service"]
        months.append({
            "month": m,
            "year": year,
            "month_name": NAMA_BULAN[m - 1],
            "total_revenue": total,
            "total_orders": row["orders"],
            "revenue_from_parts": row["parts"],
            "revenue_from_service": row["service"],
            "average_order_value": _avg(total, row["orders"]),
            "percentage_of_total": round(total * 100 / year_total, 2) if year_total else 0,
        })

    total_orders = sum(m["total_orders"] for m in months)
    best = max(months, key=lambda m: m["total_revenue"])
    active_months = [m for m in months if m["total_revenue"] > 0]

    return {
        "year": year,
        "monthly_revenue": months,
        "summary": {
            "year_total": year_total,
            "year_total_orders": total_orders,
            "total_parts_revenue": sum(m["revenue_from_parts"] for m in months),
            "total_service_revenue": sum(m["revenue_from_service"] for m in months),
            "best_month": {
                "month": best["month_name"],
                "revenue": best["total_revenue"],
                "orders": best["total_orders"],
            },
            "average_monthly_revenue": _avg(year_total, len(active_months)),
            "average_order_value": _avg(year_total, total_orders),
            "months_with_revenue": len(active_months),
        },
    }
