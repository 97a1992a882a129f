import csv
import io
from typing import Iterable

from .schemas import DonationWithUser

CSV_HEADER = [
    "ID",
    "Date",
    "Donor Name",
    "Donor Email",
    "Amount",
    "Type",
    "Method",
    "Status",
    "Transaction ID",
    "Reference ID",
    "Note",
]

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def export_filename(unix_ts: int) -> str:
    return f"donations_{unix_ts}.csv"


def _row(d: DonationWithUser) -> list:
    when = d.donated_at or d.created_at
    return [
        d.id,
        when.strftime(DATE_FORMAT) if when else "",
        d.user_name,
        d.user_email or "",
        f"{d.amount:.2f}",
        d.donation_type,
        d.method,
        d.status,
        d.payment_id or d.order_id,
        "" if d.reference_id is None else d.reference_id,
        d.note or "",
    ]


def render_csv(donations: Iterable[DonationWithUser]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for donation in donations:
        writer.writerow(_row(donation))
    return buffer.getvalue().encode("utf-8")
