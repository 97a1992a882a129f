import csv
import io
import re
from datetime import datetime
from decimal import Decimal

import pytest

from services.donation_service.errors import (
    AuthorizationDeniedError,
    ReceiptUnavailableError,
    RecordNotFoundError,
    UnsupportedExportFormatError,
)
from services.donation_service.exporter import CSV_HEADER
from services.donation_service.models import DonationStatus
from services.donation_service.schemas import DonationFilters
from shared.security.access import AccessContext

ADMIN = AccessContext(user_id=20, role="templeadmin", direct_entity_id=1, permission_type="full")
MONITOR = AccessContext(user_id=21, role="monitoringuser", direct_entity_id=1, permission_type="readonly")
OTHER_ADMIN = AccessContext(user_id=30, role="templeadmin", direct_entity_id=2, permission_type="full")
DEVOTEE = AccessContext(user_id=10, role="devotee", permission_type="self")


class TestGenerateReceipt:

    @pytest.mark.asyncio
    async def test_donor_gets_receipt_for_own_successful_donation(self, service, db, temples, make_donation):
        donation = await make_donation(donated_at=datetime(2024, 4, 14, 9, 30))

        receipt = await service.generate_receipt(
            db, donation.id, requesting_user_id=10, access=DEVOTEE, entity_id=1
        )

        assert receipt.receipt_number == f"RCP-1-{donation.id}"
        assert receipt.donor_name == "Asha Rao"
        assert receipt.donor_email == "asha@example.com"
        assert receipt.entity_name == "Sri Ranganatha Temple"
        assert receipt.transaction_id == donation.payment_id
        assert receipt.donation_amount == Decimal("500.00")
        assert receipt.donated_at == datetime(2024, 4, 14, 9, 30)

    @pytest.mark.asyncio
    async def test_receipt_number_is_deterministic(self, service, db, temples, make_donation):
        donation = await make_donation()
        first = await service.generate_receipt(db, donation.id, 10, DEVOTEE, 1)
        second = await service.generate_receipt(db, donation.id, 10, DEVOTEE, 1)
        assert first.receipt_number == second.receipt_number

    @pytest.mark.asyncio
    async def test_staff_of_same_temple_may_read(self, service, db, temples, make_donation):
        donation = await make_donation()
        receipt = await service.generate_receipt(db, donation.id, 21, MONITOR, 1)
        assert receipt.id == donation.id

    @pytest.mark.asyncio
    async def test_other_devotee_denied(self, service, db, temples, make_donation):
        donation = await make_donation(user_id=11)
        with pytest.raises(AuthorizationDeniedError):
            await service.generate_receipt(db, donation.id, 10, DEVOTEE, 1)

    @pytest.mark.asyncio
    async def test_own_donation_through_other_temple_denied(self, service, db, temples, make_donation):
        donation = await make_donation()
        with pytest.raises(AuthorizationDeniedError):
            await service.generate_receipt(db, donation.id, 10, DEVOTEE, 2)

    @pytest.mark.asyncio
    async def test_staff_of_other_temple_denied(self, service, db, temples, make_donation):
        donation = await make_donation()
        with pytest.raises(AuthorizationDeniedError):
            await service.generate_receipt(db, donation.id, 30, OTHER_ADMIN, 2)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [DonationStatus.PENDING, DonationStatus.FAILED])
    async def test_only_successful_donations_have_receipts(self, service, db, temples, make_donation, status):
        donation = await make_donation(status=status)
        with pytest.raises(ReceiptUnavailableError):
            await service.generate_receipt(db, donation.id, 10, DEVOTEE, 1)

    @pytest.mark.asyncio
    async def test_missing_donation(self, service, db, temples):
        with pytest.raises(RecordNotFoundError):
            await service.generate_receipt(db, 999, 10, DEVOTEE, 1)

    @pytest.mark.asyncio
    async def test_donor_name_falls_back_to_email_then_anonymous(self, service, db, temples, make_donation):
        nameless = await make_donation(user_id=11)
        ghost = await make_donation(user_id=99)

        staff_view = await service.generate_receipt(db, nameless.id, 20, ADMIN, 1)
        assert staff_view.donor_name == "ravi@example.com"

        ghost_view = await service.generate_receipt(db, ghost.id, 20, ADMIN, 1)
        assert ghost_view.donor_name == "Anonymous"


class TestFilteredRetrieval:

    @pytest.mark.asyncio
    async def test_results_are_scoped_to_the_entity(self, service, db, temples, make_donation):
        await make_donation(entity_id=1)
        await make_donation(entity_id=2)

        rows, total = await service.get_donations_with_filters(db, DonationFilters(entity_id=1), ADMIN)

        assert total == 1
        assert [r.entity_id for r in rows] == [1]

    @pytest.mark.asyncio
    async def test_devotee_cannot_list_temple_donations(self, service, db, temples):
        with pytest.raises(AuthorizationDeniedError, match="read access denied"):
            await service.get_donations_with_filters(db, DonationFilters(entity_id=1), DEVOTEE)

    @pytest.mark.asyncio
    async def test_cross_tenant_request_denied(self, service, db, temples, make_donation):
        await make_donation(entity_id=2)
        with pytest.raises(AuthorizationDeniedError, match="access denied to requested entity"):
            await service.get_donations_with_filters(db, DonationFilters(entity_id=2), ADMIN)

    @pytest.mark.asyncio
    async def test_status_filter_is_case_insensitive_and_all_is_ignored(
        self, service, db, temples, make_donation
    ):
        await make_donation(status=DonationStatus.SUCCESS)
        await make_donation(status=DonationStatus.FAILED)

        rows, total = await service.get_donations_with_filters(
            db, DonationFilters(entity_id=1, status="success"), ADMIN
        )
        assert total == 1
        assert rows[0].status == "SUCCESS"

        _, total = await service.get_donations_with_filters(
            db, DonationFilters(entity_id=1, status="all"), ADMIN
        )
        assert total == 2

    @pytest.mark.asyncio
    async def test_search_matches_donor_email_and_ids(self, service, db, temples, make_donation):
        await make_donation(user_id=10)
        second = await make_donation(user_id=11)

        rows, _ = await service.get_donations_with_filters(
            db, DonationFilters(entity_id=1, search="RAVI@"), ADMIN
        )
        assert [r.id for r in rows] == [second.id]

        rows, _ = await service.get_donations_with_filters(
            db, DonationFilters(entity_id=1, search=second.order_id), ADMIN
        )
        assert [r.id for r in rows] == [second.id]

    @pytest.mark.asyncio
    async def test_amount_range_and_type(self, service, db, temples, make_donation):
        await make_donation(amount="100.00", donation_type="seva")
        mid = await make_donation(amount="750.00", donation_type="festival")
        await make_donation(amount="5000.00", donation_type="festival")

        rows, total = await service.get_donations_with_filters(
            db,
            DonationFilters(entity_id=1, type="Festival", min_amount=Decimal("500"), max_amount=Decimal("1000")),
            ADMIN,
        )
        assert total == 1
        assert rows[0].id == mid.id

    @pytest.mark.asyncio
    async def test_pagination_reports_full_total(self, service, db, temples, make_donation):
        created = [await make_donation() for _ in range(5)]

        rows, total = await service.get_donations_with_filters(
            db, DonationFilters(entity_id=1, page=2, limit=2), ADMIN
        )

        assert total == 5
        # newest first
        assert [r.id for r in rows] == [created[2].id, created[1].id]

    @pytest.mark.asyncio
    async def test_donor_display_fields_joined(self, service, db, temples, make_donation):
        await make_donation()
        rows, _ = await service.get_donations_with_filters(db, DonationFilters(entity_id=1), MONITOR)
        assert rows[0].user_name == "Asha Rao"
        assert rows[0].entity_name == "Sri Ranganatha Temple"


class TestExport:

    @pytest.mark.asyncio
    async def test_csv_layout(self, service, db, temples, make_donation):
        await make_donation(
            amount="1001.5",
            reference_id=42,
            note="In memory of grandparents",
            donated_at=datetime(2024, 1, 26, 6, 0, 5),
        )
        await make_donation(entity_id=2)

        content, filename = await service.export_donations(db, DonationFilters(entity_id=1), "csv", ADMIN)

        assert re.fullmatch(r"donations_\d+\.csv", filename)
        rows = list(csv.reader(io.StringIO(content.decode("utf-8"))))
        assert rows[0] == CSV_HEADER
        assert len(rows) == 2
        row = dict(zip(CSV_HEADER, rows[1]))
        assert row["Date"] == "2024-01-26 06:00:05"
        assert row["Donor Name"] == "Asha Rao"
        assert row["Amount"] == "1001.50"
        assert row["Status"] == "SUCCESS"
        assert row["Transaction ID"] == "pay_seed_001"
        assert row["Reference ID"] == "42"
        assert row["Note"] == "In memory of grandparents"

    @pytest.mark.asyncio
    async def test_transaction_id_falls_back_to_order_id(self, service, db, temples, make_donation):
        pending = await make_donation(status=DonationStatus.PENDING, payment_id=None, method="PENDING")

        content, _ = await service.export_donations(db, DonationFilters(entity_id=1), "csv", ADMIN)

        rows = list(csv.reader(io.StringIO(content.decode("utf-8"))))
        assert rows[1][CSV_HEADER.index("Transaction ID")] == pending.order_id

    @pytest.mark.asyncio
    async def test_only_csv_supported(self, service, db, temples):
        with pytest.raises(UnsupportedExportFormatError):
            await service.export_donations(db, DonationFilters(entity_id=1), "xlsx", ADMIN)

    @pytest.mark.asyncio
    async def test_export_is_tenant_scoped(self, service, db, temples):
        with pytest.raises(AuthorizationDeniedError):
            await service.export_donations(db, DonationFilters(entity_id=1), "csv", OTHER_ADMIN)


class TestDonorViews:

    @pytest.mark.asyncio
    async def test_my_donations_only_within_one_temple(self, service, db, temples, make_donation):
        mine = await make_donation(user_id=10, entity_id=1)
        await make_donation(user_id=10, entity_id=2)
        await make_donation(user_id=11, entity_id=1)

        rows = await service.get_donations_by_user_and_entity(db, 10, 1)
        assert [r.id for r in rows] == [mine.id]

    @pytest.mark.asyncio
    async def test_recent_donations_respect_limit_and_fallback_date(self, service, db, temples, make_donation):
        for _ in range(3):
            await make_donation(user_id=10)
        latest = await make_donation(user_id=10, status=DonationStatus.PENDING, payment_id=None)

        recent = await service.get_recent_donations_by_user_and_entity(db, 10, 1, limit=2)

        assert len(recent) == 2
        assert all(r.donated_at is not None for r in recent)
        assert latest.id in {r.id for r in recent}

    @pytest.mark.asyncio
    async def test_recent_for_entity_requires_read_access(self, service, db, temples, make_donation):
        await make_donation()
        assert len(await service.get_recent_donations_by_entity(db, 1, ADMIN)) == 1
        with pytest.raises(AuthorizationDeniedError):
            await service.get_recent_donations_by_entity(db, 1, DEVOTEE)
