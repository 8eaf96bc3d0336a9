"""
Tests for VoucherNumberService.

Covers:
- Sequential allocation backed by the per-year counter row
- Seeding a year's counter from vouchers issued before counters existed
- Year rollover and transactional rollback of an allocation
- Concurrent allocation (PostgreSQL only; SQLite has no row locks)
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from jobwork_kernel.domain.numbering import parse_voucher_number
from jobwork_kernel.domain.policy import VoucherPolicy
from jobwork_kernel.models.voucher import VoucherModel
from jobwork_kernel.services.voucher_number_service import VoucherNumberService
from tests.builders import dispatch, make_voucher

JULY = date(2025, 7, 21)


def _insert_legacy(session, voucher_no, financial_year="2025-26"):
    voucher = make_voucher(dispatch(), voucher_no=voucher_no, voucher_id=None)
    session.add(VoucherModel.from_domain(voucher, financial_year))
    session.flush()


class TestAllocate:

    def test_sequential(self, session):
        service = VoucherNumberService(session)

        assert service.allocate(JULY) == "MFV20250721_0001"
        assert service.allocate(JULY) == "MFV20250721_0002"
        assert service.current_value("2025-26") == 2

    def test_allocation_logged(self, session, captured_logs):
        VoucherNumberService(session).allocate(JULY)

        (record,) = [r for r in captured_logs() if r["message"] == "voucher_number_allocated"]
        assert record["financial_year"] == "2025-26"
        assert record["sequence"] == 1

    def test_counter_seeded_from_existing_vouchers(self, session):
        _insert_legacy(session, "MFV20250601_0041")
        _insert_legacy(session, "MFV20250331_0120", financial_year="2024-25")

        assert VoucherNumberService(session).allocate(JULY) == "MFV20250721_0042"

    def test_counter_is_authoritative_after_seeding(self, session):
        service = VoucherNumberService(session)
        service.allocate(JULY)
        _insert_legacy(session, "MFV20250601_0099")

        assert service.allocate(JULY) == "MFV20250721_0002"

    def test_new_year_restarts(self, session):
        service = VoucherNumberService(session)
        service.allocate(JULY)

        assert service.allocate(date(2026, 4, 1)) == "MFV20260401_0001"
        assert service.current_value("2026-27") == 1
        assert service.current_value("2027-28") is None

    def test_rollback_returns_number(self, session):
        service = VoucherNumberService(session)
        service.allocate(JULY)
        session.rollback()

        assert service.allocate(JULY) == "MFV20250721_0001"

    def test_policy_prefix_and_calendar_year(self, session):
        policy = VoucherPolicy(voucher_prefix="JW", financial_year_start_month=1)
        service = VoucherNumberService(session, policy)

        assert service.allocate(JULY) == "JW20250721_0001"
        assert service.current_value("2025") == 1


@pytest.mark.postgres
class TestConcurrentAllocation:

    def test_parallel_allocations_are_unique_and_contiguous(self, committing_session_factory):
        workers = 8

        def allocate_one(_):
            session = committing_session_factory()
            try:
                number = VoucherNumberService(session).allocate(JULY)
                session.commit()
                return number
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=workers) as pool:
            numbers = list(pool.map(allocate_one, range(workers * 3)))

        sequences = sorted(parse_voucher_number(n).sequence for n in numbers)
        assert sequences == list(range(1, workers * 3 + 1))
