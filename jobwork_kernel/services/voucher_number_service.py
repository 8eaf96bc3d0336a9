"""
VoucherNumberService -- collision-free voucher numbers per financial year.

Responsibility:
    Issues ``MFVYYYYMMDD_NNNN`` numbers whose sequence restarts every
    financial year.  The last sequence of each year lives in a
    VoucherNumberCounter row that is locked (``SELECT ... FOR UPDATE``)
    for the increment, so two admins creating vouchers at the same moment
    serialize on the row instead of both reading the same maximum.

Architecture position:
    Kernel > Services -- imperative shell.  Called by VoucherService when
    a voucher is created.

Invariants enforced:
    - Numbers are never reused within a year: the counter only moves
      forward, and deleting a voucher leaves a gap.
    - No read-max-then-insert path.  The maximum of existing numbers is
      read only once, to seed a year's counter row on first use (legacy
      vouchers issued before counters existed).
    - Transactional: the increment is visible only after the caller
      commits.  A rollback returns the number.

Failure modes:
    - IntegrityError on concurrent first use of a year: handled by
      rolling back the savepoint and locking the row the other
      transaction created.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jobwork_kernel.domain.financial_year import FinancialYear
from jobwork_kernel.domain.numbering import format_voucher_number, highest_sequence
from jobwork_kernel.domain.policy import VoucherPolicy
from jobwork_kernel.logging_config import get_logger
from jobwork_kernel.models.voucher import VoucherModel
from jobwork_kernel.models.voucher_number_counter import VoucherNumberCounter
from jobwork_kernel.services.base import BaseService

logger = get_logger("services.voucher_number")


class VoucherNumberService(BaseService[VoucherNumberCounter]):
    """
    Allocates voucher numbers from per-year counter rows.

    Usage:
        with session_scope() as session:
            number = VoucherNumberService(session).allocate(date(2025, 7, 23))
    """

    def __init__(self, session: Session, policy: VoucherPolicy | None = None):
        super().__init__(session)
        self._policy = policy or VoucherPolicy()

    def financial_year(self, as_of: date) -> FinancialYear:
        return FinancialYear.containing(as_of, self._policy.financial_year_start_month)

    def allocate(self, as_of: date) -> str:
        """
        Issue the next voucher number for the financial year containing ``as_of``.

        The caller must be inside a transaction; the counter row stays
        locked until it ends.
        """
        fy = self.financial_year(as_of)
        sequence = self._next_sequence(fy)
        voucher_no = format_voucher_number(
            as_of,
            sequence,
            prefix=self._policy.voucher_prefix,
            width=self._policy.voucher_sequence_width,
        )
        logger.info(
            "voucher_number_allocated",
            extra={"voucher_no": voucher_no, "financial_year": fy.code, "sequence": sequence},
        )
        return voucher_no

    def current_value(self, financial_year_code: str) -> int | None:
        """Last sequence issued in a year, or None if the year has no counter."""
        counter = self.session.execute(
            select(VoucherNumberCounter)
            .where(VoucherNumberCounter.financial_year == financial_year_code)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def _lock_counter(self, code: str) -> VoucherNumberCounter | None:
        return self.session.execute(
            select(VoucherNumberCounter)
            .where(VoucherNumberCounter.financial_year == code)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _seed(self, fy: FinancialYear) -> int:
        existing = self.session.execute(
            select(VoucherModel.voucher_no).where(VoucherModel.financial_year == fy.code)
        ).scalars().all()
        return highest_sequence(existing, fy, prefix=self._policy.voucher_prefix)

    def _next_sequence(self, fy: FinancialYear) -> int:
        counter = self._lock_counter(fy.code)

        if counter is None:
            seed = self._seed(fy)
            savepoint = self.session.begin_nested()
            try:
                self.session.add(VoucherNumberCounter(financial_year=fy.code, current_value=seed + 1))
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "voucher_number_counter_created",
                    extra={"financial_year": fy.code, "seeded_from": seed},
                )
                return seed + 1
            except IntegrityError:
                logger.debug("voucher_number_counter_race_retry", extra={"financial_year": fy.code})
                savepoint.rollback()
                self.session.expire_all()
                counter = self._lock_counter(fy.code)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()
        return counter.current_value
