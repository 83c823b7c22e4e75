from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from booklend.models.borrow import BorrowRecord
from booklend.models.enums import BorrowStatus


def _as_date(value) -> date:
    return value.date() if isinstance(value, datetime) else value


def overdue_days(now, due) -> int:
    """Whole calendar days past due; time of day is ignored."""
    if not due:
        return 0
    return (_as_date(now) - _as_date(due)).days


def days_until_due(now, due) -> int:
    return -overdue_days(now, due)


@dataclass(frozen=True)
class FineAssessment:
    overdue_days: int
    fine_per_day: int
    fine_amount: int
    # the record was not overdue before this assessment
    newly_overdue: bool
    # an already-overdue record reached a reminder day
    reminder_due: bool

    @property
    def is_overdue(self) -> bool:
        return self.overdue_days > 0


def assess(record: BorrowRecord, now: datetime, fine_per_day: int, reminder_interval_days: int) -> FineAssessment:
    """
    Pure computation for one record at `now`; applies nothing.

    The rate is the one captured when the record first went overdue. Only a
    record that has never been overdue picks up `fine_per_day`.
    """
    days = overdue_days(now, record.due_date)
    already = record.status == BorrowStatus.OVERDUE or record.overdue_since is not None
    rate = record.fine_per_day if already and record.fine_per_day is not None else fine_per_day

    if days <= 0:
        return FineAssessment(0, rate, 0, newly_overdue=False, reminder_due=False)

    newly = record.status != BorrowStatus.OVERDUE
    reminder = (
        not newly
        and reminder_interval_days > 0
        and days % reminder_interval_days == 0
    )
    return FineAssessment(days, rate, days * rate, newly_overdue=newly, reminder_due=reminder)


def apply_assessment(record: BorrowRecord, assessment: FineAssessment, mark_status: bool = True):
    """
    Write an assessment onto the record. `fine_paid` is only initialised on the
    first transition into overdue, never reset afterwards.
    """
    if not assessment.is_overdue:
        return record

    if record.overdue_since is None:
        record.overdue_since = record.due_date
        record.fine_per_day = assessment.fine_per_day
        record.fine_paid = False

    record.overdue_days = assessment.overdue_days
    record.fine_amount = assessment.fine_amount
    if mark_status and record.status == BorrowStatus.ACTIVE:
        record.status = BorrowStatus.OVERDUE
    return record
