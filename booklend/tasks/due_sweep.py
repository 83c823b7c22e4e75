# booklend/tasks/due_sweep.py
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import OperationalError

from booklend import clock
from booklend.errors import Transient
from booklend.extensions import db
from booklend.models.enums import BorrowStatus
from booklend.repositories.borrow_repo import BorrowRepo
from booklend.services import fine_service
from booklend.services.change_feed import current_feed
from booklend.services.diff_engine import Notification
from booklend.services.lifecycle_service import LifecycleService
from booklend.services.notification_service import NotificationService


@dataclass
class SweepReport:
    users: int = 0
    checked: int = 0
    due_soon: int = 0
    newly_overdue: int = 0
    overdue_reminders: int = 0

    def merge(self, other: "SweepReport"):
        self.users += other.users
        self.checked += other.checked
        self.due_soon += other.due_soon
        self.newly_overdue += other.newly_overdue
        self.overdue_reminders += other.overdue_reminders
        return self


def _due_soon_note(record, days_left: int) -> Notification:
    return Notification(
        type="due_soon",
        title="Book due soon",
        body=f"{record.book_title} is due in {days_left} day(s). You can renew it if needed.",
        target_route="borrowed_books",
        borrow_id=record.id,
    )


def _overdue_note(record, first: bool) -> Notification:
    if first:
        return Notification(
            type="overdue",
            title="Overdue notice #1",
            body=(
                f"{record.book_title} is {record.overdue_days} day(s) overdue. "
                f"Current fine: {record.fine_amount}. "
                f"Please return the book or pay the fine to keep borrowing."
            ),
            target_route="borrowed_books",
            borrow_id=record.id,
        )
    return Notification(
        type="overdue_reminder",
        title="Overdue reminder",
        body=(
            f"{record.book_title} is {record.overdue_days} day(s) overdue. "
            f"Current fine: {record.fine_amount}. Please return the book or pay the fine."
        ),
        target_route="borrowed_books",
        borrow_id=record.id,
    )


def sweep_user(user_id: int, now=None) -> SweepReport:
    """
    Re-evaluate one user's loans against the clock and commit the result.

    Every write is a recomputation from (now, due_date), so running it twice or
    after a failed run leaves the same state behind.
    """
    now = now or clock.now()
    due_soon_days = set(current_app.config["DUE_SOON_DAYS"])
    report = SweepReport(users=1)

    try:
        records = BorrowRepo.list_on_loan(user_id)
        for record in records:
            if record.due_date is None:
                continue
            report.checked += 1

            days_left = fine_service.days_until_due(now, record.due_date)
            if record.status == BorrowStatus.ACTIVE and days_left in due_soon_days:
                NotificationService.deliver(user_id, _due_soon_note(record, days_left), commit=False)
                report.due_soon += 1

            if now <= record.due_date:
                continue

            assessment = LifecycleService.refresh_overdue(record, now)
            if not assessment.is_overdue:
                continue
            if assessment.newly_overdue:
                NotificationService.deliver(user_id, _overdue_note(record, first=True), commit=False)
                report.newly_overdue += 1
            elif assessment.reminder_due:
                NotificationService.deliver(user_id, _overdue_note(record, first=False), commit=False)
                report.overdue_reminders += 1

        db.session.commit()
    except OperationalError as e:
        db.session.rollback()
        raise Transient(f"Store unavailable during sweep: {e.orig or e}") from e
    except Exception:
        db.session.rollback()
        raise

    feed = current_feed()
    if feed is not None:
        feed.drain()
    return report


def run_due_sweep(app) -> SweepReport:
    """
    One scheduler tick: sweep every user with an open session. Users who are
    not logged in are skipped until they come back.
    """
    from booklend.services.notification_center import current_center

    with app.app_context():
        total = SweepReport()
        sessions = current_center().active_sessions()
        now = clock.now()
        for ctx in sessions:
            total.merge(sweep_user(ctx.user_id, now))

        current_app.logger.info(
            f"[sweep] users={total.users} checked={total.checked} due_soon={total.due_soon} "
            f"newly_overdue={total.newly_overdue} reminders={total.overdue_reminders}"
        )
        return total
