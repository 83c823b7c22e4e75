from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from flask import current_app
from sqlalchemy.exc import OperationalError

from booklend import clock
from booklend.errors import Conflict, DuplicateRequest, NotFound, Transient
from booklend.extensions import db
from booklend.models.borrow import BorrowRecord
from booklend.models.enums import BorrowStatus, RenewalDecision
from booklend.repositories.borrow_repo import BorrowRepo
from booklend.repositories.title_repo import TitleRepo
from booklend.repositories.user_repo import UserRepo
from booklend.services import fine_service
from booklend.services.catalog_service import CatalogService
from booklend.session import SessionContext, require_session


class Event(str, Enum):
    APPROVE_BORROW = "approve_borrow"
    REJECT_BORROW = "reject_borrow"
    REQUEST_RETURN = "request_return"
    APPROVE_RETURN = "approve_return"
    REQUEST_RENEWAL = "request_renewal"
    APPROVE_RENEWAL = "approve_renewal"
    REJECT_RENEWAL = "reject_renewal"
    PASS_DUE_DATE = "pass_due_date"


S = BorrowStatus

# (from, event) -> to. None means "back to the status held before the renewal request".
TRANSITIONS = {
    (S.PENDING_APPROVAL, Event.APPROVE_BORROW): S.ACTIVE,
    (S.PENDING_APPROVAL, Event.REJECT_BORROW): S.REJECTED,
    (S.ACTIVE, Event.REQUEST_RETURN): S.PENDING_RETURN_APPROVAL,
    (S.OVERDUE, Event.REQUEST_RETURN): S.PENDING_RETURN_APPROVAL,
    (S.PENDING_RETURN_APPROVAL, Event.APPROVE_RETURN): S.RETURNED,
    (S.ACTIVE, Event.REQUEST_RENEWAL): S.PENDING_RENEWAL_APPROVAL,
    (S.OVERDUE, Event.REQUEST_RENEWAL): S.PENDING_RENEWAL_APPROVAL,
    (S.PENDING_RENEWAL_APPROVAL, Event.APPROVE_RENEWAL): S.ACTIVE,
    (S.PENDING_RENEWAL_APPROVAL, Event.REJECT_RENEWAL): None,
    (S.ACTIVE, Event.PASS_DUE_DATE): S.OVERDUE,
}

TERMINAL_STATUSES = (S.RETURNED, S.REJECTED)


def next_status(record: BorrowRecord, event: Event) -> BorrowStatus:
    key = (record.status, event)
    if key not in TRANSITIONS:
        raise Conflict(f"Cannot {event.value.replace('_', ' ')} a borrow in status '{record.status.value}'")
    target = TRANSITIONS[key]
    if target is None:
        target = record.status_before_renewal or S.ACTIVE
    return target


def _commit():
    try:
        db.session.commit()
    except OperationalError as e:
        db.session.rollback()
        raise Transient(f"Store unavailable: {e.orig or e}") from e
    except Exception:
        db.session.rollback()
        raise


def _get_record(borrow_id: int) -> BorrowRecord:
    record = BorrowRepo.get(borrow_id)
    if not record:
        raise NotFound(f"Borrow record {borrow_id} not found")
    return record


class LifecycleService:
    # ---- patron side

    @staticmethod
    def request_borrow(
        ctx: SessionContext,
        title_id: int,
        requested_name: str | None = None,
        requested_due_date: datetime | None = None,
    ) -> BorrowRecord:
        ctx = require_session(ctx)
        title = TitleRepo.get(title_id)
        if not title:
            raise NotFound(f"Title {title_id} not found")

        if BorrowRepo.find_held(ctx.user_id, title_id) is not None:
            raise DuplicateRequest(f"You already have an open borrow for '{title.title}'")

        if (title.available_copies or 0) < 1:
            raise Conflict(f"No copies of '{title.title}' are available")

        patron = UserRepo.get_by_id(ctx.user_id)
        if not patron:
            raise NotFound(f"User {ctx.user_id} not found")

        record = BorrowRecord(
            patron_id=ctx.user_id,
            title_id=title.id,
            book_title=title.title,
            book_author=title.author_name or "",
            book_category=title.category or "",
            cover_url=title.cover_url,
            requested_by=(requested_name or "").strip() or ctx.display_name or patron.name,
            patron_email=patron.email,
            status=S.PENDING_APPROVAL,
            requested_at=clock.now(),
            requested_due_date=requested_due_date,
            renewals_used=0,
            renewals_allowed=current_app.config["RENEWALS_ALLOWED"],
        )
        db.session.add(record)
        _commit()
        current_app.logger.info(
            f"[lifecycle] borrow requested id={record.id} patron={ctx.user_id} title={title_id}"
        )
        return record

    @staticmethod
    def request_return(ctx: SessionContext, borrow_id: int) -> BorrowRecord:
        ctx = require_session(ctx)
        record = _get_record(borrow_id)
        ctx.require_owner(record.patron_id)

        record.status = next_status(record, Event.REQUEST_RETURN)
        record.return_request_date = clock.now()
        _commit()
        current_app.logger.info(f"[lifecycle] return requested id={record.id}")
        return record

    @staticmethod
    def request_renewal(ctx: SessionContext, borrow_id: int) -> BorrowRecord:
        ctx = require_session(ctx)
        record = _get_record(borrow_id)
        ctx.require_owner(record.patron_id)

        target = next_status(record, Event.REQUEST_RENEWAL)
        if record.renewals_used >= record.renewals_allowed:
            raise Conflict(
                f"Renewal limit reached ({record.renewals_used}/{record.renewals_allowed})"
            )

        record.status_before_renewal = record.status
        record.status = target
        record.renewal_requested_at = clock.now()
        record.renewal_decision = None
        _commit()
        current_app.logger.info(
            f"[lifecycle] renewal requested id={record.id} used={record.renewals_used}"
        )
        return record

    # ---- librarian side

    @staticmethod
    def approve_borrow(ctx: SessionContext, borrow_id: int) -> BorrowRecord:
        ctx = require_session(ctx)
        ctx.require_librarian()
        record = _get_record(borrow_id)
        target = next_status(record, Event.APPROVE_BORROW)

        title = TitleRepo.get(record.title_id)
        if not title:
            raise NotFound(f"Title {record.title_id} not found")

        CatalogService.take_copy(title)

        now = clock.now()
        if record.requested_due_date and record.requested_due_date > now:
            due = record.requested_due_date
        else:
            due = now + timedelta(days=current_app.config["DEFAULT_LOAN_DAYS"])

        record.status = target
        record.borrow_date = now
        record.due_date = due
        _commit()
        current_app.logger.info(
            f"[lifecycle] borrow approved id={record.id} due={due.date()} "
            f"available={title.available_copies}"
        )
        return record

    @staticmethod
    def reject_borrow(ctx: SessionContext, borrow_id: int, reason: str | None = None) -> BorrowRecord:
        ctx = require_session(ctx)
        ctx.require_librarian()
        record = _get_record(borrow_id)
        record.status = next_status(record, Event.REJECT_BORROW)
        record.rejection_reason = (reason or "").strip() or None
        _commit()
        current_app.logger.info(f"[lifecycle] borrow rejected id={record.id}")
        return record

    @staticmethod
    def approve_return(ctx: SessionContext, borrow_id: int) -> BorrowRecord:
        ctx = require_session(ctx)
        ctx.require_librarian()
        record = _get_record(borrow_id)
        target = next_status(record, Event.APPROVE_RETURN)
        now = clock.now()

        # final fine figure at hand-in time
        assessment = fine_service.assess(
            record,
            now,
            current_app.config["FINE_PER_DAY"],
            current_app.config["OVERDUE_REMINDER_INTERVAL_DAYS"],
        )
        fine_service.apply_assessment(record, assessment, mark_status=False)

        title = TitleRepo.get(record.title_id)
        if title:
            CatalogService.put_back_copy(title)

        record.status = target
        record.actual_return_date = now
        _commit()
        current_app.logger.info(
            f"[lifecycle] return approved id={record.id} fine={record.fine_amount}"
        )
        return record

    @staticmethod
    def approve_renewal(ctx: SessionContext, borrow_id: int) -> BorrowRecord:
        ctx = require_session(ctx)
        ctx.require_librarian()
        record = _get_record(borrow_id)
        target = next_status(record, Event.APPROVE_RENEWAL)
        if record.renewals_used >= record.renewals_allowed:
            raise Conflict(
                f"Renewal limit reached ({record.renewals_used}/{record.renewals_allowed})"
            )

        base = record.due_date or clock.now()
        record.due_date = base + timedelta(days=current_app.config["RENEWAL_DAYS"])
        record.renewals_used += 1
        record.renewal_decision = RenewalDecision.APPROVED
        record.status_before_renewal = None
        record.status = target
        _commit()
        current_app.logger.info(
            f"[lifecycle] renewal approved id={record.id} due={record.due_date.date()} "
            f"used={record.renewals_used}/{record.renewals_allowed}"
        )
        return record

    @staticmethod
    def reject_renewal(ctx: SessionContext, borrow_id: int) -> BorrowRecord:
        ctx = require_session(ctx)
        ctx.require_librarian()
        record = _get_record(borrow_id)
        record.status = next_status(record, Event.REJECT_RENEWAL)
        record.renewal_decision = RenewalDecision.REJECTED
        record.status_before_renewal = None
        _commit()
        current_app.logger.info(f"[lifecycle] renewal rejected id={record.id}")
        return record

    # ---- time driven

    @staticmethod
    def refresh_overdue(record: BorrowRecord, now: datetime | None = None) -> fine_service.FineAssessment:
        """
        Re-evaluate one on-loan record against the clock. Writes are left in the
        session for the caller to commit.
        """
        now = now or clock.now()
        assessment = fine_service.assess(
            record,
            now,
            current_app.config["FINE_PER_DAY"],
            current_app.config["OVERDUE_REMINDER_INTERVAL_DAYS"],
        )
        if not assessment.is_overdue:
            return assessment

        if record.status == S.ACTIVE:
            record.status = next_status(record, Event.PASS_DUE_DATE)
        fine_service.apply_assessment(record, assessment, mark_status=False)
        return assessment

    # ---- queries

    @staticmethod
    def get_record(ctx: SessionContext, borrow_id: int) -> BorrowRecord:
        ctx = require_session(ctx)
        record = _get_record(borrow_id)
        ctx.require_owner(record.patron_id)
        return record

    @staticmethod
    def current_loans(ctx: SessionContext):
        ctx = require_session(ctx)
        return BorrowRepo.list_by_patron(
            ctx.user_id,
            (S.PENDING_APPROVAL, S.ACTIVE, S.OVERDUE, S.PENDING_RETURN_APPROVAL, S.PENDING_RENEWAL_APPROVAL),
        )

    @staticmethod
    def history(ctx: SessionContext):
        ctx = require_session(ctx)
        return BorrowRepo.list_by_patron(ctx.user_id, TERMINAL_STATUSES)

    @staticmethod
    def pending(ctx: SessionContext, status: BorrowStatus):
        ctx = require_session(ctx)
        ctx.require_librarian()
        return BorrowRepo.list_by_status(status)
