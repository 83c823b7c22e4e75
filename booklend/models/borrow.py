from datetime import datetime

from booklend.extensions import db
from booklend.models.enums import BorrowStatus, RenewalDecision, enum_column


def _iso(value):
    return value.isoformat() if value else None


class BorrowRecord(db.Model):
    __tablename__ = "borrows"

    id = db.Column(db.Integer, primary_key=True)

    patron_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title_id = db.Column(db.Integer, db.ForeignKey("titles.id"), nullable=False, index=True)

    # copied from the title/user at request time for display
    book_title = db.Column(db.String(200), nullable=False, default="")
    book_author = db.Column(db.String(200), nullable=False, default="")
    book_category = db.Column(db.String(100), nullable=False, default="")
    cover_url = db.Column(db.String(500), nullable=True)
    requested_by = db.Column(db.String(200), nullable=False, default="")
    patron_email = db.Column(db.String(255), nullable=True)

    status = db.Column(
        enum_column(BorrowStatus), nullable=False, default=BorrowStatus.PENDING_APPROVAL, index=True
    )

    requested_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    requested_due_date = db.Column(db.DateTime, nullable=True)
    borrow_date = db.Column(db.DateTime, nullable=True)
    due_date = db.Column(db.DateTime, nullable=True)
    return_request_date = db.Column(db.DateTime, nullable=True)
    actual_return_date = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    overdue_since = db.Column(db.DateTime, nullable=True)
    overdue_days = db.Column(db.Integer, nullable=False, default=0)
    fine_per_day = db.Column(db.Integer, nullable=True)
    fine_amount = db.Column(db.Integer, nullable=False, default=0)
    fine_paid = db.Column(db.Boolean, nullable=False, default=False)

    renewals_used = db.Column(db.Integer, nullable=False, default=0)
    renewals_allowed = db.Column(db.Integer, nullable=False, default=2)
    renewal_requested_at = db.Column(db.DateTime, nullable=True)
    status_before_renewal = db.Column(enum_column(BorrowStatus), nullable=True)
    renewal_decision = db.Column(enum_column(RenewalDecision), nullable=True)

    patron = db.relationship("User", backref="borrows")
    title = db.relationship("Title", backref="borrows")

    def to_doc(self) -> dict:
        """Plain snapshot of the record, as delivered to change-feed subscribers."""
        return {
            "id": self.id,
            "patron_id": self.patron_id,
            "title_id": self.title_id,
            "book_title": self.book_title,
            "book_author": self.book_author,
            "book_category": self.book_category,
            "cover_url": self.cover_url,
            "requested_by": self.requested_by,
            "patron_email": self.patron_email,
            "status": self.status.value if self.status else None,
            "requested_at": _iso(self.requested_at),
            "requested_due_date": _iso(self.requested_due_date),
            "borrow_date": _iso(self.borrow_date),
            "due_date": _iso(self.due_date),
            "return_request_date": _iso(self.return_request_date),
            "actual_return_date": _iso(self.actual_return_date),
            "rejection_reason": self.rejection_reason,
            "overdue_since": _iso(self.overdue_since),
            "overdue_days": self.overdue_days,
            "fine_per_day": self.fine_per_day,
            "fine_amount": self.fine_amount,
            "fine_paid": bool(self.fine_paid),
            "renewals_used": self.renewals_used,
            "renewals_allowed": self.renewals_allowed,
            "renewal_requested_at": _iso(self.renewal_requested_at),
            "renewal_decision": self.renewal_decision.value if self.renewal_decision else None,
        }
