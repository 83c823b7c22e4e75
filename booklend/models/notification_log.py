from datetime import datetime

from booklend.extensions import db


class NotificationLog(db.Model):
    """Inbox row: one delivered notification for one recipient."""

    __tablename__ = "notification_logs"

    id = db.Column(db.Integer, primary_key=True)

    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    borrow_id = db.Column(db.Integer, db.ForeignKey("borrows.id"), nullable=True, index=True)

    # borrow_approved, return_approved, due_soon, overdue, overdue_reminder ...
    type = db.Column(db.String(50), nullable=False)

    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.String(1000), nullable=False, default="")
    target_route = db.Column(db.String(200), nullable=True)

    # mail channel outcome (email is null when mail is disabled)
    email = db.Column(db.String(255), nullable=True)
    success = db.Column(db.Boolean, nullable=False, default=True)
    error_message = db.Column(db.String(500), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    sent_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    borrow = db.relationship("BorrowRecord", backref="notifications")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "borrow_id": self.borrow_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "target_route": self.target_route,
            "is_read": bool(self.is_read),
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }
