from __future__ import annotations

from flask import current_app

from booklend import clock
from booklend.extensions import db
from booklend.models.notification_log import NotificationLog
from booklend.repositories.notification_repo import NotificationRepo
from booklend.repositories.user_repo import UserRepo
from booklend.services.diff_engine import Notification
from booklend.services.mail_service import MailService


class NotificationService:
    """The sink every notification ends up in: an inbox row plus optional mail."""

    @staticmethod
    def deliver(recipient_id: int, note: Notification, commit: bool = True) -> NotificationLog:
        user = UserRepo.get_by_id(recipient_id)
        to_email = None
        ok, err = True, None

        if current_app.config.get("MAIL_NOTIFICATIONS") and user is not None:
            to_email = user.email
            if to_email:
                subject, text = MailService.render(user.name, note.title, note.body)
                ok, err = MailService.send_email(to_email, subject, text)
            else:
                ok, err = False, "missing_email"

        row = NotificationLog(
            recipient_id=recipient_id,
            borrow_id=note.borrow_id,
            type=note.type,
            title=note.title,
            message=note.body,
            target_route=note.target_route,
            email=to_email,
            success=bool(ok),
            error_message=err,
            is_read=False,
            sent_at=clock.now(),
        )
        db.session.add(row)
        if commit:
            db.session.commit()
        current_app.logger.info(
            f"[notify] {note.type} -> user={recipient_id} borrow={note.borrow_id}"
        )
        return row

    @staticmethod
    def inbox(recipient_id: int, unread_only: bool = False, limit: int = 50):
        return NotificationRepo.list_for(recipient_id, unread_only=unread_only, limit=limit)

    @staticmethod
    def mark_read(recipient_id: int, notification_id: int) -> NotificationLog | None:
        row = NotificationRepo.get(notification_id)
        if not row or row.recipient_id != recipient_id:
            return None
        row.is_read = True
        NotificationRepo.commit()
        return row
