from booklend.extensions import db
from booklend.models.notification_log import NotificationLog


class NotificationRepo:
    @staticmethod
    def list_for(recipient_id: int, unread_only: bool = False, limit: int = 50):
        q = NotificationLog.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        return q.order_by(NotificationLog.id.desc()).limit(limit).all()

    @staticmethod
    def get(notification_id: int):
        return db.session.get(NotificationLog, notification_id)

    @staticmethod
    def commit():
        db.session.commit()
