from __future__ import annotations

from flask import current_app
from flask_mail import Message

from booklend.extensions import mail


class MailService:
    @staticmethod
    def send_email(to_email: str, subject: str, body: str) -> tuple[bool, str | None]:
        """
        return: (success, error_text)
        """
        try:
            msg = Message(subject=subject, recipients=[to_email], body=body)
            mail.send(msg)
            return True, None
        except Exception as e:
            current_app.logger.warning(f"[mail] could not send to {to_email}: {e}")
            return False, str(e)

    @staticmethod
    def render(username: str, title: str, body: str) -> tuple[str, str]:
        subject = f"Library: {title}"
        text = (
            f"Hello {username},\n\n"
            f"{body}\n\n"
            f"-- The library desk\n"
        )
        return subject, text
