from datetime import datetime

from booklend.extensions import db
from booklend.models.enums import Role, enum_column


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(200), nullable=False, default="")
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(enum_column(Role), nullable=False, default=Role.PATRON)
    short_id = db.Column(db.String(6), unique=True, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def name(self) -> str:
        return self.display_name or self.username

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "display_name": self.name,
            "role": self.role.value,
            "short_id": self.short_id,
            "is_active": bool(self.is_active),
        }
