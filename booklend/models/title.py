from datetime import datetime

from booklend.extensions import db
from booklend.models.enums import TitleStatus


class Title(db.Model):
    __tablename__ = "titles"
    __table_args__ = (
        db.CheckConstraint("available_copies >= 0", name="ck_titles_available_nonneg"),
        db.CheckConstraint("available_copies <= total_copies", name="ck_titles_available_le_total"),
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False, index=True)
    author_id = db.Column(db.String(64), nullable=True)
    author_name = db.Column(db.String(200), nullable=False, default="", index=True)
    category = db.Column(db.String(100), nullable=False, default="", index=True)
    cover_url = db.Column(db.String(500), nullable=True)
    description = db.Column(db.Text, nullable=True)

    total_copies = db.Column(db.Integer, nullable=False, default=1)
    available_copies = db.Column(db.Integer, nullable=False, default=1)
    borrow_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def status(self) -> TitleStatus:
        if (self.available_copies or 0) > 0:
            return TitleStatus.AVAILABLE
        return TitleStatus.UNAVAILABLE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "category": self.category,
            "cover_url": self.cover_url,
            "description": self.description,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "borrow_count": self.borrow_count,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
