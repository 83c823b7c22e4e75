from sqlalchemy import update

from booklend.extensions import db
from booklend.models.title import Title
from booklend.services.change_feed import mark_changed


class TitleRepo:
    @staticmethod
    def list_all(category: str | None = None, search: str | None = None):
        q = Title.query
        if category:
            q = q.filter(Title.category == category)
        if search:
            like = f"%{search.strip()}%"
            q = q.filter(db.or_(Title.title.ilike(like), Title.author_name.ilike(like)))
        return q.order_by(Title.id.desc()).all()

    @staticmethod
    def get(title_id: int):
        return db.session.get(Title, title_id)

    @staticmethod
    def create(title: Title):
        db.session.add(title)
        db.session.commit()
        return title

    @staticmethod
    def update():
        db.session.commit()

    @staticmethod
    def delete(title: Title):
        db.session.delete(title)
        db.session.commit()

    @staticmethod
    def take_copy_if_available(title_id: int) -> bool:
        """Conditional decrement; False when no copy was left at write time."""
        result = db.session.execute(
            update(Title)
            .where(Title.id == title_id, Title.available_copies >= 1)
            .values(
                available_copies=Title.available_copies - 1,
                borrow_count=Title.borrow_count + 1,
            )
            .execution_options(synchronize_session=False)
        )
        title = db.session.get(Title, title_id)
        if title is not None:
            db.session.expire(title)
        if result.rowcount == 1:
            mark_changed(db.session, "titles", title_id)
            return True
        return False
