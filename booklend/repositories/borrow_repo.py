from booklend.extensions import db
from booklend.models.borrow import BorrowRecord
from booklend.models.enums import HELD_STATUSES, ON_LOAN_STATUSES, BorrowStatus


class BorrowRepo:
    @staticmethod
    def get(borrow_id: int):
        return db.session.get(BorrowRecord, borrow_id)

    @staticmethod
    def list_by_patron(patron_id: int, statuses=None):
        q = BorrowRecord.query.filter(BorrowRecord.patron_id == patron_id)
        if statuses:
            q = q.filter(BorrowRecord.status.in_(list(statuses)))
        return q.order_by(BorrowRecord.id.desc()).all()

    @staticmethod
    def list_by_status(status: BorrowStatus):
        return (
            BorrowRecord.query.filter(BorrowRecord.status == status)
            .order_by(BorrowRecord.id.asc())
            .all()
        )

    @staticmethod
    def list_on_loan(patron_id: int):
        return BorrowRepo.list_by_patron(patron_id, ON_LOAN_STATUSES)

    @staticmethod
    def list_with_fines(patron_id: int | None = None):
        q = BorrowRecord.query.filter(BorrowRecord.fine_amount > 0)
        if patron_id is not None:
            q = q.filter(BorrowRecord.patron_id == patron_id)
        return q.order_by(BorrowRecord.id.desc()).all()

    @staticmethod
    def find_held(patron_id: int, title_id: int):
        return BorrowRecord.query.filter(
            BorrowRecord.patron_id == patron_id,
            BorrowRecord.title_id == title_id,
            BorrowRecord.status.in_(list(HELD_STATUSES)),
        ).first()

    @staticmethod
    def count_for_title(title_id: int) -> int:
        return BorrowRecord.query.filter(BorrowRecord.title_id == title_id).count()
