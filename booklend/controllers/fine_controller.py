# booklend/controllers/fine_controller.py

from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from booklend.models.enums import Role
from booklend.repositories.borrow_repo import BorrowRepo
from booklend.utils.auth import current_session
from booklend.utils.decorators import role_required

fine_bp = Blueprint("fines", __name__)


def _fine_row(r):
    return {
        "borrow_id": r.id,
        "patron_id": r.patron_id,
        "book_title": r.book_title,
        "status": r.status.value,
        "due_date": r.due_date.isoformat() if r.due_date else None,
        "overdue_days": r.overdue_days,
        "fine_per_day": r.fine_per_day,
        "fine_amount": r.fine_amount,
        "fine_paid": bool(r.fine_paid),
    }


@fine_bp.get("/my")
@jwt_required()
def my_fines():
    ctx = current_session()
    rows = BorrowRepo.list_with_fines(ctx.user_id)
    return jsonify({
        "success": True,
        "total_unpaid": sum(r.fine_amount for r in rows if not r.fine_paid),
        "data": [_fine_row(r) for r in rows],
    })


@fine_bp.get("/all")
@role_required(Role.LIBRARIAN)
def all_fines():
    rows = BorrowRepo.list_with_fines()
    return jsonify({"success": True, "data": [_fine_row(r) for r in rows]})
