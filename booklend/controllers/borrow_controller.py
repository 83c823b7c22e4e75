from datetime import datetime

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from booklend.models.enums import BorrowStatus, Role
from booklend.services.lifecycle_service import LifecycleService
from booklend.utils.auth import current_session
from booklend.utils.decorators import role_required

borrow_bp = Blueprint("borrows", __name__)

_DATE_FORMATS = ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%d/%m/%Y")


def _parse_date(raw):
    if not raw:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date '{raw}' (use YYYY-MM-DD)")


def _ok(record, code=200):
    return jsonify({"success": True, "data": record.to_doc()}), code


def _many(records):
    return jsonify({"success": True, "data": [r.to_doc() for r in records]})


# ---- patron

@borrow_bp.post("/")
@jwt_required()
def request_borrow():
    data = request.get_json(silent=True) or {}
    try:
        title_id = int(data["title_id"])
        due = _parse_date(data.get("requested_due_date"))
    except KeyError:
        return jsonify({"success": False, "message": "title_id is required"}), 400
    except (TypeError, ValueError) as e:
        return jsonify({"success": False, "message": str(e)}), 400

    record = LifecycleService.request_borrow(
        current_session(), title_id, data.get("requested_name"), due
    )
    return _ok(record, 201)


@borrow_bp.get("/my")
@jwt_required()
def my_borrows():
    return _many(LifecycleService.current_loans(current_session()))


@borrow_bp.get("/history")
@jwt_required()
def history():
    return _many(LifecycleService.history(current_session()))


@borrow_bp.get("/<int:borrow_id>")
@jwt_required()
def get_borrow(borrow_id: int):
    return _ok(LifecycleService.get_record(current_session(), borrow_id))


@borrow_bp.post("/<int:borrow_id>/return")
@jwt_required()
def request_return(borrow_id: int):
    return _ok(LifecycleService.request_return(current_session(), borrow_id))


@borrow_bp.post("/<int:borrow_id>/renew")
@jwt_required()
def request_renewal(borrow_id: int):
    return _ok(LifecycleService.request_renewal(current_session(), borrow_id))


# ---- librarian

@borrow_bp.get("/pending")
@role_required(Role.LIBRARIAN)
def pending_borrows():
    return _many(LifecycleService.pending(current_session(), BorrowStatus.PENDING_APPROVAL))


@borrow_bp.get("/returns/pending")
@role_required(Role.LIBRARIAN)
def pending_returns():
    return _many(LifecycleService.pending(current_session(), BorrowStatus.PENDING_RETURN_APPROVAL))


@borrow_bp.get("/renewals/pending")
@role_required(Role.LIBRARIAN)
def pending_renewals():
    return _many(LifecycleService.pending(current_session(), BorrowStatus.PENDING_RENEWAL_APPROVAL))


@borrow_bp.post("/<int:borrow_id>/approve")
@role_required(Role.LIBRARIAN)
def approve_borrow(borrow_id: int):
    return _ok(LifecycleService.approve_borrow(current_session(), borrow_id))


@borrow_bp.post("/<int:borrow_id>/reject")
@role_required(Role.LIBRARIAN)
def reject_borrow(borrow_id: int):
    data = request.get_json(silent=True) or {}
    return _ok(LifecycleService.reject_borrow(current_session(), borrow_id, data.get("reason")))


@borrow_bp.post("/<int:borrow_id>/return/approve")
@role_required(Role.LIBRARIAN)
def approve_return(borrow_id: int):
    return _ok(LifecycleService.approve_return(current_session(), borrow_id))


@borrow_bp.post("/<int:borrow_id>/renew/approve")
@role_required(Role.LIBRARIAN)
def approve_renewal(borrow_id: int):
    return _ok(LifecycleService.approve_renewal(current_session(), borrow_id))


@borrow_bp.post("/<int:borrow_id>/renew/reject")
@role_required(Role.LIBRARIAN)
def reject_renewal(borrow_id: int):
    return _ok(LifecycleService.reject_renewal(current_session(), borrow_id))
