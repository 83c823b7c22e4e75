from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from booklend.errors import NotFound
from booklend.services.notification_service import NotificationService
from booklend.tasks.due_sweep import sweep_user
from booklend.utils.auth import current_session

notif_bp = Blueprint("notifications", __name__)


@notif_bp.get("/my")
@jwt_required()
def my_notifications():
    ctx = current_session()
    unread_only = request.args.get("unread") in ("1", "true", "yes")
    rows = NotificationService.inbox(ctx.user_id, unread_only=unread_only)
    return jsonify({"success": True, "data": [n.to_dict() for n in rows]})


@notif_bp.post("/<int:notification_id>/read")
@jwt_required()
def mark_read(notification_id: int):
    ctx = current_session()
    row = NotificationService.mark_read(ctx.user_id, notification_id)
    if row is None:
        raise NotFound("Notification not found")
    return jsonify({"success": True, "data": row.to_dict()})


@notif_bp.post("/run-sweep")
@jwt_required()
def run_sweep():
    """Run the due/overdue sweep now, for the caller only."""
    ctx = current_session()
    report = sweep_user(ctx.user_id)
    current_app.logger.info(f"[sweep] manual run user={ctx.user_id} checked={report.checked}")
    return jsonify({"success": True, "data": report.__dict__})
