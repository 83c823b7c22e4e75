from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from booklend.errors import NotFound
from booklend.models.enums import Role
from booklend.repositories.user_repo import UserRepo
from booklend.services.auth_service import AuthService, session_for
from booklend.services.notification_center import current_center
from booklend.utils.auth import current_session
from booklend.utils.decorators import role_required

auth_bp = Blueprint("auth", __name__)


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}

    username = (data.get("username") or "").strip()
    email = (data.get("email") or "").strip()
    password = (data.get("password") or "").strip()
    display_name = (data.get("display_name") or "").strip()

    if not username or not email or not password:
        return jsonify({"success": False, "message": "username/email/password are required"}), 400

    # self-registration is always a patron account
    user = AuthService.register(username, email, password, display_name=display_name, role=Role.PATRON)
    return jsonify({"success": True, "user": user.to_dict()}), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    token, user = AuthService.login(
        (data.get("username") or "").strip(),
        (data.get("password") or "").strip(),
    )
    # start this viewer's notification subscriptions (warm-up, no replay)
    current_center().open(session_for(user))
    return jsonify({"success": True, "access_token": token, "user": user.to_dict()})


@auth_bp.post("/logout")
@jwt_required()
def logout():
    ctx = current_session()
    current_center().close(ctx.user_id)
    return jsonify({"success": True, "message": "Logged out"})


@auth_bp.get("/me")
@jwt_required()
def me():
    ctx = current_session()
    user = UserRepo.get_by_id(ctx.user_id)
    if not user:
        raise NotFound("User not found")
    return jsonify({
        "success": True,
        "user": user.to_dict(),
        "notifications_live": current_center().is_open(ctx.user_id),
    })


@auth_bp.put("/users/<int:user_id>/role")
@role_required(Role.LIBRARIAN)
def set_role(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        role = Role(data.get("role"))
    except ValueError:
        return jsonify({"success": False, "message": "role must be 'patron' or 'librarian'"}), 400

    user = AuthService.set_role(current_session(), user_id, role)
    # a live viewer switches feeds and warms up again
    current_center().change_role(session_for(user))
    return jsonify({"success": True, "user": user.to_dict()})
