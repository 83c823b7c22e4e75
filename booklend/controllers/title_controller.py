# booklend/controllers/title_controller.py

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from booklend.models.enums import Role
from booklend.services.catalog_service import CatalogService
from booklend.utils.auth import current_session
from booklend.utils.decorators import role_required

title_bp = Blueprint("titles", __name__)


@title_bp.get("/")
def list_titles():
    titles = CatalogService.list_titles(
        category=request.args.get("category"),
        search=request.args.get("q"),
    )
    return jsonify({"success": True, "data": [t.to_dict() for t in titles]})


@title_bp.get("/<int:title_id>")
def get_title(title_id: int):
    return jsonify({"success": True, "data": CatalogService.get_title(title_id).to_dict()})


@title_bp.post("/")
@jwt_required()
@role_required(Role.LIBRARIAN)
def create_title():
    data = request.get_json(silent=True) or {}
    try:
        t = CatalogService.create_title(current_session(), data)
        return jsonify({"success": True, "data": t.to_dict()}), 201
    except (TypeError, ValueError) as e:
        return jsonify({"success": False, "message": str(e)}), 400


@title_bp.put("/<int:title_id>")
@jwt_required()
@role_required(Role.LIBRARIAN)
def update_title(title_id: int):
    data = request.get_json(silent=True) or {}
    try:
        t = CatalogService.update_title(current_session(), title_id, data)
        return jsonify({"success": True, "data": t.to_dict()})
    except (TypeError, ValueError) as e:
        return jsonify({"success": False, "message": str(e)}), 400


@title_bp.delete("/<int:title_id>")
@jwt_required()
@role_required(Role.LIBRARIAN)
def delete_title(title_id: int):
    CatalogService.delete_title(current_session(), title_id)
    return jsonify({"success": True})
