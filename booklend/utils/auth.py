from flask_jwt_extended import get_jwt, get_jwt_identity

from booklend.errors import Unauthenticated
from booklend.models.enums import Role
from booklend.session import SessionContext


def current_session() -> SessionContext:
    """SessionContext for the JWT of the current request (call under @jwt_required)."""
    identity = get_jwt_identity()
    if identity is None:
        raise Unauthenticated("No active session")
    claims = get_jwt() or {}
    try:
        role = Role(claims.get("role", Role.PATRON.value))
    except ValueError:
        role = Role.PATRON
    return SessionContext(
        user_id=int(identity),
        role=role,
        display_name=claims.get("name") or claims.get("username") or "",
    )
