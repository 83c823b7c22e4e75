import secrets
import string

from flask_jwt_extended import create_access_token
from werkzeug.security import check_password_hash, generate_password_hash

from booklend.errors import Conflict, NotFound, Unauthenticated
from booklend.models.enums import Role
from booklend.models.user import User
from booklend.repositories.user_repo import UserRepo
from booklend.session import SessionContext

_SHORT_ID_CHARS = string.ascii_uppercase + string.digits


def _new_short_id() -> str:
    while True:
        candidate = "".join(secrets.choice(_SHORT_ID_CHARS) for _ in range(6))
        if not UserRepo.get_by_short_id(candidate):
            return candidate


def session_for(user: User) -> SessionContext:
    return SessionContext(user_id=user.id, role=user.role, display_name=user.name)


class AuthService:
    @staticmethod
    def register(username: str, email: str, password: str, display_name: str = "", role: Role = Role.PATRON):
        if UserRepo.get_by_username(username) or UserRepo.get_by_email(email):
            raise Conflict("Username or email already registered")

        user = User(
            username=username,
            email=email,
            display_name=display_name or username,
            password_hash=generate_password_hash(password),
            role=role,
            short_id=_new_short_id(),
            is_active=True,
        )
        UserRepo.create(user)
        return user

    @staticmethod
    def login(username: str, password: str):
        user = UserRepo.get_by_username(username)
        if not user or not check_password_hash(user.password_hash, password):
            raise Unauthenticated("Wrong username or password")
        if not user.is_active:
            raise Unauthenticated("Account is disabled")

        token = create_access_token(
            identity=str(user.id),
            additional_claims={"role": user.role.value, "username": user.username, "name": user.name},
        )
        return token, user

    @staticmethod
    def set_role(ctx: SessionContext, user_id: int, role: Role) -> User:
        ctx.require_librarian()
        user = UserRepo.get_by_id(user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")
        user.role = role
        UserRepo.commit()
        return user
