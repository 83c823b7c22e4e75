from __future__ import annotations

from dataclasses import dataclass

from booklend.errors import Forbidden, Unauthenticated
from booklend.models.enums import Role


@dataclass(frozen=True)
class SessionContext:
    """Who is acting. Passed explicitly to every lending operation."""

    user_id: int
    role: Role
    display_name: str = ""

    @property
    def is_librarian(self) -> bool:
        return self.role == Role.LIBRARIAN

    def require_librarian(self):
        if not self.is_librarian:
            raise Forbidden("Librarian role required")

    def require_owner(self, patron_id: int):
        if self.user_id != patron_id and not self.is_librarian:
            raise Forbidden("This borrow record belongs to another patron")


def require_session(ctx: SessionContext | None) -> SessionContext:
    if ctx is None or ctx.user_id is None:
        raise Unauthenticated("No active session")
    return ctx
