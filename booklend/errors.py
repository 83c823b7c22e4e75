class LendingError(Exception):
    """Base class for every failure a lending operation reports to its caller."""

    kind = "error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {"success": False, "error": self.kind, "message": self.message}


class NotFound(LendingError):
    kind = "not_found"
    status_code = 404


class Conflict(LendingError):
    """A guard failed: no copies left, quota exhausted or an illegal transition."""

    kind = "conflict"
    status_code = 409


class DuplicateRequest(Conflict):
    kind = "duplicate_request"


class Forbidden(LendingError):
    kind = "forbidden"
    status_code = 403


class Unauthenticated(LendingError):
    kind = "unauthenticated"
    status_code = 401


class Transient(LendingError):
    """The store could not be reached; the mutation must be retried, not dropped."""

    kind = "transient"
    status_code = 503
