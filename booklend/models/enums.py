from enum import Enum


class BorrowStatus(str, Enum):
    # the values are persisted and compared by the notification rules
    PENDING_APPROVAL = "pending"
    ACTIVE = "active"
    PENDING_RETURN_APPROVAL = "pending_return"
    PENDING_RENEWAL_APPROVAL = "pending_renewal"
    OVERDUE = "overdue"
    RETURNED = "returned"
    REJECTED = "rejected"


# a patron may hold at most one record per title in these
HELD_STATUSES = (
    BorrowStatus.PENDING_APPROVAL,
    BorrowStatus.ACTIVE,
    BorrowStatus.OVERDUE,
    BorrowStatus.PENDING_RETURN_APPROVAL,
    BorrowStatus.PENDING_RENEWAL_APPROVAL,
)

# loans the sweep re-evaluates
ON_LOAN_STATUSES = (BorrowStatus.ACTIVE, BorrowStatus.OVERDUE)


class TitleStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class Role(str, Enum):
    PATRON = "patron"
    LIBRARIAN = "librarian"


class RenewalDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


def enum_column(enum_cls):
    """Column type storing the enum's value strings rather than member names."""
    from booklend.extensions import db

    return db.Enum(
        enum_cls,
        values_callable=lambda e: [m.value for m in e],
        native_enum=False,
        validate_strings=True,
        length=20,
    )
