"""
Snapshot-diff notification engine.

A subscription delivers batches of (added, modified, removed) borrow snapshots.
The engine keeps, per subscription, the last status it saw for every record and
turns status *transitions* into notifications through a lookup table keyed by
(old status, new status, viewer role).

* The first batch after (re)subscribing only seeds the baseline. Restarting a
  listener or logging back in never replays old transitions.
* The baseline is updated after every record, so a redelivered batch finds
  nothing new and emits nothing.

Nothing here touches Flask or the database; the engine can be driven with
plain dicts.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from booklend.models.enums import BorrowStatus, RenewalDecision, Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    type: str
    title: str
    body: str
    target_route: Optional[str] = None
    borrow_id: Optional[int] = None
    extra: dict = field(default_factory=dict, compare=False)


@dataclass
class ChangeSet:
    added: List[dict] = field(default_factory=list)
    modified: List[dict] = field(default_factory=list)
    removed: List[dict] = field(default_factory=list)

    def __bool__(self):
        return bool(self.added or self.modified or self.removed)

    def __len__(self):
        return len(self.added) + len(self.modified) + len(self.removed)


class Phase(str, Enum):
    UNINITIALIZED = "uninitialized"
    WARMING_UP = "warming_up"
    STEADY = "steady"


class BaselineStore(Protocol):
    def get(self, record_id) -> Optional[str]: ...

    def set(self, record_id, status: str) -> None: ...

    def clear(self) -> None: ...

    def __len__(self) -> int: ...


class InMemoryBaselineStore:
    def __init__(self):
        self._statuses: Dict[object, str] = {}
        self._lock = threading.Lock()

    def get(self, record_id):
        with self._lock:
            return self._statuses.get(record_id)

    def set(self, record_id, status):
        with self._lock:
            self._statuses[record_id] = status

    def clear(self):
        with self._lock:
            self._statuses.clear()

    def __len__(self):
        with self._lock:
            return len(self._statuses)


# ---------------------------------------------------------------------------
# rule table
# ---------------------------------------------------------------------------

Rule = Callable[[dict], Optional[Notification]]

S = BorrowStatus


def _book(doc):
    return doc.get("book_title") or "a book"


def _who(doc):
    return doc.get("requested_by") or doc.get("patron_email") or "A patron"


def _simple(kind: str, title: str, body: str, route: str) -> Rule:
    def rule(doc):
        return Notification(
            type=kind,
            title=title,
            body=body.format(book=_book(doc), who=_who(doc), **doc),
            target_route=route,
            borrow_id=doc.get("id"),
        )

    return rule


def _renewal_outcome(doc):
    if doc.get("renewal_decision") == RenewalDecision.APPROVED.value:
        return Notification(
            type="renewal_approved",
            title="Renewal approved",
            body=f"Your renewal of {_book(doc)} was approved. New due date: {(doc.get('due_date') or '')[:10]}",
            target_route="notifications",
            borrow_id=doc.get("id"),
        )
    return _renewal_rejected(doc)


_renewal_rejected = _simple(
    "renewal_rejected",
    "Renewal rejected",
    "Your renewal request for {book} was rejected.",
    "notifications",
)

TransitionKey = Tuple[Optional[str], str, Role]

RULES: Dict[TransitionKey, Rule] = {
    (S.PENDING_APPROVAL.value, S.ACTIVE.value, Role.PATRON): _simple(
        "borrow_approved",
        "Borrow request approved",
        "Your request to borrow {book} was approved.",
        "borrowed_books",
    ),
    (S.PENDING_APPROVAL.value, S.REJECTED.value, Role.PATRON): _simple(
        "borrow_rejected",
        "Borrow request rejected",
        "Your request to borrow {book} was rejected.",
        "notifications",
    ),
    (S.PENDING_RETURN_APPROVAL.value, S.RETURNED.value, Role.PATRON): _simple(
        "return_approved",
        "Return approved",
        "Your return of {book} was approved.",
        "borrow_history",
    ),
    (S.PENDING_RENEWAL_APPROVAL.value, S.ACTIVE.value, Role.PATRON): _renewal_outcome,
    (S.PENDING_RENEWAL_APPROVAL.value, S.OVERDUE.value, Role.PATRON): _renewal_rejected,
    (None, S.PENDING_APPROVAL.value, Role.LIBRARIAN): _simple(
        "new_borrow_request",
        "New borrow request",
        "{who} requested to borrow {book}.",
        "pending_approvals",
    ),
    (None, S.PENDING_RETURN_APPROVAL.value, Role.LIBRARIAN): _simple(
        "new_return_request",
        "New return request",
        "{who} requested to return {book}.",
        "pending_returns",
    ),
    (None, S.PENDING_RENEWAL_APPROVAL.value, Role.LIBRARIAN): _simple(
        "new_renewal_request",
        "New renewal request",
        "{who} requested to renew {book}.",
        "renewal_requests",
    ),
}


def lookup(old: Optional[str], new: str, role: Role, rules=None) -> Optional[Rule]:
    return (rules if rules is not None else RULES).get((old, new, role))


# ---------------------------------------------------------------------------
# engine
# ---------------------------------------------------------------------------


class NotificationDiffEngine:
    def __init__(self, role: Role, baseline: Optional[BaselineStore] = None, rules=None):
        self.role = role
        self.baseline = baseline if baseline is not None else InMemoryBaselineStore()
        self.rules = rules if rules is not None else RULES
        self.phase = Phase.UNINITIALIZED

    def start(self):
        """(Re)start: forget everything and wait for the warm-up batch."""
        self.baseline.clear()
        self.phase = Phase.WARMING_UP

    def process(self, changes: ChangeSet) -> List[Notification]:
        if self.phase == Phase.UNINITIALIZED:
            self.start()

        if self.phase == Phase.WARMING_UP:
            for doc in self._valid(changes.added + changes.modified):
                self.baseline.set(doc["id"], doc["status"])
            self.phase = Phase.STEADY
            logger.debug("[diff] %s warm-up seeded %d records", self.role.value, len(self.baseline))
            return []

        out: List[Notification] = []
        for doc in self._valid(changes.added):
            self._emit(out, self._on_added(doc))
        for doc in self._valid(changes.modified):
            self._emit(out, self._on_modified(doc))
        for doc in self._valid(changes.removed):
            self.baseline.set(doc["id"], doc["status"])
        return out

    def _on_added(self, doc) -> Optional[Notification]:
        old = self.baseline.get(doc["id"])
        new = doc["status"]
        self.baseline.set(doc["id"], new)
        if old == new:
            return None
        return self._apply(lookup(None, new, self.role, self.rules), doc)

    def _on_modified(self, doc) -> Optional[Notification]:
        old = self.baseline.get(doc["id"])
        new = doc["status"]
        self.baseline.set(doc["id"], new)
        if old is None or old == new:
            return None
        return self._apply(lookup(old, new, self.role, self.rules), doc)

    def _apply(self, rule, doc):
        if rule is None:
            return None
        try:
            return rule(doc)
        except Exception:
            logger.warning("[diff] could not render notification for borrow %s", doc.get("id"), exc_info=True)
            return None

    @staticmethod
    def _emit(out, note):
        if note is not None:
            out.append(note)

    @staticmethod
    def _valid(docs: Iterable[dict]):
        for doc in docs:
            if not isinstance(doc, dict) or doc.get("id") is None or not doc.get("status"):
                logger.warning("[diff] skipping malformed snapshot entry: %r", doc)
                continue
            yield doc
