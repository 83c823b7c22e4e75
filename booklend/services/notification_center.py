from __future__ import annotations

import threading
from dataclasses import dataclass, field

from flask import current_app

from booklend.extensions import db
from booklend.models.enums import BorrowStatus, Role
from booklend.services.change_feed import ChangeFeed, Subscription
from booklend.services.diff_engine import ChangeSet, InMemoryBaselineStore, NotificationDiffEngine
from booklend.services.notification_service import NotificationService
from booklend.session import SessionContext

CENTER_KEY = "booklend.notifications"

# one live query per librarian feed
LIBRARIAN_FEEDS = (
    BorrowStatus.PENDING_APPROVAL,
    BorrowStatus.PENDING_RETURN_APPROVAL,
    BorrowStatus.PENDING_RENEWAL_APPROVAL,
)


@dataclass
class Viewer:
    ctx: SessionContext
    subscriptions: list = field(default_factory=list)
    engines: list = field(default_factory=list)


class NotificationCenter:
    """
    Keeps the live subscriptions of every logged-in viewer.

    A patron watches all of their own borrow records; a librarian watches the
    pending-request queues. Opening a viewer again (new login, role change)
    tears the old subscriptions down and starts a fresh warm-up.
    """

    def __init__(self, feed: ChangeFeed | None = None, baseline_factory=InMemoryBaselineStore, app=None):
        self.feed = feed
        self.baseline_factory = baseline_factory
        self._viewers: dict[int, Viewer] = {}
        self._lock = threading.RLock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        if self.feed is None:
            self.feed = app.extensions["booklend.feed"]
        app.extensions[CENTER_KEY] = self

    # ---- viewers

    def open(self, ctx: SessionContext) -> Viewer:
        with self._lock:
            self.close(ctx.user_id)
            viewer = Viewer(ctx=ctx)
            if ctx.role == Role.LIBRARIAN:
                for status in LIBRARIAN_FEEDS:
                    self._watch(viewer, Role.LIBRARIAN, {"status": status})
            else:
                self._watch(viewer, Role.PATRON, {"patron_id": ctx.user_id})
            self._viewers[ctx.user_id] = viewer
            current_app.logger.info(
                f"[notify] viewer opened user={ctx.user_id} role={ctx.role.value} "
                f"subscriptions={len(viewer.subscriptions)}"
            )
            return viewer

    def close(self, user_id: int) -> bool:
        with self._lock:
            viewer = self._viewers.pop(user_id, None)
            if viewer is None:
                return False
            for sub in viewer.subscriptions:
                sub.close()
            return True

    def change_role(self, ctx: SessionContext) -> Viewer | None:
        """Re-open an existing viewer under its new role; no-op when offline."""
        with self._lock:
            if ctx.user_id not in self._viewers:
                return None
            return self.open(ctx)

    def is_open(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._viewers

    def viewer(self, user_id: int) -> Viewer | None:
        with self._lock:
            return self._viewers.get(user_id)

    def active_sessions(self) -> list[SessionContext]:
        with self._lock:
            return [v.ctx for v in self._viewers.values()]

    # ---- plumbing

    def _watch(self, viewer: Viewer, role: Role, filters: dict) -> Subscription:
        engine = NotificationDiffEngine(role, baseline=self.baseline_factory())
        engine.start()
        recipient_id = viewer.ctx.user_id

        def on_change(sub: Subscription, changes: ChangeSet):
            for note in engine.process(changes):
                try:
                    NotificationService.deliver(recipient_id, note)
                except Exception as ex:
                    db.session.rollback()
                    current_app.logger.exception(
                        f"[notify] delivery of {note.type} to user={recipient_id} failed: {ex}"
                    )

        sub = self.feed.subscribe("borrows", filters, on_change)
        viewer.engines.append(engine)
        viewer.subscriptions.append(sub)
        return sub


def current_center() -> NotificationCenter:
    return current_app.extensions[CENTER_KEY]
