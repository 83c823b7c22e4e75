from __future__ import annotations

import itertools
import threading
from collections import deque
from enum import Enum

from flask import current_app, has_app_context
from sqlalchemy import event

from booklend.extensions import db
from booklend.models.borrow import BorrowRecord
from booklend.models.title import Title
from booklend.services.diff_engine import ChangeSet

FEED_KEY = "booklend.feed"
_PENDING = "booklend.pending_changes"

COLLECTIONS = {
    "borrows": BorrowRecord,
    "titles": Title,
}
_COLLECTION_OF = {model: name for name, model in COLLECTIONS.items()}

_ids = itertools.count(1)
_install_lock = threading.Lock()
_installed = False


def _plain(value):
    return value.value if isinstance(value, Enum) else value


def _doc(obj) -> dict:
    return obj.to_doc() if hasattr(obj, "to_doc") else obj.to_dict()


class Subscription:
    """A live query: a collection plus equality filters, delivering ChangeSets."""

    def __init__(self, feed, collection: str, filters: dict, listener):
        self.id = next(_ids)
        self.feed = feed
        self.collection = collection
        self.model = COLLECTIONS[collection]
        self.filters = {k: (tuple(_plain(x) for x in v) if isinstance(v, (list, tuple, set)) else _plain(v))
                        for k, v in (filters or {}).items()}
        self.listener = listener
        self.members: set = set()
        self.active = True

    def matches(self, doc: dict) -> bool:
        for key, wanted in self.filters.items():
            value = _plain(doc.get(key))
            if isinstance(wanted, tuple):
                if value not in wanted:
                    return False
            elif value != wanted:
                return False
        return True

    def query(self):
        q = self.model.query
        for key, wanted in self.filters.items():
            column = getattr(self.model, key)
            q = q.filter(column.in_(wanted)) if isinstance(wanted, tuple) else q.filter(column == wanted)
        return q.order_by(self.model.id.asc())

    def diff(self, docs) -> ChangeSet:
        changes = ChangeSet()
        for doc in docs:
            was = doc["id"] in self.members
            now = self.matches(doc)
            if now and not was:
                self.members.add(doc["id"])
                changes.added.append(doc)
            elif now and was:
                changes.modified.append(doc)
            elif was:
                self.members.discard(doc["id"])
                changes.removed.append(doc)
        return changes

    def close(self):
        self.feed.unsubscribe(self)

    def __repr__(self):
        return f"<Subscription {self.id} {self.collection} {self.filters}>"


class ChangeFeed:
    """
    In-process realtime layer over the SQL store.

    Row snapshots are captured per SQLAlchemy session at flush time and only
    published once the transaction commits. `drain()` pushes each queued batch
    to every subscription, in commit order.
    """

    def __init__(self, app=None):
        self._subscriptions: dict[int, Subscription] = {}
        self._queue: deque = deque()
        self._lock = threading.RLock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.extensions[FEED_KEY] = self
        install_session_hooks()

        @app.after_request
        def _drain_after_request(response):
            try:
                self.drain()
            except Exception as ex:
                app.logger.exception(f"[feed] drain failed: {ex}")
            return response

    # ---- subscriptions

    def subscribe(self, collection: str, filters: dict, listener) -> Subscription:
        if collection not in COLLECTIONS:
            raise KeyError(f"Unknown collection '{collection}'")
        sub = Subscription(self, collection, filters, listener)
        with self._lock:
            # batches committed before this point belong to the baseline
            self.drain()
            initial = [_doc(obj) for obj in sub.query().all()]
            sub.members = {doc["id"] for doc in initial}
            self._subscriptions[sub.id] = sub
            self._deliver(sub, ChangeSet(added=initial))
        return sub

    def unsubscribe(self, sub: Subscription):
        with self._lock:
            sub.active = False
            self._subscriptions.pop(sub.id, None)

    @property
    def subscriptions(self):
        with self._lock:
            return list(self._subscriptions.values())

    # ---- publishing

    def publish(self, changed: dict):
        """Queue one committed batch: {(collection, id): snapshot or None}."""
        if not changed:
            return
        with self._lock:
            self._queue.append(dict(changed))

    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def drain(self) -> int:
        """Dispatch queued batches. Returns how many batches went out."""
        sent = 0
        with self._lock:
            while self._queue:
                batch = self._queue.popleft()
                docs = self._load(batch)
                for sub in list(self._subscriptions.values()):
                    changes = sub.diff(docs.get(sub.collection, []))
                    if changes:
                        self._deliver(sub, changes)
                sent += 1
        return sent

    def _load(self, batch: dict) -> dict:
        docs: dict[str, list] = {}
        for (collection, obj_id) in sorted(batch):
            doc = batch[(collection, obj_id)]
            if doc is None:
                # bulk UPDATEs leave no snapshot; read the committed row
                obj = db.session.get(COLLECTIONS[collection], obj_id)
                doc = _doc(obj) if obj is not None else None
            if doc is not None:
                docs.setdefault(collection, []).append(doc)
        return docs

    def _deliver(self, sub: Subscription, changes: ChangeSet):
        if not sub.active:
            return
        try:
            sub.listener(sub, changes)
        except Exception as ex:
            current_app.logger.exception(f"[feed] listener for {sub!r} failed: {ex}")


def current_feed() -> ChangeFeed | None:
    if not has_app_context():
        return None
    return current_app.extensions.get(FEED_KEY)


# ---------------------------------------------------------------------------
# session hooks
# ---------------------------------------------------------------------------


def mark_changed(session, collection: str, obj_id):
    """Record a change the ORM cannot see (bulk UPDATE statements)."""
    session.info.setdefault(_PENDING, {}).setdefault((collection, obj_id), None)


def _track_flush(session, flush_context):
    # snapshot as flushed; the last flush of a transaction wins
    pending = session.info.setdefault(_PENDING, {})
    for obj in itertools.chain(session.new, session.dirty):
        collection = _COLLECTION_OF.get(type(obj))
        if collection is None:
            continue
        if obj in session.new or session.is_modified(obj):
            pending[(collection, obj.id)] = _doc(obj)


def _publish_on_commit(session):
    changed = session.info.pop(_PENDING, None)
    if not changed:
        return
    feed = current_feed()
    if feed is not None:
        feed.publish(changed)


def _forget_on_rollback(session):
    session.info.pop(_PENDING, None)


def install_session_hooks():
    global _installed
    with _install_lock:
        if _installed:
            return
        event.listen(db.session, "after_flush", _track_flush)
        event.listen(db.session, "after_commit", _publish_on_commit)
        event.listen(db.session, "after_rollback", _forget_on_rollback)
        _installed = True
