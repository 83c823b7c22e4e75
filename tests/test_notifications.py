from booklend.models.enums import BorrowStatus, Role
from booklend.services.auth_service import AuthService
from booklend.services.lifecycle_service import LifecycleService
from booklend.services.notification_service import NotificationService
from booklend.session import SessionContext


def _types(user_id):
    return [row.type for row in reversed(NotificationService.inbox(user_id))]


def test_subscription_reports_membership_changes(feed, lib_ctx, ctx_a, shelf):
    feed.drain()
    seen = []
    sub = feed.subscribe("borrows", {"status": BorrowStatus.PENDING_APPROVAL}, lambda s, c: seen.append(c))
    assert len(seen) == 1 and not seen[0]

    record = LifecycleService.request_borrow(ctx_a, shelf.id)
    assert feed.drain() == 1
    assert [d["id"] for d in seen[-1].added] == [record.id]
    assert sub.members == {record.id}

    LifecycleService.approve_borrow(lib_ctx, record.id)
    feed.drain()
    assert [d["status"] for d in seen[-1].removed] == ["active"]
    assert sub.members == set()

    sub.close()
    assert sub not in feed.subscriptions


def test_initial_snapshot_is_delivered_as_added(feed, ctx_a, shelf):
    record = LifecycleService.request_borrow(ctx_a, shelf.id)
    feed.drain()

    seen = []
    feed.subscribe("borrows", {"patron_id": ctx_a.user_id}, lambda s, c: seen.append(c))
    assert [d["id"] for d in seen[0].added] == [record.id]
    assert seen[0].added[0]["status"] == "pending"


def test_rolled_back_changes_are_not_published(app, feed, patron_a, shelf):
    from booklend.extensions import db
    from booklend.models.borrow import BorrowRecord

    feed.drain()
    db.session.add(BorrowRecord(patron_id=patron_a.id, title_id=shelf.id, book_title="x", requested_by="x"))
    db.session.flush()
    db.session.rollback()
    db.session.commit()
    assert feed.pending() == 0


def test_patron_gets_one_notification_per_transition(feed, center, lib_ctx, ctx_a, shelf):
    center.open(ctx_a)
    record = LifecycleService.request_borrow(ctx_a, shelf.id)
    feed.drain()
    assert _types(ctx_a.user_id) == []

    LifecycleService.approve_borrow(lib_ctx, record.id)
    feed.drain()
    feed.drain()
    assert _types(ctx_a.user_id) == ["borrow_approved"]

    LifecycleService.request_return(ctx_a, record.id)
    LifecycleService.approve_return(lib_ctx, record.id)
    feed.drain()
    assert _types(ctx_a.user_id) == ["borrow_approved", "return_approved"]


def test_rejection_notifies_patron(feed, center, lib_ctx, ctx_a, shelf):
    center.open(ctx_a)
    record = LifecycleService.request_borrow(ctx_a, shelf.id)
    LifecycleService.reject_borrow(lib_ctx, record.id, "no")
    feed.drain()
    assert _types(ctx_a.user_id) == ["borrow_rejected"]


def test_renewal_outcomes_notify_patron(feed, center, lib_ctx, ctx_a, shelf):
    record = LifecycleService.approve_borrow(lib_ctx, LifecycleService.request_borrow(ctx_a, shelf.id).id)
    center.open(ctx_a)

    LifecycleService.request_renewal(ctx_a, record.id)
    feed.drain()
    LifecycleService.approve_renewal(lib_ctx, record.id)
    feed.drain()
    LifecycleService.request_renewal(ctx_a, record.id)
    feed.drain()
    LifecycleService.reject_renewal(lib_ctx, record.id)
    feed.drain()

    assert _types(ctx_a.user_id) == ["renewal_approved", "renewal_rejected"]


def test_librarian_sees_new_requests_only(feed, center, lib_ctx, ctx_a, ctx_b, shelf, single_copy):
    old = LifecycleService.request_borrow(ctx_a, shelf.id)
    feed.drain()

    # requests already waiting at login are baseline
    center.open(lib_ctx)
    assert len(center.viewer(lib_ctx.user_id).subscriptions) == 3
    assert _types(lib_ctx.user_id) == []

    LifecycleService.request_borrow(ctx_b, single_copy.id)
    feed.drain()
    assert _types(lib_ctx.user_id) == ["new_borrow_request"]

    LifecycleService.approve_borrow(lib_ctx, old.id)
    LifecycleService.request_return(ctx_a, old.id)
    feed.drain()
    LifecycleService.approve_return(lib_ctx, old.id)
    feed.drain()
    assert _types(lib_ctx.user_id) == ["new_borrow_request", "new_return_request"]


def test_repeat_renewal_request_notifies_librarian_again(feed, center, lib_ctx, ctx_a, shelf):
    record = LifecycleService.approve_borrow(lib_ctx, LifecycleService.request_borrow(ctx_a, shelf.id).id)
    center.open(lib_ctx)

    for _ in range(2):
        LifecycleService.request_renewal(ctx_a, record.id)
        feed.drain()
        LifecycleService.approve_renewal(lib_ctx, record.id)
        feed.drain()

    assert _types(lib_ctx.user_id) == ["new_renewal_request", "new_renewal_request"]


def test_closed_viewer_gets_nothing(feed, center, lib_ctx, ctx_a, shelf):
    center.open(ctx_a)
    record = LifecycleService.request_borrow(ctx_a, shelf.id)
    feed.drain()

    assert center.close(ctx_a.user_id)
    assert not center.is_open(ctx_a.user_id)
    assert feed.subscriptions == []

    LifecycleService.approve_borrow(lib_ctx, record.id)
    feed.drain()
    assert _types(ctx_a.user_id) == []


def test_reopen_does_not_replay(feed, center, lib_ctx, ctx_a, shelf):
    center.open(ctx_a)
    record = LifecycleService.request_borrow(ctx_a, shelf.id)
    LifecycleService.approve_borrow(lib_ctx, record.id)
    feed.drain()
    assert _types(ctx_a.user_id) == ["borrow_approved"]

    center.open(ctx_a)
    center.open(ctx_a)
    feed.drain()
    assert _types(ctx_a.user_id) == ["borrow_approved"]
    assert len(feed.subscriptions) == 1


def test_role_change_rewarms_subscriptions(feed, center, lib_ctx, patron_b, ctx_a, ctx_b, shelf):
    center.open(ctx_b)
    LifecycleService.request_borrow(ctx_a, shelf.id)
    feed.drain()

    promoted = AuthService.set_role(lib_ctx, patron_b.id, Role.LIBRARIAN)
    assert promoted.role == Role.LIBRARIAN
    viewer = center.change_role(SessionContext(patron_b.id, Role.LIBRARIAN, "Bob Reader"))
    assert len(viewer.subscriptions) == 3
    feed.drain()
    # the pending request existed before the switch
    assert _types(patron_b.id) == []

    assert center.change_role(SessionContext(999, Role.LIBRARIAN)) is None


def test_active_sessions(center, lib_ctx, ctx_a):
    center.open(ctx_a)
    center.open(lib_ctx)
    assert {c.user_id for c in center.active_sessions()} == {ctx_a.user_id, lib_ctx.user_id}


def test_mark_read(feed, center, lib_ctx, ctx_a, ctx_b, shelf):
    center.open(ctx_a)
    record = LifecycleService.request_borrow(ctx_a, shelf.id)
    LifecycleService.approve_borrow(lib_ctx, record.id)
    feed.drain()

    row = NotificationService.inbox(ctx_a.user_id)[0]
    assert NotificationService.mark_read(ctx_b.user_id, row.id) is None
    assert NotificationService.mark_read(ctx_a.user_id, row.id).is_read
    assert NotificationService.inbox(ctx_a.user_id, unread_only=True) == []


def test_login_does_not_replay_undrained_batches(feed, center, lib_ctx, ctx_a, shelf):
    feed.drain()
    record = LifecycleService.request_borrow(ctx_a, shelf.id)
    LifecycleService.approve_borrow(lib_ctx, record.id)
    assert feed.pending() > 0

    center.open(ctx_a)
    assert feed.pending() == 0
    feed.drain()
    assert _types(ctx_a.user_id) == []

    LifecycleService.request_return(ctx_a, record.id)
    LifecycleService.approve_return(lib_ctx, record.id)
    feed.drain()
    assert _types(ctx_a.user_id) == ["return_approved"]
