from datetime import timedelta


def _data(resp):
    return resp.get_json()["data"]


def test_health(client):
    assert client.get("/health").get_json() == {"ok": True}


def test_register_and_login(client, login):
    resp = client.post("/auth/register", json={
        "username": "carol", "email": "carol@example.com", "password": "pw123456", "display_name": "Carol",
    })
    assert resp.status_code == 201
    user = resp.get_json()["user"]
    assert user["role"] == "patron"
    assert len(user["short_id"]) == 6

    again = client.post("/auth/register", json={"username": "carol", "email": "x@example.com", "password": "pw"})
    assert again.status_code == 409

    headers = login("carol", "pw123456")
    me = client.get("/auth/me", headers=headers).get_json()
    assert me["user"]["username"] == "carol"
    assert me["notifications_live"] is True


def test_bad_login(client, patron_a):
    resp = client.post("/auth/login", json={"username": "alice", "password": "nope"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "unauthenticated"


def test_requires_token(client):
    assert client.get("/borrows/my").status_code == 401


def test_catalog_is_librarian_managed(client, login, librarian, patron_a):
    lib = login("libby")
    pat = login("alice")

    resp = client.post("/titles/", json={"title": "SICP", "author_name": "Abelson", "total_copies": 2}, headers=pat)
    assert resp.status_code == 403

    resp = client.post("/titles/", json={"title": "SICP", "author_name": "Abelson", "total_copies": 2}, headers=lib)
    assert resp.status_code == 201
    title = _data(resp)
    assert title["available_copies"] == 2

    listed = _data(client.get("/titles/?q=sicp"))
    assert [t["id"] for t in listed] == [title["id"]]

    resp = client.put(f"/titles/{title['id']}", json={"total_copies": 5}, headers=lib)
    assert _data(resp)["available_copies"] == 5

    assert client.delete(f"/titles/{title['id']}", headers=lib).status_code == 200
    assert client.get(f"/titles/{title['id']}").status_code == 404


def test_borrow_flow_over_http(client, login, librarian, patron_a, patron_b, single_copy):
    lib = login("libby")
    alice = login("alice")
    bob = login("bob")

    resp = client.post("/borrows/", json={"title_id": single_copy.id, "requested_due_date": "2024-02-01"}, headers=alice)
    assert resp.status_code == 201
    borrow = _data(resp)
    assert borrow["status"] == "pending"

    dup = client.post("/borrows/", json={"title_id": single_copy.id}, headers=alice)
    assert dup.status_code == 409
    assert dup.get_json()["error"] == "duplicate_request"

    pending = _data(client.get("/borrows/pending", headers=lib))
    assert [b["id"] for b in pending] == [borrow["id"]]
    assert client.get("/borrows/pending", headers=alice).status_code == 403

    approved = _data(client.post(f"/borrows/{borrow['id']}/approve", headers=lib))
    assert approved["status"] == "active"
    assert approved["due_date"].startswith("2024-02-01")

    busy = client.post("/borrows/", json={"title_id": single_copy.id}, headers=bob)
    assert busy.status_code == 409
    assert busy.get_json()["error"] == "conflict"

    assert client.get(f"/borrows/{borrow['id']}", headers=bob).status_code == 403

    # the librarian heard about the request, the patron about the approval
    alice_inbox = _data(client.get("/notifications/my", headers=alice))
    assert [n["type"] for n in alice_inbox] == ["borrow_approved"]
    lib_inbox = _data(client.get("/notifications/my", headers=lib))
    assert [n["type"] for n in lib_inbox] == ["new_borrow_request"]

    assert _data(client.post(f"/borrows/{borrow['id']}/return", headers=alice))["status"] == "pending_return"
    returned = _data(client.post(f"/borrows/{borrow['id']}/return/approve", headers=lib))
    assert returned["status"] == "returned"
    assert [b["id"] for b in _data(client.get("/borrows/history", headers=alice))] == [borrow["id"]]
    assert _data(client.get("/borrows/my", headers=alice)) == []
    assert _data(client.get(f"/titles/{single_copy.id}"))["available_copies"] == 1


def test_renewal_over_http(client, login, librarian, patron_a, shelf):
    lib = login("libby")
    alice = login("alice")

    borrow = _data(client.post("/borrows/", json={"title_id": shelf.id}, headers=alice))
    client.post(f"/borrows/{borrow['id']}/approve", headers=lib)

    for _ in range(2):
        assert client.post(f"/borrows/{borrow['id']}/renew", headers=alice).status_code == 200
        assert [b["id"] for b in _data(client.get("/borrows/renewals/pending", headers=lib))] == [borrow["id"]]
        assert client.post(f"/borrows/{borrow['id']}/renew/approve", headers=lib).status_code == 200

    over = client.post(f"/borrows/{borrow['id']}/renew", headers=alice)
    assert over.status_code == 409
    assert _data(client.get(f"/borrows/{borrow['id']}", headers=alice))["renewals_used"] == 2

    types = [n["type"] for n in _data(client.get("/notifications/my", headers=alice))]
    assert types.count("renewal_approved") == 2


def test_reject_over_http(client, login, librarian, patron_a, shelf):
    lib = login("libby")
    alice = login("alice")
    borrow = _data(client.post("/borrows/", json={"title_id": shelf.id}, headers=alice))

    rejected = _data(client.post(f"/borrows/{borrow['id']}/reject", json={"reason": "reserved"}, headers=lib))
    assert rejected["status"] == "rejected"
    assert rejected["rejection_reason"] == "reserved"
    assert [n["type"] for n in _data(client.get("/notifications/my", headers=alice))] == ["borrow_rejected"]


def test_fines_and_manual_sweep(client, login, librarian, patron_a, shelf, clock):
    lib = login("libby")
    alice = login("alice")
    borrow = _data(client.post("/borrows/", json={"title_id": shelf.id}, headers=alice))
    approved = _data(client.post(f"/borrows/{borrow['id']}/approve", headers=lib))

    clock.advance(timedelta(days=102))
    report = _data(client.post("/notifications/run-sweep", headers=alice))
    assert report["newly_overdue"] == 1

    fines = client.get("/fines/my", headers=alice).get_json()
    assert fines["total_unpaid"] == 10000
    assert fines["data"][0]["borrow_id"] == approved["id"]
    assert fines["data"][0]["overdue_days"] == 2

    assert client.get("/fines/all", headers=alice).status_code == 403
    assert len(_data(client.get("/fines/all", headers=lib))) == 1

    unread = _data(client.get("/notifications/my?unread=1", headers=alice))
    overdue = [n for n in unread if n["type"] == "overdue"]
    assert len(overdue) == 1
    assert client.post(f"/notifications/{overdue[0]['id']}/read", headers=alice).status_code == 200
    assert client.post(f"/notifications/{overdue[0]['id']}/read", headers=lib).status_code == 404


def test_logout_stops_notifications(client, login, librarian, patron_a, shelf):
    lib = login("libby")
    alice = login("alice")
    borrow = _data(client.post("/borrows/", json={"title_id": shelf.id}, headers=alice))

    assert client.post("/auth/logout", headers=alice).status_code == 200
    client.post(f"/borrows/{borrow['id']}/approve", headers=lib)
    assert _data(client.get("/notifications/my", headers=alice)) == []


def test_role_change_over_http(client, login, librarian, patron_a):
    lib = login("libby")
    resp = client.put(f"/auth/users/{patron_a.id}/role", json={"role": "librarian"}, headers=lib)
    assert resp.status_code == 200
    assert resp.get_json()["user"]["role"] == "librarian"

    bad = client.put(f"/auth/users/{patron_a.id}/role", json={"role": "admin"}, headers=lib)
    assert bad.status_code == 400
