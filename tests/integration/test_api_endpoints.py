from src.infrastructure.database.paths import private_profile_path, public_summary_path


def sign_in(client, token=None):
    body = {"token": token} if token is not None else None
    r = client.post("/session", json=body)
    assert r.status_code == 201, r.text
    data = r.json()
    return {"X-Session-Id": data["session_id"]}, data


def make_admin(client, store, identity):
    store.update(private_profile_path(client.app.state.settings.app_id, identity), {"isAdmin": True})


def test_root_and_health(client):
    assert client.get("/").json()["service"] == "loyalty-sync"
    assert client.get("/health").json() == {"status": "healthy"}


def test_anonymous_sign_in_creates_profile(client):
    _, data = sign_in(client)
    assert data["state"] == "profile_ready"
    assert data["identity"].startswith("anon-")
    assert data["scan_token"] == data["identity"]
    profile = data["profile"]
    assert profile["points"] == 0
    assert profile["tier"] == "Silver"
    assert profile["is_admin"] is False
    assert profile["phase"] == "confirmed"
    assert data["pending_errors"] == {}


def test_rejected_token_is_401(client):
    r = client.post("/session", json={"token": "   "})
    assert r.status_code == 401
    assert r.json()["retryable"] is False


def test_session_header_required(client):
    assert client.get("/session").status_code == 401
    assert client.get("/session", headers={"X-Session-Id": "nope"}).status_code == 401


def test_rename_and_state(client):
    headers, _ = sign_in(client, "member")
    r = client.patch("/session/profile", headers=headers, json={"name": "Camille"})
    assert r.status_code == 200, r.text
    assert r.json()["profile"]["display_name"] == "Camille"

    r = client.patch("/session/profile", headers=headers, json={"name": "   "})
    assert r.status_code == 400


def test_roster_is_admin_only(client, store):
    member_headers, member = sign_in(client, "member")
    assert client.get("/admin/roster", headers=member_headers).status_code == 403

    admin_headers, admin = sign_in(client, "boss")
    make_admin(client, store, admin["identity"])

    state = client.get("/session", headers=admin_headers).json()
    assert state["state"] == "roster_syncing"

    r = client.get("/admin/roster", headers=admin_headers)
    assert r.status_code == 200
    ids = [c["id"] for c in r.json()["clients"]]
    assert ids == [member["identity"], admin["identity"]]


def test_adjust_points_flow(client, store):
    member_headers, member = sign_in(client, "member")
    admin_headers, admin = sign_in(client, "boss")
    make_admin(client, store, admin["identity"])

    body = {"target_identity": member["identity"], "current_points": 0, "delta": 5}
    r = client.post("/admin/ledger/adjust", headers=admin_headers, json=body)
    assert r.status_code == 200, r.text
    assert r.json()["points"] == 5

    body = {"target_identity": member["identity"], "current_points": 5, "delta": -50}
    assert client.post("/admin/ledger/adjust", headers=admin_headers, json=body).json()["points"] == 0

    assert client.get("/session", headers=member_headers).json()["profile"]["points"] == 0
    roster = client.get("/admin/roster", headers=admin_headers).json()["clients"]
    assert next(c for c in roster if c["id"] == member["identity"])["points"] == 0


def test_adjust_requires_admin_and_valid_body(client, store):
    member_headers, member = sign_in(client, "member")
    body = {"target_identity": member["identity"], "current_points": 0, "delta": 5}
    assert client.post("/admin/ledger/adjust", headers=member_headers, json=body).status_code == 403

    admin_headers, admin = sign_in(client, "boss")
    make_admin(client, store, admin["identity"])
    bad = {"target_identity": member["identity"], "current_points": -1, "delta": 5}
    assert client.post("/admin/ledger/adjust", headers=admin_headers, json=bad).status_code == 422


def test_failed_adjustment_is_retryable(client, store, fail_writes):
    _, member = sign_in(client, "member")
    admin_headers, admin = sign_in(client, "boss")
    make_admin(client, store, admin["identity"])

    fail_writes(store, op="update")
    body = {"target_identity": member["identity"], "current_points": 0, "delta": 5}
    r = client.post("/admin/ledger/adjust", headers=admin_headers, json=body)
    assert r.status_code == 503
    assert r.json()["retryable"] is True


def test_reconcile_endpoint(client, store):
    _, member = sign_in(client, "member")
    admin_headers, admin = sign_in(client, "boss")
    make_admin(client, store, admin["identity"])

    r = client.post(f"/admin/ledger/reconcile/{member['identity']}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["points"] == 0
    assert client.post("/admin/ledger/reconcile/nobody", headers=admin_headers).status_code == 404


def test_sign_out_closes_session(client):
    headers, _ = sign_in(client)
    assert client.delete("/session", headers=headers).status_code == 204
    assert client.get("/session", headers=headers).status_code == 401


def test_retry_without_failures(client):
    headers, _ = sign_in(client)
    r = client.post("/session/retry", headers=headers)
    assert r.status_code == 200
    assert r.json() == {"retried": {}}


def test_unknown_tier_is_served_verbatim(client, store):
    _, member = sign_in(client, "member")
    admin_headers, admin = sign_in(client, "boss")
    make_admin(client, store, admin["identity"])

    app_id = client.app.state.settings.app_id
    store.merge(public_summary_path(app_id, "vip"), {"name": "Vip", "points": 1, "tier": "Diamond"})

    roster = client.get("/admin/roster", headers=admin_headers).json()["clients"]
    assert next(c for c in roster if c["id"] == "vip")["tier"] == "Diamond"

    body = {"target_identity": member["identity"], "current_points": 0, "delta": 5}
    r = client.post("/admin/ledger/adjust", headers=admin_headers, json=body)
    assert r.status_code == 200, r.text
    assert r.json()["points"] == 5
