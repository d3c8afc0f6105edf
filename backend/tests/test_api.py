import uuid

from conftest import FIXED_NOW

API = "/api/v1"
PASSWORD = "s3cret-password"


def register(client, email, name="Operator"):
    resp = client.post(f"{API}/auth/register", json={"email": email, "password": PASSWORD, "name": name})
    assert resp.status_code == 201, resp.text
    return resp.json()


def login(client, email):
    resp = client.post(f"{API}/auth/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def operator(client, email):
    user = register(client, email)
    return user, login(client, email)


def create_project(client, headers, name="Demo app"):
    resp = client.post(f"{API}/projects", json={"name": name}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def key_headers(client, headers, project_id):
    resp = client.get(f"{API}/projects/{project_id}/api-key", headers=headers)
    assert resp.status_code == 200, resp.text
    return {"X-API-Key": resp.json()["api_key"]}


def event(**overrides):
    body = {
        "device_id": "device-1",
        "platform": "ios",
        "event_type": "click",
        "timestamp": "2026-03-10T11:15:00Z",
        "ip_address": "192.0.2.44",
    }
    body.update(overrides)
    return body


def test_health_and_request_id(client):
    resp = client.get("/health", headers={"X-Request-Id": "req-42"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["X-Request-Id"] == "req-42"

    status = client.get("/system/status").json()
    assert status["ok"] is True
    assert status["last_event_received_at"] is None


def test_first_registered_user_is_global_admin(client):
    first = register(client, "first@example.com")
    second = register(client, "second@example.com")
    assert first["role"] == "admin"
    assert second["role"] == "user"
    assert "password_hash" not in first

    dup = client.post(
        f"{API}/auth/register", json={"email": "FIRST@example.com", "password": PASSWORD, "name": "Again"}
    )
    assert dup.status_code == 409
    assert dup.json()["error"]["code"] == "CONFLICT"


def test_login_and_profile(client):
    _, headers = operator(client, "me@example.com")

    me = client.get(f"{API}/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email"] == "me@example.com"

    bad = client.post(f"{API}/auth/login", json={"email": "me@example.com", "password": "wrong-password"})
    assert bad.status_code == 401
    assert bad.headers["WWW-Authenticate"] == "Bearer"

    renamed = client.patch(f"{API}/auth/me", json={"name": "Renamed"}, headers=headers)
    assert renamed.json()["name"] == "Renamed"

    wrong = client.post(
        f"{API}/auth/me/password",
        json={"current_password": "nope-nope", "new_password": "another-password"},
        headers=headers,
    )
    assert wrong.status_code == 400

    changed = client.post(
        f"{API}/auth/me/password",
        json={"current_password": PASSWORD, "new_password": "another-password"},
        headers=headers,
    )
    assert changed.status_code == 204
    stale = client.get(f"{API}/auth/me", headers=headers)
    assert stale.status_code == 401
    assert stale.json()["error"]["details"] == {"reason": "INVALID_OR_EXPIRED"}

    relogin = client.post(f"{API}/auth/login", json={"email": "me@example.com", "password": "another-password"})
    assert relogin.status_code == 200


def test_logout_revokes_session(client):
    _, headers = operator(client, "leaving@example.com")
    assert client.get(f"{API}/auth/me", headers=headers).status_code == 200

    assert client.post(f"{API}/auth/logout", headers=headers).status_code == 204

    after = client.get(f"{API}/auth/me", headers=headers)
    assert after.status_code == 401
    assert after.json()["error"]["details"] == {"reason": "INVALID_OR_EXPIRED"}
    assert client.get(f"{API}/projects", headers=headers).status_code == 401


def test_missing_and_malformed_credentials(client):
    resp = client.get(f"{API}/projects")
    assert resp.status_code == 401
    body = resp.json()["error"]
    assert body["details"] == {"reason": "MISSING_CREDENTIAL"}
    assert body["request_id"] == resp.headers["X-Request-Id"]

    resp = client.get(f"{API}/projects", headers={"Authorization": "Token abc"})
    assert resp.json()["error"]["details"] == {"reason": "MALFORMED_CREDENTIAL"}

    resp = client.post(f"{API}/events", json=event(), headers={"X-API-Key": "bk_unknown"})
    assert resp.status_code == 401
    assert resp.json()["error"]["details"] == {"reason": "UNKNOWN_KEY"}


def test_ingest_and_read_back(client):
    _, headers = operator(client, "owner@example.com")
    project = create_project(client, headers)
    sdk = key_headers(client, headers, project["id"])

    created = client.post(f"{API}/events", json=event(parameters={"screen": "cart"}), headers=sdk)
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["device_id"] == "device-1"
    assert body["received_at"] == "2026-03-10T12:00:00.000000Z"

    listed = client.get(f"{API}/events", params={"project_id": project["id"]}, headers=headers).json()
    assert listed["meta"]["total"] == 1
    assert listed["data"][0]["parameters"] == {"screen": "cart"}

    detail = client.get(f"{API}/events/{body['id']}", headers=headers)
    assert detail.status_code == 200

    devices = client.get(f"{API}/projects/{project['id']}/devices", headers=headers).json()
    assert devices["data"][0]["country"] == "US"

    metrics = client.get(
        f"{API}/projects/{project['id']}/metrics", params={"metric_type": "events"}, headers=headers
    ).json()
    assert [(m["period"], m["value"]) for m in metrics] == [("hourly", 1.0)]


def test_identity_kinds_are_not_interchangeable(client):
    _, headers = operator(client, "owner@example.com")
    project = create_project(client, headers)
    sdk = key_headers(client, headers, project["id"])

    as_user = client.post(f"{API}/events", json=event(), headers=headers)
    assert as_user.status_code == 403

    as_key = client.get(f"{API}/projects/{project['id']}", headers=sdk)
    assert as_key.status_code == 403
    assert as_key.json()["error"]["code"] == "FORBIDDEN"


def test_project_scoped_token_can_ingest(client):
    _, headers = operator(client, "owner@example.com")
    project = create_project(client, headers)

    issued = client.post(f"{API}/projects/{project['id']}/token", headers=headers)
    assert issued.status_code == 200
    token = {"Authorization": f"Bearer {issued.json()['access_token']}"}

    resp = client.post(f"{API}/events", json=event(), headers=token)
    assert resp.status_code == 201


def test_regenerated_key_invalidates_old_one(client):
    _, headers = operator(client, "owner@example.com")
    project = create_project(client, headers)
    old = key_headers(client, headers, project["id"])

    rotated = client.post(f"{API}/projects/{project['id']}/api-key/regenerate", headers=headers)
    assert rotated.status_code == 200
    new = {"X-API-Key": rotated.json()["api_key"]}

    assert client.post(f"{API}/events", json=event(), headers=old).status_code == 401
    assert client.post(f"{API}/events", json=event(), headers=new).status_code == 201


def test_invalid_batch_is_rejected_whole(client):
    _, headers = operator(client, "owner@example.com")
    project = create_project(client, headers)
    sdk = key_headers(client, headers, project["id"])

    batch = {"events": [event(), event(timestamp="2026-13-45T99:00:00Z"), event(device_id="device-2")]}
    resp = client.post(f"{API}/events/batch", json=batch, headers=sdk)

    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"]["index"] == 1

    listed = client.get(f"{API}/events", params={"project_id": project["id"]}, headers=headers).json()
    assert listed["meta"]["total"] == 0

    ok = client.post(f"{API}/events/batch", json={"events": [event(), event(device_id="device-2")]}, headers=sdk)
    assert ok.status_code == 201
    assert ok.json()["accepted"] == 2


def test_other_tenants_see_not_found(client):
    _, owner = operator(client, "owner@example.com")
    _, stranger = operator(client, "stranger@example.com")
    project = create_project(client, owner)
    sdk = key_headers(client, owner, project["id"])
    event_id = client.post(f"{API}/events", json=event(), headers=sdk).json()["id"]

    missing = client.get(f"{API}/events/{uuid.uuid4()}", headers=stranger)
    hidden = client.get(f"{API}/events/{event_id}", headers=stranger)
    assert missing.status_code == hidden.status_code == 404
    assert missing.json()["error"]["message"] == hidden.json()["error"]["message"]

    assert client.get(f"{API}/projects/{project['id']}", headers=stranger).status_code == 404
    assert client.get(f"{API}/events", params={"project_id": project["id"]}, headers=stranger).status_code == 404
    assert client.get(f"{API}/projects", headers=stranger).json() == []


def test_members_and_roles(client):
    owner_user, owner = operator(client, "owner@example.com")
    viewer_user, viewer = operator(client, "viewer@example.com")
    project = create_project(client, owner)
    members_url = f"{API}/projects/{project['id']}/members"

    added = client.post(members_url, json={"email": "viewer@example.com", "role": "viewer"}, headers=owner)
    assert added.status_code == 201
    assert added.json()["role"] == "viewer"

    listed = client.get(members_url, headers=viewer).json()
    assert [(m["email"], m["role"]) for m in listed] == [
        ("owner@example.com", "owner"),
        ("viewer@example.com", "viewer"),
    ]

    projects = client.get(f"{API}/projects", headers=viewer).json()
    assert [(p["id"], p["role"]) for p in projects] == [(project["id"], "viewer")]

    # viewer : lecture seule
    assert client.get(f"{API}/projects/{project['id']}/api-key", headers=viewer).status_code == 403
    definition = {"project_id": project["id"], "name": "Clicks", "metric_type": "events"}
    assert client.post(f"{API}/metrics/definitions", json=definition, headers=viewer).status_code == 403

    # le propriétaire n’est ni rétrogradable ni retirable
    demote = client.patch(f"{members_url}/{owner_user['id']}", json={"role": "viewer"}, headers=owner)
    assert demote.status_code == 403
    assert client.delete(f"{members_url}/{owner_user['id']}", headers=owner).status_code == 403

    promoted = client.patch(f"{members_url}/{viewer_user['id']}", json={"role": "admin"}, headers=owner)
    assert promoted.json()["role"] == "admin"
    assert client.get(f"{API}/projects/{project['id']}/api-key", headers=viewer).status_code == 200

    assert client.delete(f"{members_url}/{viewer_user['id']}", headers=owner).status_code == 204
    assert client.get(f"{API}/projects/{project['id']}", headers=viewer).status_code == 404


def test_metric_definition_timeseries(client):
    _, headers = operator(client, "owner@example.com")
    project = create_project(client, headers)
    sdk = key_headers(client, headers, project["id"])

    client.post(f"{API}/events", json=event(timestamp="2026-03-09T10:00:00Z"), headers=sdk)
    client.post(f"{API}/events", json=event(timestamp="2026-03-09T18:30:00Z"), headers=sdk)
    client.post(f"{API}/events", json=event(event_type="view", timestamp="2026-03-09T18:45:00Z"), headers=sdk)

    created = client.post(
        f"{API}/metrics/definitions",
        json={
            "project_id": project["id"],
            "name": "Clicks",
            "metric_type": "events",
            "dimensions": {"event_type": "click"},
        },
        headers=headers,
    )
    assert created.status_code == 201, created.text
    definition_id = created.json()["id"]

    series = client.get(
        f"{API}/metrics/definitions/{definition_id}/data",
        params={"start_date": "2026-03-08T00:00:00Z", "end_date": "2026-03-10T00:00:00Z", "interval": "day"},
        headers=headers,
    )
    assert series.status_code == 200, series.text
    assert [(p["timestamp"], p["value"]) for p in series.json()["data"]] == [
        ("2026-03-08T00:00:00.000000Z", 0.0),
        ("2026-03-09T00:00:00.000000Z", 2.0),
        ("2026-03-10T00:00:00.000000Z", 0.0),
    ]

    # fenêtre par défaut : 7 jours jusqu’à maintenant
    default = client.get(f"{API}/metrics/definitions/{definition_id}/data", headers=headers).json()
    assert len(default["data"]) == 8
    assert default["end"] == FIXED_NOW.strftime("%Y-%m-%dT%H:%M:%S.%fZ")

    bad = client.get(
        f"{API}/metrics/definitions/{definition_id}/data", params={"interval": "fortnight"}, headers=headers
    )
    assert bad.status_code == 400

    duplicate = client.post(
        f"{API}/metrics/definitions",
        json={"project_id": project["id"], "name": "Clicks", "metric_type": "events"},
        headers=headers,
    )
    assert duplicate.status_code == 409


def test_instants_at_the_edge_of_the_calendar_are_400(client):
    _, headers = operator(client, "owner@example.com")
    project = create_project(client, headers)
    sdk = key_headers(client, headers, project["id"])

    for timestamp in ("0001-01-01T00:00:00+01:00", "9999-12-31T23:00:00-05:00"):
        resp = client.post(f"{API}/events", json=event(timestamp=timestamp), headers=sdk)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    batch = {"events": [event(), event(timestamp="0001-01-01T00:00:00+01:00")]}
    assert client.post(f"{API}/events/batch", json=batch, headers=sdk).status_code == 400

    listed = client.get(
        f"{API}/events",
        params={"project_id": project["id"], "start_date": "0001-01-01T00:00:00+01:00"},
        headers=headers,
    )
    assert listed.status_code == 400
    assert listed.json()["error"]["details"] == {"field": "start_date"}

    created = client.post(
        f"{API}/metrics/definitions",
        json={"project_id": project["id"], "name": "Clicks", "metric_type": "events"},
        headers=headers,
    )
    data_url = f"{API}/metrics/definitions/{created.json()['id']}/data"

    december = client.get(
        data_url,
        params={"interval": "month", "start_date": "9999-12-01T00:00:00Z", "end_date": "9999-12-31T00:00:00Z"},
        headers=headers,
    )
    assert december.status_code == 400

    first_week = client.get(data_url, params={"end_date": "0001-01-02T00:00:00Z"}, headers=headers)
    assert first_week.status_code == 400
    assert first_week.json()["error"]["details"] == {"field": "end_date"}


def test_session_shortcuts_and_rollups(client):
    _, headers = operator(client, "owner@example.com")
    project = create_project(client, headers)
    sdk = key_headers(client, headers, project["id"])
    device = {"device_id": "phone-1", "platform": "android"}

    start = client.post(
        f"{API}/telemetry/session/start",
        json={**device, "session_id": "s-1", "timestamp": "2026-03-10T08:00:00Z"},
        headers=sdk,
    )
    assert start.status_code == 201, start.text
    assert start.json()["event_type"] == "session_start"

    end = client.post(
        f"{API}/telemetry/session/end",
        json={**device, "session_id": "s-1", "timestamp": "2026-03-10T08:20:00Z", "duration_seconds": 1200},
        headers=sdk,
    )
    assert end.json()["parameters"] == {"session_id": "s-1", "duration_seconds": 1200.0}

    negative = client.post(
        f"{API}/telemetry/session/end",
        json={**device, "timestamp": "2026-03-10T08:20:00Z", "duration_seconds": -1},
        headers=sdk,
    )
    assert negative.status_code == 400

    rollups = client.post(
        f"{API}/projects/{project['id']}/metrics/rollups", params={"day": "2026-03-10"}, headers=headers
    )
    assert rollups.status_code == 200, rollups.text
    assert rollups.json()["values"] == {
        "dau": 1.0,
        "mau": 1.0,
        "new_devices": 1.0,
        "sessions": 1.0,
        "avg_session_seconds": 1200.0,
    }


def test_global_user_administration(client):
    _, admin = operator(client, "admin@example.com")
    user, regular = operator(client, "user@example.com")

    assert client.get(f"{API}/users", headers=regular).status_code == 403

    listed = client.get(f"{API}/users", headers=admin).json()
    assert listed["meta"]["total"] == 2

    promoted = client.patch(f"{API}/users/{user['id']}/role", json={"role": "admin"}, headers=admin)
    assert promoted.json()["role"] == "admin"
    # rôle relu en base à chaque requête : effet immédiat avec l’ancien token
    assert client.get(f"{API}/users", headers=regular).status_code == 200


def test_delete_project_is_owner_only(client):
    _, owner = operator(client, "owner@example.com")
    admin_user, admin = operator(client, "admin@example.com")
    project = create_project(client, owner)
    sdk = key_headers(client, owner, project["id"])
    client.post(f"{API}/events", json=event(), headers=sdk)

    client.post(
        f"{API}/projects/{project['id']}/members", json={"user_id": admin_user["id"], "role": "admin"}, headers=owner
    )
    assert client.delete(f"{API}/projects/{project['id']}", headers=admin).status_code == 403
    assert client.delete(f"{API}/projects/{project['id']}", headers=owner).status_code == 204
    assert client.get(f"{API}/projects/{project['id']}", headers=owner).status_code == 404


def test_request_validation_errors_are_400(client):
    _, headers = operator(client, "owner@example.com")
    resp = client.post(f"{API}/projects", json={"name": ""}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    resp = client.get(f"{API}/projects/not-a-uuid", headers=headers)
    assert resp.status_code == 400
