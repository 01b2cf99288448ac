import json

import pytest
from starlette.testclient import TestClient

from conftest import SECRET
from nearmatch import deps
from nearmatch.database import get_db
from nearmatch.deps import get_publisher, get_session_factory, get_signing_secret
from nearmatch.main import app
from nearmatch.models.location_group import GroupMember
from nearmatch.realtime.events import EVENT_MATCH_CREATED, EVENT_NEW_MATCH


@pytest.fixture
def client(session_factory, publisher):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_publisher] = lambda: publisher
    app.dependency_overrides[get_signing_secret] = lambda: SECRET
    # with 없이 생성: startup 마이그레이션을 돌리지 않음
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def group(client, make_user):
    owner = make_user("owner")
    resp = client.post(
        "/location-groups",
        json={"creator_id": owner, "name": "city hall", "lat": 37.5665, "lng": 126.978, "radius_m": 100},
    )
    assert resp.status_code == 200
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_group_rejects_invalid_center(client, make_user):
    owner = make_user("owner")
    resp = client.post("/location-groups", json={"creator_id": owner, "name": "x", "lat": 95, "lng": 0})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_nearby_groups(client, group):
    resp = client.get("/location-groups/nearby", params={"lat": 37.567, "lng": 126.978, "radius_m": 500})
    assert resp.status_code == 200
    body = resp.json()
    assert [g["id"] for g in body] == [group["id"]]
    assert body[0]["distance_text"].endswith("m")


def test_gps_check_in_flow(client, group, make_user):
    user_id = make_user("walker")
    url = f"/location-groups/{group['id']}/check-in/gps"

    inside = client.post(url, json={"user_id": user_id, "lat": 37.567, "lng": 126.978, "accuracy": 5})
    assert inside.status_code == 200
    body = inside.json()
    assert body["status"] == "CHECKED_IN"
    assert body["method"] == "GPS"
    # Kakao 키가 없으면 좌표 문구로 대체
    assert body["address"] == "lat 37.567, lng 126.978"

    again = client.post(url, json={"user_id": user_id, "lat": 37.5665, "lng": 126.978})
    assert again.json()["status"] == "ALREADY_MEMBER"
    assert again.json()["already_member"] is True

    far = client.post(url, json={"user_id": user_id, "lat": 37.58, "lng": 126.978})
    assert far.status_code == 403
    detail = far.json()["detail"]
    assert detail["code"] == "OUT_OF_RANGE"
    assert detail["shortfall_m"] > 0

    history = client.get(f"/location-groups/{group['id']}/check-ins")
    assert len(history.json()) == 2

    mine = client.get(f"/location-groups/users/{user_id}/location-history")
    assert len(mine.json()) == 2


def test_gps_check_in_unknown_group(client, make_user):
    user_id = make_user()
    resp = client.post("/location-groups/999/check-in/gps", json={"user_id": user_id, "lat": 37.5, "lng": 127.0})
    assert resp.status_code == 404


def test_qr_check_in_flow(client, group, make_user):
    user_id = make_user("scanner")
    token = client.get(f"/location-groups/{group['id']}/qr").json()
    assert json.loads(token["qr_data"])["signature"] == token["signature"]

    ok = client.post("/location-groups/check-in/qr", json={"user_id": user_id, "payload": token["qr_data"]})
    assert ok.status_code == 200
    assert ok.json()["method"] == "QR"

    tampered = dict(json.loads(token["qr_data"]), signature="0" * 16)
    bad = client.post("/location-groups/check-in/qr", json={"user_id": user_id, "payload": tampered})
    assert bad.status_code == 401

    broken = client.post("/location-groups/check-in/qr", json={"user_id": user_id, "payload": "{oops"})
    assert broken.status_code == 400


def test_qr_png(client, group):
    resp = client.get(f"/location-groups/{group['id']}/qr.png")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content.startswith(b"\x89PNG")


def test_missing_signing_secret_only_blocks_qr(client, group, make_user, monkeypatch):
    monkeypatch.setattr(deps, "QR_SIGNING_SECRET", "")
    app.dependency_overrides.pop(get_signing_secret)
    user_id = make_user("walker")

    gps = client.post(
        f"/location-groups/{group['id']}/check-in/gps",
        json={"user_id": user_id, "lat": 37.567, "lng": 126.978},
    )
    assert gps.status_code == 200
    assert client.get("/location-groups/nearby", params={"lat": 37.567, "lng": 126.978}).status_code == 200

    assert client.get(f"/location-groups/{group['id']}/qr").status_code == 503
    assert client.post("/location-groups/check-in/qr", json={"user_id": user_id, "payload": "{}"}).status_code == 503


def test_recommendations_require_membership(client, group, make_user, session_factory):
    outsider = make_user("outsider", age=30, gender="M")
    resp = client.get(f"/location-groups/{group['id']}/recommendations", params={"user_id": outsider})
    assert resp.status_code == 403

    member = make_user("member", age=29, gender="F", bio="a bio that is long enough to count")
    with session_factory() as s:
        s.add(GroupMember(group_id=group["id"], user_id=outsider, role="MEMBER", status="ACTIVE"))
        s.add(GroupMember(group_id=group["id"], user_id=member, role="MEMBER", status="ACTIVE"))
        s.commit()

    resp = client.get(f"/location-groups/{group['id']}/recommendations", params={"user_id": outsider})
    assert resp.status_code == 200
    [candidate] = resp.json()
    assert candidate["user_id"] == member
    assert candidate["nickname"] == "m*****"
    assert candidate["bio"] is None


def test_instant_meeting_flow(client, make_user, publisher):
    host = make_user("host")
    alice = make_user("alice")
    bob = make_user("bob")
    meeting = client.post("/instant-meetings", json={"creator_id": host, "name": "pop-up"}).json()
    assert len(meeting["code"]) == 6

    a = client.post(
        f"/instant-meetings/{meeting['id']}/join",
        json={
            "user_id": alice,
            "nickname": "alice",
            "my_features": {"upperWear": "red hoodie", "glasses": True, "specialFeatures": "black cap"},
            "looking_for": {"glasses": False},
        },
    )
    assert a.status_code == 200
    b = client.post(
        "/instant-meetings/join-by-code",
        json={
            "code": meeting["code"].lower(),
            "user_id": bob,
            "nickname": "bob",
            "my_features": {"upperWear": "blue shirt", "glasses": False},
            "looking_for": {"specialFeatures": "cap"},
        },
    )
    assert b.status_code == 200

    # 백그라운드 평가는 응답 직후 실행 완료
    matches = client.get(f"/instant-meetings/participants/{a.json()['id']}/matches").json()
    assert [m["nickname"] for m in matches] == ["bob"]
    assert len(publisher.of_type(EVENT_NEW_MATCH)) == 1

    stats = client.get(f"/instant-meetings/participants/{b.json()['id']}/stats").json()
    assert stats["matches"] == 1
    assert stats["potential_matches"] == 1
    assert stats["last_attempt_at"] is not None

    updated = client.put(
        f"/instant-meetings/participants/{a.json()['id']}/features",
        json={"my_features": {"glasses": True}, "looking_for": {"glasses": False}},
    )
    assert updated.json() == {"participant_id": a.json()["id"], "new_matches": 0}

    left = client.post(f"/instant-meetings/participants/{a.json()['id']}/leave")
    assert left.json()["is_active"] is False


def test_join_unknown_meeting_is_404(client, make_user):
    user_id = make_user()
    resp = client.post("/instant-meetings/4040/join", json={"user_id": user_id, "nickname": "x"})
    assert resp.status_code == 404
    assert client.post(
        "/instant-meetings/join-by-code", json={"code": "NOPE00", "user_id": user_id, "nickname": "x"}
    ).status_code == 404


def test_like_match_and_delete_flow(client, make_user, publisher):
    a = make_user("ann")
    b = make_user("ben")

    first = client.post("/matches/likes", json={"from_user_id": a, "to_user_id": b}).json()
    assert first["is_match"] is False
    second = client.post("/matches/likes", json={"from_user_id": b, "to_user_id": a}).json()
    assert second["is_match"] is True
    match_id = second["match"]["id"]

    events = publisher.of_type(EVENT_MATCH_CREATED)
    assert sorted(e.channel for e in events) == sorted([f"user:{a}:events", f"user:{b}:events"])

    listed = client.get("/matches", params={"user_id": a}).json()
    assert [m["id"] for m in listed] == [match_id]

    mutual = client.get(f"/matches/{match_id}/mutual-connections", params={"user_id": a}).json()
    assert mutual == {"match_id": match_id, "user_ids": [], "group_ids": []}

    stranger = make_user("stranger")
    assert client.get(f"/matches/{match_id}/mutual-connections", params={"user_id": stranger}).status_code == 403

    deleted = client.delete(f"/matches/{match_id}", params={"user_id": b})
    assert deleted.json()["status"] == "DELETED"
    assert client.delete(f"/matches/{match_id}", params={"user_id": b}).status_code == 409


def test_expire_endpoint(client):
    resp = client.post("/matches/expire", json={})
    assert resp.status_code == 200
    assert resp.json() == {"expired": 0}
