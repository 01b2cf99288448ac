import json

import pytest
from sqlalchemy import func, select

from conftest import NOW, SECRET
from nearmatch.errors import Expired, InvalidSignature, NotFound, OutOfRange, ValidationError
from nearmatch.models.base import as_utc
from nearmatch.models.check_in import CheckIn
from nearmatch.models.location_group import GroupMember, LocationGroup, MemberRole, MemberStatus
from nearmatch.services.geo import Coordinate, GeoBounds, distance_meters
from nearmatch.services.geofence import (
    QR_TTL_MS,
    CheckInStatus,
    GeoFenceVerifier,
    encode_qr_payload,
    sign_subject,
    to_epoch_ms,
)

CENTER = Coordinate(37.5665, 126.9780)
NEARBY = Coordinate(37.5670, 126.9780)  # 약 56m 북쪽
FAR = Coordinate(37.5765, 126.9780)  # 약 1.1km 북쪽


@pytest.fixture
def verifier(db, clock):
    return GeoFenceVerifier(db, SECRET, bounds=None, clock=clock)


def _check_in_count(db) -> int:
    return db.scalar(select(func.count(CheckIn.id)))


def test_gps_works_without_signing_secret_but_qr_does_not(db, clock, make_user, make_group):
    verifier = GeoFenceVerifier(db, "", bounds=None, clock=clock)
    group_id = make_group()

    assert verifier.verify_gps(make_user(), group_id, CENTER).status == CheckInStatus.CHECKED_IN
    with pytest.raises(ValueError):
        verifier.issue_qr_token(group_id)
    with pytest.raises(ValueError):
        verifier.verify_qr(
            make_user("other"),
            {"type": "location_group", "groupId": str(group_id), "timestamp": 0, "signature": "ab"},
        )


def test_create_group_registers_creator_as_admin(db, verifier, make_user):
    owner = make_user("owner")
    group = verifier.create_group(owner, "cafe", CENTER, 150.0)

    member = db.scalars(select(GroupMember).where(GroupMember.group_id == group.id)).one()
    assert member.user_id == owner
    assert member.role == MemberRole.ADMIN.value
    assert group.signing_subject == str(group.id)


def test_create_group_rejects_bad_center(verifier, make_user):
    owner = make_user("owner")
    with pytest.raises(ValidationError):
        verifier.create_group(owner, "nowhere", Coordinate(120.0, 0.0), 100.0)


def test_gps_check_in_inside_radius_grants_membership(db, verifier, make_user, make_group):
    user_id = make_user()
    group_id = make_group(radius_m=100.0)

    result = verifier.verify_gps(user_id, group_id, NEARBY, accuracy=8.0)

    assert result.status == CheckInStatus.CHECKED_IN
    assert not result.already_member
    assert result.distance_m == pytest.approx(distance_meters(NEARBY, CENTER))
    assert result.check_in.method == "GPS"
    assert result.check_in.is_valid
    assert as_utc(result.check_in.created_at) == NOW
    member = db.scalars(select(GroupMember).where(GroupMember.user_id == user_id)).one()
    assert member.status == MemberStatus.ACTIVE.value


def test_gps_check_in_exactly_on_boundary_succeeds(verifier, make_user, make_group):
    user_id = make_user()
    group_id = make_group(radius_m=distance_meters(NEARBY, CENTER))

    result = verifier.verify_gps(user_id, group_id, NEARBY)

    assert result.status == CheckInStatus.CHECKED_IN


def test_gps_check_in_outside_radius_reports_shortfall_and_writes_nothing(db, verifier, make_user, make_group):
    user_id = make_user()
    group_id = make_group(radius_m=100.0)

    with pytest.raises(OutOfRange) as exc:
        verifier.verify_gps(user_id, group_id, FAR)

    d = distance_meters(FAR, CENTER)
    assert exc.value.status_code == 403
    assert exc.value.shortfall_m == pytest.approx(d - 100.0)
    assert exc.value.detail()["code"] == "OUT_OF_RANGE"
    assert _check_in_count(db) == 0
    assert db.scalars(select(GroupMember)).first() is None


@pytest.mark.parametrize("coord", [Coordinate(91.0, 0.0), Coordinate(0.0, 181.0), Coordinate(float("nan"), 0.0)])
def test_gps_check_in_rejects_invalid_coordinates(db, verifier, make_user, make_group, coord):
    user_id = make_user()
    group_id = make_group()
    with pytest.raises(ValidationError):
        verifier.verify_gps(user_id, group_id, coord)
    assert _check_in_count(db) == 0


def test_gps_check_in_outside_operating_region_is_invalid(db, clock, make_user, make_group):
    user_id = make_user()
    group_id = make_group()
    fenced = GeoFenceVerifier(db, SECRET, bounds=GeoBounds(33.0, 124.0, 39.0, 132.0), clock=clock)
    with pytest.raises(ValidationError):
        fenced.verify_gps(user_id, group_id, Coordinate(35.0, 140.0))


def test_gps_check_in_unknown_or_inactive_group(verifier, make_user, make_group):
    user_id = make_user()
    inactive = make_group(is_active=False)
    with pytest.raises(NotFound):
        verifier.verify_gps(user_id, 9999, NEARBY)
    with pytest.raises(NotFound):
        verifier.verify_gps(user_id, inactive, NEARBY)


def test_second_gps_check_in_is_already_member_and_still_audited(db, verifier, make_user, make_group):
    user_id = make_user()
    group_id = make_group()

    verifier.verify_gps(user_id, group_id, NEARBY)
    again = verifier.verify_gps(user_id, group_id, CENTER)

    assert again.status == CheckInStatus.ALREADY_MEMBER
    assert again.already_member
    assert _check_in_count(db) == 2
    assert len(db.scalars(select(GroupMember)).all()) == 1


def test_check_in_reactivates_member_who_left(db, verifier, make_user, make_group):
    user_id = make_user()
    group_id = make_group()
    verifier.verify_gps(user_id, group_id, NEARBY)
    member = db.scalars(select(GroupMember)).one()
    member.status = MemberStatus.LEFT.value
    db.flush()

    result = verifier.verify_gps(user_id, group_id, NEARBY)

    assert result.status == CheckInStatus.CHECKED_IN
    assert db.scalars(select(GroupMember)).one().status == MemberStatus.ACTIVE.value


# ---------------------------------------------------------------------- QR


def test_qr_token_shape_and_determinism(verifier, clock, make_group):
    group_id = make_group()
    first = verifier.issue_qr_token(group_id)
    clock.advance(minutes=1)
    second = verifier.issue_qr_token(group_id)

    assert first["type"] == "location_group"
    assert first["groupId"] == str(group_id)
    assert first["timestamp"] == to_epoch_ms(NOW)
    assert len(first["signature"]) == 16
    int(first["signature"], 16)
    # 서명은 그룹 단위로 고정, timestamp만 바뀜
    assert first["signature"] == second["signature"]
    assert second["timestamp"] - first["timestamp"] == 60_000


def test_signature_is_hmac_of_group_id(verifier, make_group):
    group_id = make_group()
    assert verifier.issue_qr_token(group_id)["signature"] == sign_subject(SECRET, str(group_id))
    assert sign_subject("other-secret", str(group_id)) != sign_subject(SECRET, str(group_id))


def test_qr_with_current_timestamp_succeeds(db, verifier, make_user, make_group):
    user_id = make_user()
    group_id = make_group()
    payload = encode_qr_payload(verifier.issue_qr_token(group_id))

    result = verifier.verify_qr(user_id, payload)

    assert result.status == CheckInStatus.CHECKED_IN
    assert result.distance_m is None
    assert result.check_in.method == "QR"
    assert (result.check_in.latitude, result.check_in.longitude) == (0.0, 0.0)


def test_qr_accepts_numeric_group_id(verifier, make_user, make_group):
    user_id = make_user()
    group_id = make_group()
    token = verifier.issue_qr_token(group_id)
    token["groupId"] = group_id

    assert verifier.verify_qr(user_id, token).status == CheckInStatus.CHECKED_IN


def test_qr_at_exact_ttl_is_still_valid(verifier, clock, make_user, make_group):
    user_id = make_user()
    group_id = make_group()
    token = verifier.issue_qr_token(group_id)
    clock.advance(milliseconds=QR_TTL_MS)

    assert verifier.verify_qr(user_id, token).status == CheckInStatus.CHECKED_IN


def test_qr_older_than_ttl_is_expired(db, verifier, make_user, make_group):
    user_id = make_user()
    group_id = make_group()
    token = verifier.issue_qr_token(group_id)
    token["timestamp"] = to_epoch_ms(NOW) - QR_TTL_MS - 1

    with pytest.raises(Expired):
        verifier.verify_qr(user_id, token)
    assert _check_in_count(db) == 0


def test_qr_with_flipped_signature_is_rejected(db, verifier, make_user, make_group):
    user_id = make_user()
    group_id = make_group()
    token = verifier.issue_qr_token(group_id)
    sig = token["signature"]
    token["signature"] = sig[:-1] + ("0" if sig[-1] != "0" else "1")

    with pytest.raises(InvalidSignature):
        verifier.verify_qr(user_id, json.dumps(token))
    assert _check_in_count(db) == 0


def test_qr_signed_for_another_group_is_rejected(verifier, make_user, make_group):
    user_id = make_user()
    a = make_group(name="a")
    b = make_group(name="b")
    token = verifier.issue_qr_token(a)
    token["groupId"] = str(b)

    with pytest.raises(InvalidSignature):
        verifier.verify_qr(user_id, token)


def test_rotating_signing_subject_invalidates_old_codes(db, verifier, make_user, make_group):
    user_id = make_user()
    group_id = make_group()
    token = verifier.issue_qr_token(group_id)
    db.get(LocationGroup, group_id).qr_signing_subject = "rotated-1"
    db.flush()

    with pytest.raises(InvalidSignature):
        verifier.verify_qr(user_id, token)
    assert verifier.verify_qr(user_id, verifier.issue_qr_token(group_id)).status == CheckInStatus.CHECKED_IN


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        "[1, 2, 3]",
        json.dumps({"type": "meetup", "groupId": "1", "timestamp": 0, "signature": "ab"}),
        json.dumps({"type": "location_group", "groupId": "x", "timestamp": 0, "signature": "ab"}),
        json.dumps({"type": "location_group", "groupId": "1", "timestamp": "soon", "signature": "ab"}),
        json.dumps({"type": "location_group", "groupId": "1", "timestamp": 0}),
        '{"type":"location_group","groupId":"1","timestamp":Infinity,"signature":"abcd"}',
        '{"type":"location_group","groupId":"1","timestamp":NaN,"signature":"abcd"}',
        {"type": "location_group", "groupId": "1", "timestamp": float("inf"), "signature": "abcd"},
        json.dumps({"type": "location_group", "groupId": True, "timestamp": 0, "signature": "ab"}),
        json.dumps({"type": "location_group", "groupId": 1.9, "timestamp": 0, "signature": "ab"}),
        json.dumps({"type": "location_group", "groupId": "-1", "timestamp": 0, "signature": "ab"}),
    ],
)
def test_malformed_qr_payload_is_validation_error(verifier, make_user, payload):
    user_id = make_user()
    with pytest.raises(ValidationError):
        verifier.verify_qr(user_id, payload)


def test_qr_for_unknown_group_is_not_found(verifier, make_user):
    user_id = make_user()
    token = {"type": "location_group", "groupId": "404", "timestamp": to_epoch_ms(NOW), "signature": "0" * 16}
    with pytest.raises(NotFound):
        verifier.verify_qr(user_id, token)


def test_qr_check_in_for_existing_member_is_already_member(verifier, make_user, make_group):
    user_id = make_user()
    group_id = make_group()
    verifier.verify_gps(user_id, group_id, NEARBY)

    result = verifier.verify_qr(user_id, verifier.issue_qr_token(group_id))

    assert result.status == CheckInStatus.ALREADY_MEMBER


# ----------------------------------------------------------------- history


def test_get_check_ins_is_newest_first_and_paginated(verifier, clock, make_user, make_group):
    user_id = make_user()
    group_id = make_group()
    for _ in range(3):
        verifier.verify_gps(user_id, group_id, NEARBY)
        clock.advance(minutes=1)

    page1 = verifier.get_check_ins(group_id, page=1, limit=2)
    page2 = verifier.get_check_ins(group_id, page=2, limit=2)

    assert len(page1) == 2 and len(page2) == 1
    assert as_utc(page1[0].created_at) > as_utc(page1[1].created_at) > as_utc(page2[0].created_at)


def test_get_check_ins_unknown_group(verifier):
    with pytest.raises(NotFound):
        verifier.get_check_ins(12345)


def test_location_history_skips_qr_and_old_check_ins(verifier, clock, make_user, make_group):
    user_id = make_user()
    group_id = make_group()
    verifier.verify_gps(user_id, group_id, NEARBY)  # 10일 전이 될 기록
    clock.advance(days=10)
    verifier.verify_qr(user_id, verifier.issue_qr_token(group_id))
    recent = verifier.verify_gps(user_id, group_id, CENTER)

    history = verifier.get_user_location_history(user_id, days=7)

    assert [c.id for c in history] == [recent.check_in.id]


def test_find_nearby_groups_sorted_by_distance(verifier, make_group):
    far = make_group(37.5765, 126.9780, name="far")
    near = make_group(37.5670, 126.9780, name="near")
    make_group(35.1151, 129.0415, name="busan")
    make_group(37.5666, 126.9780, name="closed", is_active=False)

    found = verifier.find_nearby_groups(CENTER, 2000.0)

    assert [n.group.id for n in found] == [near, far]
    assert found[0].distance_m < found[1].distance_m
