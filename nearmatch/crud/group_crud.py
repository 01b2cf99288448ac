# 위치 그룹 / 멤버십 CRUD

from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nearmatch.errors import NotFound
from nearmatch.models.location_group import GroupMember, LocationGroup, MemberRole, MemberStatus


def get_active_group(db: Session, group_id: int) -> LocationGroup:
    group = db.get(LocationGroup, group_id)
    if group is None or not group.is_active:
        raise NotFound("Location group not found")
    return group


def get_membership(db: Session, group_id: int, user_id: int) -> Optional[GroupMember]:
    return db.scalars(
        select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    ).first()


def is_active_member(db: Session, group_id: int, user_id: int) -> bool:
    member = get_membership(db, group_id, user_id)
    return member is not None and member.status == MemberStatus.ACTIVE.value


def grant_membership(
    db: Session,
    group_id: int,
    user_id: int,
    role: MemberRole = MemberRole.MEMBER,
) -> Tuple[GroupMember, bool]:
    """
    멤버십 부여. 반환: (멤버 행, 새로 부여했는지)

    - 이미 ACTIVE 멤버면 그대로 반환 (granted=False)
    - LEFT 상태면 재활성화
    - 없으면 생성. 동시 가입으로 유니크 제약 위반 시 상대가 만든 행을 다시 읽음

    ⚠️ commit하지 않음. 호출자가 트랜잭션을 제어.
    """
    member = get_membership(db, group_id, user_id)
    if member is not None:
        if member.status == MemberStatus.ACTIVE.value:
            return member, False
        member.status = MemberStatus.ACTIVE.value
        return member, True

    try:
        with db.begin_nested():
            member = GroupMember(
                group_id=group_id,
                user_id=user_id,
                role=role.value,
                status=MemberStatus.ACTIVE.value,
            )
            db.add(member)
    except IntegrityError:
        existing = get_membership(db, group_id, user_id)
        if existing is None:
            raise
        return existing, False
    return member, True


def list_active_groups(db: Session) -> List[LocationGroup]:
    return list(db.scalars(select(LocationGroup).where(LocationGroup.is_active.is_(True))))
