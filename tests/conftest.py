import os

# 모듈 상수(os.getenv)보다 먼저 설정
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["QR_SIGNING_SECRET"] = "test-secret"
os.environ["KAKAO_REST_API_KEY"] = ""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from nearmatch.database import create_engine_for
from nearmatch.models import check_in, instant_meeting, location_group, match, user  # noqa: F401
from nearmatch.models.base import Base
from nearmatch.models.location_group import LocationGroup
from nearmatch.models.user import User
from nearmatch.realtime.events import InMemoryEventPublisher

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
SECRET = "test-secret"


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def engine(tmp_path):
    eng = create_engine_for(f"sqlite+pysqlite:///{tmp_path / 'nearmatch.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()


@pytest.fixture
def make_user(session_factory):
    """커밋된 사용자 생성 후 id 반환."""

    def _make(nickname: str = "tester", **fields) -> int:
        fields.setdefault("last_active", NOW)
        with session_factory() as s:
            u = User(nickname=nickname, **fields)
            s.add(u)
            s.commit()
            return u.id

    return _make


@pytest.fixture
def make_group(session_factory):
    """커밋된 위치 그룹 생성 후 id 반환. 기본 중심: 서울시청."""

    def _make(lat: float = 37.5665, lng: float = 126.9780, radius_m: float = 100.0, **fields) -> int:
        fields.setdefault("name", "city hall")
        with session_factory() as s:
            g = LocationGroup(center_lat=lat, center_lng=lng, radius_m=radius_m, **fields)
            s.add(g)
            s.commit()
            return g.id

    return _make
