from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    모든 SQLAlchemy 모델이 상속할 기본 Base 클래스

    예시:

    class User(Base):
        __tablename__ = "users"
        id: Mapped[int] = mapped_column(primary_key=True, index=True)
        ...
    """

    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite 등 타임존을 버리는 백엔드에서 읽은 값은 UTC로 간주."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
