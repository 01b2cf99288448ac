import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nearmatch.logging_config import configure_logging
from nearmatch.models import check_in, instant_meeting, location_group, match, user  # noqa: F401 (테이블 메타데이터 등록용)
from nearmatch.routers.instant_meetings import router as instant_meetings_router
from nearmatch.routers.location_groups import router as location_groups_router
from nearmatch.routers.matches import router as matches_router

configure_logging()
logger = logging.getLogger(__name__)


def _run_alembic_upgrade() -> None:
    """앱 기동 시 DB 마이그레이션 자동 적용."""
    from alembic import command
    from alembic.config import Config

    root = Path(__file__).resolve().parent.parent
    cfg = Config(str(root / "alembic.ini"))
    cfg.set_main_option("script_location", str(root / "alembic"))
    command.upgrade(cfg, "head")


# 애플리케이션 팩토리 패턴을 사용할 수도 있지만
# 초기 세팅 단계에서는 단순한 전역 인스턴스로 구성
app = FastAPI(
    title="NearMatch API",
    description="위치 기반 그룹 입장 검증 + 즉석 모임 블라인드 매칭 + 그룹 내 추천/매칭 엔진",
    version="0.1.0",
)


@app.on_event("startup")
def _startup_migrate() -> None:
    """기동 시 Alembic upgrade head 실행."""
    try:
        _run_alembic_upgrade()
    except Exception:
        # DB 미기동 등 실패 시에도 앱은 기동 (예: 로컬에서 DB 없이 실행 시)
        logger.warning("Startup migration failed; continuing without it", exc_info=True)


# ✅ 라우터 등록은 app 생성 후에!
app.include_router(location_groups_router)
app.include_router(instant_meetings_router)
app.include_router(matches_router)

# CORS 설정
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # TODO: 운영 시 특정 도메인으로 제한
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    return {"status": "ok"}


@app.get("/", tags=["Root"])
async def root() -> dict:
    return {
        "message": "NearMatch API",
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("nearmatch.main:app", host="0.0.0.0", port=8000, reload=True)
