# 엔진 오류 분류. 전부 호출자가 입력을 고쳐 재시도할 수 있는 오류 (프로세스 치명 오류 아님).
# 라우터에서 status_code/detail로 HTTPException 변환.

from typing import Any, Dict, Optional


class EngineError(Exception):
    """엔진 공통 오류."""

    status_code = 400
    code = "ENGINE_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def detail(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(EngineError):
    """잘못된 좌표, 깨진 QR 페이로드 등."""

    code = "VALIDATION_ERROR"


class OutOfRange(EngineError):
    """GPS 거리가 반경을 넘음. shortfall_m = 반경까지 더 와야 하는 거리."""

    status_code = 403
    code = "OUT_OF_RANGE"

    def __init__(self, distance_m: float, radius_m: float):
        self.distance_m = distance_m
        self.radius_m = radius_m
        self.shortfall_m = distance_m - radius_m
        super().__init__(f"You are {self.shortfall_m:.0f}m outside the check-in area")

    def detail(self) -> Dict[str, Any]:
        out = super().detail()
        out.update(
            distance_m=round(self.distance_m, 1),
            radius_m=self.radius_m,
            shortfall_m=round(self.shortfall_m, 1),
        )
        return out


class Expired(EngineError):
    status_code = 410
    code = "EXPIRED"


class InvalidSignature(EngineError):
    status_code = 401
    code = "INVALID_SIGNATURE"


class NotAMember(EngineError):
    status_code = 403
    code = "NOT_A_MEMBER"


class NotFound(EngineError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidTransition(EngineError):
    status_code = 409
    code = "INVALID_TRANSITION"
