from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ResultCode(str, Enum):
    """Reason codes the presentation layer maps to user messages"""
    OK = "ok"
    VALIDATION_ERROR = "validation_error"
    DRIVER_NOT_FOUND = "driver_not_found"
    INVALID_PIN = "invalid_pin"
    FORBIDDEN = "forbidden"
    PRINT_FAILED = "print_failed"
    WRITE_FAILED = "write_failed"


@dataclass(frozen=True)
class ServiceResult:
    success: bool
    code: ResultCode
    message: str
    data: Any = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "ServiceResult":
        return cls(True, ResultCode.OK, message, data)

    @classmethod
    def fail(cls, code: ResultCode, message: str, data: Optional[Any] = None) -> "ServiceResult":
        return cls(False, code, message, data)
