from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Desfecho reportado à apresentação: nunca uma exceção."""
    success: bool
    message: str = ""
    data: Any = None
    error: str | None = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, message: str = "", data: Any = None) -> OperationResult:
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, exc: BaseException | None = None) -> OperationResult:
        return cls(
            success=False,
            message=message,
            error=type(exc).__name__ if exc is not None else None,
        )
