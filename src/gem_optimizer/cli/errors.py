"""Error helpers for the gem-optimizer command line tool."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional

__all__ = [
    "CliError",
    "ErrorPayload",
    "STATUS_CODES",
    "build_error_payload",
    "log_cli_error",
]

STATUS_CODES: Mapping[str, int] = MappingProxyType(
    {"runtime": 1, "usage": 2, "io": 3, "not_found": 4}
)

_DEFAULT_CATEGORY = "runtime"
_LOGGER_NAME = "gem_optimizer.cli"


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    """What the CLI reports for a failed command."""

    status_code: int
    category: str
    message: str
    context: Mapping[str, Any]

    def as_dict(self) -> dict[str, Any]:
        return {
            "status_code": self.status_code,
            "category": self.category,
            "message": self.message,
            "context": dict(self.context),
        }


def _scalar_context(context: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    # Log records must stay JSON-serialisable.
    return {
        str(key): value if isinstance(value, (str, int, float, bool)) or value is None else str(value)
        for key, value in (context or {}).items()
    }


def build_error_payload(
    message: str,
    *,
    category: str = _DEFAULT_CATEGORY,
    status_code: Optional[int] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> ErrorPayload:
    category = category if category in STATUS_CODES else _DEFAULT_CATEGORY
    return ErrorPayload(
        status_code=status_code if status_code is not None else STATUS_CODES[category],
        category=category,
        message=message,
        context=_scalar_context(context),
    )


def log_cli_error(
    payload: ErrorPayload,
    *,
    logger: Optional[logging.Logger] = None,
    exc_info: Optional[BaseException] = None,
) -> None:
    """Emit ``payload`` through ``logger.error`` with structured ``extra`` fields."""

    (logger or logging.getLogger(_LOGGER_NAME)).error(
        payload.message,
        extra={
            "event": "cli.error",
            "category": payload.category,
            "status_code": payload.status_code,
            "context": dict(payload.context),
        },
        exc_info=exc_info,
    )


class CliError(RuntimeError):
    """User-facing failure carrying an exit status.

    Categories map to exit codes: ``runtime`` 1, ``usage`` 2, ``io`` 3 and
    ``not_found`` 4.
    """

    def __init__(
        self,
        message: str,
        *,
        category: str = _DEFAULT_CATEGORY,
        status_code: Optional[int] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.payload = build_error_payload(
            message, category=category, status_code=status_code, context=context
        )
        self.logged = False

    @property
    def category(self) -> str:
        return self.payload.category

    @property
    def status_code(self) -> int:
        return self.payload.status_code

    @property
    def context(self) -> Mapping[str, Any]:
        return self.payload.context

    def log(self, logger: Optional[logging.Logger] = None) -> None:
        if self.logged:
            return
        log_cli_error(self.payload, logger=logger, exc_info=self.__cause__ or self)
        self.logged = True
