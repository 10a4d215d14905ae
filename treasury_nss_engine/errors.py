from __future__ import annotations

from enum import Enum
from typing import Any, Dict


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    EMPTY_UNIVERSE = "empty_universe"
    INTERNAL = "internal"


INTERNAL_ERROR_MESSAGE = "An internal error occurred while calculating treasury analytics."


class AnalyticsError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL

    def to_record(self) -> Dict[str, Any]:
        return error_record(self.kind, str(self))


class NotFoundError(AnalyticsError):
    """Missing price or security-master record for a CUSIP."""

    kind = ErrorKind.NOT_FOUND


class EmptyUniverseError(AnalyticsError):
    """No security qualifies for curve calibration."""

    kind = ErrorKind.EMPTY_UNIVERSE


def error_record(kind: ErrorKind, message: str) -> Dict[str, Any]:
    return {"error": message, "error_kind": kind.value}
