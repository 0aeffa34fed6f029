from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Literal, Optional


DiagnosticLevel = Literal["error", "warning", "info"]

MALFORMED_TIMESTAMP = "MalformedTimestamp"
INVALID_INSTANT = "InvalidInstant"
UNRESOLVED_IDENTIFIER = "UnresolvedIdentifier"
MISSING_REQUIRED_COLUMN = "MissingRequiredColumn"
NO_IDENTIFIER_MATCHES = "NoIdentifierMatches"
PROJECTION_FAILURE = "ProjectionFailure"
MALFORMED_ROW = "MalformedRow"
MALFORMED_RECORD = "MalformedRecord"
SOURCE_UNAVAILABLE = "SourceUnavailable"

_LOG_LEVELS = {"error": logging.ERROR, "warning": logging.WARNING, "info": logging.INFO}


@dataclass(frozen=True)
class Diagnostic:
    code: str
    level: DiagnosticLevel
    message: str


@dataclass
class Diagnostics:
    """
    Collects recovered failures so callers (and tests) can see what degraded.

    Every record is also written to the reporting module's logger.
    """

    records: list[Diagnostic] = field(default_factory=list)

    def report(
        self,
        code: str,
        message: str,
        *,
        level: DiagnosticLevel = "warning",
        logger: Optional[logging.Logger] = None,
    ) -> Diagnostic:
        item = Diagnostic(code=code, level=level, message=message)
        self.records.append(item)
        (logger or logging.getLogger(__name__)).log(_LOG_LEVELS[level], "%s: %s", code, message)
        return item

    def count(self, code: str) -> int:
        return sum(1 for r in self.records if r.code == code)

    def codes(self) -> set[str]:
        return {r.code for r in self.records}

    def clear(self) -> None:
        self.records.clear()


def report(
    diagnostics: Optional[Diagnostics],
    code: str,
    message: str,
    *,
    level: DiagnosticLevel = "warning",
    logger: Optional[logging.Logger] = None,
) -> None:
    """Report to `diagnostics` when given, else only log."""
    if diagnostics is not None:
        diagnostics.report(code, message, level=level, logger=logger)
        return
    (logger or logging.getLogger(__name__)).log(_LOG_LEVELS[level], "%s: %s", code, message)
