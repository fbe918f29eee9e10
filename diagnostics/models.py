"""Models for diagnostics results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class DiagnosticStatus(str, Enum):
    """Status for diagnostics checks, ordered from best to worst."""

    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    DiagnosticStatus.PASS: 0,
    DiagnosticStatus.WARN: 1,
    DiagnosticStatus.FAIL: 2,
}


@dataclass(frozen=True)
class DiagnosticResult:
    """Result for a single subsystem probe."""

    name: str
    status: DiagnosticStatus
    details: str

    @property
    def ok(self) -> bool:
        return self.status is not DiagnosticStatus.FAIL


def overall_status(results: Iterable[DiagnosticResult]) -> DiagnosticStatus:
    """Return the worst status among ``results`` (``PASS`` when empty)."""

    worst = DiagnosticStatus.PASS
    for result in results:
        if result.status.severity > worst.severity:
            worst = result.status
    return worst
