"""Diagnostics helpers for ZoneWatch."""

from diagnostics.models import DiagnosticResult, DiagnosticStatus, overall_status
from diagnostics.runner import default_probes, format_results, run_diagnostics

__all__ = [
    "DiagnosticResult",
    "DiagnosticStatus",
    "default_probes",
    "format_results",
    "overall_status",
    "run_diagnostics",
]
