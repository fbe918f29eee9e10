"""Diagnostics routines for the core subsystem."""

from __future__ import annotations

import importlib.util
import logging

from diagnostics.models import DiagnosticResult, DiagnosticStatus


def probe() -> DiagnosticResult:
    """Check that the zonewatch logger is configured.

    Returns:
        PASS with rich or the plain fallback handler, FAIL without handlers.
    """

    name = "core"
    from core import logging as core_logging

    logger = core_logging.logger
    if logger is None or logger.name != core_logging.LOGGER_NAME or not logger.handlers:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details="Core logger failed to initialize",
        )
    rich_available = importlib.util.find_spec("rich") is not None
    details = "Rich logging enabled" if rich_available else "Rich logging not available (fallback)"
    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details=f"{details}; level {logging.getLevelName(logger.level)}",
    )

