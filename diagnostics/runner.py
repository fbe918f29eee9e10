"""Diagnostics runner utilities."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from core.logging import logger as LOGGER
from diagnostics.models import DiagnosticResult, DiagnosticStatus, overall_status

Probe = Callable[[], DiagnosticResult]


def default_probes() -> list[Probe]:
    """Return the offline probes for every zonewatch subsystem."""

    from config.diagnostics import probe as config_probe
    from core.diagnostics import probe as core_probe
    from media.diagnostics import probe as media_probe
    from services.diagnostics import probe as services_probe
    from vision.diagnostics import probe as vision_probe

    return [config_probe, core_probe, media_probe, vision_probe, services_probe]


def format_results(results: Iterable[DiagnosticResult]) -> str:
    """Return a human-friendly diagnostics report."""

    results = list(results)
    lines = ["ZoneWatch diagnostics", "-" * 60]
    for result in results:
        lines.append(f"[{result.status.value}] {result.name}: {result.details}")
    lines.append("-" * 60)
    lines.append(f"Overall: {overall_status(results).value}")
    return "\n".join(lines)


def run_diagnostics(probes: Iterable[Probe] | None = None) -> list[DiagnosticResult]:
    """Run diagnostics probes and return results; a raising probe counts as FAIL."""

    results: list[DiagnosticResult] = []
    for probe in probes if probes is not None else default_probes():
        try:
            result = probe()
        except Exception as exc:  # noqa: BLE001 - diagnostics must keep running
            LOGGER.exception("Probe failed: %s", probe)
            result = DiagnosticResult(
                name=getattr(probe, "__module__", None) or getattr(probe, "__name__", "unknown_probe"),
                status=DiagnosticStatus.FAIL,
                details=f"Probe raised exception: {exc}",
            )
        results.append(result)
    return results
