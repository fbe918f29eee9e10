"""Tests for the diagnostics runner."""

from __future__ import annotations

import asyncio

from diagnostics.models import DiagnosticResult, DiagnosticStatus, overall_status
from diagnostics.runner import default_probes, format_results, run_diagnostics


def test_raising_probe_is_reported_as_failure() -> None:
    def ok_probe() -> DiagnosticResult:
        return DiagnosticResult(name="ok", status=DiagnosticStatus.PASS, details="fine")

    def broken_probe() -> DiagnosticResult:
        raise RuntimeError("boom")

    results = run_diagnostics([ok_probe, broken_probe])

    assert [result.status for result in results] == [DiagnosticStatus.PASS, DiagnosticStatus.FAIL]
    assert "boom" in results[1].details
    assert overall_status(results) is DiagnosticStatus.FAIL
    report = format_results(results)
    assert "[FAIL]" in report
    assert report.endswith("Overall: FAIL")


def test_default_probes_cover_every_subsystem() -> None:
    results = run_diagnostics(default_probes())

    assert [result.name for result in results] == ["config", "core", "media", "vision", "services"]
    assert all(result.ok for result in results)
    assert overall_status([]) is DiagnosticStatus.PASS


def test_loop_driving_probes_skip_inside_running_loop() -> None:
    async def run() -> list[DiagnosticResult]:
        return run_diagnostics(default_probes())

    results = {result.name: result for result in asyncio.run(run())}

    assert results["services"].status is DiagnosticStatus.WARN
    assert results["media"].status is DiagnosticStatus.WARN
    assert "event loop" in results["services"].details
    assert results["config"].status is DiagnosticStatus.PASS
