"""Tunable detection thresholds and loop timing."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from config import ConfigController

SENSITIVITY_RANGE = (5, 50)
SENSITIVITY_STEP = 1
MOVEMENT_RANGE = (10, 200)
MOVEMENT_STEP = 5


def _snap(value: float, bounds: tuple[int, int], step: int) -> int:
    low, high = bounds
    clamped = max(low, min(high, float(value)))
    snapped = low + round((clamped - low) / step) * step
    return int(max(low, min(high, snapped)))


def clamp_sensitivity(value: float) -> int:
    """Clamp a sensitivity threshold to 5..50 in steps of 1."""

    return _snap(value, SENSITIVITY_RANGE, SENSITIVITY_STEP)


def clamp_movement(value: float) -> int:
    """Clamp a movement threshold to 10..200 in steps of 5."""

    return _snap(value, MOVEMENT_RANGE, MOVEMENT_STEP)


@dataclass(frozen=True)
class Thresholds:
    """Pixel-diff thresholds passed to the motion detector."""

    sensitivity_threshold: int = 30
    movement_threshold: int = 50

    @classmethod
    def create(cls, sensitivity_threshold: float, movement_threshold: float) -> "Thresholds":
        return cls(
            sensitivity_threshold=clamp_sensitivity(sensitivity_threshold),
            movement_threshold=clamp_movement(movement_threshold),
        )


@dataclass(frozen=True)
class DetectionSettings:
    """Configuration for detection sessions."""

    thresholds: Thresholds = Thresholds()
    sampling_interval_s: float = 0.5
    dedupe_window_s: float = 0.5
    overlay_window_s: float = 0.5
    min_zone_size: int = 10
    require_zone: bool = False
    refresh_hz: float = 60.0
    person_only: bool = False
    target_label: str = "person"

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "DetectionSettings":
        if config is None:
            config = ConfigController.get_instance().get_config()
        detection_cfg = config.get("detection") or {}
        live_cfg = config.get("live") or {}
        objects_cfg = config.get("objects") or {}
        defaults = cls()
        return cls(
            thresholds=Thresholds.create(
                detection_cfg.get("sensitivity_threshold", defaults.thresholds.sensitivity_threshold),
                detection_cfg.get("movement_threshold", defaults.thresholds.movement_threshold),
            ),
            sampling_interval_s=max(0.01, float(detection_cfg.get("sampling_interval_s", defaults.sampling_interval_s))),
            dedupe_window_s=max(0.0, float(detection_cfg.get("dedupe_window_s", defaults.dedupe_window_s))),
            overlay_window_s=max(0.0, float(detection_cfg.get("overlay_window_s", defaults.overlay_window_s))),
            min_zone_size=max(1, int(detection_cfg.get("min_zone_size", defaults.min_zone_size))),
            require_zone=bool(detection_cfg.get("require_zone", defaults.require_zone)),
            refresh_hz=max(1.0, float(live_cfg.get("refresh_hz", defaults.refresh_hz))),
            person_only=bool(objects_cfg.get("person_only", defaults.person_only)),
            target_label=str(objects_cfg.get("target_label", defaults.target_label)),
        )

    @property
    def tick_interval_s(self) -> float:
        return 1.0 / self.refresh_hz

    def with_thresholds(self, sensitivity_threshold: float, movement_threshold: float) -> "DetectionSettings":
        return replace(self, thresholds=Thresholds.create(sensitivity_threshold, movement_threshold))
