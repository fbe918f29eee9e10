"""Configuration controller for YAML-based settings."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any

import yaml

CONFIG_DIR_ENV = "ZONEWATCH_CONFIG_DIR"

DEFAULT_DETECTION = {
    "sensitivity_threshold": 30,
    "movement_threshold": 50,
    "sampling_interval_s": 0.5,
    "dedupe_window_s": 0.5,
    "overlay_window_s": 0.5,
    "min_zone_size": 10,
    "require_zone": False,
}

DEFAULT_LIVE = {
    "refresh_hz": 60.0,
}

DEFAULT_OBJECTS = {
    "backend": "ultralytics",
    "model": "yolov8n.pt",
    "device": "cpu",
    "min_confidence": 0.25,
    "person_only": False,
    "target_label": "person",
}

DEFAULT_LOGGING = {
    "level": "INFO",
    "file": None,
}


@dataclass(frozen=True)
class ConfigPaths:
    """Filesystem paths for configuration files."""

    config_dir: Path
    config_file: Path
    override_file: Path


def default_config_dir() -> Path:
    """Return the directory holding ``default.yaml``."""

    env_dir = os.environ.get(CONFIG_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path(__file__).resolve().parent


class ConfigController:
    """Singleton controller for loading configuration."""

    _instance: "ConfigController | None" = None

    def __init__(self, config_file: str = "default.yaml", config_dir: Path | None = None) -> None:
        if ConfigController._instance is not None:
            raise RuntimeError("You cannot create another ConfigController class")

        config_dir = config_dir if config_dir is not None else default_config_dir()
        self.paths = ConfigPaths(
            config_dir=config_dir,
            config_file=config_dir / config_file,
            override_file=config_dir / "override.yaml",
        )
        self.config: dict[str, Any] = {}
        self.load_config()

    @classmethod
    def get_instance(cls) -> "ConfigController":
        """Return the singleton instance of the controller."""

        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def load_config(self) -> None:
        """Load configuration from default and override YAML files."""

        with self.paths.config_file.open("r", encoding="utf-8") as file:
            config = yaml.safe_load(file) or {}

        if self.paths.override_file.exists():
            with self.paths.override_file.open("r", encoding="utf-8") as file:
                override_config = yaml.safe_load(file) or {}
            if override_config:
                config = self._deep_merge(config, override_config)

        self.config = self._normalize_config(config)

    def get_config(self) -> dict[str, Any]:
        """Return the currently loaded configuration."""

        return dict(self.config)

    def get_section(self, name: str) -> dict[str, Any]:
        """Return a copy of one top-level configuration section."""

        return dict(self.config.get(name) or {})

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge dictionaries, overriding base values with override values."""

        merged = dict(base)
        for key, value in override.items():
            if (
                key in merged
                and isinstance(merged[key], dict)
                and isinstance(value, dict)
            ):
                merged[key] = self._deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _normalize_config(self, config: dict[str, Any]) -> dict[str, Any]:
        """Fill missing sections and keys with their defaults."""

        normalized = dict(config)
        for section, defaults in (
            ("detection", DEFAULT_DETECTION),
            ("live", DEFAULT_LIVE),
            ("objects", DEFAULT_OBJECTS),
            ("logging", DEFAULT_LOGGING),
        ):
            raw = normalized.get(section)
            normalized[section] = self._deep_merge(defaults, raw if isinstance(raw, dict) else {})

        detection_cfg = normalized["detection"]
        detection_cfg["sensitivity_threshold"] = float(detection_cfg["sensitivity_threshold"])
        detection_cfg["movement_threshold"] = int(detection_cfg["movement_threshold"])
        detection_cfg["sampling_interval_s"] = float(detection_cfg["sampling_interval_s"])
        detection_cfg["dedupe_window_s"] = float(detection_cfg["dedupe_window_s"])
        detection_cfg["overlay_window_s"] = float(detection_cfg["overlay_window_s"])
        detection_cfg["min_zone_size"] = int(detection_cfg["min_zone_size"])
        detection_cfg["require_zone"] = bool(detection_cfg["require_zone"])

        live_cfg = normalized["live"]
        live_cfg["refresh_hz"] = float(live_cfg["refresh_hz"])

        objects_cfg = normalized["objects"]
        objects_cfg["backend"] = str(objects_cfg["backend"])
        objects_cfg["model"] = str(objects_cfg["model"])
        objects_cfg["device"] = str(objects_cfg["device"])
        objects_cfg["min_confidence"] = float(objects_cfg["min_confidence"])
        objects_cfg["person_only"] = bool(objects_cfg["person_only"])
        objects_cfg["target_label"] = str(objects_cfg["target_label"])
        return normalized
