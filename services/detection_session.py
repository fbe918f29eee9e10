"""Detection session: batch scan and live loop over one loaded video.

Two pipelines share the same loop drivers:

* motion: frame differencing between consecutive samples;
* objects: the external detector, optionally restricted to one label.

The batch scan walks the whole video at a fixed interval, awaiting each seek
before sampling. The live loop samples the rendered frame once per display
refresh while the video plays. Both claim the session's raster surface and
run under :class:`~services.detection_state.DetectionStateMachine`, which
allows only one of them at a time.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from config import ConfigController
from core.errors import (
    DetectionModeError,
    ModelLoadError,
    PreconditionError,
    ResourceUnavailableError,
)
from core.logging import configure_from_config, logger
from media.sampler import FrameSampler
from media.video_hal import VideoSource
from services.detection_settings import DetectionSettings
from services.detection_state import DetectionMode, DetectionStateMachine, ScanPhase
from services.event_timeline import EventTimeline, time_at_fraction
from services.notifications import NotificationCenter
from vision.detections import LiveDetection, MovementEvent, enclosing_box
from vision.frames import Frame, Zone, scale_zone, zone_from_drag
from vision.motion_detector import analyze_motion
from vision.object_detector import ObjectDetector, ObjectDetectorSettings


class Pipeline(str, Enum):
    """Detection primitive driven by a control loop."""

    MOTION = "motion"
    OBJECTS = "objects"


@dataclass(frozen=True)
class ScanSummary:
    """Outcome of one completed batch scan."""

    pipeline: Pipeline
    event_count: int
    samples: int
    distinct_labels: tuple[str, ...] = ()


class DetectionSession:
    """Owns the loaded video, the event log and the active control loop."""

    def __init__(
        self,
        settings: DetectionSettings | None = None,
        detector: ObjectDetector | None = None,
        notifications: NotificationCenter | None = None,
    ) -> None:
        self.settings = settings or DetectionSettings.from_config()
        self.detector = detector
        self.notifications = notifications or NotificationCenter()
        self.state = DetectionStateMachine()
        self.timeline = EventTimeline()
        self.zone: Zone | None = None
        self.display_size: tuple[float, float] | None = None
        self.current_detection: LiveDetection | None = None

        self._video: VideoSource | None = None
        self._sampler: FrameSampler | None = None
        self._prev_frame: Frame | None = None
        self._live_pipeline = Pipeline.MOTION
        self._tick_handle: asyncio.Handle | None = None
        self._tick_task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "DetectionSession":
        """Build a session and its object detector from the loaded configuration."""

        if config is None:
            config = ConfigController.get_instance().get_config()
        configure_from_config(config)
        detector_settings = ObjectDetectorSettings.from_config(config.get("objects") or {})
        return cls(
            settings=DetectionSettings.from_config(config),
            detector=ObjectDetector.from_settings(detector_settings),
        )

    # ------------------------------------------------------------------ setup

    @property
    def video(self) -> VideoSource | None:
        return self._video

    @property
    def mode(self) -> DetectionMode:
        return self.state.mode

    @property
    def is_live(self) -> bool:
        return self.state.mode is DetectionMode.LIVE_DETECTING

    def load_video(self, source: VideoSource) -> None:
        """Attach a video and reset all per-video state."""

        if self.state.mode is not DetectionMode.IDLE:
            raise DetectionModeError(f"Cannot load a video while {self.state.mode.value} is active")
        self._video = source
        self._sampler = None
        self._prev_frame = None
        self.zone = None
        self.current_detection = None
        self.timeline.clear()
        logger.info("[SESSION] Video loaded (%dx%d, %.1fs)", source.width, source.height, source.duration)

    def set_display_size(self, width: float, height: float) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Display size must be positive, got {width}x{height}")
        self.display_size = (float(width), float(height))

    def set_thresholds(self, sensitivity_threshold: float, movement_threshold: float) -> None:
        self.settings = self.settings.with_thresholds(sensitivity_threshold, movement_threshold)
        logger.info(
            "[SESSION] Thresholds set (sensitivity=%d movement=%d)",
            self.settings.thresholds.sensitivity_threshold,
            self.settings.thresholds.movement_threshold,
        )

    def set_person_only(self, enabled: bool) -> None:
        self.settings = replace(self.settings, person_only=bool(enabled))

    def set_zone(self, zone: Zone | None) -> None:
        """Set the region of interest in source-frame pixels; ``None`` means whole frame."""

        if zone is not None and (zone.width <= 0 or zone.height <= 0):
            raise ValueError(f"Zone must have a positive size, got {zone}")
        self.zone = zone

    def clear_zone(self) -> None:
        self.zone = None

    def select_zone_from_drag(self, start: tuple[float, float], end: tuple[float, float]) -> Zone | None:
        """Finalize a display-space drag as the zone; too-small drags are ignored."""

        if self._video is None:
            return None
        zone = zone_from_drag(
            start,
            end,
            self._display_size(),
            (self._video.width, self._video.height),
            min_size=self.settings.min_zone_size,
        )
        if zone is None:
            logger.debug("[SESSION] Drag %s -> %s too small for a zone", start, end)
            return None
        self.zone = zone
        logger.info("[SESSION] Zone selected: %s", zone)
        return zone

    # ------------------------------------------------------------------ playback helpers

    def overlay_at(self, time_s: float) -> MovementEvent | None:
        """Return the logged event to highlight while playback is at ``time_s``."""

        return self.timeline.event_at(time_s, self.settings.overlay_window_s)

    async def seek(self, time_s: float) -> bool:
        if self._video is None:
            self.notifications.error("Seek Error", "Please upload a video first")
            return False
        if self.state.mode is DetectionMode.BATCH_SCANNING:
            self.notifications.error("Seek Error", "Wait for video processing to finish")
            return False
        await self._video.seek(time_s)
        return True

    async def seek_to_fraction(self, fraction: float) -> bool:
        duration = self._video.duration if self._video is not None else 0.0
        return await self.seek(time_at_fraction(fraction, duration))

    # ------------------------------------------------------------------ batch scan

    async def process_video(self, pipeline: Pipeline = Pipeline.MOTION) -> ScanSummary | None:
        """Scan the whole video at the sampling interval and rebuild the event log.

        Returns ``None`` when the scan could not start; the reason is reported
        through :attr:`notifications`.
        """

        title = "Processing Error"
        if not self._check_ready(pipeline, title):
            return None
        try:
            run_id = self.state.enter(DetectionMode.BATCH_SCANNING, reason=f"{pipeline.value} scan")
        except DetectionModeError as exc:
            self.notifications.error(title, str(exc))
            return None

        owner = f"batch-scan-{run_id}"
        try:
            try:
                sampler = self._claim_sampler(owner)
            except ResourceUnavailableError as exc:
                self.notifications.error("Error", str(exc))
                return None

            if pipeline is Pipeline.OBJECTS:
                try:
                    await self.detector.initialize()
                except ModelLoadError as exc:
                    self.notifications.error("Model Error", str(exc))
                    return None

            try:
                return await self._run_batch_scan(pipeline, sampler, owner)
            except ResourceUnavailableError as exc:
                logger.exception("[SCAN] Video became unavailable mid-scan")
                self.notifications.error(title, str(exc))
                return None
        finally:
            if self._sampler is not None:
                self._sampler.surface.release(owner)
            self.state.finish(DetectionMode.BATCH_SCANNING, reason="scan finished")

    async def _run_batch_scan(self, pipeline: Pipeline, sampler: FrameSampler, owner: str) -> ScanSummary:
        video = self._video
        interval = self.settings.sampling_interval_s
        video.pause()
        self.timeline.clear()
        self.current_detection = None
        self._prev_frame = None

        logger.info("[SCAN] Starting %s scan over %.1fs every %.2fs", pipeline.value, video.duration, interval)
        self.state.set_scan_phase(ScanPhase.SEEKING)
        await video.seek(0.0)

        events: list[MovementEvent] = []
        position = 0.0
        samples = 0
        while True:
            self.state.set_scan_phase(ScanPhase.SAMPLING)
            frame = sampler.sample(owner)
            samples += 1
            prev_frame, self._prev_frame = self._prev_frame, frame

            try:
                event, _ = await self._detect(pipeline, prev_frame, frame, position)
            except Exception:
                logger.exception("[SCAN] Detection failed at %.2fs; treating as no detection", position)
                event = None
            if event is not None:
                events.append(event)
                logger.debug("[SCAN] Event at %.2fs", position)

            position += interval
            if position >= video.duration:
                break
            self.state.set_scan_phase(ScanPhase.SEEKING)
            await video.seek(position)

        self.state.set_scan_phase(ScanPhase.DONE)
        self.timeline.replace(events)
        await video.seek(0.0)

        labels = tuple(self.timeline.distinct_labels())
        summary = ScanSummary(
            pipeline=pipeline,
            event_count=len(events),
            samples=samples,
            distinct_labels=labels,
        )
        if pipeline is Pipeline.OBJECTS:
            description = f"Found {len(events)} detection events with {len(labels)} distinct object types"
        else:
            description = f"Found {len(events)} movement events across the entire video"
        self.notifications.info("Processing Complete", description)
        return summary

    # ------------------------------------------------------------------ live loop

    def start_live_detection(self, pipeline: Pipeline = Pipeline.MOTION) -> bool:
        """Start playback and sample once per refresh tick until stopped.

        Must be called from a running event loop. Refused while a stopped run's
        tick is still in flight; await :meth:`wait_for_pending_tick` first.
        """

        loop = asyncio.get_running_loop()
        title = "Detection Error"
        if not self._check_ready(pipeline, title):
            return False
        if self._tick_task is not None and not self._tick_task.done():
            self.notifications.error(title, "Previous live detection is still finishing; try again shortly")
            return False
        try:
            run_id = self.state.enter(DetectionMode.LIVE_DETECTING, reason=f"{pipeline.value} live")
        except DetectionModeError as exc:
            self.notifications.error(title, str(exc))
            return False

        try:
            self._claim_sampler(self._live_owner(run_id))
        except ResourceUnavailableError as exc:
            self.state.finish(DetectionMode.LIVE_DETECTING, reason="surface unavailable")
            self.notifications.error("Error", str(exc))
            return False

        self._live_pipeline = pipeline
        self._prev_frame = None
        self.current_detection = None
        self._video.play()
        self._tick_handle = loop.call_soon(self._schedule_tick, run_id)
        logger.info("[LIVE] Started %s detection (%.0f Hz)", pipeline.value, self.settings.refresh_hz)
        return True

    def stop_live_detection(self, reason: str = "stopped") -> bool:
        """Halt the live loop; the event log and playback are left as they are."""

        run_id = self.state.run_id
        if not self.state.finish(DetectionMode.LIVE_DETECTING, reason=reason):
            return False
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        if self._sampler is not None:
            self._sampler.surface.release(self._live_owner(run_id))
        logger.info("[LIVE] Stopped (%d events logged)", len(self.timeline))
        return True

    async def wait_for_pending_tick(self) -> None:
        """Wait for an in-flight live tick, if any, to finish."""

        task = self._tick_task
        if task is not None and not task.done():
            await asyncio.wait([task])

    def _schedule_tick(self, run_id: int) -> None:
        self._tick_handle = None
        if not self.state.is_active(DetectionMode.LIVE_DETECTING, run_id):
            return
        self._tick_task = asyncio.ensure_future(self._live_tick(run_id))

    async def _live_tick(self, run_id: int) -> None:
        try:
            await self._run_live_tick(run_id)
        except Exception:
            logger.exception("[LIVE] Tick failed; continuing")
        finally:
            if self.state.is_active(DetectionMode.LIVE_DETECTING, run_id):
                loop = asyncio.get_running_loop()
                self._tick_handle = loop.call_later(
                    self.settings.tick_interval_s, self._schedule_tick, run_id
                )

    async def _run_live_tick(self, run_id: int) -> None:
        timestamp = self._video.current_time
        frame = self._sampler.sample(self._live_owner(run_id))
        prev_frame, self._prev_frame = self._prev_frame, frame

        try:
            event, live = await self._detect(self._live_pipeline, prev_frame, frame, timestamp)
        except ModelLoadError as exc:
            if self.state.is_active(DetectionMode.LIVE_DETECTING, run_id):
                self.notifications.error("Model Error", str(exc))
                self.stop_live_detection(reason="model load failed")
            return
        except Exception:
            logger.exception("[LIVE] Detection failed at %.2fs; treating as no detection", timestamp)
            event, live = None, None

        if not self.state.is_active(DetectionMode.LIVE_DETECTING, run_id):
            logger.debug("[LIVE] Discarding result from stopped run %d", run_id)
            return

        self.current_detection = None if live is None or live.is_empty else live
        if event is not None and self.timeline.append_deduplicated(event, self.settings.dedupe_window_s):
            logger.info("[LIVE] Event logged at %.2fs", timestamp)

    # ------------------------------------------------------------------ detection

    async def _detect(
        self,
        pipeline: Pipeline,
        prev_frame: Frame | None,
        frame: Frame,
        timestamp: float,
    ) -> tuple[MovementEvent | None, LiveDetection | None]:
        if pipeline is Pipeline.OBJECTS:
            return await self._detect_objects(frame, timestamp)
        return self._detect_motion(prev_frame, frame, timestamp)

    def _detect_motion(
        self, prev_frame: Frame | None, frame: Frame, timestamp: float
    ) -> tuple[MovementEvent | None, LiveDetection | None]:
        if prev_frame is None:
            return None, None
        if prev_frame.size != frame.size:
            logger.warning(
                "[SESSION] Frame size changed %s -> %s; skipping comparison", prev_frame.size, frame.size
            )
            return None, None

        zone = self.zone or Zone.full_frame(frame.width, frame.height)
        thresholds = self.settings.thresholds
        analysis = analyze_motion(
            prev_frame,
            frame,
            zone,
            thresholds.sensitivity_threshold,
            thresholds.movement_threshold,
        )
        if not analysis.has_movement or analysis.bounding_box is None:
            return None, None

        box = scale_zone(analysis.bounding_box, frame.size, self._display_size())
        event = MovementEvent(timestamp=timestamp, bounding_box=box)
        return event, LiveDetection(timestamp=timestamp, bounding_box=box)

    async def _detect_objects(
        self, frame: Frame, timestamp: float
    ) -> tuple[MovementEvent | None, LiveDetection | None]:
        label = self.settings.target_label if self.settings.person_only else None
        objects = tuple(await self.detector.detect(frame, self._display_size(), label=label))
        live = LiveDetection(timestamp=timestamp, bounding_box=None, detected_objects=objects)
        if not objects:
            return None, live
        event = MovementEvent(
            timestamp=timestamp,
            bounding_box=enclosing_box(objects),
            detected_objects=objects,
        )
        return event, live

    # ------------------------------------------------------------------ internals

    def _display_size(self) -> tuple[float, float]:
        if self.display_size is not None:
            return self.display_size
        if self._video is None:
            raise PreconditionError("No video loaded")
        return (float(self._video.width), float(self._video.height))

    def _check_ready(self, pipeline: Pipeline, title: str) -> bool:
        if self._video is None:
            self.notifications.error(title, "Please upload a video first")
            return False
        if pipeline is Pipeline.MOTION and self.settings.require_zone and self.zone is None:
            self.notifications.error(title, "Please select a zone first")
            return False
        if pipeline is Pipeline.OBJECTS and self.detector is None:
            self.notifications.error(title, "No object detector is configured")
            return False
        return True

    def _claim_sampler(self, owner: str) -> FrameSampler:
        if self._sampler is None or self._sampler.source is not self._video:
            self._sampler = FrameSampler(self._video)
        self._sampler.surface.claim(owner)
        return self._sampler

    @staticmethod
    def _live_owner(run_id: int) -> str:
        return f"live-loop-{run_id}"
