"""Tests for batch scans and the live loop."""

from __future__ import annotations

import asyncio

import numpy as np

from media.video_hal import SyntheticVideoSource
from services.detection_session import DetectionSession, Pipeline
from services.detection_settings import DetectionSettings, Thresholds
from services.detection_state import DetectionMode, ScanPhase
from services.notifications import NoticeLevel, NotificationCenter
from vision.frames import Zone
from vision.object_detector import ObjectDetector


def _scene_frame(block: bool, size: int = 64) -> np.ndarray:
    frame = np.zeros((size, size, 4), dtype=np.uint8)
    frame[..., 3] = 255
    if block:
        frame[20:30, 20:30, :3] = 255
    return frame


def _block_from(start_s: float) -> SyntheticVideoSource:
    """Three-second clip, black until ``start_s`` and then with a white block."""

    return SyntheticVideoSource(
        frames=lambda t: _scene_frame(t >= start_s),
        width=64,
        height=64,
        duration=3.0,
    )


def _session(detector: ObjectDetector | None = None, **settings) -> DetectionSession:
    settings.setdefault("refresh_hz", 200.0)
    return DetectionSession(
        settings=DetectionSettings(**settings),
        detector=detector,
        notifications=NotificationCenter(),
    )


def _raw(label: str, xmin: float = 10.0, ymin: float = 10.0, xmax: float = 20.0, ymax: float = 30.0) -> dict:
    return {"box": {"xmin": xmin, "ymin": ymin, "xmax": xmax, "ymax": ymax}, "label": label, "score": 0.9}


class _SequenceBackend:
    """Returns one scripted answer per detect call; exceptions are raised."""

    def __init__(self, answers, load_error: Exception | None = None):
        self.answers = list(answers)
        self.load_error = load_error
        self.calls = 0

    def load(self) -> None:
        if self.load_error is not None:
            raise self.load_error

    def detect(self, frame):
        answer = self.answers[min(self.calls, len(self.answers) - 1)]
        self.calls += 1
        if isinstance(answer, Exception):
            raise answer
        return answer


class _GatedBackend:
    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.active = 0
        self.max_active = 0

    async def load(self) -> None:
        return None

    async def detect(self, frame):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self.started.set()
            await self.release.wait()
            return [_raw("person")]
        finally:
            self.active -= 1


# ---------------------------------------------------------------------------- batch scan


def test_batch_scan_finds_single_event_when_block_appears() -> None:
    video = _block_from(1.5)
    session = _session()
    session.load_video(video)

    summary = asyncio.run(session.process_video())

    assert summary is not None
    assert summary.samples == 6
    assert summary.event_count == 1
    [event] = session.timeline.events
    assert abs(event.timestamp - 1.5) < 1e-9
    assert event.bounding_box == Zone(20, 20, 9, 9)
    assert video.seeks == [0.0, 0.5, 1.0, 1.5, 2.0, 2.5, 0.0]
    assert video.current_time == 0.0
    assert not video.is_playing
    assert session.mode is DetectionMode.IDLE
    assert session.state.scan_phase is ScanPhase.DONE

    notice = session.notifications.recent(1)[0]
    assert notice.title == "Processing Complete"
    assert notice.description == "Found 1 movement events across the entire video"


def test_batch_scan_scales_boxes_to_display_and_respects_zone() -> None:
    session = _session()
    session.load_video(_block_from(1.5))
    session.set_display_size(128, 128)
    session.set_zone(Zone(25, 25, 30, 30))

    asyncio.run(session.process_video())

    [event] = session.timeline.events
    assert event.bounding_box == Zone(50, 50, 8, 8)
    assert session.overlay_at(1.7) is event
    assert session.overlay_at(2.1) is None


def test_batch_scan_ignores_movement_outside_zone() -> None:
    session = _session()
    session.load_video(_block_from(1.5))
    session.set_zone(Zone(40, 40, 20, 20))

    summary = asyncio.run(session.process_video())

    assert summary.event_count == 0
    assert session.timeline.events == []


def test_batch_scan_replaces_previous_events() -> None:
    session = _session()
    session.load_video(_block_from(1.5))

    asyncio.run(session.process_video())
    asyncio.run(session.process_video())

    assert len(session.timeline) == 1


def test_object_scan_counts_distinct_labels_and_survives_frame_errors() -> None:
    backend = _SequenceBackend(
        [
            [_raw("person")],
            RuntimeError("decoder hiccup"),
            [],
            [_raw("dog", 30, 30, 40, 40), _raw("person")],
            [_raw("Dog")],
            [],
        ]
    )
    session = _session(ObjectDetector(backend))
    session.load_video(_block_from(10.0))

    summary = asyncio.run(session.process_video(Pipeline.OBJECTS))

    assert summary.samples == 6
    assert summary.event_count == 3
    assert summary.distinct_labels == ("person", "dog", "Dog")
    timestamps = [event.timestamp for event in session.timeline]
    assert timestamps == [0.0, 1.5, 2.0]
    assert session.timeline.events[1].bounding_box == Zone(10, 10, 30, 30)
    assert session.notifications.recent(1)[0].description == (
        "Found 3 detection events with 3 distinct object types"
    )


def test_object_scan_person_only_filter() -> None:
    backend = _SequenceBackend([[_raw("dog")], [_raw("person"), _raw("dog")]])
    session = _session(ObjectDetector(backend))
    session.load_video(_block_from(10.0))
    session.set_person_only(True)

    summary = asyncio.run(session.process_video(Pipeline.OBJECTS))

    assert summary.event_count == 5
    assert session.timeline.distinct_labels() == ["person"]


def test_model_load_failure_aborts_scan_with_notice() -> None:
    backend = _SequenceBackend([[]], load_error=OSError("no weights"))
    video = _block_from(1.5)
    session = _session(ObjectDetector(backend))
    session.load_video(video)

    assert asyncio.run(session.process_video(Pipeline.OBJECTS)) is None

    notice = session.notifications.recent(1)[0]
    assert notice.level is NoticeLevel.ERROR
    assert notice.title == "Model Error"
    assert video.seeks == []
    assert session.mode is DetectionMode.IDLE
    assert backend.calls == 0


def test_scan_without_video_reports_precondition() -> None:
    session = _session()

    assert asyncio.run(session.process_video()) is None
    notice = session.notifications.recent(1)[0]
    assert notice.level is NoticeLevel.ERROR
    assert notice.description == "Please upload a video first"


def test_scan_requiring_zone_reports_missing_zone() -> None:
    session = _session(require_zone=True)
    session.load_video(_block_from(1.5))

    assert asyncio.run(session.process_video()) is None
    assert session.notifications.recent(1)[0].description == "Please select a zone first"


def test_object_scan_without_detector_reports_precondition() -> None:
    session = _session()
    session.load_video(_block_from(1.5))

    assert asyncio.run(session.process_video(Pipeline.OBJECTS)) is None
    assert session.notifications.recent(1)[0].level is NoticeLevel.ERROR


def test_surface_failure_aborts_before_any_frame() -> None:
    video = SyntheticVideoSource(frames=lambda t: _scene_frame(False), width=0, height=0, duration=3.0)
    session = _session()
    session.load_video(video)

    assert asyncio.run(session.process_video()) is None
    assert video.render_times == []
    assert session.mode is DetectionMode.IDLE
    assert session.notifications.recent(1)[0].level is NoticeLevel.ERROR


def test_zone_selection_from_display_drag() -> None:
    session = _session()
    session.load_video(_block_from(1.5))
    session.set_display_size(32, 32)

    assert session.select_zone_from_drag((1, 1), (5, 5)) is None
    assert session.zone is None
    zone = session.select_zone_from_drag((20, 20), (10, 10))
    assert zone == Zone(20, 20, 20, 20)
    assert session.zone == zone


# ---------------------------------------------------------------------------- live loop


def _live_video(scene: dict, now: list) -> SyntheticVideoSource:
    return SyntheticVideoSource(
        frames=lambda t: _scene_frame(scene["block"]),
        width=64,
        height=64,
        duration=30.0,
        clock=lambda: now[0],
    )


def test_live_loop_keeps_events_half_a_second_apart() -> None:
    scene = {"block": False}
    now = [0.0]
    video = _live_video(scene, now)
    session = _session()
    session.load_video(video)

    async def run() -> None:
        assert session.start_live_detection() is True
        assert video.is_playing
        for step in range(12):
            now[0] = step * 0.2
            scene["block"] = step % 2 == 1
            await asyncio.sleep(0.03)
        session.stop_live_detection()
        await session.wait_for_pending_tick()

    asyncio.run(run())

    timestamps = [event.timestamp for event in session.timeline]
    assert len(timestamps) >= 2
    assert abs(timestamps[0] - 0.2) < 1e-9
    for index, first in enumerate(timestamps):
        for second in timestamps[index + 1 :]:
            assert abs(first - second) >= 0.5


def test_live_ticks_update_current_detection() -> None:
    scene = {"block": False}
    now = [0.0]
    backend = _SequenceBackend([[_raw("person")], []])
    session = _session(ObjectDetector(backend))
    session.load_video(_live_video(scene, now))

    async def run() -> None:
        run_id = session.state.enter(DetectionMode.LIVE_DETECTING)
        session._claim_sampler(session._live_owner(run_id))
        session.video.play()

        await session._run_live_tick(run_id)
        assert session.current_detection is None
        scene["block"] = True
        now[0] = 1.0
        await session._run_live_tick(run_id)
        assert session.current_detection.bounding_box == Zone(20, 20, 9, 9)
        await session._run_live_tick(run_id)
        assert session.current_detection is None

        session._live_pipeline = Pipeline.OBJECTS
        await session._run_live_tick(run_id)
        assert [obj.label for obj in session.current_detection.detected_objects] == ["person"]
        await session._run_live_tick(run_id)
        assert session.current_detection is None
        session.stop_live_detection()

    asyncio.run(run())

    assert [event.timestamp for event in session.timeline] == [1.0]


def test_stop_halts_ticks_without_pausing_or_clearing() -> None:
    scene = {"block": False}
    now = [0.0]
    video = _live_video(scene, now)
    session = _session()
    session.load_video(video)

    async def run() -> int:
        session.start_live_detection()
        await asyncio.sleep(0.02)
        scene["block"] = True
        await asyncio.sleep(0.02)
        assert session.stop_live_detection() is True
        await session.wait_for_pending_tick()
        renders = len(video.render_times)
        await asyncio.sleep(0.05)
        assert len(video.render_times) == renders
        return renders

    renders = asyncio.run(run())

    assert renders > 0
    assert session.mode is DetectionMode.IDLE
    assert video.is_playing
    assert len(session.timeline) == 1
    assert session.stop_live_detection() is False


def test_in_flight_result_is_discarded_after_stop() -> None:
    now = [0.0]
    session = _session()
    session.load_video(_live_video({"block": False}, now))

    async def run() -> None:
        backend = _GatedBackend()
        session.detector = ObjectDetector(backend)
        assert session.start_live_detection(Pipeline.OBJECTS)
        await asyncio.wait_for(backend.started.wait(), timeout=1.0)
        session.stop_live_detection()
        backend.release.set()
        await session.wait_for_pending_tick()

    asyncio.run(run())

    assert session.timeline.events == []
    assert session.current_detection is None


def test_live_object_detection_logs_enclosing_box() -> None:
    now = [0.0]
    backend = _SequenceBackend([[_raw("person", 0, 0, 10, 10), _raw("dog", 20, 20, 30, 40)]])
    session = _session(ObjectDetector(backend))
    session.load_video(_live_video({"block": False}, now))

    async def run() -> None:
        session.start_live_detection(Pipeline.OBJECTS)
        while backend.calls < 3:
            await asyncio.sleep(0.005)
        session.stop_live_detection()
        await session.wait_for_pending_tick()

    asyncio.run(run())

    [event] = session.timeline.events
    assert event.bounding_box == Zone(0, 0, 30, 40)
    assert event.labels == ("person", "dog")


def test_live_model_load_failure_stops_loop_with_notice() -> None:
    now = [0.0]
    backend = _SequenceBackend([[]], load_error=OSError("no weights"))
    session = _session(ObjectDetector(backend))
    session.load_video(_live_video({"block": False}, now))

    async def run() -> None:
        session.start_live_detection(Pipeline.OBJECTS)
        for _ in range(100):
            if session.mode is DetectionMode.IDLE:
                break
            await asyncio.sleep(0.005)
        await session.wait_for_pending_tick()

    asyncio.run(run())

    assert session.mode is DetectionMode.IDLE
    errors = [notice for notice in session.notifications.recent() if notice.level is NoticeLevel.ERROR]
    assert [notice.title for notice in errors] == ["Model Error"]


def test_loops_are_mutually_exclusive() -> None:
    now = [0.0]
    session = _session()
    session.load_video(_live_video({"block": False}, now))

    async def run() -> None:
        assert session.start_live_detection()
        assert await session.process_video() is None
        assert session.start_live_detection() is False
        assert session.mode is DetectionMode.LIVE_DETECTING
        session.stop_live_detection()
        await session.wait_for_pending_tick()

    asyncio.run(run())

    errors = [notice for notice in session.notifications.recent() if notice.level is NoticeLevel.ERROR]
    assert len(errors) == 2


def test_session_from_config_builds_detector_handle() -> None:
    session = DetectionSession.from_config(
        {
            "logging": {"level": "INFO"},
            "detection": {"movement_threshold": 100},
            "objects": {"model": "yolov8s.pt", "person_only": True},
        }
    )

    assert session.settings.thresholds.movement_threshold == 100
    assert session.settings.person_only is True
    assert session.detector.settings.model == "yolov8s.pt"
    assert not session.detector.is_loaded


def test_restart_is_refused_until_stopped_run_finishes() -> None:
    now = [0.0]
    session = _session()
    session.load_video(_live_video({"block": False}, now))

    async def run() -> _GatedBackend:
        backend = _GatedBackend()
        session.detector = ObjectDetector(backend)
        assert session.start_live_detection(Pipeline.OBJECTS)
        await asyncio.wait_for(backend.started.wait(), timeout=1.0)
        session.stop_live_detection()

        assert session.start_live_detection(Pipeline.OBJECTS) is False
        assert not session.is_live

        backend.release.set()
        await session.wait_for_pending_tick()
        assert session.start_live_detection(Pipeline.OBJECTS) is True
        assert session.is_live
        await asyncio.sleep(0.03)
        session.stop_live_detection()
        await session.wait_for_pending_tick()
        return backend

    backend = asyncio.run(run())

    assert backend.max_active == 1
    assert not session.is_live
    errors = [notice for notice in session.notifications.recent() if notice.level is NoticeLevel.ERROR]
    assert [notice.title for notice in errors] == ["Detection Error"]
    assert "still finishing" in errors[0].description


# ---------------------------------------------------------------------------- seeking and tuning


def test_seek_without_video_reports_precondition() -> None:
    session = _session()

    assert asyncio.run(session.seek(1.0)) is False
    assert session.notifications.recent(1)[0].description == "Please upload a video first"


def test_seek_to_fraction_maps_click_to_playback_time() -> None:
    video = _block_from(1.5)
    session = _session()
    session.load_video(video)

    assert asyncio.run(session.seek_to_fraction(0.5)) is True
    assert video.seeks == [1.5]
    assert video.current_time == 1.5


def test_seek_is_refused_during_batch_scan() -> None:
    video = _block_from(1.5)
    video.seek_delay_s = 0.01
    session = _session()
    session.load_video(video)

    async def run() -> bool:
        scan = asyncio.ensure_future(session.process_video())
        while session.mode is not DetectionMode.BATCH_SCANNING:
            await asyncio.sleep(0.001)
        accepted = await session.seek(2.9)
        await scan
        return accepted

    assert asyncio.run(run()) is False
    assert 2.9 not in video.seeks
    assert len(video.seeks) == 7
    errors = [notice for notice in session.notifications.recent() if notice.level is NoticeLevel.ERROR]
    assert [notice.description for notice in errors] == ["Wait for video processing to finish"]


def test_set_thresholds_clamps_before_scan() -> None:
    session = _session()
    session.load_video(_block_from(1.5))

    session.set_thresholds(3, 203)
    summary = asyncio.run(session.process_video())

    assert session.settings.thresholds == Thresholds(5, 200)
    assert summary.event_count == 0


def test_clear_zone_returns_to_whole_frame() -> None:
    session = _session()
    session.load_video(_block_from(1.5))
    session.set_zone(Zone(40, 40, 20, 20))

    session.clear_zone()
    summary = asyncio.run(session.process_video())

    assert session.zone is None
    assert summary.event_count == 1
