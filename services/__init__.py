"""Detection sessions and the state they coordinate."""

from services.detection_session import DetectionSession, Pipeline, ScanSummary
from services.detection_settings import DetectionSettings, Thresholds
from services.detection_state import DetectionMode, DetectionStateMachine, ScanPhase
from services.event_timeline import EventTimeline, format_time, marker_position, time_at_fraction
from services.notifications import Notice, NoticeLevel, NotificationCenter

__all__ = [
    "DetectionMode",
    "DetectionSession",
    "DetectionSettings",
    "DetectionStateMachine",
    "EventTimeline",
    "Notice",
    "NoticeLevel",
    "NotificationCenter",
    "Pipeline",
    "ScanPhase",
    "ScanSummary",
    "Thresholds",
    "format_time",
    "marker_position",
    "time_at_fraction",
]
