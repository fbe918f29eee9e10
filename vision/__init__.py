"""Vision package exports."""

from vision.detections import DetectedObject, LiveDetection, MovementEvent
from vision.frames import Frame, Zone, scale_zone, zone_from_drag
from vision.motion_detector import analyze_motion, extract_bounding_box, has_movement
from vision.object_detector import ObjectDetector, ObjectDetectorSettings, filter_by_label

__all__ = [
    "DetectedObject",
    "Frame",
    "LiveDetection",
    "MovementEvent",
    "ObjectDetector",
    "ObjectDetectorSettings",
    "Zone",
    "analyze_motion",
    "extract_bounding_box",
    "filter_by_label",
    "has_movement",
    "scale_zone",
    "zone_from_drag",
]
