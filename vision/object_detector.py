"""Adapter around an external, pre-trained object detection model.

The model is an opaque collaborator reached through a :class:`DetectorBackend`.
:class:`ObjectDetector` owns its lifecycle: one lazy load shared by every
caller, per-frame inference, rescaling of boxes into display coordinates and
optional filtering down to one label.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import importlib
import importlib.util
import inspect
import math
from typing import Any, Iterable, Protocol

from core.errors import InferenceError, ModelLoadError
from core.logging import logger
from vision.detections import DetectedObject
from vision.frames import Frame

RawDetection = dict[str, Any]

COCO_CLASSES: tuple[str, ...] = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat",
    "traffic light", "fire hydrant", "stop sign", "parking meter", "bench", "bird", "cat",
    "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra", "giraffe", "backpack",
    "umbrella", "handbag", "tie", "suitcase", "frisbee", "skis", "snowboard", "sports ball",
    "kite", "baseball bat", "baseball glove", "skateboard", "surfboard", "tennis racket",
    "bottle", "wine glass", "cup", "fork", "knife", "spoon", "bowl", "banana", "apple",
    "sandwich", "orange", "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair",
    "couch", "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse",
    "remote", "keyboard", "cell phone", "microwave", "oven", "toaster", "sink", "refrigerator",
    "book", "clock", "vase", "scissors", "teddy bear", "hair drier", "toothbrush",
)


class DetectorBackend(Protocol):
    """Minimal interface of an external detection model.

    Either method may be a coroutine function. ``detect`` returns raw
    detections shaped ``{"box": {"xmin", "ymin", "xmax", "ymax"}, "label",
    "score"}`` in source-frame pixels.
    """

    def load(self) -> Any:
        """Load weights and prepare the inference engine."""

    def detect(self, frame: Frame) -> Any:
        """Run inference on one frame."""


@dataclass(frozen=True)
class ObjectDetectorSettings:
    """Runtime settings for the object pipeline."""

    backend: str = "ultralytics"
    model: str = "yolov8n.pt"
    device: str = "cpu"
    min_confidence: float = 0.25
    target_label: str = "person"

    @classmethod
    def from_config(cls, objects_cfg: dict[str, Any]) -> "ObjectDetectorSettings":
        defaults = cls()
        return cls(
            backend=str(objects_cfg.get("backend", defaults.backend)),
            model=str(objects_cfg.get("model", defaults.model)),
            device=str(objects_cfg.get("device", defaults.device)),
            min_confidence=float(objects_cfg.get("min_confidence", defaults.min_confidence)),
            target_label=str(objects_cfg.get("target_label", defaults.target_label)),
        )


class UltralyticsBackend:
    """YOLO backend built on the ``ultralytics`` package."""

    def __init__(self, model: str = "yolov8n.pt", device: str = "cpu", min_confidence: float = 0.25) -> None:
        self.model_path = model
        self.device = device
        self.min_confidence = min_confidence
        self._model: Any = None

    def load(self) -> None:
        if importlib.util.find_spec("ultralytics") is None:
            raise RuntimeError("ultralytics is required for the YOLO backend")
        ultralytics = importlib.import_module("ultralytics")
        self._model = ultralytics.YOLO(self.model_path)
        logger.info("[DETECTOR] Loaded YOLO weights %s (classes=%d)", self.model_path, len(self._model.names))

    def detect(self, frame: Frame) -> list[RawDetection]:
        if self._model is None:
            raise RuntimeError("YOLO backend used before load()")
        results = self._model.predict(
            source=frame.to_image().convert("RGB"),
            conf=self.min_confidence,
            device=self.device,
            verbose=False,
        )
        if not results:
            return []

        result = results[0]
        boxes = result.boxes
        if boxes is None or len(boxes) == 0:
            return []

        names = self._model.names
        detections: list[RawDetection] = []
        for box in boxes:
            cls_id = int(box.cls[0])
            xmin, ymin, xmax, ymax = (float(v) for v in box.xyxy[0].tolist())
            detections.append(
                {
                    "box": {"xmin": xmin, "ymin": ymin, "xmax": xmax, "ymax": ymax},
                    "label": names.get(cls_id, str(cls_id)) if isinstance(names, dict) else str(names[cls_id]),
                    "score": float(box.conf[0]),
                }
            )
        return detections


def create_backend(settings: ObjectDetectorSettings) -> DetectorBackend:
    """Build the backend named in ``settings``."""

    if settings.backend == "ultralytics":
        return UltralyticsBackend(
            model=settings.model,
            device=settings.device,
            min_confidence=settings.min_confidence,
        )
    raise ValueError(f"Unknown object detector backend: {settings.backend!r}")


async def _call_backend(func: Any, *args: Any) -> Any:
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    result = await asyncio.to_thread(func, *args)
    if inspect.isawaitable(result):
        return await result
    return result


class ObjectDetector:
    """Explicitly owned handle to one external detection model.

    Construct once per session and share it by reference. The first call to
    :meth:`initialize` or :meth:`detect` starts the load; concurrent callers
    wait on the same load. A failed load is remembered and re-raised until
    :meth:`reset` is called.
    """

    def __init__(self, backend: DetectorBackend, settings: ObjectDetectorSettings | None = None) -> None:
        self._backend = backend
        self.settings = settings or ObjectDetectorSettings()
        self._load_task: asyncio.Task[None] | None = None
        self._load_error: ModelLoadError | None = None
        self._loaded = False

    @classmethod
    def from_settings(cls, settings: ObjectDetectorSettings) -> "ObjectDetector":
        return cls(create_backend(settings), settings)

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def load_error(self) -> ModelLoadError | None:
        return self._load_error

    async def initialize(self) -> None:
        """Load the model once; later calls return immediately."""

        if self._loaded:
            return
        if self._load_error is not None:
            raise self._load_error
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        await asyncio.shield(self._load_task)

    async def _load(self) -> None:
        logger.info("[DETECTOR] Loading object detection model (%s)...", self.settings.model)
        try:
            await _call_backend(self._backend.load)
        except Exception as exc:
            self._load_error = ModelLoadError(f"Failed to load detection model: {exc}")
            logger.exception("[DETECTOR] Model load failed")
            raise self._load_error from exc
        self._loaded = True
        logger.info("[DETECTOR] Model ready")

    def reset(self) -> None:
        """Forget a failed load so the next use tries again."""

        if self._load_task is not None and not self._load_task.done():
            return
        self._load_task = None
        self._load_error = None

    async def detect(
        self,
        frame: Frame,
        display_size: tuple[float, float] | None = None,
        label: str | None = None,
    ) -> list[DetectedObject]:
        """Detect objects in ``frame`` and return them in display coordinates.

        Raises:
            ModelLoadError: The model could not be loaded.
            InferenceError: Inference failed on this frame.
        """

        await self.initialize()
        try:
            raw = await _call_backend(self._backend.detect, frame)
        except Exception as exc:
            raise InferenceError(f"Object detection failed: {exc}") from exc

        objects = self.convert_detections(raw or [], frame.size, display_size or frame.size)
        if label is not None:
            objects = filter_by_label(objects, label)
        return objects

    def convert_detections(
        self,
        raw_detections: Iterable[Any],
        source_size: tuple[int, int],
        display_size: tuple[float, float],
    ) -> list[DetectedObject]:
        source_width, source_height = source_size
        display_width, display_height = display_size
        scale_x = display_width / source_width if source_width else 0.0
        scale_y = display_height / source_height if source_height else 0.0

        converted: list[DetectedObject] = []
        for raw in raw_detections:
            if not isinstance(raw, dict):
                continue
            box = self._extract_box(raw)
            if box is None:
                continue
            confidence = self._extract_confidence(raw)
            if confidence < self.settings.min_confidence:
                continue
            xmin, ymin, xmax, ymax = box
            converted.append(
                DetectedObject(
                    x=xmin * scale_x,
                    y=ymin * scale_y,
                    width=(xmax - xmin) * scale_x,
                    height=(ymax - ymin) * scale_y,
                    label=self._extract_label(raw),
                    confidence=confidence,
                )
            )
        return converted

    def _extract_box(self, payload: dict[str, Any]) -> tuple[float, float, float, float] | None:
        box = payload.get("box")
        if not isinstance(box, dict) or not {"xmin", "ymin", "xmax", "ymax"}.issubset(box.keys()):
            return None
        values = [self._to_finite_float(box[key]) for key in ("xmin", "ymin", "xmax", "ymax")]
        if any(value is None for value in values):
            return None
        xmin, ymin, xmax, ymax = values
        if xmax < xmin or ymax < ymin:
            return None
        return xmin, ymin, xmax, ymax

    def _extract_confidence(self, payload: dict[str, Any]) -> float:
        value = payload.get("score", payload.get("confidence", 0.0))
        confidence = self._to_finite_float(value)
        if confidence is None:
            return 0.0
        return max(0.0, min(1.0, confidence))

    def _extract_label(self, payload: dict[str, Any]) -> str:
        value = payload.get("label", payload.get("class"))
        if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < len(COCO_CLASSES):
            return COCO_CLASSES[value]
        label = str(value).strip() if value is not None else "unknown"
        return label or "unknown"

    def _to_finite_float(self, value: Any) -> float | None:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if math.isnan(number) or math.isinf(number):
            return None
        return number


def filter_by_label(objects: Iterable[DetectedObject], label: str = "person") -> list[DetectedObject]:
    """Keep only objects whose label matches ``label`` case-insensitively."""

    wanted = label.strip().lower()
    return [obj for obj in objects if obj.label.lower() == wanted]
