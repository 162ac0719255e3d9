"""
Litter classifier adapters
- WasteClassifier: load_model()/detect() contract shared by every backend
- YoloClassifier: YOLOv8 detection via ultralytics
- SimulatedClassifier: deterministic stand-in for development and demos
"""

import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from .records import CATEGORY_COLORS, CATEGORY_LABELS, Detection, WasteCategory, hex_to_bgr


class ClassifierLoadError(RuntimeError):
    """Raised when the inference model could not be loaded"""


class ModelNotReadyError(RuntimeError):
    """Raised when detection is requested before the model finished loading"""


# Class names reported by TACO-trained and stock COCO models, mapped onto our
# closed category set. Names missing here are not litter and are dropped.
CLASS_NAME_CATEGORIES = {
    # TACO dataset
    "Aluminium foil": WasteCategory.CAN,
    "Bottle cap": WasteCategory.BOTTLE,
    "Bottle": WasteCategory.BOTTLE,
    "Broken glass": WasteCategory.TRASH,
    "Can": WasteCategory.CAN,
    "Carton": WasteCategory.TRASH,
    "Cigarette": WasteCategory.TRASH,
    "Cup": WasteCategory.CUP,
    "Lid": WasteCategory.TRASH,
    "Other litter": WasteCategory.TRASH,
    "Other plastic": WasteCategory.TRASH,
    "Paper": WasteCategory.TRASH,
    "Plastic bag - wrapper": WasteCategory.PLASTIC_BAG,
    "Plastic container": WasteCategory.TRASH,
    "Pop tab": WasteCategory.CAN,
    "Straw": WasteCategory.TRASH,
    "Styrofoam piece": WasteCategory.TRASH,
    "Unlabeled litter": WasteCategory.TRASH,
    # COCO fallbacks
    "bottle": WasteCategory.BOTTLE,
    "cup": WasteCategory.CUP,
    "wine glass": WasteCategory.CUP,
    "handbag": WasteCategory.PLASTIC_BAG,
}


def is_valid_frame(frame) -> bool:
    """A frame is usable when it is a non-empty HxWx3 image array"""
    return (
        isinstance(frame, np.ndarray)
        and frame.ndim == 3
        and frame.shape[2] == 3
        and frame.shape[0] > 0
        and frame.shape[1] > 0
    )


class WasteClassifier(ABC):
    """
    Opaque per-frame litter classifier

    Subclasses implement _load() and _infer(). Loading happens on a background
    thread; the event returned by load_model() is set once the model is ready.
    """

    def __init__(self):
        self.ready = threading.Event()
        self.load_error: Optional[BaseException] = None
        self._load_thread: Optional[threading.Thread] = None
        self.setup_logging()

    def setup_logging(self):
        """Setup logging for the classifier"""
        self.logger = logging.getLogger(__name__)

    def load_model(self) -> threading.Event:
        """
        Start loading the model in the background

        Returns:
            Event that is set when the model is ready. It stays unset if
            loading fails; check load_error in that case.
        """
        if self._load_thread is None:
            self._load_thread = threading.Thread(target=self._load_in_background, daemon=True)
            self._load_thread.start()
        return self.ready

    def wait_until_loaded(self, timeout: Optional[float] = None) -> bool:
        """Block until loading finished either way. Returns True when ready."""
        if self._load_thread is not None:
            self._load_thread.join(timeout)
        return self.ready.is_set()

    def _load_in_background(self):
        try:
            self._load()
        except Exception as e:
            self.load_error = e
            self.logger.error(f"Failed to load classifier model: {e}")
            return
        self.ready.set()
        self.logger.info(f"{type(self).__name__} model ready")

    def detect(self, frame) -> List[Detection]:
        """
        Classify litter in one frame. Never raises.

        Args:
            frame: BGR image as numpy array

        Returns:
            Zero or more detections; empty for malformed frames or before load
        """
        if not self.ready.is_set():
            return []
        if not is_valid_frame(frame):
            self.logger.debug("Ignoring malformed frame")
            return []
        try:
            return self._infer(frame)
        except Exception as e:
            self.logger.error(f"Detection failed: {e}")
            return []

    @abstractmethod
    def _load(self):
        """Load model weights; raise on failure"""

    @abstractmethod
    def _infer(self, frame: np.ndarray) -> List[Detection]:
        """Run inference on a validated frame"""


class YoloClassifier(WasteClassifier):
    """YOLOv8 detector, preferring a custom TACO-trained model when present"""

    CUSTOM_MODEL_PATH = "data/runs/detect/train/weights/best.pt"

    def __init__(self, model_path: Optional[str] = None, confidence_threshold: float = 0.25):
        super().__init__()
        self.model_path = model_path
        self.confidence_threshold = confidence_threshold
        self.model = None
        self.class_names = {}

    def _load(self):
        from ultralytics import YOLO

        if self.model_path and Path(self.model_path).exists():
            path = self.model_path
        elif Path(self.CUSTOM_MODEL_PATH).exists():
            path = self.CUSTOM_MODEL_PATH
        else:
            # Stock nano model; only bottle/cup-like classes will map to litter
            path = "yolov8n.pt"
        self.model = YOLO(path)
        self.class_names = dict(getattr(self.model, "names", {}) or {})
        self.logger.info(f"Loaded YOLO model from {path} ({len(self.class_names)} classes)")

    def _infer(self, frame: np.ndarray) -> List[Detection]:
        detections = []
        results = self.model(frame, conf=self.confidence_threshold, verbose=False)

        for result in results:
            boxes = result.boxes
            if boxes is None:
                continue
            for box in boxes:
                class_id = int(box.cls[0])
                name = self.class_names.get(class_id, f"unknown_{class_id}")
                category = CLASS_NAME_CATEGORIES.get(name)
                if category is None:
                    continue

                x1, y1, x2, y2 = box.xyxy[0].tolist()
                detections.append(Detection(
                    box=(x1, y1, x2 - x1, y2 - y1),
                    category=category,
                    confidence=float(box.conf[0]),
                    label=CATEGORY_LABELS[category],
                ))

        return detections


class SimulatedClassifier(WasteClassifier):
    """
    Emits occasional random litter detections so the rest of the system can
    run without a model. Seeded for reproducible runs.
    """

    def __init__(self, load_delay_seconds: float = 1.5, detection_rate: float = 0.08,
                 seed: Optional[int] = None):
        super().__init__()
        self.load_delay_seconds = load_delay_seconds
        self.detection_rate = detection_rate
        self.rng = random.Random(seed)

    def _load(self):
        time.sleep(self.load_delay_seconds)

    def _infer(self, frame: np.ndarray) -> List[Detection]:
        if self.rng.random() >= self.detection_rate:
            return []

        height, width = frame.shape[:2]
        category = self.rng.choice(list(WasteCategory))
        w = min(width, 150 + self.rng.random() * 100)
        h = min(height, 150 + self.rng.random() * 100)
        x = self.rng.random() * (width - w)
        y = self.rng.random() * (height - h)

        return [Detection(
            box=(x, y, w, h),
            category=category,
            confidence=0.75 + self.rng.random() * 0.20,
            label=category.value.replace("_", " "),
        )]


def draw_overlay(frame: np.ndarray, detections: List[Detection]) -> np.ndarray:
    """
    Draw detection boxes and captions on a copy of the frame

    Args:
        frame: Input image
        detections: Detections to draw

    Returns:
        Annotated image
    """
    result_image = frame.copy()

    for detection in detections:
        x, y, w, h = (int(v) for v in detection.box)
        color = hex_to_bgr(CATEGORY_COLORS.get(detection.category, "#ffffff"))

        cv2.rectangle(result_image, (x, y), (x + w, y + h), color, 3)

        # Label background above the box
        cv2.rectangle(result_image, (x, max(0, y - 25)), (x + w, y), color, -1)
        caption = f"{CATEGORY_LABELS[detection.category]} {round(detection.confidence * 100)}%"
        cv2.putText(result_image, caption, (x + 5, max(15, y - 7)),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 2)

    return result_image
