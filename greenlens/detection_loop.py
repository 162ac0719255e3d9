"""
Detection loop - drives the classifier at the display refresh cadence

States:
- IDLE: no frame processing, overlay cleared
- ARMED: each tick captures a frame, classifies it and forwards detections
- DISPOSED: scheduler cancelled, loop cannot be restarted

At most one detect-and-submit cycle is outstanding at any time; a tick that
arrives while one is running is skipped. Results of a cycle that was still
running when the loop stopped are discarded.
"""

import logging
import threading
import time
from enum import Enum
from typing import Dict, List, Optional

import numpy as np

from .models.classifier import (
    ClassifierLoadError,
    ModelNotReadyError,
    WasteClassifier,
    draw_overlay,
)
from .models.records import Detection
from .utils.record_store import RecordStoreError


class LoopState(Enum):
    IDLE = "idle"
    ARMED = "armed"
    DISPOSED = "disposed"


class DetectionLoop:
    """
    Per-session detection loop

    With refresh_hz set, the loop owns a scheduler thread ticking at that rate.
    With refresh_hz=None, an external render refresh signal must call tick().
    """

    def __init__(self, classifier: WasteClassifier, frame_source, pipeline,
                 location_source, refresh_hz: Optional[float] = 30.0):
        """
        Args:
            classifier: Loaded (or loading) classifier adapter
            frame_source: Object with capture_frame() -> ndarray or None
            pipeline: RecordPipeline receiving every detection
            location_source: Object with current() -> GeoPoint or None
            refresh_hz: Internal tick rate, None for externally driven ticks
        """
        self.classifier = classifier
        self.frame_source = frame_source
        self.pipeline = pipeline
        self.location_source = location_source
        self.refresh_hz = refresh_hz

        self._state = LoopState.IDLE
        self._state_lock = threading.Lock()
        self._busy = threading.Lock()
        # Held across the generation check and each submit; stop() takes it
        # too, so no submit starts once stop() has returned
        self._submit_lock = threading.Lock()
        self._generation = 0
        self._detections: List[Detection] = []
        self._last_frame: Optional[np.ndarray] = None
        self._cancel = threading.Event()
        self._scheduler: Optional[threading.Thread] = None

        # Performance tracking
        self.tick_count = 0
        self.skipped_ticks = 0
        self.detection_count = 0
        self.records_created = 0
        self.start_time = None

        self.setup_logging()

    def setup_logging(self):
        self.logger = logging.getLogger(__name__)

    @property
    def state(self) -> LoopState:
        with self._state_lock:
            return self._state

    @property
    def current_detections(self) -> List[Detection]:
        with self._state_lock:
            return list(self._detections)

    @property
    def last_frame(self) -> Optional[np.ndarray]:
        """Frame the current detections were computed on"""
        with self._state_lock:
            return self._last_frame

    def start(self):
        """
        Arm the loop

        Raises:
            ClassifierLoadError: model failed to load; loop stays idle
            ModelNotReadyError: model still loading; loop stays idle
            RuntimeError: loop was disposed
        """
        with self._state_lock:
            if self._state is LoopState.DISPOSED:
                raise RuntimeError("Detection loop has been disposed")
            if self._state is LoopState.ARMED:
                self.logger.warning("Detection loop is already running")
                return
            if self.classifier.load_error is not None:
                raise ClassifierLoadError(
                    f"Classifier failed to load: {self.classifier.load_error}"
                ) from self.classifier.load_error
            if not self.classifier.ready.is_set():
                raise ModelNotReadyError("Classifier model is still loading")

            self._generation += 1
            self._state = LoopState.ARMED
            self._cancel = threading.Event()
            cancel = self._cancel
            if self.start_time is None:
                self.start_time = time.time()

        if self.refresh_hz:
            self._scheduler = threading.Thread(
                target=self._run_scheduler, args=(cancel,), daemon=True
            )
            self._scheduler.start()

        self.logger.info("Detection loop armed")

    def stop(self):
        """
        Disarm the loop and clear the overlay. Waits at most for one
        in-progress store write; no submit starts after this returns.
        """
        with self._submit_lock, self._state_lock:
            if self._state is not LoopState.ARMED:
                return
            self._state = LoopState.IDLE
            self._generation += 1
            self._detections = []
            self._last_frame = None
            self._cancel.set()

        self.logger.info("Detection loop stopped")

    def dispose(self, timeout: float = 5.0):
        """Cancel the scheduler and wait for it to exit"""
        with self._submit_lock, self._state_lock:
            if self._state is LoopState.DISPOSED:
                return
            self._state = LoopState.DISPOSED
            self._generation += 1
            self._detections = []
            self._last_frame = None
            self._cancel.set()

        scheduler = self._scheduler
        if scheduler and scheduler.is_alive() and scheduler is not threading.current_thread():
            scheduler.join(timeout=timeout)
        self._scheduler = None

        self._log_statistics("Detection loop disposed")

    def _run_scheduler(self, cancel: threading.Event):
        """Tick at refresh_hz; the next tick is only scheduled once the last one finished"""
        interval = 1.0 / self.refresh_hz
        while not cancel.is_set():
            started = time.monotonic()
            try:
                self.tick()
            except Exception as e:
                self.logger.error(f"Error in detection loop: {e}")
            cancel.wait(max(0.0, interval - (time.monotonic() - started)))

    def _is_current(self, generation: int) -> bool:
        with self._state_lock:
            return self._state is LoopState.ARMED and generation == self._generation

    def tick(self) -> bool:
        """
        Run one detect-and-submit cycle

        Returns:
            True if a frame was classified and its results accepted; False for
            idle, busy, not-ready or discarded ticks
        """
        if not self._busy.acquire(blocking=False):
            with self._state_lock:
                self.skipped_ticks += 1
            return False

        try:
            with self._state_lock:
                if self._state is not LoopState.ARMED:
                    return False
                generation = self._generation

            frame = self.frame_source.capture_frame()
            if frame is None:
                return False

            detections = self.classifier.detect(frame)

            with self._state_lock:
                if self._state is not LoopState.ARMED or generation != self._generation:
                    self.logger.debug("Discarding inference result that finished after stop")
                    return False
                self._detections = list(detections)
                self._last_frame = frame
                self.tick_count += 1
                self.detection_count += len(detections)

            if detections:
                self.logger.debug(f"Detected {len(detections)} items")

            location = self.location_source.current()
            for detection in detections:
                with self._submit_lock:
                    if not self._is_current(generation):
                        break
                    self._submit(detection, location)

            return True
        finally:
            self._busy.release()

    def _submit(self, detection: Detection, location):
        try:
            record = self.pipeline.submit(detection, location)
        except RecordStoreError as e:
            self.logger.error(f"Failed to store {detection.category.value} detection: {e}")
            return
        if record is not None:
            with self._state_lock:
                self.records_created += 1

    def render_overlay(self, frame: Optional[np.ndarray] = None) -> Optional[np.ndarray]:
        """
        Draw the current detections onto a copy of frame, by default the
        frame they were computed on. Returns None when there is no frame.
        """
        with self._state_lock:
            detections = list(self._detections)
            if frame is None:
                frame = self._last_frame
        if frame is None:
            return None
        return draw_overlay(frame, detections)

    def get_statistics(self) -> Dict:
        uptime_minutes = (time.time() - self.start_time) / 60.0 if self.start_time else 0.0
        with self._state_lock:
            return {
                "state": self._state.value,
                "uptime_minutes": uptime_minutes,
                "ticks": self.tick_count,
                "skipped_ticks": self.skipped_ticks,
                "detections": self.detection_count,
                "records_created": self.records_created,
            }

    def _log_statistics(self, prefix: str):
        stats = self.get_statistics()
        self.logger.info(
            f"{prefix} - Uptime: {stats['uptime_minutes']:.1f}min, "
            f"Ticks: {stats['ticks']} ({stats['skipped_ticks']} skipped), "
            f"Detections: {stats['detections']}, "
            f"Records: {stats['records_created']}"
        )
