"""Shared fixtures and stubs for the GreenLens test suite."""

import threading
import uuid

import numpy as np
import pytest

from greenlens.models.classifier import WasteClassifier
from greenlens.models.records import Detection, GeoPoint, Record, WasteCategory
from greenlens.utils.record_pipeline import RecordPipeline
from greenlens.utils.record_store import RecordStore

AMSTERDAM = GeoPoint(lat=52.3676, lng=4.9041)


def make_record(trash_type=WasteCategory.BOTTLE, lat=52.3676, lng=4.9041,
                confidence=0.9, created_at=1_700_000_000_000):
    return Record(
        id=str(uuid.uuid4()),
        trash_type=trash_type,
        confidence=confidence,
        lat=lat,
        lng=lng,
        created_at=created_at,
    )


def make_detection(category=WasteCategory.CAN, confidence=0.95):
    return Detection(box=(10.0, 20.0, 100.0, 80.0), category=category, confidence=confidence)


class StubClassifier(WasteClassifier):
    """Returns a fixed detection list; detect() can be made to block"""

    def __init__(self, detections=None, fail_load=False, block=False):
        super().__init__()
        self.detections = detections if detections is not None else [make_detection()]
        self.fail_load = fail_load
        self.block = block
        self.entered = threading.Event()
        self.release = threading.Event()
        self.returned = threading.Event()
        self.calls = 0

    def _load(self):
        if self.fail_load:
            raise OSError("weights missing")

    def _infer(self, frame):
        self.calls += 1
        self.entered.set()
        if self.block:
            self.release.wait(5.0)
        self.returned.set()
        return list(self.detections)


class StubFrameSource:
    def __init__(self, frame=None, ready=True):
        self.frame = frame if frame is not None else np.zeros((64, 64, 3), dtype=np.uint8)
        self.ready = ready
        self.captures = 0

    def capture_frame(self):
        self.captures += 1
        return self.frame if self.ready else None


class StubLocation:
    def __init__(self, point=AMSTERDAM):
        self.point = point

    def current(self):
        return self.point


class RecordingPipeline:
    """Pipeline double that records every submit call"""

    def __init__(self):
        self.submissions = []
        self.lock = threading.Lock()

    def submit(self, detection, location):
        with self.lock:
            self.submissions.append((detection, location))
        return None


@pytest.fixture
def store(tmp_path):
    return RecordStore(data_dir=str(tmp_path / "data"))


@pytest.fixture
def pipeline(store):
    return RecordPipeline(store)


@pytest.fixture
def loaded_classifier():
    classifier = StubClassifier()
    classifier.load_model()
    assert classifier.wait_until_loaded(2.0)
    return classifier
