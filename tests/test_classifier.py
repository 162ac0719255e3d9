"""Tests for classifier adapters and overlay drawing."""

import numpy as np
import pytest

from conftest import StubClassifier, make_detection
from greenlens.models.classifier import SimulatedClassifier, draw_overlay, is_valid_frame
from greenlens.models.records import WasteCategory


def frame(h=120, w=160):
    return np.zeros((h, w, 3), dtype=np.uint8)


@pytest.mark.parametrize("bad", [None, "frame", np.zeros((10, 10)), np.zeros((0, 10, 3)),
                                 np.zeros((10, 10, 4))])
def test_malformed_frames_return_no_detections(loaded_classifier, bad) -> None:
    assert not is_valid_frame(bad)
    assert loaded_classifier.detect(bad) == []
    assert loaded_classifier.calls == 0


def test_detect_before_load_returns_nothing() -> None:
    classifier = StubClassifier()
    assert classifier.detect(frame()) == []
    assert classifier.calls == 0


def test_inference_errors_are_swallowed(loaded_classifier) -> None:
    def explode(_frame):
        raise RuntimeError("tensor shape mismatch")

    loaded_classifier._infer = explode
    assert loaded_classifier.detect(frame()) == []


def test_load_failure_is_kept() -> None:
    classifier = StubClassifier(fail_load=True)
    ready = classifier.load_model()

    assert not classifier.wait_until_loaded(2.0)
    assert not ready.is_set()
    assert isinstance(classifier.load_error, OSError)


def test_simulated_classifier_is_reproducible() -> None:
    def run(seed):
        classifier = SimulatedClassifier(load_delay_seconds=0, detection_rate=0.5, seed=seed)
        classifier.load_model()
        classifier.wait_until_loaded(2.0)
        return [classifier.detect(frame()) for _ in range(40)]

    first, second = run(7), run(7)
    assert [[(d.category, d.confidence, d.box) for d in ds] for ds in first] == \
        [[(d.category, d.confidence, d.box) for d in ds] for ds in second]

    detections = [d for ds in first for d in ds]
    assert detections
    for detection in detections:
        assert 0.75 <= detection.confidence <= 0.95
        x, y, w, h = detection.box
        assert x >= 0 and y >= 0 and x + w <= 160 and y + h <= 120


def test_draw_overlay_does_not_modify_input() -> None:
    image = frame()
    annotated = draw_overlay(image, [make_detection(WasteCategory.BOTTLE, 0.91)])

    assert annotated.shape == image.shape
    assert annotated.any()
    assert not image.any()
