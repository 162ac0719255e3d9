"""Tests for the confidence gate and deep-scan path."""

import time

import numpy as np
import pytest

from conftest import AMSTERDAM, make_detection
from greenlens.models.enrichment import EnrichmentError, WasteAnalysis
from greenlens.models.records import WasteCategory
from greenlens.utils.record_pipeline import RecordPipeline
from greenlens.utils.record_store import RecordStoreError

ANALYSIS = WasteAnalysis(
    item_name="Aluminium soda can",
    material="Aluminium",
    recyclability="Recyclable",
    disposal_advice="Rinse and place in the metal recycling bin.",
)


class FakeEnricher:
    def __init__(self, result=ANALYSIS, error=None):
        self.result = result
        self.error = error
        self.images = []

    def analyze(self, image_bytes):
        self.images.append(image_bytes)
        if self.error:
            raise self.error
        return self.result


@pytest.mark.parametrize("confidence", [0.1, 0.5, 0.85])
def test_low_confidence_is_dropped(pipeline, store, confidence) -> None:
    assert pipeline.submit(make_detection(confidence=confidence), AMSTERDAM) is None
    assert store.list_all() == []


def test_unknown_location_is_dropped(pipeline, store) -> None:
    assert pipeline.submit(make_detection(confidence=0.99), None) is None
    assert store.list_all() == []


def test_accepted_detection_becomes_one_record(pipeline, store) -> None:
    detection = make_detection(category=WasteCategory.PLASTIC_BAG, confidence=0.9)
    before = int(time.time() * 1000)

    record = pipeline.submit(detection, AMSTERDAM)

    assert record is not None
    assert record.trash_type == WasteCategory.PLASTIC_BAG
    assert record.confidence == 0.9
    assert (record.lat, record.lng) == (AMSTERDAM.lat, AMSTERDAM.lng)
    assert record.created_at >= before
    assert record.description is None
    assert store.list_all() == [record]


def test_identical_submissions_yield_distinct_records(pipeline, store) -> None:
    detection = make_detection(confidence=0.95)
    first = pipeline.submit(detection, AMSTERDAM)
    second = pipeline.submit(detection, AMSTERDAM)

    assert first.id != second.id
    assert first.id != detection.id
    assert len(store.list_all()) == 2


def test_store_failure_reaches_submitter() -> None:
    class BrokenStore:
        def append(self, record):
            raise RecordStoreError("read-only filesystem")

    pipeline = RecordPipeline(BrokenStore())
    with pytest.raises(RecordStoreError):
        pipeline.submit(make_detection(confidence=0.99), AMSTERDAM)


def test_enriched_submission_always_accepted_with_location(pipeline, store) -> None:
    record = pipeline.submit_enriched(ANALYSIS, AMSTERDAM)

    assert record.trash_type == WasteCategory.TRASH
    assert record.confidence == 1.0
    assert record.description == "Aluminium soda can"
    assert store.list_all() == [record]
    assert pipeline.submit_enriched(ANALYSIS, None) is None
    assert len(store.list_all()) == 1


def test_deep_scan_stores_enriched_record(store) -> None:
    enricher = FakeEnricher()
    pipeline = RecordPipeline(store, enricher=enricher)
    frame = np.full((48, 64, 3), 127, dtype=np.uint8)

    result = pipeline.deep_scan(frame, AMSTERDAM)

    assert result.analysis == ANALYSIS
    assert result.record.description == ANALYSIS.item_name
    assert enricher.images[0][:2] == b"\xff\xd8"  # JPEG magic
    assert store.list_all() == [result.record]


def test_deep_scan_failure_writes_nothing(store) -> None:
    pipeline = RecordPipeline(store, enricher=FakeEnricher(error=EnrichmentError("service down")))
    frame = np.zeros((32, 32, 3), dtype=np.uint8)

    with pytest.raises(EnrichmentError):
        pipeline.deep_scan(frame, AMSTERDAM)
    assert store.list_all() == []


def test_deep_scan_without_frame_or_enricher(store) -> None:
    with pytest.raises(EnrichmentError):
        RecordPipeline(store).deep_scan(np.zeros((8, 8, 3), dtype=np.uint8), AMSTERDAM)
    with pytest.raises(EnrichmentError):
        RecordPipeline(store, enricher=FakeEnricher()).deep_scan(None, AMSTERDAM)
    assert store.list_all() == []
