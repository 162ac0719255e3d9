"""
Record pipeline - turns detections into persisted records
Only high-confidence sightings with a known location are kept
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from ..models.enrichment import EnrichmentError, GeminiEnricher, WasteAnalysis
from ..models.records import Detection, GeoPoint, Record, WasteCategory
from .record_store import RecordStore

HIGH_CONFIDENCE_THRESHOLD = 0.85

logger = logging.getLogger(__name__)


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class DeepScanResult:
    analysis: WasteAnalysis
    record: Optional[Record]


class RecordPipeline:
    """
    Stateless gate between the detection loop and the record store.
    Each accepted submission results in exactly one store write.
    """

    def __init__(self, store: RecordStore, enricher: Optional[GeminiEnricher] = None,
                 confidence_threshold: float = HIGH_CONFIDENCE_THRESHOLD):
        self.store = store
        self.enricher = enricher
        self.confidence_threshold = confidence_threshold

    def submit(self, detection: Detection, location: Optional[GeoPoint]) -> Optional[Record]:
        """
        Persist a detection if it passes the confidence gate

        Args:
            detection: Classifier output
            location: Current location fix, None when unknown

        Returns:
            The stored record, or None if the detection was dropped

        Raises:
            RecordStoreError: if the store write failed
        """
        if location is None or detection.confidence <= self.confidence_threshold:
            return None

        record = Record(
            id=str(uuid.uuid4()),
            trash_type=detection.category,
            confidence=detection.confidence,
            lat=location.lat,
            lng=location.lng,
            created_at=now_millis(),
        )
        self.store.append(record)
        logger.info(f"Recorded {record.trash_type.value} ({record.confidence:.2f}) "
                    f"at {record.lat:.4f}, {record.lng:.4f}")
        return record

    def submit_enriched(self, analysis: WasteAnalysis,
                        location: Optional[GeoPoint]) -> Optional[Record]:
        """Persist a deep-scan result; always accepted when a location is known"""
        if location is None:
            return None

        record = Record(
            id=str(uuid.uuid4()),
            trash_type=WasteCategory.TRASH,
            confidence=1.0,
            lat=location.lat,
            lng=location.lng,
            created_at=now_millis(),
            description=analysis.item_name,
        )
        self.store.append(record)
        logger.info(f"Recorded deep scan '{analysis.item_name}' at {record.lat:.4f}, {record.lng:.4f}")
        return record

    def deep_scan(self, frame: np.ndarray, location: Optional[GeoPoint]) -> DeepScanResult:
        """
        Analyze a still frame with the enrichment service and store the result

        Raises:
            EnrichmentError: if encoding or analysis failed; nothing is stored
        """
        if self.enricher is None:
            raise EnrichmentError("No enrichment service configured")
        if frame is None:
            raise EnrichmentError("No frame available to analyze")

        try:
            ok, encoded = cv2.imencode(".jpg", frame)
        except cv2.error as e:
            raise EnrichmentError(f"Failed to encode frame as JPEG: {e}") from e
        if not ok:
            raise EnrichmentError("Failed to encode frame as JPEG")

        analysis = self.enricher.analyze(encoded.tobytes())
        record = self.submit_enriched(analysis, location)
        return DeepScanResult(analysis=analysis, record=record)
