"""
Models package initialization
"""

from .classifier import SimulatedClassifier, WasteClassifier, YoloClassifier
from .enrichment import EnrichmentError, GeminiEnricher, WasteAnalysis
from .records import Detection, ImpactMetrics, Record, WasteCategory

__all__ = [
    'Detection', 'EnrichmentError', 'GeminiEnricher', 'ImpactMetrics', 'Record',
    'SimulatedClassifier', 'WasteAnalysis', 'WasteCategory', 'WasteClassifier',
    'YoloClassifier',
]
