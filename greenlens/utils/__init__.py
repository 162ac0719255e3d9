"""
Utilities package initialization
"""

from .aggregation import ImpactAggregator
from .record_pipeline import RecordPipeline
from .record_store import RecordStore, RecordStoreError

__all__ = ['ImpactAggregator', 'RecordPipeline', 'RecordStore', 'RecordStoreError']
