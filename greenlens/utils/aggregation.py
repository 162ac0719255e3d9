"""
Impact aggregation over the full record set
Feeds the dashboard metrics and the map markers/legend
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..models.records import (
    CATEGORY_COLORS,
    CATEGORY_LABELS,
    NO_CATEGORY,
    HeatmapPoint,
    HotspotCluster,
    ImpactMetrics,
    Record,
    WasteCategory,
)
from .record_store import RecordStore

EARTH_RADIUS_METERS = 6371000.0


def most_common_category(records: List[Record]) -> str:
    """Category with the highest count; ties go to the lexically smallest value"""
    counts = count_by_category(records)
    if not counts:
        return NO_CATEGORY
    return min(counts.items(), key=lambda item: (-item[1], item[0]))[0]


def count_by_category(records: List[Record]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for record in records:
        counts[record.trash_type.value] = counts.get(record.trash_type.value, 0) + 1
    return counts


def haversine_matrix(lats: np.ndarray, lngs: np.ndarray) -> np.ndarray:
    """Pairwise great-circle distances in meters"""
    lat = np.radians(lats)[:, None]
    lng = np.radians(lngs)[:, None]
    dlat = lat - lat.T
    dlng = lng - lng.T
    a = np.sin(dlat / 2) ** 2 + np.cos(lat) * np.cos(lat.T) * np.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def cluster_records(records: List[Record], radius_m: float,
                    min_records: int = 1) -> List[HotspotCluster]:
    """
    Greedy radius grouping: each unassigned record seeds a cluster of every
    unassigned record within radius_m of it. Records are visited oldest first.
    """
    n = len(records)
    if n == 0:
        return []

    lats = np.array([r.lat for r in records], dtype=np.float64)
    lngs = np.array([r.lng for r in records], dtype=np.float64)
    distances = haversine_matrix(lats, lngs)

    used = np.zeros((n,), dtype=bool)
    clusters = []
    for i in range(n):
        if used[i]:
            continue
        members = np.where((distances[i] <= radius_m) & ~used)[0]
        used[members] = True
        if members.size < min_records:
            continue

        member_records = [records[j] for j in members]
        clusters.append(HotspotCluster(
            lat=float(lats[members].mean()),
            lng=float(lngs[members].mean()),
            count=int(members.size),
            dominant_type=most_common_category(member_records),
            record_ids=[r.id for r in member_records],
        ))

    return clusters


class ImpactAggregator:
    """
    Computes impact metrics and hotspots from the current store snapshot.
    Results are memoized per store version.
    """

    def __init__(self, store: RecordStore, cluster_size: int = 5,
                 carbon_grams_per_item: float = 20, hotspot_radius_m: float = 50.0):
        """
        Args:
            store: Record store to aggregate
            cluster_size: Records per hotspot in the coarse hotspot count
            carbon_grams_per_item: CO2 savings credited per recorded item
            hotspot_radius_m: Distance threshold for spatial clustering
        """
        if cluster_size < 1:
            raise ValueError(f"cluster_size must be at least 1, got {cluster_size}")
        self.store = store
        self.cluster_size = cluster_size
        self.carbon_grams_per_item = carbon_grams_per_item
        self.hotspot_radius_m = hotspot_radius_m
        self._cache: Dict[str, object] = {}
        self._cache_version: Optional[int] = None
        self.logger = logging.getLogger(__name__)

    def _cached(self, key: str, compute):
        if self._cache_version != self.store.version:
            self._cache = {}
            self._cache_version = self.store.version
        if key not in self._cache:
            self._cache[key] = compute()
        return self._cache[key]

    def _records(self) -> List[Record]:
        return self._cached("records", self.store.list_all)

    def hotspot_count(self, total_items: int) -> int:
        return math.ceil(total_items / self.cluster_size)

    def compute_metrics(self) -> ImpactMetrics:
        return self._cached("metrics", self._compute_metrics)

    def _compute_metrics(self) -> ImpactMetrics:
        records = self._records()
        total_items = len(records)
        if total_items == 0:
            return ImpactMetrics.empty()

        metrics = ImpactMetrics(
            total_items=total_items,
            most_common_type=most_common_category(records),
            hotspots_found=self.hotspot_count(total_items),
            carbon_offset_estimate=total_items * self.carbon_grams_per_item,
        )
        self.logger.debug(f"Computed metrics: {metrics}")
        return metrics

    def compute_hotspots(self) -> int:
        """Coarse hotspot count, ceil(total / cluster_size)"""
        return self.hotspot_count(len(self._records()))

    def category_breakdown(self) -> Dict[str, int]:
        """Record count per category, in first-seen order"""
        return self._cached("breakdown", lambda: count_by_category(self._records()))

    def heatmap_points(self) -> List[HeatmapPoint]:
        return [HeatmapPoint(lat=r.lat, lng=r.lng, intensity=r.confidence)
                for r in self._records()]

    def find_hotspot_clusters(self, radius_m: Optional[float] = None,
                              min_records: int = 1) -> List[HotspotCluster]:
        """Spatial clusters of records lying within radius_m of a seed record"""
        radius = self.hotspot_radius_m if radius_m is None else radius_m
        return self._cached(
            f"clusters:{radius}:{min_records}",
            lambda: cluster_records(self._records(), radius, min_records),
        )

    @staticmethod
    def legend() -> List[Tuple[str, str, str]]:
        """(category, label, hex color) for every category"""
        return [(category.value, CATEGORY_LABELS[category], CATEGORY_COLORS[category])
                for category in WasteCategory]
