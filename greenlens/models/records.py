"""
Data model for litter sightings
Detections are transient classifier output; records are persisted sightings
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class WasteCategory(str, Enum):
    """Closed set of litter categories the classifier may report"""
    BOTTLE = "bottle"
    PLASTIC_BAG = "plastic_bag"
    CAN = "can"
    CUP = "cup"
    TRASH = "trash"


CATEGORY_LABELS: Dict[WasteCategory, str] = {
    WasteCategory.BOTTLE: "Bottle",
    WasteCategory.PLASTIC_BAG: "Plastic Bag",
    WasteCategory.CAN: "Can",
    WasteCategory.CUP: "Cup",
    WasteCategory.TRASH: "General Trash",
}

CATEGORY_COLORS: Dict[WasteCategory, str] = {
    WasteCategory.BOTTLE: "#3b82f6",       # blue
    WasteCategory.PLASTIC_BAG: "#9ca3af",  # gray
    WasteCategory.CAN: "#ef4444",          # red
    WasteCategory.CUP: "#f59e0b",          # amber
    WasteCategory.TRASH: "#10b981",        # emerald
}

# Sentinel for "most common type" when there are no records
NO_CATEGORY = "N/A"


def hex_to_bgr(color: str) -> Tuple[int, int, int]:
    """Convert '#rrggbb' to an OpenCV BGR tuple"""
    value = color.lstrip("#")
    r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    return (b, g, r)


@dataclass
class Detection:
    """Single classifier output for one frame"""
    box: Tuple[float, float, float, float]  # x, y, width, height
    category: WasteCategory
    confidence: float
    label: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not self.label:
            self.label = CATEGORY_LABELS[self.category]


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(frozen=True)
class Record:
    """Persisted, geotagged waste sighting. Immutable once created."""
    id: str
    trash_type: WasteCategory
    confidence: float
    lat: float
    lng: float
    created_at: int  # milliseconds since epoch
    description: Optional[str] = None

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization"""
        data = {
            "id": self.id,
            "trash_type": self.trash_type.value,
            "confidence": self.confidence,
            "lat": self.lat,
            "lng": self.lng,
            "created_at": self.created_at,
        }
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "Record":
        return cls(
            id=str(data["id"]),
            trash_type=WasteCategory(data["trash_type"]),
            confidence=float(data["confidence"]),
            lat=float(data["lat"]),
            lng=float(data["lng"]),
            created_at=int(data["created_at"]),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class ImpactMetrics:
    """Dashboard figures derived from the full record set"""
    total_items: int
    most_common_type: str
    hotspots_found: int
    carbon_offset_estimate: float  # grams

    @classmethod
    def empty(cls) -> "ImpactMetrics":
        return cls(total_items=0, most_common_type=NO_CATEGORY,
                   hotspots_found=0, carbon_offset_estimate=0)

    def to_dict(self) -> Dict:
        return {
            "total_items": self.total_items,
            "most_common_type": self.most_common_type,
            "hotspots_found": self.hotspots_found,
            "carbon_offset_estimate": self.carbon_offset_estimate,
        }


@dataclass(frozen=True)
class HeatmapPoint:
    lat: float
    lng: float
    intensity: float


@dataclass
class HotspotCluster:
    """Group of records lying within a distance threshold of each other"""
    lat: float
    lng: float
    count: int
    dominant_type: str
    record_ids: List[str] = field(default_factory=list)
