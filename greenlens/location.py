"""
Best-effort location source
A fix is resolved at most once per session; absence is a normal state
"""

import logging
import threading
from typing import Callable, Optional, Tuple

from .models.records import GeoPoint

logger = logging.getLogger(__name__)


class LocationSource:
    def __init__(self, initial: Optional[GeoPoint] = None):
        self._location = initial
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def current(self) -> Optional[GeoPoint]:
        with self._lock:
            return self._location

    def update(self, lat: float, lng: float) -> GeoPoint:
        point = GeoPoint(lat=float(lat), lng=float(lng))
        with self._lock:
            self._location = point
        logger.info(f"Location fix: {point.lat:.4f}, {point.lng:.4f}")
        return point

    def acquire(self, fetch: Callable[[], Optional[Tuple[float, float]]]) -> threading.Thread:
        """
        Resolve a fix in the background

        Args:
            fetch: Callable returning (lat, lng) or None
        """
        if self._thread is None:
            self._thread = threading.Thread(target=self._acquire, args=(fetch,), daemon=True)
            self._thread.start()
        return self._thread

    def _acquire(self, fetch):
        try:
            fix = fetch()
        except Exception as e:
            logger.warning(f"Location unavailable: {e}")
            return
        if fix is None:
            logger.warning("Location unavailable")
            return
        self.update(*fix)
