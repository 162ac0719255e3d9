"""
GreenLens litter scanner

Classifies litter in a live video feed, turns high-confidence sightings into
geotagged records, and aggregates them into impact metrics and hotspots.
"""

__version__ = "1.0.0"
__author__ = "GreenLens Project"
