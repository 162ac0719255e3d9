"""
Configuration loading
A JSON config file is merged over the defaults below
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "camera": {
        "source": "auto",
        "resolution": [640, 640],
        "fps": 30,
        "sample_dir": "data/samples",
    },
    "classifier": {
        "backend": "yolo",  # yolo | simulated
        "model_path": None,
        "confidence_threshold": 0.25,
        "load_delay_seconds": 1.5,
        "seed": None,
    },
    "pipeline": {
        "confidence_gate": 0.85,
    },
    "storage": {
        "directory": "data",
        "key": "greenlens_detections",
    },
    "aggregation": {
        "cluster_size": 5,
        "carbon_grams_per_item": 20,
        "hotspot_radius_meters": 50.0,
    },
    "location": {
        "latitude": None,
        "longitude": None,
    },
    "enrichment": {
        "model": "gemini-2.5-flash",
        "api_key_env": "GEMINI_API_KEY",
        "timeout_seconds": 60.0,
    },
    "loop": {
        "refresh_hz": 30.0,
    },
    "log_level": "INFO",
    "log_file": "logs/greenlens.log",
}


def merge_dicts(default: Dict, user: Dict) -> Dict:
    """Recursively merge user values over defaults"""
    result = copy.deepcopy(default)
    for key, value in user.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from file or use defaults"""
    if config_path and Path(config_path).exists():
        try:
            with open(config_path, 'r') as f:
                user_config = json.load(f)
            return merge_dicts(DEFAULT_CONFIG, user_config)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load config {config_path}: {e}; using defaults")
    elif config_path:
        logger.warning(f"Config file not found: {config_path}; using defaults")

    return copy.deepcopy(DEFAULT_CONFIG)
