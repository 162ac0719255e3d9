#!/usr/bin/env python3
"""
GreenLens - Litter Scanner Application

This script wires all components together:
- Frame source and location fix
- Litter classifier (YOLOv8 or simulated)
- Detection loop feeding the record pipeline
- JSON record store
- Impact metrics and hotspot aggregation

Usage:
    python main.py [--config config.json] [--simulate] [--debug] [--display]
    python main.py --metrics
    python main.py --deep-scan --lat 52.37 --lng 4.89
"""

import argparse
import json
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

import cv2
import numpy as np

from greenlens.camera_interface import CameraInterface
from greenlens.config import load_config
from greenlens.detection_loop import DetectionLoop
from greenlens.location import LocationSource
from greenlens.models.classifier import (
    ClassifierLoadError,
    SimulatedClassifier,
    WasteClassifier,
    YoloClassifier,
)
from greenlens.models.enrichment import EnrichmentError, GeminiEnricher
from greenlens.models.records import GeoPoint
from greenlens.utils.aggregation import ImpactAggregator
from greenlens.utils.record_pipeline import DeepScanResult, RecordPipeline
from greenlens.utils.record_store import RecordStore

system = None


def setup_logging(config: Dict[str, Any]):
    """Setup logging configuration"""
    log_level = getattr(logging, config.get('log_level', 'INFO'))
    handlers = [logging.StreamHandler()]

    log_file = config.get('log_file')
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def create_classifier(config: Dict[str, Any]) -> WasteClassifier:
    classifier_config = config.get('classifier', {})
    if classifier_config.get('backend') == 'simulated':
        return SimulatedClassifier(
            load_delay_seconds=classifier_config.get('load_delay_seconds', 1.5),
            seed=classifier_config.get('seed'),
        )
    return YoloClassifier(
        model_path=classifier_config.get('model_path'),
        confidence_threshold=classifier_config.get('confidence_threshold', 0.25),
    )


class GreenLensSystem:
    """
    Scanner session
    Owns one detection stream, the record store and the aggregation engine
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.running = False
        self.logger = logging.getLogger(__name__)

        storage_config = config.get('storage', {})
        self.store = RecordStore(
            data_dir=storage_config.get('directory', 'data'),
            key=storage_config.get('key', 'greenlens_detections'),
        )

        enrichment_config = config.get('enrichment', {})
        self.pipeline = RecordPipeline(
            self.store,
            enricher=GeminiEnricher(
                model=enrichment_config.get('model', 'gemini-2.5-flash'),
                api_key_env=enrichment_config.get('api_key_env', 'GEMINI_API_KEY'),
                timeout=enrichment_config.get('timeout_seconds'),
            ),
            confidence_threshold=config.get('pipeline', {}).get('confidence_gate', 0.85),
        )

        aggregation_config = config.get('aggregation', {})
        self.aggregator = ImpactAggregator(
            self.store,
            cluster_size=aggregation_config.get('cluster_size', 5),
            carbon_grams_per_item=aggregation_config.get('carbon_grams_per_item', 20),
            hotspot_radius_m=aggregation_config.get('hotspot_radius_meters', 50.0),
        )

        location_config = config.get('location', {})
        initial = None
        if location_config.get('latitude') is not None and location_config.get('longitude') is not None:
            initial = GeoPoint(float(location_config['latitude']), float(location_config['longitude']))
        self.location = LocationSource(initial)

        self.camera: Optional[CameraInterface] = None
        self.classifier: Optional[WasteClassifier] = None
        self.loop: Optional[DetectionLoop] = None

    def initialize_components(self):
        """Open the frame source and start loading the classifier"""
        camera_config = self.config.get('camera', {})
        self.camera = CameraInterface(
            source=camera_config.get('source', 'auto'),
            resolution=tuple(camera_config.get('resolution', [640, 640])),
            fps=camera_config.get('fps', 30),
            sample_dir=camera_config.get('sample_dir', 'data/samples'),
        )

        self.classifier = create_classifier(self.config)
        self.classifier.load_model()

        self.loop = DetectionLoop(
            self.classifier,
            self.camera,
            self.pipeline,
            self.location,
            refresh_hz=self.config.get('loop', {}).get('refresh_hz', 30.0),
        )

    def start(self, load_timeout: Optional[float] = None):
        """Load the model and arm the detection loop"""
        if self.running:
            self.logger.warning("System is already running")
            return

        self.initialize_components()
        self.logger.info("Loading AI model...")
        if not self.classifier.wait_until_loaded(load_timeout):
            self.stop()
            raise ClassifierLoadError(f"Classifier not ready: {self.classifier.load_error}")

        self.loop.start()
        self.running = True
        self.logger.info("GreenLens scanner started")

    def render_frame(self) -> Optional[np.ndarray]:
        """
        Display refresh: run one detection tick and return the classified
        frame with its overlay. The camera is only read by the loop.
        """
        self.loop.tick()
        return self.loop.render_overlay()

    def stop(self):
        """Stop detection and release resources"""
        if self.loop:
            self.loop.dispose()
        if self.camera:
            self.camera.release()
        if self.running:
            self._log_impact()
        self.running = False

    def deep_scan(self) -> DeepScanResult:
        """Analyze the current frame with the enrichment service"""
        if self.camera is None:
            camera_config = self.config.get('camera', {})
            self.camera = CameraInterface(
                source=camera_config.get('source', 'auto'),
                resolution=tuple(camera_config.get('resolution', [640, 640])),
                sample_dir=camera_config.get('sample_dir', 'data/samples'),
            )
        frame = self.camera.capture_frame()
        return self.pipeline.deep_scan(frame, self.location.current())

    def get_status(self) -> Dict:
        status = {
            "status": "running" if self.running else "stopped",
            "location": None,
            "metrics": self.aggregator.compute_metrics().to_dict(),
        }
        current = self.location.current()
        if current:
            status["location"] = [current.lat, current.lng]
        if self.loop:
            status["loop"] = self.loop.get_statistics()
        return status

    def _log_impact(self):
        metrics = self.aggregator.compute_metrics()
        self.logger.info(
            f"Impact - Items: {metrics.total_items}, "
            f"Top type: {metrics.most_common_type}, "
            f"Hotspots: {metrics.hotspots_found}, "
            f"CO2 saved: {metrics.carbon_offset_estimate}g"
        )


def print_metrics(greenlens: GreenLensSystem):
    """Dashboard summary as JSON"""
    aggregator = greenlens.aggregator
    clusters = aggregator.find_hotspot_clusters()
    report = {
        "metrics": aggregator.compute_metrics().to_dict(),
        "composition": aggregator.category_breakdown(),
        "clusters": [
            {"lat": c.lat, "lng": c.lng, "count": c.count, "dominant_type": c.dominant_type}
            for c in clusters
        ],
        "legend": [{"type": t, "label": label, "color": color} for t, label, color in aggregator.legend()],
    }
    print(json.dumps(report, indent=2))


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    print("\nReceived shutdown signal. Stopping scanner...")
    if system:
        system.stop()
    sys.exit(0)


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="GreenLens litter scanner")
    parser.add_argument('--config', '-c', help='Configuration file path')
    parser.add_argument('--simulate', '-s', action='store_true',
                        help='Use the simulated classifier')
    parser.add_argument('--video', '-v', help='Use video file as input source')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')
    parser.add_argument('--lat', type=float, help='Fixed latitude for records')
    parser.add_argument('--lng', type=float, help='Fixed longitude for records')
    parser.add_argument('--display', action='store_true',
                        help='Show the camera feed with detection overlay')
    parser.add_argument('--metrics', action='store_true',
                        help='Print impact metrics and exit')
    parser.add_argument('--deep-scan', action='store_true',
                        help='Analyze one frame with the AI service and exit')
    parser.add_argument('--export-csv', metavar='PATH',
                        help='Export all records to CSV and exit')

    args = parser.parse_args()

    config = load_config(args.config)

    if args.simulate:
        config['classifier']['backend'] = 'simulated'
    if args.video:
        config['camera']['source'] = args.video
    if args.debug:
        config['log_level'] = 'DEBUG'
    if args.display:
        # The display loop drives ticks itself
        config['loop']['refresh_hz'] = None
    if args.lat is not None and args.lng is not None:
        config['location'] = {'latitude': args.lat, 'longitude': args.lng}

    setup_logging(config)

    global system
    system = GreenLensSystem(config)

    if args.metrics:
        print_metrics(system)
        return
    if args.export_csv:
        print(f"Exported records to {system.store.export_csv(args.export_csv)}")
        return
    if args.deep_scan:
        try:
            result = system.deep_scan()
        except EnrichmentError as e:
            print(f"AI analysis failed. Please try again. ({e})")
            sys.exit(1)
        finally:
            system.stop()
        print(f"{result.analysis.item_name}: {result.analysis.advice}")
        if result.record is None:
            print("Location unknown - result not recorded")
        return

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        print("Starting GreenLens scanner...")
        print(f"Camera source: {config['camera']['source']}")
        print("Press Ctrl+C to stop")

        system.start()

        # Keep main thread alive; it doubles as the display refresh
        while system.running:
            if args.display:
                image = system.render_frame()
                if image is not None:
                    cv2.imshow("GreenLens", image)
                if cv2.waitKey(1) & 0xFF == ord('q'):
                    break
            else:
                time.sleep(1.0)

    except KeyboardInterrupt:
        print("\nShutdown requested by user")
    except ClassifierLoadError as e:
        print(f"Model failed to load: {e}")
    finally:
        system.stop()
        if args.display:
            cv2.destroyAllWindows()


if __name__ == "__main__":
    main()
