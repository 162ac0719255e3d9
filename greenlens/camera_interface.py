"""
Pull-based frame source for the scanner
Supports USB/webcam, video files and a sample-image mode for development
"""

import itertools
import logging
import os
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

VIDEO_EXTENSIONS = ('.mp4', '.avi', '.mov', '.mkv')


class CameraInterface:
    """
    Frame source returning the current frame on demand.
    capture_frame() returns None while the source has no pixel data yet.
    """

    def __init__(self, source='auto', resolution: Tuple[int, int] = (640, 640), fps: int = 30,
                 sample_dir: str = "data/samples"):
        """
        Initialize frame source

        Args:
            source: 'auto', 'usb', 'simulated', video file path, or device index
            resolution: (width, height) tuple
            fps: Target frames per second
            sample_dir: Directory of .jpg files used in simulated mode
        """
        self.resolution = tuple(resolution)
        self.fps = fps
        self.sample_dir = Path(sample_dir)
        self.camera = None
        self.camera_type = None
        self.sample_images = []
        self._sample_cycle = None

        self.logger = logging.getLogger(__name__)

        if source == 'auto':
            source = 'usb' if self._test_usb_camera() else 'simulated'
            if source == 'simulated':
                self.logger.warning("No cameras detected, using simulation mode")
        self.setup_camera(source)

    def _test_usb_camera(self) -> bool:
        """Test if a USB camera is available"""
        try:
            cap = cv2.VideoCapture(0)
            if cap.isOpened():
                ret, frame = cap.read()
                cap.release()
                return ret and frame is not None
            return False
        except cv2.error:
            return False

    def setup_camera(self, source):
        """Setup camera based on source type"""
        try:
            if source == 'usb' or isinstance(source, int):
                self._setup_usb_camera(0 if source == 'usb' else source)
            elif isinstance(source, str) and (source.lower().endswith(VIDEO_EXTENSIONS) or os.path.exists(source)):
                self._setup_video_file(source)
            else:
                self._setup_simulated_camera()
        except (RuntimeError, FileNotFoundError, cv2.error) as e:
            self.logger.error(f"Failed to setup camera {source}: {e}")
            self._setup_simulated_camera()

    def _setup_usb_camera(self, device_id: int):
        self.camera = cv2.VideoCapture(device_id)
        self.camera.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
        self.camera.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])
        self.camera.set(cv2.CAP_PROP_FPS, self.fps)

        if not self.camera.isOpened():
            raise RuntimeError(f"Failed to open camera {device_id}")

        self.camera_type = 'usb'
        self.logger.info(f"USB Camera {device_id} initialized successfully")

    def _setup_video_file(self, video_path: str):
        if not os.path.exists(video_path):
            raise FileNotFoundError(f"Video file not found: {video_path}")

        self.camera = cv2.VideoCapture(video_path)
        if not self.camera.isOpened():
            raise RuntimeError(f"Could not open video file: {video_path}")

        self.camera_type = 'video'
        self.logger.info(f"Video file initialized: {video_path}")

    def _setup_simulated_camera(self):
        """Cycle through real sample images; no synthetic frames"""
        self.camera = None
        self.camera_type = 'simulated'

        for img_path in sorted(self.sample_dir.glob("*.jpg")):
            img = cv2.imread(str(img_path))
            if img is None:
                self.logger.warning(f"Failed to load sample image {img_path}")
                continue
            self.sample_images.append(cv2.resize(img, self.resolution))

        if self.sample_images:
            self._sample_cycle = itertools.cycle(self.sample_images)
            self.logger.info(f"Simulated camera with {len(self.sample_images)} sample images")
        else:
            self.logger.warning(f"No sample images in {self.sample_dir}; frames will not be ready")

    def capture_frame(self) -> Optional[np.ndarray]:
        """
        Capture the current frame

        Returns:
            BGR image, or None when no pixel data is available yet
        """
        try:
            if self.camera_type == 'usb':
                ret, frame = self.camera.read()
                return frame if ret else None
            if self.camera_type == 'video':
                return self._capture_video_frame()
            if self._sample_cycle is None:
                return None
            return next(self._sample_cycle).copy()
        except cv2.error as e:
            self.logger.error(f"Frame capture failed: {e}")
            return None

    def _capture_video_frame(self) -> Optional[np.ndarray]:
        ret, frame = self.camera.read()
        if ret:
            return frame
        # End of video - loop back to start
        self.camera.set(cv2.CAP_PROP_POS_FRAMES, 0)
        ret, frame = self.camera.read()
        return frame if ret else None

    def get_camera_info(self) -> dict:
        return {
            "type": self.camera_type,
            "resolution": self.resolution,
            "fps": self.fps,
            "available": self.camera is not None or bool(self.sample_images),
        }

    def release(self):
        """Release camera resources"""
        if self.camera is not None:
            self.camera.release()
            self.camera = None
            self.logger.info("Camera resources released")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
