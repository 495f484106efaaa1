import cv2
import numpy as np
import os
import logging
import time


def center_roi(frame, fraction=0.5):
    """
    Crop the central region of a frame, where the fingertip covers the lens.

    Args:
        frame: HxWxC image
        fraction: side length of the crop relative to the frame (0, 1]

    Returns:
        View of the central crop, or None for an empty frame
    """
    if frame is None or frame.size == 0:
        return None
    if not 0 < fraction <= 1:
        raise ValueError(f"fraction must be within (0, 1], got {fraction}")

    height, width = frame.shape[:2]
    roi_h = max(1, int(height * fraction))
    roi_w = max(1, int(width * fraction))
    y = (height - roi_h) // 2
    x = (width - roi_w) // 2
    return frame[y:y + roi_h, x:x + roi_w]


class VideoCapture:
    def __init__(self, max_fps=30):
        """Initialize video capture."""
        self.logger = logging.getLogger('FingerPulse.VideoCapture')

        self.cap = None
        self.source = 0  # Default to first camera
        self.frame_count = 0
        self.fps = 0
        self.resolution = (0, 0)
        self.last_frame_time = None
        self.min_frame_interval = 1.0 / max_fps
        self.start_time = None
        self.logger.info("VideoCapture initialized (max %d FPS)", max_fps)

    def start(self, source=None):
        """Open a camera index or video file; returns False if it cannot be read."""
        if source is not None:
            self.source = source

        self.stop()
        self.logger.info("Attempting to open video source: %s", self.source)

        if isinstance(self.source, str):
            if not os.path.exists(self.source):
                self.logger.error("Video file not found: %s", self.source)
                raise FileNotFoundError(f"Video file not found: {self.source}")
            self.cap = cv2.VideoCapture(self.source)
        else:
            self.cap = cv2.VideoCapture(self.source, cv2.CAP_ANY)

        if not self.cap.isOpened():
            self.logger.error("Failed to open video source: %s", self.source)
            self.cap = None
            return False

        self.fps = self.cap.get(cv2.CAP_PROP_FPS)
        width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.resolution = (width, height)
        self.logger.info("Video properties - FPS: %.2f, Resolution: %dx%d", self.fps, width, height)

        self.frame_count = 0
        self.last_frame_time = None
        self.start_time = time.monotonic()
        return True

    def stop(self):
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            self.logger.info("Video capture stopped after %d frames", self.frame_count)
        self.frame_count = 0
        self.last_frame_time = None

    def get_frame(self):
        """
        Read the next frame with frame rate control.

        Returns:
            tuple: (BGR frame, timestamp_ms) or (None, None) at end of stream
        """
        if self.cap is None or not self.cap.isOpened():
            self.logger.warning("Attempting to read from invalid capture")
            return None, None

        now = time.monotonic()
        if self.last_frame_time is not None:
            elapsed = now - self.last_frame_time
            if elapsed < self.min_frame_interval:
                time.sleep(self.min_frame_interval - elapsed)

        ret, frame = self.cap.read()
        if not ret or frame is None or frame.size == 0:
            if isinstance(self.source, str):
                self.logger.info("End of video file reached")
            else:
                self.logger.warning("Failed to read frame %d", self.frame_count + 1)
            return None, None

        self.frame_count += 1
        self.last_frame_time = time.monotonic()

        # Files are timed by their own frame rate, cameras by the wall clock
        if isinstance(self.source, str) and self.fps > 0:
            timestamp = self.cap.get(cv2.CAP_PROP_POS_MSEC)
            if timestamp <= 0:
                timestamp = (self.frame_count - 1) * 1000.0 / self.fps
        else:
            timestamp = (self.last_frame_time - self.start_time) * 1000.0

        self.logger.debug("Read frame %d at %.1f ms", self.frame_count, timestamp)
        return np.ascontiguousarray(frame), float(timestamp)

    def is_opened(self):
        return self.cap is not None and self.cap.isOpened()

    def get_fps(self):
        return self.fps

    def get_resolution(self):
        return self.resolution

    def __del__(self):
        self.stop()
