import cv2
import numpy as np
import logging

from signal_processing.config import ChannelOrder, ExtractorConfig
from signal_processing.types import PixelRegion, RawSample


class FeatureExtractor:
    """Reduces a fingertip pixel region to the per-frame scalar features."""

    def __init__(self, config=None):
        self.logger = logging.getLogger('FingerPulse.FeatureExtractor')
        self.config = config or ExtractorConfig()

        # Channel positions of (red, green, blue) in numpy frames
        if self.config.channel_order is ChannelOrder.RGBA:
            self.channel_index = (0, 1, 2)
        else:
            self.channel_index = (2, 1, 0)

    def extract(self, region, timestamp):
        """
        Compute mean colour, coverage, brightness and red dominance.

        Args:
            region: PixelRegion or HxWxC uint8 array (C in {3, 4})
            timestamp: frame time in ms

        Returns:
            RawSample: valid=False with zeroed features if the region is unusable
        """
        pixels, channel_index = self._as_array(region)
        if pixels is None:
            self.logger.debug("Invalid frame at %.1f ms", timestamp)
            return RawSample(timestamp=timestamp)

        means = cv2.mean(pixels)
        r_idx, g_idx, b_idx = channel_index
        mean_red = float(means[r_idx])
        mean_green = float(means[g_idx])
        mean_blue = float(means[b_idx])

        red = np.ascontiguousarray(pixels[:, :, r_idx])
        in_range = cv2.inRange(red, self.config.min_red, self.config.max_red)
        coverage = cv2.countNonZero(in_range) / float(red.size)

        return RawSample(
            timestamp=timestamp,
            mean_red=mean_red,
            mean_green=mean_green,
            mean_blue=mean_blue,
            coverage_ratio=coverage,
            brightness=mean_red / 255.0,
            red_dominance=mean_red / max(mean_green, mean_blue, 1.0),
            valid=True,
        )

    def _as_array(self, region):
        """
        Returns:
            tuple: (pixels, channel_index), or (None, None) for an unusable region
        """
        if isinstance(region, PixelRegion):
            if region.width <= 0 or region.height <= 0:
                return None, None
            if len(region.data) != region.width * region.height * 4:
                return None, None
            # PixelRegion data is always RGBA
            return np.array(region.to_array()), (0, 1, 2)

        if not isinstance(region, np.ndarray):
            return None, None
        if region.ndim != 3 or region.shape[2] not in (3, 4) or region.size == 0:
            return None, None
        if region.dtype != np.uint8:
            if not np.all(np.isfinite(region)):
                return None, None
            region = np.clip(region, 0, 255).astype(np.uint8)
        return region, self.channel_index
