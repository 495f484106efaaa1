import numpy as np
import logging
from collections import deque

from .config import QualityConfig
from .types import QualityLevel, QualityScore


class QualityScorer:
    """Weighted multi-metric signal quality, graded into QualityLevel bands."""

    def __init__(self, config=None):
        self.logger = logging.getLogger('FingerPulse.QualityScorer')
        self.config = config or QualityConfig()
        self.history = deque(maxlen=self.config.history_size)
        self.red_history = deque(maxlen=self.config.motion_window + 1)
        self.last_level = None

    def score(self, raw, spectral, snapshot):
        """
        Score one frame.

        Args:
            raw: RawSample of the frame
            spectral: SpectralFeatures of the current window
            snapshot: BufferSnapshot of conditioned samples

        Returns:
            QualityScore with overall in [0, 1]
        """
        cfg = self.config
        self.red_history.append(raw.mean_red)

        components = {
            'snr': self._snr_score(spectral),
            'stability': self._stability_score(),
            'motion': self._motion_score(),
            'brightness': self._brightness_score(raw.brightness),
            'contrast': self._contrast_score(snapshot, raw.mean_red),
            'frequency': self._frequency_score(spectral),
        }
        overall = sum(cfg.weights[name] * value for name, value in components.items())
        overall = float(min(max(overall, 0.0), 1.0))
        self.history.append(overall)

        level = self.grade(overall)
        if level != self.last_level:
            self.logger.debug("Signal quality now %s (%.2f)", level.value, overall)
            self.last_level = level
        return QualityScore(level=level, overall=overall, components=components)

    def grade(self, overall):
        cuts = self.config.thresholds
        if overall >= cuts['excellent']:
            return QualityLevel.EXCELLENT
        if overall >= cuts['good']:
            return QualityLevel.GOOD
        if overall >= cuts['fair']:
            return QualityLevel.FAIR
        if overall >= cuts['poor']:
            return QualityLevel.POOR
        return QualityLevel.INVALID

    def _snr_score(self, spectral):
        if spectral.is_empty:
            return 0.0
        return float(np.clip(spectral.snr_db / self.config.min_snr_db, 0.0, 1.0))

    def _stability_score(self):
        recent = list(self.history)[-self.config.stability_window:]
        if len(recent) < 2:
            return 1.0
        return float(np.exp(-self.config.stability_sensitivity * np.var(recent)))

    def _motion_score(self):
        reds = np.asarray(self.red_history, dtype=np.float64)
        if len(reds) < 2:
            return 1.0
        previous = np.maximum(reds[:-1], 1.0)
        displacement = np.mean(np.abs(np.diff(reds)) / previous)
        return float(1.0 - min(1.0, displacement / self.config.max_motion))

    def _brightness_score(self, brightness):
        cfg = self.config
        if brightness < cfg.min_brightness:
            return float(max(0.0, brightness / cfg.min_brightness))
        if brightness > cfg.max_brightness:
            return float(max(0.0, (1.0 - brightness) / (1.0 - cfg.max_brightness)))
        return 1.0

    def _contrast_score(self, snapshot, mean_red):
        if len(snapshot) < 2 or mean_red <= 0:
            return 0.0
        relative_range = np.ptp(snapshot.values) / mean_red
        return float(min(1.0, relative_range / self.config.min_contrast))

    def _frequency_score(self, spectral):
        cfg = self.config
        if spectral.is_empty:
            return 0.0
        if not cfg.min_frequency_hz <= spectral.dominant_frequency <= cfg.max_frequency_hz:
            return 0.0
        total = spectral.signal_power + spectral.noise_power
        if total <= 0:
            return 0.0
        peak_fraction = spectral.signal_power / total
        return float(min(1.0, peak_fraction / cfg.peak_fraction_reference))

    def reset(self):
        self.history.clear()
        self.red_history.clear()
        self.last_level = None
