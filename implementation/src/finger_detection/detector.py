import logging

from signal_processing.config import PresenceConfig
from signal_processing.types import PresenceResult


class FingerPresenceGate:
    def __init__(self, config=None):
        """Initialize the presence gate with zero confidence."""
        self.logger = logging.getLogger('FingerPulse.FingerPresenceGate')
        self.config = config or PresenceConfig()
        self.confidence = 0.0
        self.present = False

    def detect(self, features):
        """
        Decide whether a fingertip covers the lens.

        Args:
            features: RawSample from the FeatureExtractor

        Returns:
            PresenceResult with the smoothed confidence
        """
        cfg = self.config
        raw = self._raw_confidence(features)

        self.confidence = cfg.smoothing * self.confidence + (1 - cfg.smoothing) * raw
        present = self.confidence > cfg.threshold

        if present != self.present:
            if present:
                self.logger.info("Finger detected (confidence %.2f)", self.confidence)
            else:
                self.logger.info("Finger lost (confidence %.2f)", self.confidence)
            self.present = present

        return PresenceResult(present=present, confidence=self.confidence, raw_confidence=raw)

    def _raw_confidence(self, features):
        cfg = self.config
        if not features.valid:
            return 0.0
        if features.coverage_ratio < cfg.min_coverage:
            return 0.0
        # A grey or white scene has no red excess over green/blue
        if features.red_dominance < cfg.min_red_dominance:
            return 0.0

        red_score = min(max(features.mean_red / 255.0, 0.0), 1.0)
        coverage_score = min(max(features.coverage_ratio / cfg.coverage_reference, 0.0), 1.0)
        return cfg.red_weight * red_score + cfg.coverage_weight * coverage_score

    def reset(self):
        self.confidence = 0.0
        self.present = False
