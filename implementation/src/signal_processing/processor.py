from collections import deque
from dataclasses import replace
import logging
import time

import numpy as np
from scipy.signal import detrend

from finger_detection.features import FeatureExtractor
from finger_detection.detector import FingerPresenceGate
from .config import PipelineConfig
from .filtering import SignalConditioner
from .buffer import WindowBuffer
from .beat_detection import BeatDetector
from .spectral import SpectralEstimator
from .quality import QualityScorer
from .calibration import CalibrationManager
from .vitals import VitalsEstimator
from .types import CalibrationPhase, PipelineStatus, QualityLevel, Reading, VitalsEstimate


class VitalsPipeline:
    def __init__(self, config=None):
        """
        Build every stage from one validated configuration.

        Raises:
            TypeError: if config is not a PipelineConfig
            ValueError: if any configured value is out of range
        """
        self.logger = logging.getLogger('FingerPulse.VitalsPipeline')
        if config is None:
            config = PipelineConfig()
        if not isinstance(config, PipelineConfig):
            raise TypeError(f"config must be a PipelineConfig, got {type(config).__name__}")
        self.config = config.validate()
        self.fs = config.sample_rate

        self.extractor = FeatureExtractor(config.extractor)
        self.presence = FingerPresenceGate(config.presence)
        self.conditioner = SignalConditioner(config.conditioner, self.fs)
        self.buffer = WindowBuffer(config.buffer_size)
        self.beat_detector = BeatDetector(config.beat)
        self.spectral = SpectralEstimator(config.spectral, self.fs, config.wavelet)
        self.quality = QualityScorer(config.quality)
        self.calibration = CalibrationManager(self.spectral, config.calibration)
        self.vitals = VitalsEstimator(config.vitals)

        self.readings = deque(maxlen=config.readings_length)
        self.raw_red = deque(maxlen=config.wavelet.respiration_window)
        self.estimate_listeners = []
        self.last_processed_time = None
        self.last_estimate = self._empty(0.0, PipelineStatus.NO_FINGER, "No finger detected")
        self.tracking = False
        self.frame_count = 0

        self.logger.info("Pipeline initialized: %.1f Hz, buffer %d, interval %.0f ms",
                         self.fs, config.buffer_size, config.processing_interval_ms)

    def add_beat_listener(self, callback):
        self.beat_detector.add_listener(callback)

    def add_estimate_listener(self, callback):
        self.estimate_listeners.append(callback)

    def add_calibration_listener(self, callback):
        self.calibration.add_listener(callback)

    def start_calibration(self, now_ms=None):
        if now_ms is None:
            now_ms = self.last_processed_time if self.last_processed_time is not None else self._now()
        return self.calibration.start(now_ms)

    def process_frame(self, region, timestamp=None):
        """
        Run every stage once for a frame.

        Args:
            region: PixelRegion or HxWxC uint8 array of the fingertip ROI
            timestamp: frame time in ms (monotonic clock when omitted)

        Returns:
            VitalsEstimate; the previous one unchanged when the frame arrives
            sooner than the processing interval
        """
        if timestamp is None:
            timestamp = self._now()

        if (self.last_processed_time is not None and
                timestamp - self.last_processed_time < self.config.processing_interval_ms):
            return self.last_estimate
        self.last_processed_time = timestamp
        self.frame_count += 1

        try:
            estimate = self._process(region, timestamp)
        except Exception:
            self.logger.exception("Error processing frame %d", self.frame_count)
            estimate = self._empty(timestamp, PipelineStatus.INVALID_FRAME, "Processing error")

        self.last_estimate = estimate
        self._notify(estimate)
        return estimate

    def _process(self, region, timestamp):
        raw = self.extractor.extract(region, timestamp)
        presence = self.presence.detect(raw)

        if not raw.valid:
            self._lose_contact()
            self.calibration.update(None, timestamp)
            return self._empty(timestamp, PipelineStatus.INVALID_FRAME, "Invalid frame")

        if not presence.present:
            self._lose_contact()
            self.calibration.update(None, timestamp)
            return self._empty(timestamp, PipelineStatus.NO_FINGER, "No finger detected")

        self.tracking = True
        if not self.buffer.accepts(timestamp):
            self.buffer.reject(timestamp)
            return self.last_estimate
        conditioned = self.conditioner.process(raw.mean_red, timestamp)
        self.buffer.append(timestamp, conditioned.value)
        self.vitals.add_red(raw.mean_red)
        self.raw_red.append(raw.mean_red)
        self.readings.append(Reading(timestamp=timestamp, value=conditioned.value))

        snapshot = self.buffer.snapshot()
        beat = self.beat_detector.update(snapshot)
        spectral = self.spectral.analyze(snapshot.values, self._respiration_signal())
        quality = self.quality.score(raw, spectral, snapshot)
        was_calibrating = self.calibration.phase is CalibrationPhase.CALIBRATING
        calibration = self.calibration.update(conditioned.value, timestamp)

        self.logger.debug("Frame %d: red %.1f conditioned %.3f quality %.2f beat %s",
                          self.frame_count, raw.mean_red, conditioned.value,
                          quality.overall, beat is not None)

        if len(self.buffer) < self.config.spectral.min_samples:
            status, message = PipelineStatus.WARMING_UP, "Acquiring signal"
            vitals = self.vitals.suppressed(timestamp)
        elif quality.level is QualityLevel.INVALID:
            status, message = PipelineStatus.LOW_SIGNAL_QUALITY, "Invalid signal"
            vitals = self.vitals.suppressed(timestamp)
        else:
            respiration = spectral.wavelet.respiration_rate if spectral.wavelet else 0.0
            vitals = self.vitals.estimate(
                timestamp,
                self.beat_detector.intervals(),
                raw.mean_red,
                respiration_rate=respiration,
                new_beat=beat is not None and beat.interval_ms is not None,
            )
            if not self.vitals.valid_intervals(self.beat_detector.intervals()):
                status, message = PipelineStatus.INSUFFICIENT_BEATS, "Waiting for heartbeats"
            else:
                status, message = PipelineStatus.OK, ""

        if was_calibrating and calibration.phase is CalibrationPhase.FAILED:
            status, message = PipelineStatus.CALIBRATION_FAILED, calibration.message

        return replace(
            vitals,
            confidence=quality.overall * presence.confidence,
            quality=quality.level,
            quality_score=quality.overall,
            readings=tuple(self.readings),
            is_peak=beat is not None,
            status=status,
            message=message,
            calibration=calibration,
        )

    def _respiration_signal(self):
        # Raw red before the band-pass, which removes the breathing band
        if len(self.raw_red) < 2:
            return np.zeros(0)
        return detrend(np.asarray(self.raw_red, dtype=np.float64))

    def _lose_contact(self):
        if not self.tracking:
            return
        self.logger.info("Finger contact lost after %d frames, resetting signal state", self.frame_count)
        self.tracking = False
        self._reset_signal_state()

    def _reset_signal_state(self):
        self.conditioner.reset()
        self.buffer.clear()
        self.raw_red.clear()
        self.beat_detector.reset()
        self.quality.reset()
        self.vitals.reset()
        self.readings.clear()

    def _empty(self, timestamp, status, message):
        return VitalsEstimate(
            timestamp=timestamp,
            arrhythmia_confidence=self.config.vitals.low_confidence,
            status=status,
            message=message,
            calibration=self.calibration.state,
        )

    def _notify(self, estimate):
        for callback in self.estimate_listeners:
            try:
                callback(estimate)
            except Exception:
                self.logger.exception("Estimate listener failed")

    def _now(self):
        return time.monotonic() * 1000.0

    def reset(self):
        """Clear all buffers and return every stage to its initial state."""
        self._reset_signal_state()
        self.presence.reset()
        self.calibration.reset()
        self.tracking = False
        self.last_processed_time = None
        self.frame_count = 0
        self.last_estimate = self._empty(0.0, PipelineStatus.NO_FINGER, "No finger detected")
        self.logger.info("Pipeline reset")

    def stop(self):
        self.reset()
