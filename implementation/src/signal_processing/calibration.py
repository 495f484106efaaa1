import numpy as np
import logging
from dataclasses import replace

from .config import CalibrationConfig
from .types import CalibrationPhase, CalibrationState


class CalibrationManager:
    """
    Baseline calibration run on the frame clock.

    IDLE -> CALIBRATING -> CALIBRATED | FAILED; only reset() returns to IDLE,
    and start() is ignored outside IDLE.
    """

    def __init__(self, spectral_estimator, config=None):
        self.logger = logging.getLogger('FingerPulse.CalibrationManager')
        self.config = config or CalibrationConfig()
        self.spectral = spectral_estimator
        self.state = CalibrationState()
        self.samples = []
        self.start_time = None
        self.listeners = []

    def add_listener(self, callback):
        self.listeners.append(callback)

    @property
    def phase(self):
        return self.state.phase

    def start(self, now_ms):
        if self.state.phase is not CalibrationPhase.IDLE:
            self.logger.warning("Calibration start ignored while %s; reset first",
                                self.state.phase.value)
            return self.state

        self.samples = []
        self.start_time = now_ms
        self.logger.info("Calibration started (%.1f s)", self.config.duration_ms / 1000.0)
        self._transition(CalibrationState(phase=CalibrationPhase.CALIBRATING,
                                          message="Calibrating, keep your finger still"))
        return self.state

    def update(self, value, timestamp_ms):
        """
        Feed one frame while calibrating; None advances the clock without a sample.

        Returns:
            CalibrationState after this frame
        """
        if self.state.phase is not CalibrationPhase.CALIBRATING:
            return self.state

        if value is not None:
            self.samples.append(float(value))

        elapsed = timestamp_ms - self.start_time
        progress = max(self.state.progress, min(1.0, elapsed / self.config.duration_ms))
        self.state = replace(self.state, progress=progress, sample_count=len(self.samples))

        if progress >= 1.0:
            try:
                self._finalize()
            except Exception:
                self.logger.exception("Calibration finalization failed")
                self._transition(replace(self.state, phase=CalibrationPhase.FAILED,
                                         message="Calibration failed unexpectedly"))
        return self.state

    def _finalize(self):
        cfg = self.config
        values = np.asarray(self.samples, dtype=np.float64)

        if len(values) < cfg.min_samples:
            self._fail(f"Not enough samples ({len(values)} < {cfg.min_samples})")
            return

        mean = float(np.mean(values))
        stdev = float(np.std(values))
        if stdev <= 0:
            self._fail("Flat signal during calibration", mean=mean)
            return

        snr_db = self.spectral.snr(values)
        quality = float(np.clip(snr_db / (2 * cfg.min_snr_db), 0.0, 1.0))
        measured = dict(
            mean=mean,
            stdev=stdev,
            signal_amplification=1.0 / stdev,
            peak_threshold=mean + 2 * stdev,
            calibration_quality=quality,
            snr_db=snr_db,
        )

        if snr_db < cfg.min_snr_db:
            self._fail(f"Signal too noisy (SNR {snr_db:.1f} dB < {cfg.min_snr_db:.1f} dB)", **measured)
            return

        self.logger.info("Calibration complete: SNR %.1f dB, amplification %.3f",
                         snr_db, measured['signal_amplification'])
        self._transition(replace(self.state, phase=CalibrationPhase.CALIBRATED,
                                 message="Calibration complete", **measured))

    def _fail(self, message, **measured):
        self.logger.warning("Calibration failed: %s", message)
        self._transition(replace(self.state, phase=CalibrationPhase.FAILED,
                                 message=message, **measured))

    def _transition(self, state):
        self.state = state
        for callback in self.listeners:
            try:
                callback(state)
            except Exception:
                self.logger.exception("Calibration listener failed")

    def reset(self):
        self.samples = []
        self.start_time = None
        if self.state.phase is not CalibrationPhase.IDLE:
            self.logger.info("Calibration reset")
            self._transition(CalibrationState())
