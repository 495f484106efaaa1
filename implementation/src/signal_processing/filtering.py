import numpy as np
import logging
from collections import deque
from scipy.signal import lfilter, lfilter_zi

from .performance import get_bandpass_coeffs, filter_poles
from .types import ConditionedSample


class OutlierClamp:
    """Replaces samples far from the running mean with that mean."""

    def __init__(self, sigma=2.5, window=30, min_history=10):
        self.sigma = sigma
        self.min_history = min_history
        self.history = deque(maxlen=window)

    def apply(self, value):
        """Return (cleaned_value, was_clamped)."""
        cleaned, clamped = value, False

        if len(self.history) >= self.min_history:
            history = np.asarray(self.history)
            mean_val = np.mean(history)
            std_dev = np.std(history)
            if std_dev > 0 and abs(value - mean_val) > self.sigma * std_dev:
                cleaned, clamped = float(mean_val), True

        # Raw values feed the statistics so a genuine level shift is tracked
        self.history.append(value)
        return cleaned, clamped

    def reset(self):
        self.history.clear()


class CausalBandpass:
    """2nd-order Butterworth band-pass run one sample at a time."""

    def __init__(self, low_hz, high_hz, sampling_rate):
        self.b, self.a = get_bandpass_coeffs(low_hz, high_hz, sampling_rate)
        self._zi_unit = lfilter_zi(self.b, self.a)
        self.zi = None

    def step(self, value):
        if self.zi is None:
            # Start from the steady state of a constant input so the DC level does not ring
            self.zi = self._zi_unit * value
        out, self.zi = lfilter(self.b, self.a, [value], zi=self.zi)
        return float(out[0])

    def poles(self):
        return filter_poles(self.a)

    def reset(self):
        self.zi = None


class ScalarKalmanFilter:
    def __init__(self, process_noise=0.15, measurement_noise=0.8):
        self.q = process_noise
        self.r = measurement_noise
        self.x = 0.0
        self.p = 1.0
        self.gain = 0.0

    def update(self, measurement):
        # Predict
        x_pred = self.x
        p_pred = self.p + self.q

        # Update
        self.gain = p_pred / (p_pred + self.r)
        self.x = x_pred + self.gain * (measurement - x_pred)
        self.p = (1 - self.gain) * p_pred
        return self.x

    def reset(self):
        self.x = 0.0
        self.p = 1.0
        self.gain = 0.0


class SignalConditioner:
    def __init__(self, config, sampling_rate=30):
        self.logger = logging.getLogger('FingerPulse.SignalConditioner')
        self.fs = sampling_rate
        self.outlier_clamp = OutlierClamp(config.outlier_sigma, config.outlier_window,
                                          config.outlier_min_history)
        self.bandpass = CausalBandpass(config.low_cutoff_hz, config.high_cutoff_hz, sampling_rate)
        self.kalman = ScalarKalmanFilter(config.kalman_q, config.kalman_r)
        self.clamped_count = 0

        self.logger.info("Signal conditioner initialized: band %.2f-%.2f Hz @ %.1f Hz",
                         config.low_cutoff_hz, config.high_cutoff_hz, sampling_rate)

    def process(self, value, timestamp):
        """Outlier clamp, band-pass and Kalman smoothing, in that order."""
        cleaned, clamped = self.outlier_clamp.apply(float(value))
        if clamped:
            self.clamped_count += 1
            self.logger.debug("Outlier clamped at %.1f ms: %.2f -> %.2f", timestamp, value, cleaned)

        filtered = self.bandpass.step(cleaned)
        smoothed = self.kalman.update(filtered)

        return ConditionedSample(
            timestamp=timestamp,
            value=smoothed,
            quality_hint=0.5 if clamped else 1.0,
            clamped=clamped,
        )

    def poles(self):
        return self.bandpass.poles()

    def reset(self):
        self.outlier_clamp.reset()
        self.bandpass.reset()
        self.kalman.reset()
        self.clamped_count = 0
