"""
Beat Detection for fingertip PPG Signals

Beats are systolic peaks of the conditioned signal. The detector runs once per
frame over the current window snapshot and judges the sample a few positions
behind the newest one, so that its right-hand neighbours are already known.

States:
- IDLE: no lock; the first valid peak is accepted without an interval
- REFRACTORY: a beat was just accepted; peaks closer than the minimum
  distance are ignored
- ARMED: waiting for the next peak; a peak later than the maximum distance
  (or no peak at all for that long) means the lock is lost
"""

from enum import Enum
from collections import deque
import logging

import numpy as np

from .config import BeatDetectorConfig
from .types import BeatEvent


class DetectorState(Enum):
    IDLE = 'idle'
    ARMED = 'armed'
    REFRACTORY = 'refractory'


class BeatDetector:
    def __init__(self, config=None):
        """
        Initialize beat detector.

        Args:
            config: BeatDetectorConfig (defaults to the canonical parameters)
        """
        self.logger = logging.getLogger('FingerPulse.BeatDetector')
        self.config = config or BeatDetectorConfig()

        self.state = DetectorState.IDLE
        self.history = deque(maxlen=self.config.history_size)
        self.last_beat_time = None
        self.last_evaluated_index = -1
        self.listeners = []

    def add_listener(self, callback):
        self.listeners.append(callback)

    def update(self, snapshot):
        """
        Evaluate the newest judgeable sample of a window snapshot.

        Args:
            snapshot: BufferSnapshot of conditioned samples

        Returns:
            BeatEvent if a beat was confirmed on this update, else None
        """
        values = snapshot.values
        timestamps = snapshot.timestamps
        n = len(values)
        if n < 3:
            return None

        dt_ms = float(np.median(np.diff(timestamps)))
        if dt_ms <= 0:
            return None
        morph = max(2, int(round(self.config.morphology_window_ms / dt_ms)))
        lag = max(self.config.neighborhood, morph)
        if n < 2 * lag + 1:
            return None

        i = n - 1 - lag
        abs_index = snapshot.start_index + i
        if abs_index <= self.last_evaluated_index:
            return None
        self.last_evaluated_index = abs_index

        t_candidate = float(timestamps[i])
        self._advance_state(t_candidate)

        window_start = np.searchsorted(
            timestamps, timestamps[-1] - self.config.threshold_window_seconds * 1000.0)
        window = values[window_start:]
        threshold = np.mean(window) + self.config.threshold_k * np.std(window)

        is_peak = self._is_candidate(values, i, threshold, morph)

        interval = None
        if self.state is DetectorState.ARMED:
            interval = t_candidate - self.last_beat_time
            if interval > self.config.max_peak_distance_ms:
                # A late candidate is discarded along with the lock
                self._lose_lock(interval)
                return None

        if not is_peak or self.state is DetectorState.REFRACTORY:
            return None

        if self.state is DetectorState.IDLE:
            self.logger.info("Beat lock acquired at %.1f ms", t_candidate)

        beat = BeatEvent(
            index=int(abs_index),
            timestamp=t_candidate,
            amplitude=float(values[i] - np.min(window)),
            interval_ms=interval,
        )
        self.history.append(beat)
        self.last_beat_time = t_candidate
        self.state = DetectorState.REFRACTORY
        self.logger.debug("Beat at %.1f ms (interval %s)", t_candidate, interval)
        self._notify(beat)
        return beat

    def _advance_state(self, now):
        if self.last_beat_time is None:
            return
        elapsed = now - self.last_beat_time
        if self.state is DetectorState.REFRACTORY and elapsed >= self.config.min_peak_distance_ms:
            self.state = DetectorState.ARMED

    def _lose_lock(self, elapsed):
        self.logger.info("Beat lock lost after %.0f ms without a beat", elapsed)
        self.state = DetectorState.IDLE
        self.last_beat_time = None

    def _is_candidate(self, values, i, threshold, morph):
        peak = values[i]
        if peak <= threshold:
            return False

        nb = self.config.neighborhood
        neighbours = values[i - nb:i + nb + 1]
        if peak < np.max(neighbours) or peak <= values[i - 1]:
            return False

        # Morphology: rise before, fall after
        left, right = values[i - morph], values[i + morph]
        if not (peak > left and peak > right):
            return False

        edge_drop = peak - max(left, right)
        adjacent_drop = peak - max(values[i - 1], values[i + 1])
        if adjacent_drop >= self.config.spike_ratio * edge_drop:
            self.logger.debug("Rejected spike-shaped peak at window index %d", i)
            return False
        return True

    def _notify(self, beat):
        for callback in self.listeners:
            try:
                callback(beat)
            except Exception:
                self.logger.exception("Beat listener failed")

    def intervals(self):
        """Inter-beat intervals (ms) of the beat history, oldest first."""
        return [beat.interval_ms for beat in self.history if beat.interval_ms is not None]

    def reset(self):
        self.state = DetectorState.IDLE
        self.history.clear()
        self.last_beat_time = None
        self.last_evaluated_index = -1
