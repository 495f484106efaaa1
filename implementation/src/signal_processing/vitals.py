"""
Vitals estimation from beat intervals and raw red intensity.

SpO2 and blood pressure are heuristics tuned around population averages;
they are not clinically validated.
"""

import numpy as np
import logging
from collections import deque

from .config import VitalsConfig
from .types import ArrhythmiaResult, ArrhythmiaType, HRVMetrics, VitalsEstimate


class VitalsEstimator:
    def __init__(self, config=None):
        self.logger = logging.getLogger('FingerPulse.VitalsEstimator')
        self.config = config or VitalsConfig()
        self.red_history = deque(maxlen=self.config.perfusion_window)
        self.bpm = 0.0
        self.last_arrhythmia = ArrhythmiaType.NORMAL

    def add_red(self, mean_red):
        self.red_history.append(float(mean_red))

    def valid_intervals(self, intervals):
        """Intervals inside the physiological BPM range."""
        shortest = 60000.0 / self.config.max_bpm
        longest = 60000.0 / self.config.min_bpm
        return [ibi for ibi in intervals if shortest <= ibi <= longest]

    def update_bpm(self, intervals):
        """
        Fold the latest intervals into the smoothed BPM.

        Returns:
            float: smoothed BPM, or the last known value (0.0 if none) with fewer than two beats
        """
        cfg = self.config
        recent = self.valid_intervals(intervals)[-cfg.bpm_window:]
        if not recent:
            return self.bpm

        instant = 60000.0 / float(np.median(recent))
        if self.bpm > 0:
            smoothed = cfg.bpm_smoothing * self.bpm + (1 - cfg.bpm_smoothing) * instant
        else:
            smoothed = instant
        self.bpm = float(np.clip(smoothed, cfg.min_bpm, cfg.max_bpm))
        return self.bpm

    def perfusion_index(self):
        if len(self.red_history) < 2:
            return 0.0
        reds = np.asarray(self.red_history)
        mean_red = np.mean(reds)
        if mean_red <= 0:
            return 0.0
        return float((np.max(reds) - np.min(reds)) / mean_red)

    def estimate_spo2(self, mean_red, perfusion):
        cfg = self.config
        if mean_red <= 0:
            return 0.0
        ratio = cfg.red_ir_ratio * (mean_red / 128.0) * (1 + perfusion)
        spo2 = (cfg.spo2_base - cfg.spo2_slope * ratio) * cfg.spo2_calibration_factor
        return float(np.clip(spo2, cfg.min_spo2, cfg.max_spo2))

    def estimate_blood_pressure(self, bpm, perfusion):
        """
        Returns:
            tuple: (systolic, diastolic) in mmHg, (0.0, 0.0) without a BPM
        """
        cfg = self.config
        if bpm <= 0:
            return 0.0, 0.0

        hr_delta = bpm - cfg.reference_bpm
        perfusion_term = np.clip(cfg.reference_perfusion_percent - perfusion * 100.0, -5.0, 5.0)
        systolic = (cfg.baseline_systolic + cfg.systolic_hr_coeff * hr_delta
                    + cfg.systolic_factor * perfusion_term)
        diastolic = (cfg.baseline_diastolic + cfg.diastolic_hr_coeff * hr_delta
                     + cfg.diastolic_factor * perfusion_term)
        return (float(np.clip(systolic, cfg.min_systolic, cfg.max_systolic)),
                float(np.clip(diastolic, cfg.min_diastolic, cfg.max_diastolic)))

    def hrv(self, intervals):
        recent = np.asarray(self.valid_intervals(intervals)[-self.config.hrv_window:], dtype=np.float64)
        if len(recent) < 2:
            return HRVMetrics()

        successive = np.diff(recent)
        return HRVMetrics(
            sdnn=float(np.std(recent, ddof=1)),
            rmssd=float(np.sqrt(np.mean(successive ** 2))),
            pnn50=float(np.mean(np.abs(successive) > 50.0)),
        )

    def arrhythmia(self, intervals):
        cfg = self.config
        recent = np.asarray(self.valid_intervals(intervals)[-cfg.hrv_window:], dtype=np.float64)
        # n intervals come from n + 1 beats
        if len(recent) + 1 < cfg.min_beats_for_arrhythmia:
            return ArrhythmiaResult(confidence=cfg.low_confidence)

        mean_ibi = np.mean(recent)
        cv = np.std(recent) / mean_ibi
        successive_ratio = np.mean(np.abs(np.diff(recent))) / mean_ibi
        irregularity = float(np.clip((cv + successive_ratio) / (2 * cfg.irregularity_reference), 0.0, 1.0))

        if irregularity > cfg.afib_threshold:
            kind = ArrhythmiaType.AFIB
            confidence = irregularity
        elif irregularity > cfg.premature_threshold:
            kind = ArrhythmiaType.PREMATURE_BEATS
            confidence = irregularity
        else:
            kind = ArrhythmiaType.NORMAL
            confidence = 1.0 - irregularity

        if kind is not self.last_arrhythmia:
            self.logger.info("Rhythm classification changed: %s -> %s (irregularity %.2f)",
                             self.last_arrhythmia.value, kind.value, irregularity)
            self.last_arrhythmia = kind
        return ArrhythmiaResult(type=kind, confidence=confidence, irregularity=irregularity)

    def estimate(self, timestamp, intervals, mean_red, respiration_rate=0.0, new_beat=False):
        """
        Vitals for one frame.

        Args:
            timestamp: frame time in ms
            intervals: inter-beat intervals (ms), oldest first
            mean_red: current mean red intensity
            respiration_rate: breaths per minute from the wavelet analysis
            new_beat: whether a beat was confirmed on this frame

        Returns:
            VitalsEstimate carrying only the vitals fields
        """
        if new_beat:
            self.update_bpm(intervals)

        perfusion = self.perfusion_index()
        systolic, diastolic = self.estimate_blood_pressure(self.bpm, perfusion)
        rhythm = self.arrhythmia(intervals)

        return VitalsEstimate(
            timestamp=timestamp,
            bpm=self.bpm,
            spo2=self.estimate_spo2(mean_red, perfusion),
            systolic=systolic,
            diastolic=diastolic,
            has_arrhythmia=rhythm.detected,
            arrhythmia_type=rhythm.type,
            arrhythmia_confidence=rhythm.confidence,
            hrv=self.hrv(intervals),
            respiration_rate=respiration_rate,
        )

    def suppressed(self, timestamp):
        """Estimate for a frame whose vitals are withheld; only the last BPM survives."""
        return VitalsEstimate(timestamp=timestamp, bpm=self.bpm,
                              arrhythmia_confidence=self.config.low_confidence)

    def reset(self):
        self.red_history.clear()
        self.bpm = 0.0
        self.last_arrhythmia = ArrhythmiaType.NORMAL
