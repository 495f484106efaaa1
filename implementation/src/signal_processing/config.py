"""
Pipeline configuration for the fingertip vitals pipeline.

Every knob is a plain number or an enum member, grouped per stage. The
defaults below are the canonical parameter set; any of them may be
overridden at construction time.
"""

from dataclasses import dataclass, field
from enum import Enum


class ChannelOrder(Enum):
    RGBA = 'rgba'   # browser / PixelRegion byte order
    BGR = 'bgr'     # OpenCV frame order


class WindowType(Enum):
    HANNING = 'hann'
    HAMMING = 'hamming'
    BLACKMAN = 'blackman'


class AveragingMethod(Enum):
    MEAN = 'mean'
    MEDIAN = 'median'


class WaveletType(Enum):
    HAAR = 'haar'
    DB4 = 'db4'


@dataclass
class ExtractorConfig:
    min_red: int = 20
    max_red: int = 250
    channel_order: ChannelOrder = ChannelOrder.RGBA


@dataclass
class PresenceConfig:
    red_weight: float = 0.7
    coverage_weight: float = 0.3
    coverage_reference: float = 0.8
    min_coverage: float = 0.3          # hard floor
    min_red_dominance: float = 1.3     # red / max(green, blue)
    smoothing: float = 0.7             # weight of the previous confidence
    threshold: float = 0.5


@dataclass
class ConditionerConfig:
    low_cutoff_hz: float = 0.5
    high_cutoff_hz: float = 4.0
    outlier_sigma: float = 2.5
    outlier_window: int = 30
    outlier_min_history: int = 10
    kalman_q: float = 0.15
    kalman_r: float = 0.8


@dataclass
class BeatDetectorConfig:
    threshold_k: float = 1.0
    threshold_window_seconds: float = 2.0
    neighborhood: int = 2
    morphology_window_ms: float = 100.0
    spike_ratio: float = 0.5
    min_peak_distance_ms: float = 250.0
    max_peak_distance_ms: float = 2000.0
    history_size: int = 50


@dataclass
class SpectralConfig:
    window_size: int = 128
    overlap: float = 0.5
    window_type: WindowType = WindowType.HANNING
    averaging: AveragingMethod = AveragingMethod.MEAN
    min_samples: int = 64
    min_nfft: int = 512
    max_harmonic_order: int = 5
    min_harmonic_amplitude: float = 0.1
    peak_halfwidth_hz: float = 0.2
    wavelet_enhance: bool = False      # run Welch on the cardiac-band wavelet reconstruction
    bands: dict = field(default_factory=lambda: {
        'vlf': (0.0, 0.04),
        'lf': (0.04, 0.15),
        'hf': (0.15, 0.4),
        'cardiac': (0.5, 4.0),
        'noise': (4.0, 15.0),
    })


@dataclass
class WaveletConfig:
    wavelet: WaveletType = WaveletType.DB4
    levels: int = 6
    respiration_band: tuple = (0.1, 0.5)
    respiration_window: int = 512        # raw red samples; needs a level below 0.5 Hz
    min_respiration_rate: float = 4.0    # breaths/min
    max_respiration_rate: float = 40.0


@dataclass
class QualityConfig:
    weights: dict = field(default_factory=lambda: {
        'snr': 0.25,
        'stability': 0.20,
        'motion': 0.15,
        'brightness': 0.15,
        'contrast': 0.15,
        'frequency': 0.10,
    })
    thresholds: dict = field(default_factory=lambda: {
        'excellent': 0.85,
        'good': 0.70,
        'fair': 0.50,
        'poor': 0.30,
    })
    min_snr_db: float = 5.0
    stability_window: int = 10
    stability_sensitivity: float = 20.0
    motion_window: int = 5
    max_motion: float = 0.1
    min_brightness: float = 0.2
    max_brightness: float = 0.9
    min_contrast: float = 0.01
    min_frequency_hz: float = 0.5
    max_frequency_hz: float = 4.0
    peak_fraction_reference: float = 0.5
    history_size: int = 90


@dataclass
class CalibrationConfig:
    duration_ms: float = 10000.0
    min_samples: int = 60
    min_snr_db: float = 3.0


@dataclass
class VitalsConfig:
    min_bpm: float = 40.0
    max_bpm: float = 200.0
    bpm_smoothing: float = 0.7
    bpm_window: int = 10
    hrv_window: int = 20
    min_beats_for_arrhythmia: int = 5
    afib_threshold: float = 0.7
    premature_threshold: float = 0.4
    irregularity_reference: float = 0.2
    low_confidence: float = 0.1
    perfusion_window: int = 90
    red_ir_ratio: float = 0.4
    spo2_base: float = 110.0
    spo2_slope: float = 25.0
    spo2_calibration_factor: float = 1.02
    min_spo2: float = 80.0
    max_spo2: float = 100.0
    reference_bpm: float = 72.0
    reference_perfusion_percent: float = 2.0
    baseline_systolic: float = 120.0
    baseline_diastolic: float = 80.0
    systolic_hr_coeff: float = 0.5
    diastolic_hr_coeff: float = 0.3
    systolic_factor: float = 2.5
    diastolic_factor: float = 1.8
    min_systolic: float = 90.0
    max_systolic: float = 180.0
    min_diastolic: float = 60.0
    max_diastolic: float = 120.0


@dataclass
class PipelineConfig:
    """Top level configuration handed to the pipeline at construction."""

    sample_rate: float = 30.0
    processing_interval_ms: float = 33.0
    buffer_size: int = 256
    readings_length: int = 90
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    presence: PresenceConfig = field(default_factory=PresenceConfig)
    conditioner: ConditionerConfig = field(default_factory=ConditionerConfig)
    beat: BeatDetectorConfig = field(default_factory=BeatDetectorConfig)
    spectral: SpectralConfig = field(default_factory=SpectralConfig)
    wavelet: WaveletConfig = field(default_factory=WaveletConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    vitals: VitalsConfig = field(default_factory=VitalsConfig)

    def validate(self):
        """
        Check every knob against its allowed range.

        Raises:
            ValueError: if any value is out of range.
        """
        nyquist = self.sample_rate / 2.0
        cond = self.conditioner

        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.processing_interval_ms < 0:
            raise ValueError("processing_interval_ms must not be negative")
        if not 128 <= self.buffer_size <= 1024:
            raise ValueError(f"buffer_size must be within 128-1024, got {self.buffer_size}")
        if not 0 < cond.low_cutoff_hz < cond.high_cutoff_hz < nyquist:
            raise ValueError(
                f"band-pass cutoffs must satisfy 0 < low < high < {nyquist} Hz, "
                f"got ({cond.low_cutoff_hz}, {cond.high_cutoff_hz})")
        if cond.kalman_q <= 0 or cond.kalman_r <= 0:
            raise ValueError("Kalman noise terms must be positive")
        if not 0 <= self.extractor.min_red < self.extractor.max_red <= 255:
            raise ValueError("extractor red range must lie within 0-255")
        if not isinstance(self.extractor.channel_order, ChannelOrder):
            raise ValueError("extractor.channel_order must be a ChannelOrder")

        beat = self.beat
        if not 0 < beat.min_peak_distance_ms < beat.max_peak_distance_ms:
            raise ValueError("peak distances must satisfy 0 < min < max")
        if beat.neighborhood < 1:
            raise ValueError("beat.neighborhood must be at least 1")

        spectral = self.spectral
        if not 128 <= spectral.window_size <= 1024:
            raise ValueError(f"spectral.window_size must be within 128-1024, got {spectral.window_size}")
        if not 0 <= spectral.overlap < 1:
            raise ValueError("spectral.overlap must be within [0, 1)")
        if not isinstance(spectral.window_type, WindowType):
            raise ValueError("spectral.window_type must be a WindowType")
        if not isinstance(spectral.averaging, AveragingMethod):
            raise ValueError("spectral.averaging must be an AveragingMethod")
        if not 1 <= spectral.max_harmonic_order <= 5:
            raise ValueError("spectral.max_harmonic_order must be within 1-5")

        if not isinstance(self.wavelet.wavelet, WaveletType):
            raise ValueError("wavelet.wavelet must be a WaveletType")
        if not 3 <= self.wavelet.levels <= 8:
            raise ValueError(f"wavelet.levels must be within 3-8, got {self.wavelet.levels}")
        if not 64 <= self.wavelet.respiration_window <= 4096:
            raise ValueError("wavelet.respiration_window must be within 64-4096")

        weights = self.quality.weights
        if set(weights) != {'snr', 'stability', 'motion', 'brightness', 'contrast', 'frequency'}:
            raise ValueError(f"unexpected quality weight keys: {sorted(weights)}")
        if any(w < 0 for w in weights.values()) or abs(sum(weights.values()) - 1.0) > 1e-6:
            raise ValueError("quality weights must be non-negative and sum to 1")
        cuts = self.quality.thresholds
        if not 0 < cuts['poor'] < cuts['fair'] < cuts['good'] < cuts['excellent'] <= 1:
            raise ValueError("quality thresholds must be increasing within (0, 1]")

        if not 5000 <= self.calibration.duration_ms <= 30000:
            raise ValueError("calibration.duration_ms must be within 5-30 s")

        vitals = self.vitals
        if not 0 < vitals.min_bpm < vitals.max_bpm:
            raise ValueError("vitals BPM range must satisfy 0 < min < max")
        if not 0 <= vitals.bpm_smoothing < 1:
            raise ValueError("vitals.bpm_smoothing must be within [0, 1)")

        return self
