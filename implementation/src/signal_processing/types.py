"""
Records exchanged between the pipeline stages.

Everything handed out of the pipeline is a frozen dataclass so consumers
cannot mutate pipeline-owned state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class QualityLevel(Enum):
    EXCELLENT = 'excellent'
    GOOD = 'good'
    FAIR = 'fair'
    POOR = 'poor'
    INVALID = 'invalid'


class CalibrationPhase(Enum):
    IDLE = 'idle'
    CALIBRATING = 'calibrating'
    CALIBRATED = 'calibrated'
    FAILED = 'failed'


class ArrhythmiaType(Enum):
    NORMAL = 'Normal'
    PREMATURE_BEATS = 'PVC'
    AFIB = 'AFib'


class PipelineStatus(Enum):
    OK = 'ok'
    WARMING_UP = 'warming_up'
    INVALID_FRAME = 'invalid_frame'
    NO_FINGER = 'no_finger'
    LOW_SIGNAL_QUALITY = 'low_signal_quality'
    INSUFFICIENT_BEATS = 'insufficient_beats'
    CALIBRATION_FAILED = 'calibration_failed'


@dataclass(frozen=True)
class PixelRegion:
    """Rectangular RGBA pixel region as delivered by a frame source."""

    width: int
    height: int
    data: bytes

    def to_array(self):
        pixels = np.frombuffer(self.data, dtype=np.uint8)
        return pixels.reshape(self.height, self.width, 4)


@dataclass(frozen=True)
class RawSample:
    timestamp: float
    mean_red: float = 0.0
    mean_green: float = 0.0
    mean_blue: float = 0.0
    coverage_ratio: float = 0.0
    brightness: float = 0.0
    red_dominance: float = 0.0
    valid: bool = False


@dataclass(frozen=True)
class PresenceResult:
    present: bool
    confidence: float
    raw_confidence: float


@dataclass(frozen=True)
class ConditionedSample:
    timestamp: float
    value: float
    quality_hint: float = 1.0
    clamped: bool = False


@dataclass(frozen=True, eq=False)
class BufferSnapshot:
    timestamps: np.ndarray
    values: np.ndarray
    start_index: int

    def __len__(self):
        return len(self.values)


@dataclass(frozen=True)
class BeatEvent:
    index: int
    timestamp: float
    amplitude: float
    interval_ms: Optional[float] = None


@dataclass(frozen=True)
class BandPowers:
    vlf: float = 0.0
    lf: float = 0.0
    hf: float = 0.0
    cardiac: float = 0.0
    noise: float = 0.0


@dataclass(frozen=True)
class Harmonic:
    order: int
    frequency: float
    magnitude: float
    relative_amplitude: float


@dataclass(frozen=True)
class SubbandFeatures:
    level: int
    low_hz: float
    high_hz: float
    energy: float
    entropy: float
    variance: float


@dataclass(frozen=True)
class WaveletFeatures:
    wavelet: str
    levels: int = 0
    subbands: Tuple[SubbandFeatures, ...] = ()
    noise_sigma: float = 0.0
    respiration_rate: float = 0.0


@dataclass(frozen=True, eq=False)
class SpectralFeatures:
    frequencies: np.ndarray = field(default_factory=lambda: np.zeros(0))
    magnitudes: np.ndarray = field(default_factory=lambda: np.zeros(0))
    phases: np.ndarray = field(default_factory=lambda: np.zeros(0))
    band_powers: BandPowers = field(default_factory=BandPowers)
    dominant_frequency: float = 0.0
    harmonics: Tuple[Harmonic, ...] = ()
    signal_power: float = 0.0
    noise_power: float = 0.0
    snr_db: float = 0.0
    segments: int = 0
    wavelet: Optional[WaveletFeatures] = None

    @property
    def is_empty(self):
        return self.segments == 0


@dataclass(frozen=True)
class QualityScore:
    level: QualityLevel
    overall: float
    components: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CalibrationState:
    phase: CalibrationPhase = CalibrationPhase.IDLE
    progress: float = 0.0
    sample_count: int = 0
    mean: float = 0.0
    stdev: float = 0.0
    signal_amplification: float = 1.0
    peak_threshold: float = 0.0
    calibration_quality: float = 0.0
    snr_db: float = 0.0
    message: str = ''


@dataclass(frozen=True)
class HRVMetrics:
    sdnn: float = 0.0
    rmssd: float = 0.0
    pnn50: float = 0.0


@dataclass(frozen=True)
class ArrhythmiaResult:
    type: ArrhythmiaType = ArrhythmiaType.NORMAL
    confidence: float = 0.0
    irregularity: float = 0.0

    @property
    def detected(self):
        return self.type is not ArrhythmiaType.NORMAL


@dataclass(frozen=True)
class Reading:
    timestamp: float
    value: float


@dataclass(frozen=True)
class VitalsEstimate:
    timestamp: float
    bpm: float = 0.0
    spo2: float = 0.0
    systolic: float = 0.0
    diastolic: float = 0.0
    has_arrhythmia: bool = False
    arrhythmia_type: ArrhythmiaType = ArrhythmiaType.NORMAL
    arrhythmia_confidence: float = 0.0
    confidence: float = 0.0
    quality: QualityLevel = QualityLevel.INVALID
    quality_score: float = 0.0
    hrv: HRVMetrics = field(default_factory=HRVMetrics)
    respiration_rate: float = 0.0
    readings: Tuple[Reading, ...] = ()
    is_peak: bool = False
    status: PipelineStatus = PipelineStatus.OK
    message: str = ''
    calibration: CalibrationState = field(default_factory=CalibrationState)

    def to_dict(self):
        """Serialize to the consumer-facing output contract."""
        return {
            'timestamp': self.timestamp,
            'bpm': self.bpm,
            'spo2': self.spo2,
            'systolic': self.systolic,
            'diastolic': self.diastolic,
            'hasArrhythmia': self.has_arrhythmia,
            'arrhythmiaType': self.arrhythmia_type.value,
            'confidence': self.confidence,
            'quality': self.quality.value,
            'hrv': {
                'sdnn': self.hrv.sdnn,
                'rmssd': self.hrv.rmssd,
                'pnn50': self.hrv.pnn50,
            },
            'readings': [{'timestamp': r.timestamp, 'value': r.value} for r in self.readings],
            'isPeak': self.is_peak,
            'respirationRate': self.respiration_rate,
            'status': self.status.value,
            'message': self.message,
            'calibration': {
                'phase': self.calibration.phase.value,
                'progress': self.calibration.progress,
            },
        }
