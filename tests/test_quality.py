import numpy as np
import pytest

from conftest import make_snapshot, sine_wave
from signal_processing.config import QualityConfig, SpectralConfig
from signal_processing.quality import QualityScorer
from signal_processing.spectral import SpectralEstimator
from signal_processing.types import QualityLevel, RawSample, SpectralFeatures

FS = 30


def raw(mean_red=180.0):
    return RawSample(timestamp=0.0, mean_red=mean_red, mean_green=40.0, mean_blue=30.0,
                     coverage_ratio=1.0, brightness=mean_red / 255.0,
                     red_dominance=mean_red / 40.0, valid=True)


@pytest.mark.parametrize('overall, level', [
    (0.95, QualityLevel.EXCELLENT),
    (0.85, QualityLevel.EXCELLENT),
    (0.70, QualityLevel.GOOD),
    (0.60, QualityLevel.FAIR),
    (0.30, QualityLevel.POOR),
    (0.29, QualityLevel.INVALID),
    (0.0, QualityLevel.INVALID),
])
def test_grade_cut_points(overall, level):
    assert QualityScorer().grade(overall) is level


def test_clean_pulse_window_scores_excellent():
    scorer = QualityScorer()
    values = sine_wave(1.2, FS, 256 / FS, amplitude=3.0)
    snapshot = make_snapshot(values, FS)
    spectral = SpectralEstimator(SpectralConfig(), FS).analyze(values)

    scores = [scorer.score(raw(), spectral, snapshot) for _ in range(5)]

    assert scores[-1].level is QualityLevel.EXCELLENT
    assert set(scores[-1].components) == {'snr', 'stability', 'motion', 'brightness',
                                           'contrast', 'frequency'}
    assert all(0.0 <= v <= 1.0 for v in scores[-1].components.values())


def test_empty_spectrum_zeroes_spectral_components():
    score = QualityScorer().score(raw(), SpectralFeatures(), make_snapshot(np.zeros(10), FS))

    assert score.components['snr'] == 0.0
    assert score.components['frequency'] == 0.0
    assert score.components['contrast'] == 0.0
    assert score.components['stability'] == 1.0
    assert 0.0 <= score.overall <= 1.0


def test_brightness_penalized_outside_band():
    scorer = QualityScorer()

    assert scorer._brightness_score(0.5) == 1.0
    assert scorer._brightness_score(0.1) == pytest.approx(0.5)
    assert scorer._brightness_score(0.95) == pytest.approx(0.5)
    assert scorer._brightness_score(1.0) == 0.0


def test_large_frame_to_frame_changes_count_as_motion():
    scorer = QualityScorer()
    snapshot = make_snapshot(np.zeros(10), FS)
    for red in (100.0, 150.0, 100.0, 150.0):
        score = scorer.score(raw(red), SpectralFeatures(), snapshot)

    assert score.components['motion'] == 0.0


def test_overall_always_within_unit_interval():
    rng = np.random.default_rng(4)
    scorer = QualityScorer()
    estimator = SpectralEstimator(SpectralConfig(), FS)

    for _ in range(20):
        values = rng.normal(0, rng.uniform(0.01, 50), 128)
        score = scorer.score(raw(rng.uniform(0, 255)), estimator.analyze(values),
                             make_snapshot(values, FS))
        assert 0.0 <= score.overall <= 1.0


def test_history_is_bounded_and_resettable():
    scorer = QualityScorer(QualityConfig(history_size=90))
    snapshot = make_snapshot(np.zeros(10), FS)
    for _ in range(120):
        scorer.score(raw(), SpectralFeatures(), snapshot)

    assert len(scorer.history) == 90
    scorer.reset()
    assert len(scorer.history) == 0
