import numpy as np
import pytest

from conftest import sine_wave
from signal_processing.config import AveragingMethod, SpectralConfig, WaveletConfig, WaveletType, WindowType
from signal_processing.spectral import SpectralEstimator
from signal_processing.wavelet import WaveletAnalyzer

FS = 30


@pytest.mark.parametrize('window_type', list(WindowType))
def test_dominant_frequency_of_cardiac_sine(window_type):
    estimator = SpectralEstimator(SpectralConfig(window_type=window_type), FS)

    features = estimator.analyze(sine_wave(1.2, FS, 256 / FS))

    assert features.dominant_frequency == pytest.approx(1.2, abs=0.06)
    assert features.segments == 3
    assert len(features.frequencies) == len(features.magnitudes) == len(features.phases)


def test_short_window_is_empty():
    features = SpectralEstimator(SpectralConfig(), FS).analyze(np.ones(32))

    assert features.is_empty
    assert features.dominant_frequency == 0.0
    assert features.snr_db == 0.0


def test_band_powers_follow_signal_content():
    estimator = SpectralEstimator(SpectralConfig(), FS)

    cardiac = estimator.analyze(sine_wave(1.2, FS, 256 / FS)).band_powers
    noisy = estimator.analyze(sine_wave(6.0, FS, 256 / FS)).band_powers

    assert cardiac.cardiac > 10 * cardiac.noise
    assert noisy.noise > 10 * noisy.cardiac


def test_harmonics_above_relative_floor_are_reported():
    t = np.arange(256) / FS
    signal = (np.sin(2 * np.pi * 1.0 * t) + 0.5 * np.sin(2 * np.pi * 2.0 * t)
              + 0.3 * np.sin(2 * np.pi * 3.0 * t))

    features = SpectralEstimator(SpectralConfig(), FS).analyze(signal)

    assert features.dominant_frequency == pytest.approx(1.0, abs=0.06)
    assert [h.order for h in features.harmonics] == [2, 3]
    assert features.harmonics[0].relative_amplitude == pytest.approx(0.5, abs=0.1)
    assert features.harmonics[1].relative_amplitude == pytest.approx(0.3, abs=0.1)


def test_snr_separates_pulse_from_noise():
    estimator = SpectralEstimator(SpectralConfig(), FS)
    rng = np.random.default_rng(11)

    clean = estimator.analyze(sine_wave(1.2, FS, 256 / FS) + rng.normal(0, 0.05, 256))
    noise = estimator.analyze(rng.normal(0, 1.0, 256))

    assert clean.snr_db > 10
    assert noise.snr_db < 3
    assert clean.signal_power > 0 and clean.noise_power > 0


def test_median_averaging_suppresses_single_segment_transient():
    signal = sine_wave(1.2, FS, 256 / FS)
    signal[230:236] += 20.0

    mean = SpectralEstimator(SpectralConfig(averaging=AveragingMethod.MEAN), FS).analyze(signal)
    median = SpectralEstimator(SpectralConfig(averaging=AveragingMethod.MEDIAN), FS).analyze(signal)

    assert median.band_powers.noise < mean.band_powers.noise
    assert median.dominant_frequency == pytest.approx(1.2, abs=0.06)


def test_spectral_features_include_wavelet_features():
    features = SpectralEstimator(SpectralConfig(), FS).analyze(sine_wave(1.2, FS, 256 / FS))

    assert features.wavelet is not None
    assert features.wavelet.wavelet == 'db4'
    assert features.wavelet.levels == 5


def test_wavelet_subbands_locate_cardiac_energy():
    analyzer = WaveletAnalyzer(WaveletConfig(), FS)

    features = analyzer.analyze(sine_wave(1.2, FS, 256 / FS))

    assert [s.level for s in features.subbands] == [1, 2, 3, 4, 5]
    assert features.subbands[0].low_hz == pytest.approx(7.5)
    assert features.subbands[0].high_hz == pytest.approx(15.0)
    strongest = max(features.subbands, key=lambda s: s.energy)
    assert strongest.low_hz <= 1.2 <= strongest.high_hz
    assert all(s.energy >= 0 and s.entropy >= 0 and s.variance >= 0 for s in features.subbands)


def test_haar_levels_are_limited_by_configuration():
    analyzer = WaveletAnalyzer(WaveletConfig(wavelet=WaveletType.HAAR, levels=4), FS)

    features = analyzer.analyze(np.random.default_rng(2).normal(0, 1, 256))

    assert features.wavelet == 'haar'
    assert features.levels == 4


def test_noise_sigma_tracks_white_noise_level():
    analyzer = WaveletAnalyzer(WaveletConfig(), FS)
    noise = np.random.default_rng(5).normal(0, 2.0, 512)

    assert analyzer.analyze(noise).noise_sigma == pytest.approx(2.0, rel=0.2)


def test_cardiac_reconstruction_follows_pulse():
    analyzer = WaveletAnalyzer(WaveletConfig(), FS)
    signal = sine_wave(1.2, FS, 256 / FS)

    cardiac = analyzer.cardiac_component(signal)

    assert len(cardiac) == 256
    assert np.corrcoef(cardiac, signal)[0, 1] > 0.8


def test_reconstruct_without_levels_is_zero():
    analyzer = WaveletAnalyzer(WaveletConfig(), FS)

    assert np.allclose(analyzer.reconstruct(sine_wave(1.2, FS, 256 / FS), []), 0.0)


def test_respiration_rate_from_slow_modulation():
    analyzer = WaveletAnalyzer(WaveletConfig(), sampling_rate=10)
    breathing = sine_wave(0.25, 10, 51.2)

    assert analyzer.respiration_rate(breathing) == pytest.approx(15.0, abs=1.5)


def test_too_short_for_wavelets():
    analyzer = WaveletAnalyzer(WaveletConfig(), FS)

    features = analyzer.analyze(np.ones(8))

    assert features.levels == 0
    assert features.subbands == ()
    assert analyzer.respiration_rate(np.ones(8)) == 0.0


def test_wavelet_enhancement_suppresses_out_of_band_energy():
    signal = sine_wave(1.2, FS, 256 / FS) + sine_wave(9.0, FS, 256 / FS, amplitude=2.0)

    plain = SpectralEstimator(SpectralConfig(), FS).analyze(signal)
    enhanced = SpectralEstimator(SpectralConfig(wavelet_enhance=True), FS).analyze(signal)

    assert enhanced.dominant_frequency == pytest.approx(1.2, abs=0.06)
    assert enhanced.band_powers.noise < 0.2 * plain.band_powers.noise
    assert enhanced.snr_db > plain.snr_db


def test_wavelet_analysis_accepts_read_only_windows():
    analyzer = WaveletAnalyzer(WaveletConfig(), FS)
    values = sine_wave(1.2, FS, 256 / FS)
    values.setflags(write=False)

    features = analyzer.analyze(values)

    assert features.levels == 5
    assert len(analyzer.cardiac_component(values)) == 256


def test_respiration_uses_separate_raw_window():
    estimator = SpectralEstimator(SpectralConfig(), FS)
    conditioned = sine_wave(1.2, FS, 256 / FS)
    raw = sine_wave(1 / 3, FS, 512 / FS, amplitude=3.0) + sine_wave(1.2, FS, 512 / FS)

    features = estimator.analyze(conditioned, respiration_values=raw)

    assert features.dominant_frequency == pytest.approx(1.2, abs=0.06)
    assert features.wavelet.respiration_rate == pytest.approx(20.0, abs=3.0)
    assert estimator.analyze(conditioned).wavelet.respiration_rate == 0.0
