import numpy as np
import pytest

from signal_processing.config import ConditionerConfig
from signal_processing.filtering import OutlierClamp, ScalarKalmanFilter, SignalConditioner
from signal_processing.performance import get_bandpass_coeffs


def test_bandpass_has_three_taps_and_stable_poles():
    b, a = get_bandpass_coeffs(0.5, 4.0, 30)
    conditioner = SignalConditioner(ConditionerConfig(), sampling_rate=30)

    assert len(b) == 3 and len(a) == 3
    assert np.all(np.abs(conditioner.poles()) < 1.0)


def test_constant_input_does_not_ring():
    conditioner = SignalConditioner(ConditionerConfig(), sampling_rate=30)
    outputs = [conditioner.process(150.0, i * 33.3).value for i in range(60)]

    assert np.max(np.abs(outputs)) < 1e-6


def test_output_converges_to_zero_after_input_stops():
    rng = np.random.default_rng(3)
    conditioner = SignalConditioner(ConditionerConfig(), sampling_rate=30)
    for i, value in enumerate(rng.normal(0, 1, 90)):
        conditioner.process(value, i * 33.3)

    outputs = [conditioner.process(0.0, (90 + i) * 33.3).value for i in range(300)]

    assert abs(outputs[-1]) < 1e-3


def test_kalman_gain_reaches_steady_state():
    q, r = 0.15, 0.8
    kalman = ScalarKalmanFilter(q, r)
    for _ in range(200):
        kalman.update(1.0)

    p_inf = (-q + np.sqrt(q ** 2 + 4 * q * r)) / 2
    expected_gain = (p_inf + q) / (p_inf + q + r)
    assert kalman.gain == pytest.approx(expected_gain, rel=1e-6)
    assert kalman.x == pytest.approx(1.0, abs=1e-6)


def test_outlier_replaced_by_running_mean():
    clamp = OutlierClamp(sigma=2.5, window=30, min_history=10)
    for i in range(20):
        value, clamped = clamp.apply(10.0 if i % 2 == 0 else 11.0)
        assert not clamped

    value, clamped = clamp.apply(100.0)

    assert clamped
    assert value == pytest.approx(10.5)


def test_no_clamping_before_min_history():
    clamp = OutlierClamp(sigma=2.5, window=30, min_history=10)
    for value in (10.0, 11.0, 10.0):
        clamp.apply(value)

    value, clamped = clamp.apply(500.0)

    assert not clamped
    assert value == 500.0


def test_clamped_samples_carry_reduced_quality_hint():
    conditioner = SignalConditioner(ConditionerConfig(), sampling_rate=30)
    for i in range(20):
        conditioner.process(100.0 + (i % 2), i * 33.3)

    sample = conditioner.process(180.0, 20 * 33.3)

    assert sample.clamped
    assert sample.quality_hint == 0.5
    assert conditioner.clamped_count == 1


def test_reset_restores_initial_state():
    conditioner = SignalConditioner(ConditionerConfig(), sampling_rate=30)
    first = [conditioner.process(v, i * 33.3).value for i, v in enumerate(np.linspace(100, 120, 40))]
    conditioner.reset()
    second = [conditioner.process(v, i * 33.3).value for i, v in enumerate(np.linspace(100, 120, 40))]

    assert first == second
