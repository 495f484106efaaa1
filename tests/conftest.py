"""Shared pytest configuration and fixtures for the FingerPulse test suite."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure the source root is in the path for imports
SOURCE_ROOT = Path(__file__).parent.parent / 'implementation' / 'src'
if str(SOURCE_ROOT) not in sys.path:
    sys.path.insert(0, str(SOURCE_ROOT))

from signal_processing.buffer import WindowBuffer  # noqa: E402
from signal_processing.config import PipelineConfig  # noqa: E402
from signal_processing.evaluation import SyntheticFrameGenerator  # noqa: E402
from signal_processing.types import BufferSnapshot  # noqa: E402


# =============================================================================
# Helpers
# =============================================================================

def sine_wave(freq_hz, fs, duration_s, amplitude=1.0):
    t = np.arange(int(round(fs * duration_s))) / fs
    return amplitude * np.sin(2 * np.pi * freq_hz * t)


def gaussian_pulses(centers_ms, fs, duration_s, width_ms=40.0):
    t_ms = np.arange(int(round(fs * duration_s))) * 1000.0 / fs
    signal = np.zeros_like(t_ms)
    for center in centers_ms:
        signal += np.exp(-0.5 * ((t_ms - center) / width_ms) ** 2)
    return signal


def make_snapshot(values, fs, start_index=0):
    values = np.asarray(values, dtype=np.float64)
    timestamps = (np.arange(len(values)) + start_index) * 1000.0 / fs
    return BufferSnapshot(timestamps=timestamps, values=values, start_index=start_index)


def run_detector(detector, values, fs, capacity=256):
    """Stream samples through a WindowBuffer into a detector; returns the beats."""
    buffer = WindowBuffer(capacity)
    beats = []
    for i, value in enumerate(values):
        buffer.append(i * 1000.0 / fs, value)
        beat = detector.update(buffer.snapshot())
        if beat is not None:
            beats.append(beat)
    return beats


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def config():
    return PipelineConfig()


@pytest.fixture
def fingertip_frames():
    """Ten seconds of 72 BPM fingertip frames at 30 fps (plus the frame at 10 s)."""
    generator = SyntheticFrameGenerator(bpm=72, sampling_rate=30, seed=7)
    return list(generator.frames(10.04))
