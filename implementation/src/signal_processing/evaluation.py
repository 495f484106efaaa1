import os
import json
import numpy as np

from .config import ChannelOrder
from .types import PixelRegion


class OfflineEvaluator:
    """Compares pipeline BPM against a ground-truth JSON of {frame_index: bpm}."""

    def __init__(self, truth_path):
        self.truth_path = truth_path
        self.ground_truth = self._load_truth()
        self.errors = []

    def _load_truth(self):
        if not os.path.exists(self.truth_path):
            return {}
        with open(self.truth_path, 'r') as f:
            return json.load(f)

    def evaluate(self, frame_idx, predicted_bpm):
        true_bpm = self.ground_truth.get(str(frame_idx))
        if true_bpm is None or not predicted_bpm:
            return None
        error = abs(predicted_bpm - true_bpm)
        self.errors.append(error)
        return error

    def summary(self):
        if not self.errors:
            return {'frames': 0, 'mae': None, 'rmse': None}
        errors = np.asarray(self.errors)
        return {
            'frames': len(errors),
            'mae': float(np.mean(errors)),
            'rmse': float(np.sqrt(np.mean(errors ** 2))),
        }


class SyntheticSignalGenerator:
    def __init__(self, bpm=75, noise_level=0.05, sampling_rate=30, amplitude=1.0, seed=0):
        self.bpm = bpm
        self.noise = noise_level
        self.fs = sampling_rate
        self.amplitude = amplitude
        self.rng = np.random.default_rng(seed)

    def timestamps(self, duration_sec):
        """Frame times in ms."""
        n = int(round(self.fs * duration_sec))
        return np.arange(n) * 1000.0 / self.fs

    def generate(self, duration_sec):
        t = self.timestamps(duration_sec) / 1000.0
        signal = self.amplitude * np.sin(2 * np.pi * (self.bpm / 60) * t)
        if self.noise > 0:
            signal = signal + self.rng.normal(0, self.noise, size=signal.shape)
        return signal


class SyntheticFrameGenerator:
    """Fingertip-like frames whose red level follows a pulse waveform."""

    def __init__(self, bpm=72, sampling_rate=30, base_red=180.0, amplitude=4.0,
                 noise_level=0.2, pixel_noise=2.0, green=40.0, blue=30.0,
                 size=(32, 32), channel_order=ChannelOrder.RGBA, seed=0,
                 respiration_rate=0.0, respiration_depth=0.0):
        self.signal = SyntheticSignalGenerator(bpm, noise_level, sampling_rate, amplitude, seed)
        self.fs = sampling_rate
        self.base_red = base_red
        self.pixel_noise = pixel_noise
        self.green = green
        self.blue = blue
        self.size = size
        self.channel_order = channel_order
        self.respiration_rate = respiration_rate      # breaths/min
        self.respiration_depth = respiration_depth    # red levels, peak
        self.rng = np.random.default_rng(seed + 1)

    def frames(self, duration_sec):
        """
        Yields:
            tuple: (frame, timestamp_ms) with HxWx4 RGBA or HxWx3 BGR uint8 frames
        """
        pulse = self.signal.generate(duration_sec)
        timestamps = self.signal.timestamps(duration_sec)
        breathing = self.respiration_depth * np.sin(
            2 * np.pi * self.respiration_rate / 60.0 * timestamps / 1000.0)
        for timestamp, value, baseline in zip(timestamps, pulse, breathing):
            yield self.frame(self.base_red + baseline + value), float(timestamp)

    def frame(self, red_level):
        height, width = self.size
        noise = self.rng.normal(0, self.pixel_noise, size=(height, width))
        red = np.clip(red_level + noise, 0, 255)
        green = np.full((height, width), self.green)
        blue = np.full((height, width), self.blue)

        if self.channel_order is ChannelOrder.BGR:
            pixels = np.stack([blue, green, red], axis=-1)
        else:
            pixels = np.stack([red, green, blue, np.full((height, width), 255.0)], axis=-1)
        return np.round(pixels).astype(np.uint8)

    def regions(self, duration_sec):
        """Same as frames(), packed as RGBA PixelRegions."""
        height, width = self.size
        for frame, timestamp in self.frames(duration_sec):
            yield PixelRegion(width=width, height=height, data=frame.tobytes()), timestamp


def grey_frames(count, level=128, size=(32, 32), sampling_rate=30):
    """Uniform grey RGBA frames, which must never pass as a finger."""
    height, width = size
    frame = np.full((height, width, 4), level, dtype=np.uint8)
    frame[:, :, 3] = 255
    for i in range(count):
        yield frame.copy(), i * 1000.0 / sampling_rate
