import numpy as np
import pywt
import logging

from .config import WaveletConfig
from .types import SubbandFeatures, WaveletFeatures


class WaveletAnalyzer:
    """Periodized discrete wavelet analysis of a sample window."""

    def __init__(self, config=None, sampling_rate=30):
        self.logger = logging.getLogger('FingerPulse.WaveletAnalyzer')
        self.config = config or WaveletConfig()
        self.fs = sampling_rate
        self.wavelet = pywt.Wavelet(self.config.wavelet.value)

    def _aligned(self, values):
        """Most recent power-of-two run of samples."""
        values = np.asarray(values, dtype=np.float64)
        if len(values) < 16:
            return None
        size = 2 ** int(np.floor(np.log2(len(values))))
        # pywt needs a writable buffer; snapshots are read-only
        return np.array(values[-size:], dtype=np.float64)

    def _levels_for(self, size):
        supported = pywt.dwt_max_level(size, self.wavelet.dec_len)
        return max(0, min(self.config.levels, supported))

    def subband_range(self, level):
        """Frequency range (Hz) covered by the detail coefficients of a level."""
        return self.fs / 2 ** (level + 1), self.fs / 2 ** level

    def decompose(self, values):
        """
        Returns:
            list: [approximation, detail_L, ..., detail_1] as from pywt.wavedec
        """
        segment = self._aligned(values)
        if segment is None:
            return []
        levels = self._levels_for(len(segment))
        if levels == 0:
            return []
        return pywt.wavedec(segment, self.wavelet, mode='periodization', level=levels)

    def reconstruct(self, values, levels):
        """
        Inverse transform keeping only the given detail levels (1 = finest).

        Returns:
            ndarray of the aligned length, or an empty array if too short
        """
        coeffs = self.decompose(values)
        if not coeffs:
            return np.zeros(0)

        max_level = len(coeffs) - 1
        kept = []
        for position, c in enumerate(coeffs):
            level = max_level - position + 1 if position > 0 else None
            if level is not None and level in levels:
                kept.append(c)
            else:
                kept.append(np.zeros_like(c))
        return pywt.waverec(kept, self.wavelet, mode='periodization')

    def levels_in_band(self, band, max_level):
        """Detail levels whose range overlaps the band by more than half their width."""
        selected = []
        for level in range(1, max_level + 1):
            low, high = self.subband_range(level)
            overlap = min(high, band[1]) - max(low, band[0])
            if overlap > 0.5 * (high - low):
                selected.append(level)
        return selected

    def cardiac_component(self, values, band=(0.5, 4.0)):
        segment = self._aligned(values)
        if segment is None:
            return np.zeros(0)
        levels = self.levels_in_band(band, self._levels_for(len(segment)))
        return self.reconstruct(segment, levels)

    def respiration_rate(self, values):
        """Breaths per minute from the respiration-band reconstruction, 0.0 if implausible."""
        segment = self._aligned(values)
        if segment is None:
            return 0.0
        levels = self.levels_in_band(self.config.respiration_band, self._levels_for(len(segment)))
        if not levels:
            return 0.0

        breathing = self.reconstruct(segment, levels)
        breathing = breathing - np.mean(breathing)
        rising = np.where((breathing[:-1] < 0) & (breathing[1:] >= 0))[0]
        if len(rising) < 2:
            return 0.0

        rate = 60.0 * self.fs / float(np.median(np.diff(rising)))
        if not self.config.min_respiration_rate <= rate <= self.config.max_respiration_rate:
            self.logger.debug("Respiration rate %.1f/min outside plausible range", rate)
            return 0.0
        return float(rate)

    def analyze(self, values, respiration_values=None):
        """
        Subband features of a window.

        Args:
            values: samples to decompose
            respiration_values: unfiltered samples for the respiration rate;
                values are used when omitted
        """
        coeffs = self.decompose(values)
        if not coeffs:
            return WaveletFeatures(wavelet=self.wavelet.name)

        max_level = len(coeffs) - 1
        subbands = []
        for position in range(1, len(coeffs)):
            detail = coeffs[position]
            level = max_level - position + 1
            low, high = self.subband_range(level)
            power = detail ** 2
            energy = float(np.sum(power))
            if energy > 0:
                p = power / energy
                p = p[p > 0]
                entropy = float(-np.sum(p * np.log2(p)))
            else:
                entropy = 0.0
            subbands.append(SubbandFeatures(
                level=level, low_hz=low, high_hz=high,
                energy=energy, entropy=entropy, variance=float(np.var(detail)),
            ))
        subbands.sort(key=lambda s: s.level)

        # Robust noise estimate from the finest detail
        noise_sigma = float(np.median(np.abs(coeffs[-1])) / 0.6745)

        return WaveletFeatures(
            wavelet=self.wavelet.name,
            levels=max_level,
            subbands=tuple(subbands),
            noise_sigma=noise_sigma,
            respiration_rate=self.respiration_rate(
                values if respiration_values is None else respiration_values),
        )
