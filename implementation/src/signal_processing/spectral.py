import numpy as np
import logging
from scipy.signal import stft
from scipy.integrate import trapezoid

from .config import SpectralConfig, WaveletConfig, AveragingMethod
from .performance import get_window_coeffs
from .types import BandPowers, Harmonic, SpectralFeatures
from .wavelet import WaveletAnalyzer


class SpectralEstimator:
    def __init__(self, config=None, sampling_rate=30, wavelet_config=None):
        self.logger = logging.getLogger('FingerPulse.SpectralEstimator')
        self.config = config or SpectralConfig()
        self.fs = sampling_rate
        self.nyquist = sampling_rate / 2.0
        self.wavelet = WaveletAnalyzer(wavelet_config or WaveletConfig(), sampling_rate)

        if self.config.averaging is AveragingMethod.MEDIAN:
            self._average = np.median
        else:
            self._average = np.mean

    def _segment_length(self, n):
        return min(self.config.window_size, n)

    def _nfft(self, seg_len):
        nfft = 1 << int(np.ceil(np.log2(seg_len)))
        return max(self.config.min_nfft, nfft)

    def spectrum(self, values):
        """
        Welch-style averaged spectrum.

        Returns:
            tuple: (freqs, magnitudes, phases, segment_count, segment_length)
        """
        values = np.asarray(values, dtype=np.float64)
        seg_len = self._segment_length(len(values))
        hop = max(1, int(seg_len * (1 - self.config.overlap)))
        window = get_window_coeffs(self.config.window_type.value, seg_len)

        freqs, _, zxx = stft(values, fs=self.fs, window=window, nperseg=seg_len,
                             noverlap=seg_len - hop, nfft=self._nfft(seg_len),
                             detrend='constant', boundary=None, padded=False)

        magnitudes = self._average(np.abs(zxx), axis=1)
        # Phase of the segment-averaged complex spectrum
        phases = np.angle(np.mean(zxx, axis=1))
        return freqs, magnitudes, phases, zxx.shape[1], seg_len

    def band_power(self, freqs, power, band):
        mask = (freqs >= band[0]) & (freqs <= band[1])
        if np.count_nonzero(mask) < 2:
            return 0.0
        return float(trapezoid(power[mask], freqs[mask]))

    def analyze(self, values, respiration_values=None):
        """
        Spectral and wavelet features of a conditioned window.

        Args:
            values: conditioned samples, oldest first
            respiration_values: detrended raw samples for the respiration rate

        Returns:
            SpectralFeatures: empty (segments == 0) below the minimum sample count
        """
        values = np.asarray(values, dtype=np.float64)
        if len(values) < self.config.min_samples:
            return SpectralFeatures()

        spectrum_input = values
        if self.config.wavelet_enhance:
            enhanced = self.wavelet.cardiac_component(values, self.config.bands['cardiac'])
            if len(enhanced):
                spectrum_input = enhanced

        freqs, magnitudes, phases, segments, seg_len = self.spectrum(spectrum_input)
        power = magnitudes ** 2
        bands = self.config.bands

        band_powers = BandPowers(**{name: self.band_power(freqs, power, band)
                                    for name, band in bands.items()})

        cardiac_low, cardiac_high = bands['cardiac']
        cardiac_mask = (freqs >= cardiac_low) & (freqs <= cardiac_high)
        if not np.any(cardiac_mask) or np.max(magnitudes[cardiac_mask]) <= 0:
            dominant = 0.0
            harmonics = ()
        else:
            cardiac_idx = np.where(cardiac_mask)[0]
            peak_idx = cardiac_idx[np.argmax(magnitudes[cardiac_mask])]
            dominant = float(freqs[peak_idx])
            harmonics = self._harmonics(freqs, magnitudes, dominant, magnitudes[peak_idx])

        signal_power, noise_power = self._signal_noise(freqs, power, dominant, harmonics, seg_len)
        if signal_power > 0 and noise_power > 0:
            snr_db = float(10 * np.log10(signal_power / noise_power))
        else:
            snr_db = 0.0

        return SpectralFeatures(
            frequencies=freqs,
            magnitudes=magnitudes,
            phases=phases,
            band_powers=band_powers,
            dominant_frequency=dominant,
            harmonics=harmonics,
            signal_power=signal_power,
            noise_power=noise_power,
            snr_db=snr_db,
            segments=segments,
            wavelet=self.wavelet.analyze(values, respiration_values),
        )

    def snr(self, values):
        """SNR (dB) of a window; 0.0 when it is too short to analyze."""
        return self.analyze(values).snr_db

    def _harmonics(self, freqs, magnitudes, fundamental, fundamental_mag):
        harmonics = []
        bin_width = freqs[1] - freqs[0]
        for order in range(2, self.config.max_harmonic_order + 1):
            target = order * fundamental
            if target >= self.nyquist:
                break
            near = np.abs(freqs - target) <= bin_width
            magnitude = float(np.max(magnitudes[near]))
            relative = magnitude / fundamental_mag
            if relative >= self.config.min_harmonic_amplitude:
                harmonics.append(Harmonic(order=order, frequency=float(target),
                                          magnitude=magnitude, relative_amplitude=relative))
        return tuple(harmonics)

    def _signal_noise(self, freqs, power, dominant, harmonics, seg_len):
        low = self.config.bands['cardiac'][0]
        high = self.config.bands['noise'][1]
        analysis = (freqs >= low) & (freqs <= high)
        if dominant <= 0 or np.count_nonzero(analysis) < 2:
            return 0.0, 0.0

        halfwidth = max(self.config.peak_halfwidth_hz, 2.0 * self.fs / seg_len)
        peak_mask = np.abs(freqs - dominant) <= halfwidth
        for h in harmonics:
            peak_mask |= np.abs(freqs - h.frequency) <= halfwidth

        f = freqs[analysis]
        p = power[analysis]
        in_peak = peak_mask[analysis]
        signal_power = float(trapezoid(np.where(in_peak, p, 0.0), f))
        noise_power = float(trapezoid(np.where(in_peak, 0.0, p), f))
        return signal_power, noise_power
