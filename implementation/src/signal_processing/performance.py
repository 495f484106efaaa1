import numpy as np
from scipy.signal import butter, get_window
from functools import lru_cache


@lru_cache(maxsize=8)
def get_bandpass_coeffs(low, high, fs, order=1):
    """Butterworth band-pass taps; order 1 gives the 2nd-order, 3-tap section."""
    b, a = butter(order, [low, high], btype='band', fs=fs)
    return b, a


@lru_cache(maxsize=16)
def get_window_coeffs(window_name, size):
    window = get_window(window_name, size, fftbins=True)
    window.setflags(write=False)
    return window


def filter_poles(a):
    """Poles of an IIR filter given its denominator taps."""
    return np.roots(a)
