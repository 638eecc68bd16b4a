"""
FFT Engine

In-place radix-2 Cooley-Tukey FFT operating on interleaved real/imaginary
buffers (the layout the reassignment engine and the renderer exchange), plus
the windowed-spectrum helper used once per taper per frame.

Layout: a spectrum of N complex bins is a float64 buffer of length 2N,
[re0, im0, re1, im1, ...]. Such a buffer is viewed as complex128 without
copying, so the transform really runs in place. Leading axes are batch axes;
the last axis is always the transform axis.

Bin b of the output corresponds to b * sample_rate / N, Nyquist at N/2.
"""

import logging
from typing import Dict

import numpy as np

from .utils import is_power_of_two

logger = logging.getLogger(__name__)


class InvalidLengthError(ValueError):
    """Raised when a transform length is not a power of two."""
    pass


_BIT_REVERSAL_CACHE: Dict[int, np.ndarray] = {}
_TWIDDLE_CACHE: Dict[int, np.ndarray] = {}


def _bit_reversal_permutation(n: int) -> np.ndarray:
    """Index permutation that reverses the log2(n) low bits of each index."""
    perm = _BIT_REVERSAL_CACHE.get(n)
    if perm is None:
        bits = n.bit_length() - 1
        perm = np.zeros(n, dtype=np.intp)
        indices = np.arange(n)
        for bit in range(bits):
            perm |= ((indices >> bit) & 1) << (bits - 1 - bit)
        perm.setflags(write=False)
        _BIT_REVERSAL_CACHE[n] = perm
    return perm


def _twiddles(half: int) -> np.ndarray:
    """exp(-i pi p / half) for p in [0, half)."""
    factors = _TWIDDLE_CACHE.get(half)
    if factors is None:
        factors = np.exp(-1j * np.pi * np.arange(half) / half)
        factors.setflags(write=False)
        _TWIDDLE_CACHE[half] = factors
    return factors


def _complex_view(buffer: np.ndarray) -> np.ndarray:
    """Complex128 view of an interleaved float64 or complex128 buffer."""
    if not buffer.flags.c_contiguous:
        raise ValueError("FFT buffers must be C-contiguous to be transformed in place")
    if buffer.dtype == np.complex128:
        return buffer
    if buffer.dtype != np.float64:
        raise TypeError(f"FFT buffers must be float64 or complex128 (got {buffer.dtype})")
    if buffer.shape[-1] % 2:
        raise InvalidLengthError(
            f"Interleaved buffer length must be even (got {buffer.shape[-1]})"
        )
    return buffer.view(np.complex128)


def fft_in_place(buffer: np.ndarray) -> np.ndarray:
    """
    Forward FFT along the last axis, overwriting the buffer.

    Args:
        buffer: Interleaved float64 array (last axis 2N) or complex128 array
            (last axis N). N must be a power of two.

    Returns:
        The same buffer, now holding the spectrum

    Raises:
        InvalidLengthError: If N is not a power of two
    """
    data = _complex_view(buffer)
    n = data.shape[-1]
    if not is_power_of_two(n):
        raise InvalidLengthError(f"FFT length must be a power of two (got {n})")

    data[...] = data[..., _bit_reversal_permutation(n)]

    batch_shape = data.shape[:-1]
    half = 1
    while half < n:
        # Groups of 2*half samples: first half "even", second half "odd"
        stages = data.reshape(batch_shape + (n // (2 * half), 2, half))
        even = stages[..., 0, :]
        odd = stages[..., 1, :]
        rotated = odd * _twiddles(half)
        odd[...] = even - rotated
        even += rotated
        half *= 2

    return buffer


def inverse_fft_in_place(buffer: np.ndarray) -> np.ndarray:
    """
    Inverse FFT along the last axis, overwriting the buffer (scaled by 1/N).

    Uses ifft(X) = conj(fft(conj(X))) / N.
    """
    data = _complex_view(buffer)
    np.conjugate(data, out=data)
    fft_in_place(data)
    np.conjugate(data, out=data)
    data /= data.shape[-1]
    return buffer


def fft(x: np.ndarray) -> np.ndarray:
    """Forward transform of a real or complex sequence, returns complex128."""
    data = np.array(x, dtype=np.complex128, copy=True)
    return fft_in_place(data)


def inverse_fft(spectrum: np.ndarray) -> np.ndarray:
    """Inverse transform of a complex spectrum, returns complex128."""
    data = np.array(spectrum, dtype=np.complex128, copy=True)
    return inverse_fft_in_place(data)


def as_complex(spectrum: np.ndarray) -> np.ndarray:
    """View an interleaved spectrum as complex bins (no copy)."""
    return _complex_view(spectrum)


def interleave(values: np.ndarray) -> np.ndarray:
    """Pack a complex array into a new interleaved float64 buffer."""
    return np.ascontiguousarray(values, dtype=np.complex128).view(np.float64).copy()


def compute_windowed_spectrum(frame: np.ndarray, window: np.ndarray) -> np.ndarray:
    """
    Window a real frame and return its interleaved spectrum.

    Args:
        frame: Real samples, length N (power of two)
        window: Analysis window, same length as frame

    Returns:
        Interleaved float64 buffer of length 2N

    Raises:
        ValueError: If frame and window lengths differ (callers pad frames)
        InvalidLengthError: If N is not a power of two
    """
    frame = np.asarray(frame, dtype=np.float64)
    window = np.asarray(window, dtype=np.float64)
    if frame.shape != window.shape:
        raise ValueError(
            f"Frame length {frame.shape[-1]} does not match window length {window.shape[-1]}"
        )

    result = np.zeros(frame.shape[:-1] + (2 * frame.shape[-1],))
    result[..., 0::2] = frame * window
    return fft_in_place(result)


def magnitude_spectrum(spectrum: np.ndarray) -> np.ndarray:
    """|X| of the first N/2 bins of an interleaved spectrum."""
    bins = as_complex(spectrum)
    return np.abs(bins[..., : bins.shape[-1] // 2])
