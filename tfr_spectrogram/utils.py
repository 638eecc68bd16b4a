"""
Utility functions and constants for the reassignment spectrogram.

Provides:
- Analysis defaults (window size, sample rate, MIDI timing)
- Math primitives for the Hermite taper bank (factorial, Hermite polynomials)
- FFT bin <-> frequency helpers
- Frequency <-> MIDI note conversions
"""

import math
from typing import Union

import numpy as np


# =============================================================================
# ANALYSIS CONSTANTS
# =============================================================================

SAMPLE_RATE = 44100          # Hz - default capture rate
DEFAULT_WINDOW_SIZE = 2048   # samples - FFT / taper length
DEFAULT_NUM_TAPERS = 6       # Hermite tapers averaged per frame
DEFAULT_TIME_SUPPORT = 6.0   # Hermite window half-width (in Hermite time units)

# MIDI timing used when exporting drawn notes
TICKS_PER_BEAT = 480
DEFAULT_BPM = 120

NOTE_NAMES = ['C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B']

A4_FREQUENCY = 440.0
A4_MIDI = 69


# =============================================================================
# MATH PRIMITIVES
# =============================================================================

def factorial(n: int) -> int:
    """
    Exact integer factorial.

    Args:
        n: Non-negative integer

    Returns:
        n! (1 for n <= 1)

    Raises:
        ValueError: If n is negative
    """
    if n < 0:
        raise ValueError(f"factorial is undefined for negative n (got {n})")
    result = 1
    for i in range(2, n + 1):
        result *= i
    return result


def evaluate_hermite_polynomial(
    n: int,
    x: Union[float, np.ndarray]
) -> Union[float, np.ndarray]:
    """
    Evaluate the physicists' Hermite polynomial H_n at x.

    Uses the three-term recurrence
        H_0 = 1, H_1 = 2x, H_n = 2x H_{n-1} - 2(n-1) H_{n-2}
    iterated upwards, so large orders cost O(n) and no stack.

    Args:
        n: Polynomial order (>= 0)
        x: Scalar or numpy array (evaluated element-wise)

    Returns:
        H_n(x) with the same shape as x

    Examples:
        evaluate_hermite_polynomial(2, 1.0) -> 2.0   # 4x^2 - 2
        evaluate_hermite_polynomial(3, 0.5) -> -5.0  # 8x^3 - 12x
    """
    if n < 0:
        raise ValueError(f"Hermite polynomial order must be >= 0 (got {n})")

    if isinstance(x, np.ndarray):
        previous = np.ones_like(x, dtype=np.float64)
    else:
        previous = 1.0
    if n == 0:
        return previous

    current = 2.0 * x
    for order in range(2, n + 1):
        previous, current = current, 2.0 * x * current - 2.0 * (order - 1) * previous
    return current


def is_power_of_two(n: int) -> bool:
    """True for 1, 2, 4, 8, ..."""
    return isinstance(n, (int, np.integer)) and n > 0 and (n & (n - 1)) == 0


# =============================================================================
# BIN / FREQUENCY HELPERS
# =============================================================================

def bin_to_frequency(bin_index: Union[int, np.ndarray], sample_rate: float, window_size: int):
    """Centre frequency in Hz of an FFT bin (bin N/2 is Nyquist)."""
    return bin_index * sample_rate / window_size


def frequency_to_bin(frequency: float, sample_rate: float, window_size: int) -> int:
    """Nearest FFT bin for a frequency in Hz."""
    return int(round(frequency * window_size / sample_rate))


def bin_frequencies(sample_rate: float, window_size: int) -> np.ndarray:
    """Frequencies of the N/2 display bins [0, Nyquist)."""
    return np.arange(window_size // 2) * sample_rate / window_size


# =============================================================================
# NOTE FUNCTIONS
# =============================================================================

def frequency_to_midi(frequency: float) -> int:
    """
    Convert a frequency to the nearest MIDI note number.

    Examples:
        frequency_to_midi(440.0) -> 69
        frequency_to_midi(261.63) -> 60
    """
    if frequency <= 0:
        raise ValueError(f"Frequency must be positive (got {frequency})")
    return int(round(A4_MIDI + 12 * math.log2(frequency / A4_FREQUENCY)))


def midi_to_frequency(midi_note: float) -> float:
    """Convert MIDI note number to frequency in Hz."""
    return A4_FREQUENCY * (2 ** ((midi_note - A4_MIDI) / 12))


def midi_note_to_name(midi_note: int) -> str:
    """
    Convert MIDI note number to note name with octave.

    Examples:
        midi_note_to_name(60) -> 'C4'
        midi_note_to_name(69) -> 'A4'
    """
    octave = (midi_note // 12) - 1
    note_index = midi_note % 12
    return f"{NOTE_NAMES[note_index]}{octave}"


def bpm_to_microseconds_per_beat(bpm: float) -> int:
    """Convert BPM to microseconds per beat (for MIDI tempo meta events)."""
    return int(60_000_000 / bpm)
