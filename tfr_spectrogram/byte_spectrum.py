"""
Byte Spectrum Analyzer

The conventional STFT path the renderer draws when reassignment is switched
off. It follows the analyser-node convention of browsers' audio graphs so the
two estimators are interchangeable for the renderer:

1. Take the most recent fft_size samples
2. Blackman window, FFT, magnitude |X| / N
3. Exponential smoothing with the previous frame
4. dB, then linear map of [min_db, max_db] onto [0, 255]
"""

import logging
from typing import Optional

import numpy as np
from scipy import signal

from .fft import fft_in_place, InvalidLengthError
from .utils import DEFAULT_WINDOW_SIZE, is_power_of_two

logger = logging.getLogger(__name__)


class ByteSpectrumAnalyzer:
    """
    Smoothed, dB-scaled magnitude spectrum as bytes.

    Usage:
        >>> analyzer = ByteSpectrumAnalyzer(fft_size=2048)
        >>> column = analyzer.process(time_data)   # uint8[1024]
    """

    def __init__(
        self,
        fft_size: int = DEFAULT_WINDOW_SIZE,
        min_db: float = -100.0,
        max_db: float = -30.0,
        smoothing: float = 0.8
    ):
        """
        Initialize the analyzer.

        Args:
            fft_size: FFT size (power of two)
            min_db: Level mapped to byte 0
            max_db: Level mapped to byte 255
            smoothing: Weight of the previous frame (0 = no smoothing)

        Raises:
            InvalidLengthError: If fft_size is not a power of two
            ValueError: On an invalid dB range or smoothing constant
        """
        if not is_power_of_two(fft_size) or fft_size < 2:
            raise InvalidLengthError(f"fft_size must be a power of two (got {fft_size})")
        if min_db >= max_db:
            raise ValueError(f"min_db ({min_db}) must be below max_db ({max_db})")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError(f"smoothing must be in [0, 1) (got {smoothing})")

        self.fft_size = fft_size
        self.min_db = min_db
        self.max_db = max_db
        self.smoothing = smoothing

        self.window = signal.get_window('blackman', fft_size)
        self._buffer = np.zeros(fft_size, dtype=np.complex128)
        self._smoothed = np.zeros(fft_size // 2)

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def reset(self) -> None:
        """Clear the smoothing history."""
        self._smoothed.fill(0.0)

    def magnitudes(self, time_data: np.ndarray) -> np.ndarray:
        """
        Smoothed linear magnitudes of the latest fft_size samples.

        Updates the smoothing state.
        """
        samples = np.asarray(time_data, dtype=np.float64)
        if samples.ndim != 1:
            raise ValueError(f"Expected mono audio (1-D), got shape {samples.shape}")

        frame = np.zeros(self.fft_size)
        recent = samples[-self.fft_size:]
        if len(recent):
            frame[self.fft_size - len(recent):] = recent

        self._buffer[:] = frame * self.window
        fft_in_place(self._buffer)
        magnitude = np.abs(self._buffer[:self.frequency_bin_count]) / self.fft_size

        if not np.all(np.isfinite(magnitude)):
            logger.warning("Non-finite spectrum values replaced with 0")
            magnitude = np.nan_to_num(magnitude, nan=0.0, posinf=0.0, neginf=0.0)

        self._smoothed *= self.smoothing
        self._smoothed += (1.0 - self.smoothing) * magnitude
        return self._smoothed.copy()

    def decibels(self, time_data: np.ndarray) -> np.ndarray:
        """Smoothed spectrum in dB (-inf for empty bins)."""
        with np.errstate(divide='ignore'):
            return 20.0 * np.log10(self.magnitudes(time_data))

    def process(self, time_data: np.ndarray) -> np.ndarray:
        """
        Byte spectrum of the latest samples.

        Returns:
            uint8 array of length fft_size / 2
        """
        return self.to_bytes(self.magnitudes(time_data))

    def to_bytes(self, magnitude: np.ndarray) -> np.ndarray:
        """Map linear magnitudes (any shape) onto the [min_db, max_db] byte scale."""
        with np.errstate(divide='ignore'):
            db = 20.0 * np.log10(np.asarray(magnitude, dtype=np.float64))
        scaled = 255.0 * (db - self.min_db) / (self.max_db - self.min_db)
        scaled = np.nan_to_num(scaled, nan=0.0, neginf=0.0, posinf=255.0)
        return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)


def byte_frequency_data(
    time_data: np.ndarray,
    fft_size: int = DEFAULT_WINDOW_SIZE,
    min_db: float = -100.0,
    max_db: float = -30.0,
    smoothing: Optional[float] = 0.0
) -> np.ndarray:
    """Unsmoothed (by default) one-shot byte spectrum."""
    analyzer = ByteSpectrumAnalyzer(fft_size, min_db, max_db, smoothing or 0.0)
    return analyzer.process(time_data)
