"""
Spectrogram Analyzer

Per-stream session object driven by the display loop. Every tick the caller
hands over the latest time-domain buffer and receives one byte column, from
either the reassignment engine or the conventional byte spectrum. Both
estimators produce N/2 bins on the same byte scale, so the renderer does not
care which one is active.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from .byte_spectrum import ByteSpectrumAnalyzer
from .config import ReassignmentConfig
from .reassignment import ReassignmentEngine
from .utils import bin_frequencies

logger = logging.getLogger(__name__)


SUPPORTED_FFT_SIZES = (2048, 4096, 8192, 16384, 32768)


class SpectrogramAnalyzer:
    """
    One analysis stream: a reassignment engine, a byte spectrum analyzer and
    the switch between them.

    Attributes:
        config: Active engine configuration
        use_reassignment: Whether process() uses the reassignment engine
    """

    def __init__(
        self,
        config: Optional[ReassignmentConfig] = None,
        use_reassignment: bool = False
    ):
        self.config = config if config is not None else ReassignmentConfig()
        self.use_reassignment = use_reassignment
        self._build()

    def _build(self) -> None:
        self.engine = ReassignmentEngine(self.config)
        self.byte_analyzer = ByteSpectrumAnalyzer(fft_size=self.config.window_size)

    @property
    def fft_size(self) -> int:
        return self.config.window_size

    @property
    def frequency_bin_count(self) -> int:
        return self.config.num_bins

    def toggle_reassignment(self) -> bool:
        """Switch estimator, return the new state."""
        self.use_reassignment = not self.use_reassignment
        estimator = "reassignment" if self.use_reassignment else "byte spectrum"
        logger.info(f"Estimator switched to {estimator}")
        return self.use_reassignment

    def set_fft_size(self, size: int) -> bool:
        """
        Change the FFT size.

        Only SUPPORTED_FFT_SIZES are accepted; anything else keeps the current
        size. Both estimators are rebuilt, so smoothing and phase memory
        start over.

        Returns:
            True if the size was applied
        """
        if size not in SUPPORTED_FFT_SIZES:
            logger.warning(
                f"Unsupported FFT size {size}, keeping {self.fft_size} "
                f"(supported: {SUPPORTED_FFT_SIZES})"
            )
            return False
        if size == self.fft_size:
            return True

        self.config = self.config.replace(window_size=size)
        self._build()
        logger.info(f"FFT size set to {size}")
        return True

    def reset(self) -> None:
        self.engine.reset()
        self.byte_analyzer.reset()

    def process(self, time_data: np.ndarray, sample_rate: float) -> np.ndarray:
        """
        Produce the next display column.

        Args:
            time_data: Latest time-domain samples (nominal range [-1, 1])
            sample_rate: Sample rate in Hz

        Returns:
            uint8 array of length fft_size / 2
        """
        if self.use_reassignment:
            return self.engine.analyze(time_data, sample_rate)
        return self.byte_analyzer.process(time_data)

    def bin_frequencies(self, sample_rate: float) -> np.ndarray:
        return bin_frequencies(sample_rate, self.fft_size)


def compute_spectrogram(
    audio: np.ndarray,
    sample_rate: float,
    config: Optional[ReassignmentConfig] = None,
    use_reassignment: bool = True,
    as_bytes: bool = True
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Offline spectrogram of a whole signal.

    Args:
        audio: Mono samples
        sample_rate: Sample rate in Hz
        config: Engine configuration (window size and step apply to both paths)
        use_reassignment: Reassignment engine if True, byte spectrum otherwise
        as_bytes: Display bytes if True; otherwise the float levels the bytes
            are derived from (reassigned energy, or linear magnitudes for the
            byte spectrum). Levels keep the peaks the display saturates.

    Returns:
        Tuple of (frame start times in seconds, bin frequencies in Hz,
        matrix of shape (n_frames, N/2))
    """
    config = config if config is not None else ReassignmentConfig()
    audio = np.asarray(audio, dtype=np.float64)

    if use_reassignment:
        engine = ReassignmentEngine(config)
        matrix = engine.spectrogram(audio, sample_rate, as_bytes=as_bytes)
    else:
        analyzer = ByteSpectrumAnalyzer(fft_size=config.window_size, smoothing=0.0)
        n_frames = max(1, (len(audio) - config.window_size) // config.step + 1)
        columns = []
        for index in range(n_frames):
            start = index * config.step
            columns.append(analyzer.magnitudes(audio[:start + config.window_size]))
        matrix = np.stack(columns)
        if as_bytes:
            matrix = analyzer.to_bytes(matrix)

    times = np.arange(matrix.shape[0]) * config.step / sample_rate
    frequencies = bin_frequencies(sample_rate, config.window_size)
    logger.debug(
        f"Computed {'reassigned' if use_reassignment else 'byte'} spectrogram "
        f"{matrix.shape[0]} frames x {matrix.shape[1]} bins"
    )
    return times, frequencies, matrix


def display_bytes(
    levels: np.ndarray,
    config: Optional[ReassignmentConfig] = None,
    use_reassignment: bool = True
) -> np.ndarray:
    """Byte matrix for levels from compute_spectrogram(..., as_bytes=False)."""
    config = config if config is not None else ReassignmentConfig()
    levels = np.atleast_2d(levels)
    if use_reassignment:
        engine = ReassignmentEngine(config)
        return np.stack([engine.to_display_bytes(row) for row in levels])
    return ByteSpectrumAnalyzer(fft_size=config.window_size).to_bytes(levels)
