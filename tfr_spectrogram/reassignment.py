"""
Multi-taper Time-Frequency Reassignment

Sharpens the frequency localization of a short-time spectrum by moving the
energy of every bin to a phase-derived estimate of its true frequency, and
averaging the result over a bank of Hermite tapers.

Per frame and taper k:
    S_h = FFT(frame * h[k])              magnitude / phase of the bin
    S_d = FFT(frame * d[k])              frequency discriminant

Two discriminants are supported:
    log_derivative    d = dh (exact time derivative of h[k]). The bin offset is
                      -Im(S_d conj(S_h)) / |S_h|^2 * N / (2 pi), the standard
                      reassignment operator.
    phase_difference  d = Dh (derivative-weighted taper). The bin offset is the
                      wrapped phase difference (arg S_d - arg S_h) / (2 pi).
                      Kept for the legacy display look; it does not
                      converge on the tone frequency.

Each surviving bin adds mag * weight to its reassigned bin, where weight is
the product of a reassignment-distance Gaussian, an optional display focus
Gaussian and (mag / reference)^2. The accumulated vector is finally
normalized, gamma-compressed and scaled to bytes for the renderer.

All per-bin work is vectorized over (taper, bin); scratch spectra are
allocated once per engine.

References:
- Auger & Flandrin (1995), Improving the readability of time-frequency
  and time-scale representations by the reassignment method
- Xiao & Flandrin (2007), Multitaper time-frequency reassignment for
  nonstationary spectrum estimation and chirp enhancement
"""

import logging
from typing import Dict, Iterator, Optional, Tuple

import numpy as np

from .config import (
    LOG_DERIVATIVE,
    PER_TAPER,
    ReassignmentConfig,
)
from .fft import fft_in_place
from .windows import HermiteWindowBank, get_window_bank

logger = logging.getLogger(__name__)


class ReassignmentEngine:
    """
    Reassignment spectrogram for one audio stream.

    The engine owns everything that carries state between calls: the phase
    memory, the last normalization peak and the scratch spectra. Use one
    engine per stream; the window bank itself is immutable and shared.

    Usage:
        >>> engine = ReassignmentEngine()
        >>> column = engine.analyze(samples, 44100)          # uint8[N/2]
        >>> for column in engine.iter_frames(samples, 44100):
        ...     draw(column)
    """

    def __init__(self, config: Optional[ReassignmentConfig] = None):
        """
        Initialize the engine.

        Args:
            config: Engine configuration (defaults to ReassignmentConfig())

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self.config = config if config is not None else ReassignmentConfig()
        self.config.validate()

        cfg = self.config
        self.window_size = cfg.window_size
        self.step = cfg.step
        self.num_bins = cfg.num_bins

        self.window_bank: HermiteWindowBank = get_window_bank(
            cfg.window_size, cfg.num_tapers, cfg.time_support
        )
        if cfg.frequency_estimator == LOG_DERIVATIVE:
            self._discriminant = self.window_bank.dh
        else:
            self._discriminant = self.window_bank.Dh

        # [0] = taper spectra, [1] = discriminant spectra
        self._scratch = np.zeros((2, cfg.num_tapers, cfg.window_size), dtype=np.complex128)
        self._bins = np.arange(self.num_bins)
        self._focus_cache: Dict[float, np.ndarray] = {}

        self.phase_memory = np.zeros(self.num_bins)
        self.peak_amplitude = 0.0
        self._non_finite_reported = False

        logger.debug(
            f"ReassignmentEngine N={cfg.window_size} step={cfg.step} K={cfg.num_tapers} "
            f"tm={cfg.time_support} estimator={cfg.frequency_estimator} "
            f"threshold={cfg.threshold_mode}"
        )

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Forget the phase memory and normalization basis."""
        self.phase_memory.fill(0.0)
        self.peak_amplitude = 0.0
        self._non_finite_reported = False

    def frame_count(self, n_samples: int) -> int:
        """Number of frames for a signal of n_samples (always >= 1)."""
        return max(1, (n_samples - self.window_size) // self.step + 1)

    def bin_frequencies(self, sample_rate: float) -> np.ndarray:
        """Centre frequencies of the output bins."""
        return self._bins * sample_rate / self.window_size

    # ------------------------------------------------------------------
    # Whole-signal API
    # ------------------------------------------------------------------

    def normalize(self, audio: np.ndarray) -> np.ndarray:
        """
        Peak-normalize a signal and apply the display amplification.

        A silent (all-zero or empty) signal stays all-zero.
        """
        signal = np.asarray(audio, dtype=np.float64)
        if signal.ndim != 1:
            raise ValueError(f"Expected mono audio (1-D), got shape {signal.shape}")

        if not np.all(np.isfinite(signal)):
            self._report_non_finite("input samples")
            signal = np.nan_to_num(signal, nan=0.0, posinf=0.0, neginf=0.0)

        peak = float(np.max(np.abs(signal))) if len(signal) else 0.0
        self.peak_amplitude = peak
        if peak == 0.0:
            logger.debug("Silent input, reassignment skipped")
            return np.zeros_like(signal)
        return signal / peak * self.config.amplification

    def iter_energy(self, audio: np.ndarray, sample_rate: float) -> Iterator[np.ndarray]:
        """
        Lazily yield the raw reassigned energy vector of every frame.

        The returned iterator is finite (frame_count frames); call again to
        restart from the first frame.
        """
        _check_sample_rate(sample_rate)
        signal = self.normalize(audio)
        return self._generate_energy(signal, sample_rate)

    def iter_frames(self, audio: np.ndarray, sample_rate: float) -> Iterator[np.ndarray]:
        """Lazily yield one byte-scaled (uint8) vector per frame."""
        energies = self.iter_energy(audio, sample_rate)
        return (self.to_display_bytes(energy) for energy in energies)

    def analyze(self, audio: np.ndarray, sample_rate: float) -> np.ndarray:
        """
        Process every frame and return the byte vector of the final one.

        This is the per-tick entry point: the caller hands over the latest
        time-domain buffer and draws the returned column.
        """
        result = np.zeros(self.num_bins, dtype=np.uint8)
        for result in self.iter_frames(audio, sample_rate):
            pass
        return result

    def spectrogram(
        self,
        audio: np.ndarray,
        sample_rate: float,
        as_bytes: bool = True
    ) -> np.ndarray:
        """
        Retain every frame.

        Returns:
            Array of shape (n_frames, N/2), uint8 when as_bytes else float64
        """
        frames = self.iter_frames(audio, sample_rate) if as_bytes \
            else self.iter_energy(audio, sample_rate)
        return np.stack(list(frames))

    # ------------------------------------------------------------------
    # Frame API
    # ------------------------------------------------------------------

    def frame_energy(self, frame: np.ndarray, sample_rate: float) -> np.ndarray:
        """
        Reassigned energy of one already-normalized frame.

        Args:
            frame: Exactly window_size samples (callers pad short frames)
            sample_rate: Sample rate in Hz

        Returns:
            Float energy per bin, length N/2

        Raises:
            ValueError: If the frame length is wrong or sample_rate <= 0
        """
        _check_sample_rate(sample_rate)
        frame = np.asarray(frame, dtype=np.float64)
        if frame.shape != (self.window_size,):
            raise ValueError(
                f"Frame must have {self.window_size} samples (got shape {frame.shape})"
            )

        energy = np.zeros(self.num_bins)
        if not np.any(frame):
            return energy

        cfg = self.config
        n = self.window_size
        n_bins = self.num_bins

        scratch = self._scratch
        scratch[0] = frame * self.window_bank.h
        scratch[1] = frame * self._discriminant
        fft_in_place(scratch)
        taper_spectra = scratch[0, :, :n_bins]
        discriminant_spectra = scratch[1, :, :n_bins]

        magnitude = np.abs(taper_spectra)
        passed, reference = self._noise_gate(magnitude)
        if not passed.any():
            return energy

        phase = np.angle(taper_spectra)
        self._remember_phase(phase, passed)

        offset_bins = self._frequency_offsets(
            taper_spectra, discriminant_spectra, magnitude, phase, passed
        )

        bin_hz = sample_rate / n
        offset_hz = offset_bins * bin_hz
        if cfg.max_offset_hz is not None:
            np.clip(offset_hz, -cfg.max_offset_hz, cfg.max_offset_hz, out=offset_hz)

        # Round half up
        reassigned = np.floor((self._bins * bin_hz + offset_hz) * n / sample_rate + 0.5)
        valid = passed & (reassigned >= 0) & (reassigned < n_bins)
        if not valid.any():
            return energy

        distance = reassigned - self._bins
        locality = np.exp(-distance * distance / (2.0 * cfg.localization_sigma ** 2))
        relative = magnitude / np.where(reference > 0, reference, 1.0)
        weight = locality * self._focus_weights(sample_rate) * relative * relative

        contributions = (magnitude * weight)[valid]
        targets = reassigned[valid].astype(np.intp)
        energy += np.bincount(targets, weights=contributions, minlength=n_bins)
        return self._sanitize(energy)

    def to_display_bytes(self, energy: np.ndarray) -> np.ndarray:
        """
        Normalize, gamma-compress and scale energy to bytes.

            byte = clamp(floor((energy / max) ** gamma * 255 * boost), 0, 255)
        """
        energy = self._sanitize(np.array(energy, dtype=np.float64))
        result = np.zeros(len(energy), dtype=np.uint8)

        max_value = float(np.max(energy)) if len(energy) else 0.0
        if max_value > 0:
            normalized = np.maximum(energy, 0.0) / max_value
            enhanced = np.power(normalized, self.config.gamma)
            scaled = np.clip(enhanced * 255.0 * self.config.output_boost, 0.0, 255.0)
            result[:] = scaled.astype(np.uint8)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _generate_energy(self, signal: np.ndarray, sample_rate: float) -> Iterator[np.ndarray]:
        for index in range(self.frame_count(len(signal))):
            yield self.frame_energy(self._frame_at(signal, index), sample_rate)

    def _frame_at(self, signal: np.ndarray, index: int) -> np.ndarray:
        start = index * self.step
        frame = signal[start:start + self.window_size]
        if len(frame) < self.window_size:
            logger.debug(
                f"Frame {index} has {len(frame)} of {self.window_size} samples, zero-padding"
            )
            padded = np.zeros(self.window_size)
            padded[:len(frame)] = frame
            frame = padded
        return frame

    def _noise_gate(self, magnitude: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Decide which (taper, bin) cells contribute.

        Returns:
            (passed mask, reference magnitude per cell), both shaped like magnitude
        """
        floor = self.config.noise_floor

        if self.config.threshold_mode == PER_TAPER:
            reference = np.broadcast_to(
                magnitude.max(axis=1, keepdims=True), magnitude.shape
            )
            return magnitude > floor * reference, reference

        # Single pass in taper-major, bin-minor order: each cell is compared
        # with the largest magnitude seen before it, then weighted against the
        # maximum including itself.
        flat = magnitude.ravel()
        inclusive = np.maximum.accumulate(flat)
        exclusive = np.empty_like(inclusive)
        exclusive[0] = 0.0
        exclusive[1:] = inclusive[:-1]
        passed = flat > floor * exclusive
        return passed.reshape(magnitude.shape), inclusive.reshape(magnitude.shape)

    def _remember_phase(self, phase: np.ndarray, passed: np.ndarray) -> None:
        # Later tapers overwrite earlier ones
        for taper_phase, taper_passed in zip(phase, passed):
            self.phase_memory[taper_passed] = taper_phase[taper_passed]

    def _frequency_offsets(
        self,
        taper_spectra: np.ndarray,
        discriminant_spectra: np.ndarray,
        magnitude: np.ndarray,
        phase: np.ndarray,
        passed: np.ndarray
    ) -> np.ndarray:
        """Frequency correction in bins for every (taper, bin) cell."""
        if self.config.frequency_estimator == LOG_DERIVATIVE:
            power = magnitude * magnitude
            usable = passed & (power > 0)
            cross = (discriminant_spectra * np.conj(taper_spectra)).imag
            offsets = -cross / np.where(usable, power, 1.0) * self.window_size / (2.0 * np.pi)
            offsets[~usable] = 0.0
            return offsets

        offsets = (np.angle(discriminant_spectra) - phase) / (2.0 * np.pi)
        return (offsets + np.pi) % (2.0 * np.pi) - np.pi

    def _focus_weights(self, sample_rate: float) -> np.ndarray:
        """Display focus Gaussian per source bin (ones when disabled)."""
        weights = self._focus_cache.get(sample_rate)
        if weights is None:
            cfg = self.config
            if cfg.focus_frequency_hz is None:
                weights = np.ones(self.num_bins)
            else:
                distance = self.bin_frequencies(sample_rate) - cfg.focus_frequency_hz
                weights = np.exp(-distance * distance / (2.0 * cfg.focus_bandwidth_hz ** 2))
            self._focus_cache[sample_rate] = weights
        return weights

    def _sanitize(self, values: np.ndarray) -> np.ndarray:
        if not np.all(np.isfinite(values)):
            self._report_non_finite("energy vector")
            np.nan_to_num(values, copy=False, nan=0.0, posinf=0.0, neginf=0.0)
        return values

    def _report_non_finite(self, where: str) -> None:
        if not self._non_finite_reported:
            logger.warning(f"Non-finite values in {where} replaced with 0")
            self._non_finite_reported = True


def _check_sample_rate(sample_rate: float) -> None:
    if not sample_rate > 0:
        raise ValueError(f"Sample rate must be positive (got {sample_rate})")


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def reassign_spectrogram(
    audio: np.ndarray,
    sample_rate: float,
    step: Optional[int] = None,
    num_tapers: int = 6,
    time_support: float = 6.0,
    window_size: int = 2048,
    config: Optional[ReassignmentConfig] = None
) -> np.ndarray:
    """
    One-shot reassignment of a buffer; returns the final frame as uint8[N/2].

    Args:
        audio: Mono samples
        sample_rate: Sample rate in Hz
        step: Hop size (default window_size // 4)
        num_tapers: Number of Hermite tapers
        time_support: Hermite time support
        window_size: FFT size (power of two)
        config: Full configuration; overrides the individual arguments

    Returns:
        Byte-scaled energy per bin
    """
    if config is None:
        config = ReassignmentConfig(
            window_size=window_size,
            step=step,
            num_tapers=num_tapers,
            time_support=time_support,
        )
    return ReassignmentEngine(config).analyze(audio, sample_rate)
