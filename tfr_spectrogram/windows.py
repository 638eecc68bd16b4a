"""
Hermite Window Bank

Generates the multi-taper analysis windows used by the reassignment engine.
Each taper k is the Hermite function of order k sampled on a symmetric time
axis [-tm, tm]:

    h[k]  = H_k(t) exp(-t^2/2) / sqrt(sqrt(pi) 2^k k!)

together with three companions:

    Dh[k] = (k - t) H_k(t) exp(-t^2/2) / norm_k   (phase-difference discriminant)
    Th[k] = t h[k]                                 (time-weighted taper)
    dh[k] = d h[k] / d(sample)                     (exact derivative)

The exact derivative uses H_k' = 2k H_{k-1}, so
    dh[k] = (2k H_{k-1}(t) - t H_k(t)) exp(-t^2/2) / norm_k * dt

Banks are pure functions of (N, K, tm). Building one costs K*N polynomial
evaluations, so callers build it once per configuration (get_window_bank
memoizes) and reuse it for every frame.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np

from .utils import evaluate_hermite_polynomial, factorial

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HermiteWindowBank:
    """
    Immutable set of Hermite tapers for one (N, K, tm) configuration.

    Attributes:
        window_size: Samples per taper (N)
        num_tapers: Number of tapers (K)
        time_support: Half-width tm of the time axis
        t: Time axis, shape (N,)
        h: Hermite windows, shape (K, N)
        Dh: Derivative-weighted windows, shape (K, N)
        Th: Time-weighted windows, shape (K, N)
        dh: Exact per-sample derivatives of h, shape (K, N)
    """
    window_size: int
    num_tapers: int
    time_support: float
    t: np.ndarray
    h: np.ndarray
    Dh: np.ndarray
    Th: np.ndarray
    dh: np.ndarray

    @property
    def dt(self) -> float:
        """Spacing of the time axis."""
        return 2.0 * self.time_support / (self.window_size - 1)


def generate_hermite_windows(N: int, K: int = 6, tm: float = 6.0) -> HermiteWindowBank:
    """
    Build the Hermite taper bank.

    Args:
        N: Window length in samples (>= 2)
        K: Number of tapers (>= 1)
        tm: Time support; the axis runs from -tm to +tm

    Returns:
        HermiteWindowBank with read-only arrays

    Raises:
        ValueError: On invalid parameters
    """
    if N < 2:
        raise ValueError(f"Window size must be at least 2 (got {N})")
    if K < 1:
        raise ValueError(f"Number of tapers must be at least 1 (got {K})")
    if tm <= 0:
        raise ValueError(f"Time support must be positive (got {tm})")

    dt = 2.0 * tm / (N - 1)
    t = -tm + np.arange(N) * dt
    gaussian = np.exp(-t * t / 2.0)

    h = np.empty((K, N))
    Dh = np.empty((K, N))
    Th = np.empty((K, N))
    dh = np.empty((K, N))

    lower = np.zeros(N)  # H_{k-1}, H_{-1} treated as 0
    for k in range(K):
        norm = np.sqrt(np.sqrt(np.pi) * (2.0 ** k) * factorial(k))
        hermite = evaluate_hermite_polynomial(k, t)

        h[k] = hermite * gaussian / norm
        Dh[k] = (k * hermite - t * hermite) * gaussian / norm
        Th[k] = t * h[k]
        dh[k] = (2.0 * k * lower - t * hermite) * gaussian / norm * dt

        lower = hermite

    for array in (t, h, Dh, Th, dh):
        array.setflags(write=False)

    logger.debug(f"Generated Hermite window bank N={N} K={K} tm={tm}")
    return HermiteWindowBank(
        window_size=N,
        num_tapers=K,
        time_support=float(tm),
        t=t,
        h=h,
        Dh=Dh,
        Th=Th,
        dh=dh,
    )


_BANK_CACHE: Dict[Tuple[int, int, float], HermiteWindowBank] = {}


def get_window_bank(N: int, K: int = 6, tm: float = 6.0) -> HermiteWindowBank:
    """Return the (memoized) window bank for a configuration."""
    key = (int(N), int(K), float(tm))
    bank = _BANK_CACHE.get(key)
    if bank is None:
        bank = generate_hermite_windows(*key)
        _BANK_CACHE[key] = bank
    return bank


def count_zero_crossings(window: np.ndarray, tolerance: float = 1e-12) -> int:
    """
    Count sign changes of a window, ignoring samples with |value| <= tolerance
    (the Gaussian tails underflow towards zero far from the centre).
    """
    significant = window[np.abs(window) > tolerance * np.max(np.abs(window))]
    if len(significant) < 2:
        return 0
    signs = np.sign(significant)
    return int(np.count_nonzero(signs[1:] != signs[:-1]))
