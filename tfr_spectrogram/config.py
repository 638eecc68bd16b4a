"""
Engine Configuration

All tunable parameters of the reassignment engine live in ReassignmentConfig.
Defaults reproduce the established display look; the visualization terms
(reassignment clamp, 500 Hz focus weight, gamma / boost compression) are plain
options so they can be tuned or switched off.
"""

from dataclasses import dataclass, asdict, fields, replace as dataclass_replace
from typing import Any, Dict, Optional
import numbers
import os

from .utils import (
    DEFAULT_NUM_TAPERS,
    DEFAULT_TIME_SUPPORT,
    DEFAULT_WINDOW_SIZE,
    is_power_of_two,
)


class ConfigurationError(ValueError):
    """Raised when engine parameters are invalid."""
    pass


# Frequency estimators
LOG_DERIVATIVE = "log_derivative"
PHASE_DIFFERENCE = "phase_difference"
FREQUENCY_ESTIMATORS = (LOG_DERIVATIVE, PHASE_DIFFERENCE)

# Noise-floor reference magnitude
PER_TAPER = "per_taper"
RUNNING = "running"
THRESHOLD_MODES = (PER_TAPER, RUNNING)


@dataclass
class ReassignmentConfig:
    """
    Configuration for the multi-taper reassignment engine.

    Attributes:
        window_size: FFT / taper length N (power of two, >= 4)
        step: Hop between frames in samples (default N // 4)
        num_tapers: Number of Hermite tapers K
        time_support: Hermite window half-width tm
        max_offset_hz: Bound on the frequency correction (None = unbounded)
        noise_floor: Bins at or below noise_floor * reference magnitude are skipped
        amplification: Gain applied after peak normalization of the input
        localization_sigma: Width (in bins) of the reassignment-distance weight
        focus_frequency_hz: Centre of the display focus weight (None disables it)
        focus_bandwidth_hz: Width of the display focus weight
        gamma: Exponent of the display compression
        output_boost: Extra gain before clamping to [0, 255]
        frequency_estimator: "log_derivative" or "phase_difference"
        threshold_mode: "per_taper" (two-pass) or "running" (single-pass)
    """
    window_size: int = DEFAULT_WINDOW_SIZE
    step: Optional[int] = None
    num_tapers: int = DEFAULT_NUM_TAPERS
    time_support: float = DEFAULT_TIME_SUPPORT

    # Reassignment
    max_offset_hz: Optional[float] = 50.0
    noise_floor: float = 0.01
    amplification: float = 200.0
    localization_sigma: float = 0.5
    frequency_estimator: str = LOG_DERIVATIVE
    threshold_mode: str = PER_TAPER

    # Display shaping
    focus_frequency_hz: Optional[float] = 500.0
    focus_bandwidth_hz: float = 100.0
    gamma: float = 0.1
    output_boost: float = 5.0

    def __post_init__(self):
        """Fill computed defaults and validate."""
        if self.step is None:
            if isinstance(self.window_size, numbers.Integral):
                self.step = self.window_size // 4
        self.validate()
        # numpy integers are accepted, stored as plain ints
        self.window_size = int(self.window_size)
        self.step = int(self.step)
        self.num_tapers = int(self.num_tapers)

    def validate(self) -> None:
        """
        Check every field.

        Raises:
            ConfigurationError: Naming the first offending field
        """
        if isinstance(self.window_size, bool) or not is_power_of_two(self.window_size) \
                or self.window_size < 4:
            raise ConfigurationError(
                f"window_size must be a power of two >= 4 (got {self.window_size!r})"
            )
        if isinstance(self.step, bool) or not isinstance(self.step, numbers.Integral) \
                or self.step <= 0:
            raise ConfigurationError(f"step must be a positive integer (got {self.step!r})")
        if isinstance(self.num_tapers, bool) \
                or not isinstance(self.num_tapers, numbers.Integral) \
                or self.num_tapers < 1:
            raise ConfigurationError(f"num_tapers must be >= 1 (got {self.num_tapers!r})")
        if self.time_support <= 0:
            raise ConfigurationError(f"time_support must be positive (got {self.time_support})")
        if self.max_offset_hz is not None and self.max_offset_hz <= 0:
            raise ConfigurationError(
                f"max_offset_hz must be positive or None (got {self.max_offset_hz})"
            )
        if not 0.0 <= self.noise_floor < 1.0:
            raise ConfigurationError(f"noise_floor must be in [0, 1) (got {self.noise_floor})")
        if self.amplification <= 0:
            raise ConfigurationError(f"amplification must be positive (got {self.amplification})")
        if self.localization_sigma <= 0:
            raise ConfigurationError(
                f"localization_sigma must be positive (got {self.localization_sigma})"
            )
        if self.focus_bandwidth_hz <= 0:
            raise ConfigurationError(
                f"focus_bandwidth_hz must be positive (got {self.focus_bandwidth_hz})"
            )
        if self.gamma <= 0:
            raise ConfigurationError(f"gamma must be positive (got {self.gamma})")
        if self.output_boost <= 0:
            raise ConfigurationError(f"output_boost must be positive (got {self.output_boost})")
        if self.frequency_estimator not in FREQUENCY_ESTIMATORS:
            raise ConfigurationError(
                f"frequency_estimator must be one of {FREQUENCY_ESTIMATORS} "
                f"(got {self.frequency_estimator!r})"
            )
        if self.threshold_mode not in THRESHOLD_MODES:
            raise ConfigurationError(
                f"threshold_mode must be one of {THRESHOLD_MODES} (got {self.threshold_mode!r})"
            )

    @property
    def num_bins(self) -> int:
        """Length of one output vector (N / 2)."""
        return self.window_size // 2

    def replace(self, **changes: Any) -> "ReassignmentConfig":
        """
        Validated copy with some fields changed.

        Changing window_size without an explicit step re-derives the default
        step when the current one is the default for the old size.
        """
        if "window_size" in changes and "step" not in changes \
                and self.step == self.window_size // 4:
            changes["step"] = None
        return dataclass_replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReassignmentConfig":
        """
        Build a config from a mapping (e.g. parsed YAML).

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_env(cls, base: Optional["ReassignmentConfig"] = None) -> "ReassignmentConfig":
        """
        Create config from environment variables, on top of `base`.

        Environment Variables:
            TFR_WINDOW_SIZE: FFT size
            TFR_STEP: Hop size in samples
            TFR_NUM_TAPERS: Number of Hermite tapers
            TFR_TIME_SUPPORT: Hermite time support
            TFR_MAX_OFFSET_HZ: Reassignment clamp in Hz ("none" disables)
            TFR_NOISE_FLOOR: Noise floor fraction
            TFR_FREQUENCY_ESTIMATOR: log_derivative / phase_difference
            TFR_THRESHOLD_MODE: per_taper / running
        """
        base = base or cls()
        changes: Dict[str, Any] = {}

        try:
            if os.getenv("TFR_WINDOW_SIZE"):
                changes["window_size"] = int(os.environ["TFR_WINDOW_SIZE"])
            if os.getenv("TFR_STEP"):
                changes["step"] = int(os.environ["TFR_STEP"])
            if os.getenv("TFR_NUM_TAPERS"):
                changes["num_tapers"] = int(os.environ["TFR_NUM_TAPERS"])
            if os.getenv("TFR_TIME_SUPPORT"):
                changes["time_support"] = float(os.environ["TFR_TIME_SUPPORT"])
            if os.getenv("TFR_MAX_OFFSET_HZ"):
                value = os.environ["TFR_MAX_OFFSET_HZ"]
                changes["max_offset_hz"] = None if value.lower() == "none" else float(value)
            if os.getenv("TFR_NOISE_FLOOR"):
                changes["noise_floor"] = float(os.environ["TFR_NOISE_FLOOR"])
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric environment setting: {e}") from e

        if os.getenv("TFR_FREQUENCY_ESTIMATOR"):
            changes["frequency_estimator"] = os.environ["TFR_FREQUENCY_ESTIMATOR"]
        if os.getenv("TFR_THRESHOLD_MODE"):
            changes["threshold_mode"] = os.environ["TFR_THRESHOLD_MODE"]

        return base.replace(**changes)
