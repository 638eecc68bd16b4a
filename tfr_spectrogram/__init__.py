"""
TFR Spectrogram

Real-time multi-taper time-frequency reassignment spectrogram with a custom
radix-2 FFT, Hermite taper bank, conventional byte spectrum path and MIDI
export of notes drawn on the display.
"""

__version__ = "0.1.0"

from .utils import (
    SAMPLE_RATE,
    DEFAULT_WINDOW_SIZE,
    factorial,
    evaluate_hermite_polynomial,
    is_power_of_two,
    bin_to_frequency,
    frequency_to_bin,
    frequency_to_midi,
    midi_to_frequency,
    midi_note_to_name,
)
from .windows import (
    HermiteWindowBank,
    generate_hermite_windows,
    get_window_bank,
)
from .fft import (
    InvalidLengthError,
    fft,
    fft_in_place,
    inverse_fft,
    inverse_fft_in_place,
    compute_windowed_spectrum,
    as_complex,
)
from .config import (
    ConfigurationError,
    ReassignmentConfig,
    LOG_DERIVATIVE,
    PHASE_DIFFERENCE,
    PER_TAPER,
    RUNNING,
)
from .config_loader import ConfigLoader, ConfigLoadError, load_preset
from .reassignment import ReassignmentEngine, reassign_spectrogram
from .byte_spectrum import ByteSpectrumAnalyzer, byte_frequency_data
from .analyzer import (
    SpectrogramAnalyzer,
    SUPPORTED_FFT_SIZES,
    compute_spectrogram,
    display_bytes,
)
from .notes import (
    NoteRegion,
    NoteEvent,
    position_to_frequency,
    regions_to_note_events,
    build_midi_file,
    save_midi_file,
)

__all__ = [
    'SAMPLE_RATE',
    'DEFAULT_WINDOW_SIZE',
    'factorial',
    'evaluate_hermite_polynomial',
    'is_power_of_two',
    'bin_to_frequency',
    'frequency_to_bin',
    'frequency_to_midi',
    'midi_to_frequency',
    'midi_note_to_name',
    'HermiteWindowBank',
    'generate_hermite_windows',
    'get_window_bank',
    'InvalidLengthError',
    'fft',
    'fft_in_place',
    'inverse_fft',
    'inverse_fft_in_place',
    'compute_windowed_spectrum',
    'as_complex',
    'ConfigurationError',
    'ReassignmentConfig',
    'LOG_DERIVATIVE',
    'PHASE_DIFFERENCE',
    'PER_TAPER',
    'RUNNING',
    'ConfigLoader',
    'ConfigLoadError',
    'load_preset',
    'ReassignmentEngine',
    'reassign_spectrogram',
    'ByteSpectrumAnalyzer',
    'byte_frequency_data',
    'SpectrogramAnalyzer',
    'SUPPORTED_FFT_SIZES',
    'compute_spectrogram',
    'display_bytes',
    'NoteRegion',
    'NoteEvent',
    'position_to_frequency',
    'regions_to_note_events',
    'build_midi_file',
    'save_midi_file',
]
