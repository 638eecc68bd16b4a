"""Tests for the multi-taper reassignment engine.

Peak positions are checked on the raw energy vector: the display bytes are
gamma-compressed and boosted, so every bin above a tiny fraction of the peak
saturates at 255.
"""

import logging
import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from tfr_spectrogram.config import (
    LOG_DERIVATIVE,
    PER_TAPER,
    PHASE_DIFFERENCE,
    RUNNING,
    ReassignmentConfig,
)
from tfr_spectrogram.config_loader import load_preset
from tfr_spectrogram.fft import compute_windowed_spectrum, magnitude_spectrum
from tfr_spectrogram.reassignment import ReassignmentEngine, reassign_spectrogram

SR = 44100


def _half_max_width(values: np.ndarray) -> int:
    """Width of the contiguous run around the peak that stays >= half the peak."""
    peak = int(np.argmax(values))
    half = values[peak] / 2.0
    left = peak
    while left > 0 and values[left - 1] >= half:
        left -= 1
    right = peak
    while right < len(values) - 1 and values[right + 1] >= half:
        right += 1
    return right - left + 1


class TestSingleTone:
    """A pure tone is concentrated in its bin."""

    def test_one_frame_output(self, sine):
        engine = ReassignmentEngine()
        frames = list(engine.iter_frames(sine(1000.0), SR))
        assert len(frames) == 1
        assert frames[0].shape == (1024,)
        assert frames[0].dtype == np.uint8
        assert frames[0].max() == 255

    def test_peak_at_tone_bin(self, sine):
        energy = list(ReassignmentEngine().iter_energy(sine(1000.0), SR))[0]
        # 1000 Hz * 2048 / 44100 = 46.4
        assert abs(int(np.argmax(energy)) - 46) <= 1

    def test_peak_at_440(self, sine):
        energy = list(ReassignmentEngine().iter_energy(sine(440.0), SR))[0]
        assert abs(int(np.argmax(energy)) - 20) <= 1

    def test_high_tone_without_focus_weight(self, sine):
        engine = ReassignmentEngine(ReassignmentConfig(focus_frequency_hz=None))
        energy = list(engine.iter_energy(sine(3000.0), SR))[0]
        assert abs(int(np.argmax(energy)) - 139) <= 1

    def test_sharper_than_plain_spectrum(self, sine):
        engine = ReassignmentEngine()
        frame = engine.normalize(sine(1000.0))
        energy = engine.frame_energy(frame, SR)
        plain = magnitude_spectrum(compute_windowed_spectrum(frame, engine.window_bank.h[0]))
        assert _half_max_width(energy) < _half_max_width(plain)

    def test_analyze_returns_final_frame(self, sine):
        engine = ReassignmentEngine()
        audio = sine(1000.0, n_samples=4096)
        frames = list(engine.iter_frames(audio, SR))
        np.testing.assert_array_equal(engine.analyze(audio, SR), frames[-1])

    def test_convenience_function(self, sine):
        column = reassign_spectrogram(sine(1000.0), SR)
        assert column.shape == (1024,)
        assert column.dtype == np.uint8


class TestEdgeCases:
    """Silence, short input and invalid arguments."""

    def test_silence_gives_zeros(self):
        engine = ReassignmentEngine()
        column = engine.analyze(np.zeros(2048), SR)
        assert column.shape == (1024,)
        assert not column.any()
        energy = list(engine.iter_energy(np.zeros(2048), SR))[0]
        assert np.all(np.isfinite(energy))
        assert not energy.any()

    def test_short_input_is_padded(self, sine):
        engine = ReassignmentEngine()
        frames = list(engine.iter_frames(sine(1000.0, n_samples=1000), SR))
        assert len(frames) == 1
        assert frames[0].shape == (1024,)

    def test_empty_input(self):
        column = ReassignmentEngine().analyze(np.zeros(0), SR)
        assert column.shape == (1024,)
        assert not column.any()

    def test_non_finite_samples_are_zeroed(self, sine):
        audio = sine(1000.0)
        audio[100] = np.nan
        audio[200] = np.inf
        energy = list(ReassignmentEngine().iter_energy(audio, SR))[0]
        assert np.all(np.isfinite(energy))

    @pytest.mark.parametrize("rate", [0, -44100])
    def test_invalid_sample_rate(self, sine, rate):
        with pytest.raises(ValueError):
            ReassignmentEngine().iter_frames(sine(1000.0), rate)

    def test_wrong_frame_length(self):
        with pytest.raises(ValueError):
            ReassignmentEngine().frame_energy(np.ones(100), SR)

    def test_stereo_rejected(self):
        with pytest.raises(ValueError):
            ReassignmentEngine().analyze(np.zeros((2048, 2)), SR)


class TestFraming:
    """Frame count, laziness and restartability."""

    @pytest.mark.parametrize("n_samples,expected", [
        (100, 1), (2048, 1), (2559, 1), (2560, 2), (44100, 83),
    ])
    def test_frame_count(self, n_samples, expected):
        assert ReassignmentEngine().frame_count(n_samples) == expected

    def test_spectrogram_shape(self, sine):
        engine = ReassignmentEngine()
        matrix = engine.spectrogram(sine(1000.0, n_samples=2048 + 3 * 512), SR)
        assert matrix.shape == (4, 1024)
        assert matrix.dtype == np.uint8
        energies = engine.spectrogram(sine(1000.0, n_samples=2048 + 3 * 512), SR, as_bytes=False)
        assert energies.dtype == np.float64

    def test_iterator_is_restartable(self, sine):
        engine = ReassignmentEngine()
        audio = sine(700.0, n_samples=6000)
        first = list(engine.iter_frames(audio, SR))
        second = list(engine.iter_frames(audio, SR))
        assert len(first) == len(second) == engine.frame_count(6000)
        for a, b in zip(first, second):
            np.testing.assert_array_equal(a, b)

    def test_deterministic_across_engines(self, sine):
        audio = sine(1234.0, n_samples=5000)
        first = ReassignmentEngine().spectrogram(audio, SR, as_bytes=False)
        second = ReassignmentEngine().spectrogram(audio, SR, as_bytes=False)
        assert np.array_equal(first, second)


class TestSessionState:
    """Per-stream state lives on the engine."""

    def test_phase_memory_and_reset(self, sine):
        engine = ReassignmentEngine()
        engine.analyze(sine(1000.0), SR)
        assert engine.phase_memory.shape == (1024,)
        assert engine.phase_memory.any()
        assert engine.peak_amplitude == pytest.approx(1.0, abs=1e-3)
        engine.reset()
        assert not engine.phase_memory.any()
        assert engine.peak_amplitude == 0.0

    def test_engines_do_not_share_state(self, sine):
        first = ReassignmentEngine()
        second = ReassignmentEngine()
        first.analyze(sine(1000.0), SR)
        assert not second.phase_memory.any()

    def test_normalization_is_scale_invariant(self, sine):
        engine = ReassignmentEngine()
        loud = list(engine.iter_energy(sine(1000.0), SR))[0]
        quiet = list(engine.iter_energy(sine(1000.0, amplitude=0.01), SR))[0]
        np.testing.assert_allclose(loud, quiet, rtol=1e-9, atol=1e-12)


class TestVariants:
    """Alternative estimators and thresholds."""

    def test_running_threshold(self, sine):
        engine = ReassignmentEngine(ReassignmentConfig(threshold_mode=RUNNING))
        energy = list(engine.iter_energy(sine(1000.0), SR))[0]
        assert energy.shape == (1024,)
        assert np.all(np.isfinite(energy))
        assert energy.max() > 0

    def test_phase_difference_estimator(self, sine):
        engine = ReassignmentEngine(ReassignmentConfig(frequency_estimator=PHASE_DIFFERENCE))
        column = engine.analyze(sine(1000.0), SR)
        assert column.shape == (1024,)
        assert column.dtype == np.uint8

    def test_legacy_preset(self, sine):
        engine = ReassignmentEngine(load_preset("legacy"))
        energy = list(engine.iter_energy(sine(1000.0), SR))[0]
        assert np.all(np.isfinite(energy))

    def test_canonical_preset(self, sine):
        engine = ReassignmentEngine(load_preset("canonical"))
        energy = list(engine.iter_energy(sine(3000.0), SR))[0]
        assert abs(int(np.argmax(energy)) - 139) <= 1

    def test_tight_clamp_keeps_energy_in_gated_bins(self, sine):
        # A 1 Hz clamp is below half the 21.5 Hz bin width: nothing moves, so
        # exactly the bins some taper let through carry energy
        engine = ReassignmentEngine(ReassignmentConfig(max_offset_hz=1.0, focus_frequency_hz=None))
        frame = engine.normalize(sine(1000.0))
        energy = engine.frame_energy(frame, SR)

        gated = np.zeros(1024, dtype=bool)
        for taper in engine.window_bank.h:
            magnitude = magnitude_spectrum(compute_windowed_spectrum(frame, taper))
            gated |= magnitude > 0.01 * magnitude.max()
        np.testing.assert_array_equal(energy > 0, gated)

    def test_unbounded_offsets_move_energy_to_tone(self, sine):
        clamped = ReassignmentEngine(ReassignmentConfig(max_offset_hz=1.0, focus_frequency_hz=None))
        free = ReassignmentEngine(ReassignmentConfig(max_offset_hz=None, focus_frequency_hz=None))
        clamped_energy = list(clamped.iter_energy(sine(1000.0), SR))[0]
        free_energy = list(free.iter_energy(sine(1000.0), SR))[0]
        assert not np.array_equal(clamped_energy, free_energy)
        assert abs(int(np.argmax(free_energy)) - 46) <= 1
        assert np.count_nonzero(free_energy) < np.count_nonzero(clamped_energy)

    def test_display_bytes(self):
        engine = ReassignmentEngine()
        energy = np.zeros(1024)
        energy[10] = 1.0
        energy[11] = 1e-12
        column = engine.to_display_bytes(energy)
        assert column[10] == 255
        assert column[0] == 0
        # (1e-12) ** 0.1 * 255 * 5 = 80.4
        assert column[11] == 80


class TestNoiseGate:
    """Which (taper, bin) cells reach the reassignment step."""

    def _gate(self, mode, magnitude):
        engine = ReassignmentEngine(ReassignmentConfig(window_size=8, threshold_mode=mode))
        return engine._noise_gate(np.array(magnitude, dtype=np.float64))

    def test_running_compares_with_earlier_cells_only(self):
        passed, reference = self._gate(RUNNING, [[0.015, 1.0, 2.0, 0.015]])
        # The first cell has nothing before it; the last is below 1% of 2.0
        np.testing.assert_array_equal(passed, [[True, True, True, False]])
        np.testing.assert_allclose(reference, [[0.015, 1.0, 2.0, 2.0]])

    def test_per_taper_uses_row_maximum(self):
        passed, reference = self._gate(PER_TAPER, [[0.015, 1.0, 2.0, 0.015]])
        np.testing.assert_array_equal(passed, [[False, True, True, False]])
        np.testing.assert_allclose(reference, [[2.0, 2.0, 2.0, 2.0]])

    def test_running_carries_maximum_across_tapers(self):
        magnitude = [[10.0, 1.0], [0.05, 0.05]]
        per_taper, _ = self._gate(PER_TAPER, magnitude)
        running, _ = self._gate(RUNNING, magnitude)
        np.testing.assert_array_equal(per_taper[1], [True, True])
        np.testing.assert_array_equal(running[1], [False, False])

    def test_cells_at_the_floor_are_excluded(self):
        passed, _ = self._gate(PER_TAPER, [[1.0, 0.01, 0.0100001]])
        np.testing.assert_array_equal(passed, [[True, False, True]])

    def test_threshold_modes_differ_on_a_tone(self, sine):
        per_taper = list(ReassignmentEngine().iter_energy(sine(1000.0), SR))[0]
        running_engine = ReassignmentEngine(ReassignmentConfig(threshold_mode=RUNNING))
        running = list(running_engine.iter_energy(sine(1000.0), SR))[0]
        assert not np.array_equal(per_taper, running)
        assert np.count_nonzero(running) > np.count_nonzero(per_taper)

    def test_higher_floor_keeps_fewer_bins(self, sine):
        counts = []
        for floor in (0.0, 0.01, 0.5):
            engine = ReassignmentEngine(ReassignmentConfig(noise_floor=floor))
            energy = list(engine.iter_energy(sine(1000.0), SR))[0]
            counts.append(np.count_nonzero(energy))
        assert counts[0] > counts[1] > counts[2] > 0


class TestFrequencyOffsets:
    """Per-cell frequency corrections, in bins."""

    def test_log_derivative(self):
        engine = ReassignmentEngine(
            ReassignmentConfig(window_size=8, frequency_estimator=LOG_DERIVATIVE)
        )
        taper = np.array([[2.0 + 0j, 2.0 + 0j]])
        derivative = np.array([[0.5j, 0.5j]])
        magnitude = np.abs(taper)
        passed = np.array([[True, False]])
        offsets = engine._frequency_offsets(
            taper, derivative, magnitude, np.angle(taper), passed
        )
        # -Im(0.5j * 2) / 4 * 8 / (2 pi)
        assert offsets[0, 0] == pytest.approx(-0.25 * 8 / (2 * np.pi))
        assert offsets[0, 1] == 0.0

    def test_phase_difference(self):
        engine = ReassignmentEngine(
            ReassignmentConfig(window_size=8, frequency_estimator=PHASE_DIFFERENCE)
        )
        taper_phase = np.array([[0.3, -2.5, 1.0]])
        derivative_phase = np.array([[1.2, 2.9, -1.0]])
        taper = np.exp(1j * taper_phase)
        derivative = np.exp(1j * derivative_phase)
        offsets = engine._frequency_offsets(
            taper, derivative, np.abs(taper), np.angle(taper), np.ones((1, 3), dtype=bool)
        )
        expected = (derivative_phase - taper_phase) / (2 * np.pi)
        np.testing.assert_allclose(offsets, expected, atol=1e-12)


class TestNonFiniteLogging:
    """Bad samples are zeroed with one warning per engine session."""

    def _warnings(self, caplog):
        return [r for r in caplog.records if r.levelno == logging.WARNING]

    def test_warned_once_until_reset(self, sine, caplog):
        audio = sine(1000.0)
        audio[100] = np.nan
        engine = ReassignmentEngine()

        with caplog.at_level(logging.WARNING, logger="tfr_spectrogram.reassignment"):
            list(engine.iter_energy(audio, SR))
            list(engine.iter_energy(audio, SR))
            assert len(self._warnings(caplog)) == 1

            engine.reset()
            energy = list(engine.iter_energy(audio, SR))[0]
            assert len(self._warnings(caplog)) == 2

        assert "Non-finite values in input samples" in caplog.text
        assert np.all(np.isfinite(energy))
