"""Tests for the conventional byte spectrum path."""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from tfr_spectrogram.byte_spectrum import ByteSpectrumAnalyzer, byte_frequency_data
from tfr_spectrogram.fft import InvalidLengthError


class TestByteSpectrumAnalyzer:
    """Blackman window, smoothing and dB-to-byte mapping."""

    def test_output_shape(self, sine):
        analyzer = ByteSpectrumAnalyzer()
        column = analyzer.process(sine(1000.0))
        assert column.shape == (1024,)
        assert column.dtype == np.uint8
        assert analyzer.frequency_bin_count == 1024

    def test_peak_bin(self, sine):
        magnitude = ByteSpectrumAnalyzer(smoothing=0.0).magnitudes(sine(1000.0))
        assert int(np.argmax(magnitude)) == 46

    def test_magnitude_scale(self, sine):
        # Blackman coherent gain is 0.42, split over +/- f, less scalloping off-bin
        magnitude = ByteSpectrumAnalyzer(smoothing=0.0).magnitudes(sine(1000.0))
        assert 0.15 < magnitude.max() < 0.22

    def test_silence_is_zero(self):
        column = ByteSpectrumAnalyzer().process(np.zeros(2048))
        assert not column.any()

    def test_loud_tone_saturates(self, sine):
        column = ByteSpectrumAnalyzer(smoothing=0.0).process(sine(1000.0))
        assert column[46] == 255

    def test_smoothing(self, sine):
        analyzer = ByteSpectrumAnalyzer(smoothing=0.8)
        first = analyzer.magnitudes(sine(1000.0))
        second = analyzer.magnitudes(np.zeros(2048))
        np.testing.assert_allclose(second, 0.8 * first)

    def test_reset_clears_history(self, sine):
        analyzer = ByteSpectrumAnalyzer(smoothing=0.8)
        analyzer.magnitudes(sine(1000.0))
        analyzer.reset()
        assert not analyzer.magnitudes(np.zeros(2048)).any()

    def test_uses_latest_samples(self, sine):
        audio = np.concatenate([sine(3000.0, n_samples=4096), sine(1000.0, n_samples=2048)])
        magnitude = ByteSpectrumAnalyzer(smoothing=0.0).magnitudes(audio)
        assert int(np.argmax(magnitude)) == 46

    def test_short_input_is_padded(self):
        column = ByteSpectrumAnalyzer().process(np.ones(10))
        assert column.shape == (1024,)

    def test_invalid_fft_size(self):
        with pytest.raises(InvalidLengthError):
            ByteSpectrumAnalyzer(fft_size=1000)

    def test_invalid_db_range(self):
        with pytest.raises(ValueError):
            ByteSpectrumAnalyzer(min_db=-30, max_db=-100)

    def test_invalid_smoothing(self):
        with pytest.raises(ValueError):
            ByteSpectrumAnalyzer(smoothing=1.0)

    def test_one_shot_helper(self, sine):
        column = byte_frequency_data(sine(1000.0), fft_size=1024)
        assert column.shape == (512,)
        assert column[23] == 255

    def test_to_bytes_matches_process(self, sine):
        analyzer = ByteSpectrumAnalyzer(smoothing=0.0)
        magnitude = analyzer.magnitudes(sine(1000.0, amplitude=0.01))
        column = ByteSpectrumAnalyzer(smoothing=0.0).process(sine(1000.0, amplitude=0.01))
        np.testing.assert_array_equal(analyzer.to_bytes(magnitude), column)

    def test_to_bytes_scale(self):
        analyzer = ByteSpectrumAnalyzer()
        # -100 dB -> 0, 0 dB clips to 255, -65 dB -> floor(127.5), silence -> 0
        levels = np.array([[1e-5, 1.0, 10 ** (-65 / 20), 0.0]])
        np.testing.assert_array_equal(analyzer.to_bytes(levels), [[0, 255, 127, 0]])
