"""
Pytest fixtures for tfr_spectrogram tests.
"""
import pytest
import sys
from pathlib import Path
import tempfile
import shutil

import numpy as np

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def sample_rate():
    """Standard sample rate for tests."""
    return 44100


@pytest.fixture
def temp_dir():
    """Create temporary directory for test outputs."""
    tmp = tempfile.mkdtemp()
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def temp_yaml_file(temp_dir):
    """Create temporary YAML file path for config tests."""
    return Path(temp_dir) / "test_config.yaml"


@pytest.fixture
def sine(sample_rate):
    """Factory for pure sine waves: sine(freq, n_samples, amplitude=1.0)."""
    def _make(freq, n_samples=2048, amplitude=1.0):
        t = np.arange(n_samples) / sample_rate
        return amplitude * np.sin(2 * np.pi * freq * t)
    return _make
