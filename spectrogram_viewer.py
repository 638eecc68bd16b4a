#!/usr/bin/env python3
"""
Spectrogram viewer for debugging the reassignment engine.
Renders a test signal (or an audio file) with the conventional byte spectrum
and with multi-taper reassignment side by side.
"""

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import soundfile as sf
import sys
import os

# Add project to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from tfr_spectrogram import ReassignmentConfig, compute_spectrogram, load_preset


def test_signal(sample_rate: int = 44100, duration: float = 2.0) -> np.ndarray:
    """Chirp from 200 Hz to 2 kHz over a steady 500 Hz tone."""
    t = np.arange(int(duration * sample_rate)) / sample_rate
    sweep = 200.0 + (2000.0 - 200.0) * t / (2 * duration)
    chirp = np.sin(2 * np.pi * np.cumsum(sweep) / sample_rate)
    tone = 0.5 * np.sin(2 * np.pi * 500.0 * t)
    return 0.5 * (chirp + tone)


def plot_columns(ax, times, freqs, matrix, title: str, max_freq: float = 4000.0):
    """Draw a uint8 spectrogram matrix (frames x bins)."""
    freq_mask = freqs <= max_freq
    ax.pcolormesh(times, freqs[freq_mask], matrix[:, freq_mask].T, shading='auto', cmap='magma')
    ax.set_xlabel('Time (s)')
    ax.set_ylabel('Frequency (Hz)')
    ax.set_title(title)


def main():
    """Render both estimators to output/spectrogram_comparison.png."""
    if len(sys.argv) > 1:
        audio, sample_rate = sf.read(sys.argv[1], dtype='float64', always_2d=False)
        if audio.ndim > 1:
            audio = audio.mean(axis=1)
        name = os.path.basename(sys.argv[1])
    else:
        sample_rate = 44100
        audio = test_signal(sample_rate)
        name = 'chirp + 500 Hz'

    print("=" * 60)
    print("Reassignment Spectrogram Viewer")
    print("=" * 60)
    print(f"\nSignal: {name}, {len(audio)} samples @ {sample_rate} Hz")

    config = ReassignmentConfig(step=512)
    panels = [
        ('Byte spectrum', config, False),
        ('Reassigned (default)', config, True),
        ('Reassigned (canonical)', load_preset('canonical').replace(step=512), True),
    ]

    plt.style.use('dark_background')
    fig, axes = plt.subplots(len(panels), 1, figsize=(12, 4 * len(panels)))
    fig.suptitle(f'Spectrogram comparison - {name}', fontsize=14, fontweight='bold')
    fig.patch.set_facecolor('#1a1a2e')

    for ax, (title, panel_config, reassign) in zip(axes, panels):
        ax.set_facecolor('#16213e')
        times, freqs, matrix = compute_spectrogram(
            audio, sample_rate, config=panel_config, use_reassignment=reassign
        )
        print(f"  {title}: {matrix.shape[0]} frames")
        plot_columns(ax, times, freqs, matrix, title)

    plt.tight_layout()
    plt.subplots_adjust(top=0.93)

    output_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'output')
    os.makedirs(output_dir, exist_ok=True)
    output_path = os.path.join(output_dir, 'spectrogram_comparison.png')
    plt.savefig(output_path, dpi=150, facecolor='#1a1a2e')
    print(f"\nSpectrogram comparison saved to: {output_path}")


if __name__ == "__main__":
    main()
