"""
Command-line entry point.

Usage:
    python -m tfr_spectrogram recording.wav
    python -m tfr_spectrogram recording.wav --preset canonical --frames
    python -m tfr_spectrogram recording.wav --window-size 4096 -o columns.npy
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
import soundfile as sf
from colorama import Fore, Style, init

from .analyzer import compute_spectrogram, display_bytes
from .config import (
    FREQUENCY_ESTIMATORS,
    THRESHOLD_MODES,
    ConfigurationError,
    ReassignmentConfig,
)
from .config_loader import ConfigLoader, ConfigLoadError
from .utils import frequency_to_midi, midi_note_to_name

logger = logging.getLogger(__name__)


def print_info(message: str):
    """Print info message."""
    print(f"{Fore.CYAN}i{Style.RESET_ALL}  {message}")


def print_error(message: str):
    """Print error message."""
    print(f"{Fore.RED}x{Style.RESET_ALL}  {message}", file=sys.stderr)


def print_success(message: str):
    """Print success message."""
    print(f"{Fore.GREEN}+{Style.RESET_ALL}  {message}")


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    if verbose:
        fmt = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:
        fmt = '%(message)s'
    logging.basicConfig(level=level, format=fmt, force=True)


def load_audio(path: Path) -> tuple:
    """Read an audio file as mono float64 samples."""
    audio, sample_rate = sf.read(str(path), dtype='float64', always_2d=False)
    if audio.ndim > 1:
        audio = np.mean(audio, axis=1)
    logger.debug(f"Loaded {path}: {len(audio)} samples at {sample_rate} Hz")
    return audio, sample_rate


def build_config(args: argparse.Namespace) -> ReassignmentConfig:
    """Preset or file first, then individual overrides."""
    loader = ConfigLoader()
    if args.config:
        config = loader.load_file(args.config)
    else:
        config = loader.load_preset(args.preset)

    overrides = {}
    if args.window_size is not None:
        overrides["window_size"] = args.window_size
    if args.step is not None:
        overrides["step"] = args.step
    if args.tapers is not None:
        overrides["num_tapers"] = args.tapers
    if args.time_support is not None:
        overrides["time_support"] = args.time_support
    if args.estimator is not None:
        overrides["frequency_estimator"] = args.estimator
    if args.threshold is not None:
        overrides["threshold_mode"] = args.threshold
    return config.replace(**overrides)


def summarize(
    levels: np.ndarray,
    matrix: np.ndarray,
    frequencies: np.ndarray,
    times: np.ndarray
) -> List[dict]:
    """
    Strongest bin of every frame.

    The peak is located on the float levels; the display bytes saturate
    around a loud partial, so their argmax is the lowest saturated bin.
    """
    rows = []
    for time, frame_levels, column in zip(times, levels, matrix):
        peak_bin = int(np.argmax(frame_levels))
        frequency = float(frequencies[peak_bin])
        row = {
            "time": round(float(time), 4),
            "bin": peak_bin,
            "frequency": round(frequency, 2),
            "level": int(column[peak_bin]),
            "note": None,
        }
        if frame_levels[peak_bin] > 0 and frequency > 0:
            row["note"] = midi_note_to_name(frequency_to_midi(frequency))
        rows.append(row)
    return rows


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tfr-spectrogram",
        description="Multi-taper reassignment spectrogram of an audio file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s recording.wav
  %(prog)s recording.wav --preset canonical --frames
  %(prog)s recording.wav --no-reassignment -o plain.npy
  %(prog)s recording.wav --config my_engine.yaml --json
        """,
    )

    parser.add_argument("input", type=str, help="Audio file (any format soundfile reads)")
    parser.add_argument(
        "-o", "--output",
        type=str,
        help="Save the uint8 spectrogram matrix (frames x bins) as .npy",
    )

    # Configuration
    parser.add_argument(
        "--preset",
        type=str,
        default="default",
        help="Engine preset name (default: default)",
    )
    parser.add_argument("--config", type=str, help="Engine configuration YAML file")
    parser.add_argument("--window-size", type=int, help="FFT size (power of two)")
    parser.add_argument("--step", type=int, help="Hop size in samples (default: N/4)")
    parser.add_argument("--tapers", type=int, help="Number of Hermite tapers")
    parser.add_argument("--time-support", type=float, help="Hermite time support")
    parser.add_argument("--estimator", choices=FREQUENCY_ESTIMATORS, help="Frequency estimator")
    parser.add_argument("--threshold", choices=THRESHOLD_MODES, help="Noise floor mode")
    parser.add_argument(
        "--no-reassignment",
        action="store_true",
        help="Use the conventional byte spectrum instead",
    )

    # Output options
    parser.add_argument("--frames", action="store_true", help="Print the peak of every frame")
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    init()
    setup_logging(args.verbose)

    input_path = Path(args.input)
    if not input_path.exists():
        print_error(f"Input file not found: {input_path}")
        return 1

    use_reassignment = not args.no_reassignment
    try:
        config = build_config(args)
        audio, sample_rate = load_audio(input_path)
        times, frequencies, levels = compute_spectrogram(
            audio,
            sample_rate,
            config=config,
            use_reassignment=use_reassignment,
            as_bytes=False,
        )
    except KeyboardInterrupt:
        print_error("Interrupted")
        return 130
    except (ConfigurationError, ConfigLoadError) as e:
        print_error(f"Configuration error: {e}")
        return 1
    except RuntimeError as e:
        print_error(f"Could not read {input_path}: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1

    matrix = display_bytes(levels, config, use_reassignment)
    rows = summarize(levels, matrix, frequencies, times)

    if args.output:
        np.save(args.output, matrix)

    if args.json:
        output = {
            "input": str(input_path),
            "sample_rate": sample_rate,
            "estimator": "byte_spectrum" if args.no_reassignment else config.frequency_estimator,
            "config": config.to_dict(),
            "frames": rows,
        }
        if args.output:
            output["output"] = args.output
        print(json.dumps(output, indent=2))
        return 0

    print_info(f"Input: {input_path} ({len(audio)} samples @ {sample_rate} Hz)")
    print_info(
        f"Window {config.window_size}, step {config.step}, {config.num_tapers} tapers, "
        f"estimator {'byte spectrum' if args.no_reassignment else config.frequency_estimator}"
    )
    if args.frames:
        for row in rows:
            note = row["note"] or "-"
            print(f"  {row['time']:8.3f}s  {row['frequency']:9.2f} Hz  {note:>4}  {row['level']:3d}")
    print_success(f"{matrix.shape[0]} frames x {matrix.shape[1]} bins")
    if args.output:
        print_success(f"Saved spectrogram to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
