"""
Note export for regions drawn on the spectrogram.

A region is a horizontal bar drawn over the display: its x position and width
are in pixels, its height maps to a frequency. Regions become MIDI note events
(480 PPQ, 100 pixels per beat) and are serialized with mido.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Union

from mido import Message, MetaMessage, MidiFile, MidiTrack

from .utils import (
    DEFAULT_BPM,
    TICKS_PER_BEAT,
    bpm_to_microseconds_per_beat,
    frequency_to_midi,
    midi_note_to_name,
)

logger = logging.getLogger(__name__)


PIXELS_PER_BEAT = 100
DEFAULT_VELOCITY = 100
MIN_FREQUENCY = 30.0
MAX_FREQUENCY = 22050.0


@dataclass
class NoteRegion:
    """A region drawn on the display (x / width in pixels, frequency in Hz)."""
    x: float
    width: float
    frequency: float

    @property
    def midi_note(self) -> int:
        return frequency_to_midi(self.frequency)

    @property
    def note_name(self) -> str:
        return midi_note_to_name(self.midi_note)


@dataclass
class NoteEvent:
    """A single MIDI note in ticks."""
    pitch: int
    start_tick: int
    duration_ticks: int
    velocity: int = DEFAULT_VELOCITY

    @property
    def end_tick(self) -> int:
        return self.start_tick + self.duration_ticks


def position_to_frequency(
    fraction: float,
    min_frequency: float = MIN_FREQUENCY,
    max_frequency: float = MAX_FREQUENCY
) -> float:
    """
    Frequency at a vertical position of the logarithmic display axis.

    Args:
        fraction: 0.0 at the top (max_frequency) to 1.0 at the bottom (min_frequency)
    """
    fraction = min(max(fraction, 0.0), 1.0)
    return min_frequency * math.pow(max_frequency / min_frequency, 1.0 - fraction)


def regions_to_note_events(
    regions: Iterable[NoteRegion],
    pixels_per_beat: float = PIXELS_PER_BEAT,
    ticks_per_beat: int = TICKS_PER_BEAT,
    velocity: int = DEFAULT_VELOCITY
) -> List[NoteEvent]:
    """
    Convert drawn regions to note events, ordered by start position.

    Notes shorter than a sixteenth (ticks_per_beat // 4) are lengthened to it.
    """
    min_duration = ticks_per_beat // 4
    events = []
    for region in sorted(regions, key=lambda r: r.x):
        start_tick = int(round(region.x / pixels_per_beat * ticks_per_beat))
        duration = int(round(region.width / pixels_per_beat * ticks_per_beat))
        events.append(NoteEvent(
            pitch=region.midi_note,
            start_tick=max(0, start_tick),
            duration_ticks=max(duration, min_duration),
            velocity=velocity,
        ))
    return events


def build_midi_file(
    events: Iterable[NoteEvent],
    track_name: str = "Spectrogram Notes",
    bpm: float = DEFAULT_BPM,
    ticks_per_beat: int = TICKS_PER_BEAT,
    channel: int = 0
) -> MidiFile:
    """
    Build a type-1 MIDI file with one track holding the events.

    Handles delta time calculation and puts note-offs before note-ons that
    share a tick.
    """
    mid = MidiFile(type=1, ticks_per_beat=ticks_per_beat)
    track = MidiTrack()
    mid.tracks.append(track)

    track.append(MetaMessage('track_name', name=track_name, time=0))
    track.append(MetaMessage('set_tempo', tempo=bpm_to_microseconds_per_beat(bpm), time=0))

    timeline = []
    for note in events:
        pitch = min(max(note.pitch, 0), 127)
        timeline.append(('note_on', note.start_tick, pitch, note.velocity))
        timeline.append(('note_off', note.end_tick, pitch, 0))
    timeline.sort(key=lambda e: (e[1], 0 if e[0] == 'note_off' else 1))

    prev_time = 0
    for event_type, abs_time, pitch, velocity in timeline:
        track.append(Message(
            event_type,
            note=pitch,
            velocity=velocity,
            channel=channel,
            time=abs_time - prev_time,
        ))
        prev_time = abs_time

    track.append(MetaMessage('end_of_track', time=0))
    return mid


def save_midi_file(
    events: Iterable[NoteEvent],
    path: Union[str, Path],
    **kwargs
) -> Path:
    """Write events to a .mid file and return its path."""
    events = list(events)
    path = Path(path)
    build_midi_file(events, **kwargs).save(str(path))
    logger.info(f"Saved {len(events)} notes to {path}")
    return path
