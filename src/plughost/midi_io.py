"""MIDI file input for plughost.

MIDI files are read with mido. Events of all tracks are merged: a file with
several tracks is played as a whole, so extract a single track into its own
file to render only that track.
"""

from __future__ import annotations

from bisect import bisect_left
from pathlib import Path
from typing import Sequence

import mido

from plughost.utils import seconds_to_samples

# (sample position, message)
MidiEvent = tuple[int, mido.Message]


def read_midi_file(path: str | Path, sample_rate: float) -> tuple[list[MidiEvent], int]:
    """Read a MIDI file into sample-positioned events.

    Tempo changes are honored. Meta events (tempo, end of track, ...) are not
    returned but count towards the length.

    Returns:
        Tuple of (events, length_in_samples): events sorted by sample
        position, and the position of the last event of any kind.

    Raises:
        FileNotFoundError: If the file does not exist.
        RuntimeError: If the file cannot be parsed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"MIDI file not found: {path}")

    try:
        midi_file = mido.MidiFile(str(path))
    except (OSError, EOFError, ValueError) as e:
        raise RuntimeError(f"Error reading MIDI input file {path}: {e}") from e

    events: list[MidiEvent] = []
    length = 0
    seconds = 0.0

    # iterating a MidiFile merges tracks; msg.time is the delta in seconds
    for msg in midi_file:
        seconds += msg.time
        sample = seconds_to_samples(seconds, sample_rate)
        length = max(length, sample)
        if not msg.is_meta:
            events.append((sample, msg))

    return events, length


def events_in_block(events: Sequence[MidiEvent], start: int, end: int) -> Sequence[MidiEvent]:
    """Events with ``start <= sample < end``. ``events`` must be sorted."""
    lo = bisect_left(events, start, key=lambda ev: ev[0])
    hi = bisect_left(events, end, key=lambda ev: ev[0])
    return events[lo:hi]
