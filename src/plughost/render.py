"""Offline block-by-block rendering for plughost.

The render loop walks the input in blocks of ``block_size`` samples. Before
each block the automation is evaluated at the block's first sample and
pushed into the plugin, then the block's MIDI events and audio are
processed. Parameter values are therefore updated once per block. Output
held back by plugin latency is flushed with silence so the result lines up
with the input.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Sequence

import numpy as np

from plughost.audio_io import open_audio_writer
from plughost.automation import BoundAutomation, apply_automation
from plughost.midi_io import MidiEvent, events_in_block

if TYPE_CHECKING:
    from plughost.host import HostedPlugin

logger = logging.getLogger(__name__)

# Longest stretch of silence fed to a plugin to flush its latency
MAX_LATENCY_SECONDS = 10.0


def _block_messages(
    events: Sequence[MidiEvent], start: int, end: int, sample_rate: float
) -> list:
    """MIDI messages of a block, timed in seconds from the block start."""
    return [
        msg.copy(time=(sample - start) / sample_rate)
        for sample, msg in events_in_block(events, start, end)
    ]


def _input_block(audio_input: np.ndarray, start: int, end: int) -> np.ndarray:
    """Slice of the input, zero-padded past its end."""
    if end <= audio_input.shape[1]:
        return audio_input[:, start:end]
    block = np.zeros((audio_input.shape[0], end - start), dtype=np.float32)
    if start < audio_input.shape[1]:
        block[:, : audio_input.shape[1] - start] = audio_input[:, start:]
    return block


def render_blocks(
    plugin: HostedPlugin,
    automation: BoundAutomation,
    sample_rate: float,
    total_length_samples: int,
    block_size: int,
    audio_input: np.ndarray | None = None,
    midi_events: Sequence[MidiEvent] = (),
    num_channels: int = 2,
) -> Iterator[np.ndarray]:
    """Process the input through the plugin, one block at a time.

    The plugin always processes full blocks of ``block_size`` samples; the
    output is cut to exactly ``total_length_samples``. Instruments run until
    every MIDI event, including one on the final sample position, has been
    delivered. A plugin that holds samples back for its latency is fed
    silence until its output catches up with the input, for at most
    ``MAX_LATENCY_SECONDS``; anything still missing is filled with silence.

    Args:
        plugin: Plugin to render with.
        automation: Automation bound to the plugin's parameters.
        sample_rate: Sample rate in Hz.
        total_length_samples: Number of samples to render.
        block_size: Processing block size.
        audio_input: Input audio of shape (channels, samples), zero-padded
            when shorter than ``total_length_samples``. Effects receive
            silence with ``num_channels`` channels when omitted.
        midi_events: Sorted (sample, message) events, sent to instruments.
        num_channels: Output channel count for instruments.

    Yields:
        Output blocks of shape (channels, samples).
    """
    if block_size <= 0:
        raise ValueError(f"Block size must be positive, got {block_size}")

    if audio_input is None:
        audio_input = np.zeros((num_channels, 0), dtype=np.float32)
    is_instrument = plugin.is_instrument

    render_length = total_length_samples
    if is_instrument and midi_events:
        render_length = max(render_length, midi_events[-1][0] + 1)
    flush_limit = render_length + int(MAX_LATENCY_SECONDS * sample_rate)

    logger.debug(
        "Rendering %d samples in blocks of %d (%s)",
        total_length_samples,
        block_size,
        "instrument" if is_instrument else "effect",
    )

    plugin.reset()

    out_channels = num_channels if is_instrument else audio_input.shape[0]
    produced = 0
    start = 0
    while start < render_length or (
        produced < total_length_samples and start < flush_limit
    ):
        end = start + block_size
        apply_automation(automation, start)

        if is_instrument:
            messages = _block_messages(midi_events, start, end, sample_rate)
            out = plugin.process_midi(
                messages, block_size, sample_rate, num_channels, block_size
            )
        else:
            out = plugin.process_audio(
                _input_block(audio_input, start, end), sample_rate, block_size
            )
        start = end

        out = out[:, : total_length_samples - produced]
        if out.shape[1]:
            produced += out.shape[1]
            out_channels = out.shape[0]
            yield out

    if produced < total_length_samples:
        logger.warning(
            "Plugin output ended %d samples short; padding with silence",
            total_length_samples - produced,
        )
        yield np.zeros(
            (out_channels, total_length_samples - produced), dtype=np.float32
        )


def render_to_file(
    path: str | Path,
    plugin: HostedPlugin,
    automation: BoundAutomation,
    sample_rate: float,
    total_length_samples: int,
    block_size: int,
    bit_depth: int = 16,
    audio_input: np.ndarray | None = None,
    midi_events: Sequence[MidiEvent] = (),
    num_channels: int = 2,
) -> int:
    """Render through the plugin and write the output to an audio file.

    The output file's channel count is taken from the first rendered block.

    Returns:
        Number of samples written.
    """
    blocks = render_blocks(
        plugin,
        automation,
        sample_rate,
        total_length_samples,
        block_size,
        audio_input=audio_input,
        midi_events=midi_events,
        num_channels=num_channels,
    )

    first = next(blocks, None)
    if first is None:
        return 0

    written = 0
    with open_audio_writer(path, sample_rate, first.shape[0], bit_depth) as writer:
        writer.write(first)
        written += first.shape[1]
        for block in blocks:
            writer.write(block)
            written += block.shape[1]

    logger.info("Wrote %d samples to %s", written, path)
    return written
