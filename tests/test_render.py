"""Tests for plughost.render module."""

import logging

import mido
import numpy as np
import pytest

from plughost.audio_io import read_audio
from plughost.automation import AutomationTrack
from plughost.render import render_blocks, render_to_file


class RecordingParameter:
    def __init__(self, name):
        self.name = name
        self.value = None

    def set_value(self, value):
        self.value = value


class DelayingPlugin:
    """Effect that returns nothing for its first `latency` samples, then
    everything it has received so far, like a streaming plugin with latency."""

    is_instrument = False

    def __init__(self, latency):
        self.latency = latency
        self.parameters = []
        self.received = None
        self.returned = 0
        self.calls = 0

    def reset(self):
        self.received = None
        self.returned = 0

    def process_audio(self, block, sample_rate, block_size):
        self.calls += 1
        if self.received is None:
            self.received = block.copy()
        else:
            self.received = np.concatenate([self.received, block], axis=1)
        available = max(0, self.received.shape[1] - self.latency)
        out = self.received[:, self.returned : available]
        self.returned = max(self.returned, available)
        return out


class FakePlugin:
    """Effect that scales its input by the 'Gain' parameter; records calls."""

    def __init__(self, is_instrument=False):
        self.is_instrument = is_instrument
        self.gain = RecordingParameter("Gain")
        self.parameters = [self.gain]
        self.calls = []
        self.resets = 0

    def reset(self):
        self.resets += 1

    def process_audio(self, block, sample_rate, block_size):
        self.calls.append(("audio", block.shape[1], self.gain.value))
        return block * self.gain.value

    def process_midi(self, messages, num_samples, sample_rate, num_channels, block_size):
        self.calls.append(("midi", num_samples, self.gain.value, list(messages)))
        return np.full((num_channels, num_samples), self.gain.value, dtype=np.float32)


class TestRenderBlocks:
    def test_automation_applied_at_block_start(self):
        plugin = FakePlugin()
        bound = [(plugin.gain, AutomationTrack([(0, 0.0), (1000, 1.0)]))]
        audio = np.ones((2, 1000), dtype=np.float32)

        blocks = list(render_blocks(plugin, bound, 48000, 1000, 250, audio_input=audio))

        assert [c[2] for c in plugin.calls] == [0.0, 0.25, 0.5, 0.75]
        assert all(b.shape == (2, 250) for b in blocks)
        np.testing.assert_array_equal(blocks[1], 0.25)
        assert plugin.resets == 1

    def test_last_block_truncated(self):
        plugin = FakePlugin()
        bound = [(plugin.gain, AutomationTrack.constant(1.0))]
        audio = np.ones((1, 1000), dtype=np.float32)

        blocks = list(render_blocks(plugin, bound, 48000, 1000, 384, audio_input=audio))

        assert [b.shape[1] for b in blocks] == [384, 384, 232]
        # the plugin itself always gets full blocks
        assert [c[1] for c in plugin.calls] == [384, 384, 384]

    def test_input_zero_padded_to_total_length(self):
        plugin = FakePlugin()
        bound = [(plugin.gain, AutomationTrack.constant(1.0))]
        audio = np.ones((1, 300), dtype=np.float32)

        out = np.concatenate(
            list(render_blocks(plugin, bound, 48000, 600, 256, audio_input=audio)), axis=1
        )

        assert out.shape == (1, 600)
        np.testing.assert_array_equal(out[0, :300], 1.0)
        np.testing.assert_array_equal(out[0, 300:], 0.0)

    def test_effect_without_input_gets_silence(self):
        plugin = FakePlugin()
        bound = [(plugin.gain, AutomationTrack.constant(1.0))]

        blocks = list(render_blocks(plugin, bound, 48000, 100, 64, num_channels=2))

        assert [b.shape for b in blocks] == [(2, 64), (2, 36)]
        assert not np.any(np.concatenate(blocks, axis=1))

    def test_instrument_receives_block_midi(self):
        plugin = FakePlugin(is_instrument=True)
        bound = [(plugin.gain, AutomationTrack.constant(0.5))]
        events = [
            (0, mido.Message("note_on", note=60, velocity=100)),
            (600, mido.Message("note_off", note=60)),
        ]

        blocks = list(
            render_blocks(
                plugin, bound, 1000, 1024, 512, midi_events=events, num_channels=1
            )
        )

        assert len(blocks) == 2
        first, second = plugin.calls
        assert [m.type for m in first[3]] == ["note_on"]
        assert first[3][0].time == 0.0
        assert [m.type for m in second[3]] == ["note_off"]
        # offset from the block start, in seconds
        assert second[3][0].time == pytest.approx(0.088)

    def test_midi_event_on_last_sample_delivered(self):
        plugin = FakePlugin(is_instrument=True)
        bound = [(plugin.gain, AutomationTrack.constant(0.5))]
        events = [
            (0, mido.Message("note_on", note=60, velocity=100)),
            (1024, mido.Message("note_off", note=60)),
        ]

        blocks = list(
            render_blocks(
                plugin, bound, 1000, 1024, 512, midi_events=events, num_channels=1
            )
        )

        assert sum(b.shape[1] for b in blocks) == 1024
        assert len(plugin.calls) == 3
        last = plugin.calls[-1][3]
        assert [m.type for m in last] == ["note_off"]
        assert last[0].time == 0.0

    def test_latency_flushed_with_silence(self):
        plugin = DelayingPlugin(latency=100)
        audio = np.arange(1000, dtype=np.float32).reshape(1, 1000)

        out = np.concatenate(
            list(render_blocks(plugin, [], 48000, 1000, 256, audio_input=audio)), axis=1
        )

        assert out.shape == (1, 1000)
        np.testing.assert_array_equal(out, audio)
        # four input blocks plus one block of silence
        assert plugin.calls == 5

    def test_missing_output_padded(self, caplog):
        plugin = DelayingPlugin(latency=10**9)
        audio = np.ones((2, 1000), dtype=np.float32)

        with caplog.at_level(logging.WARNING):
            blocks = list(render_blocks(plugin, [], 100, 1000, 256, audio_input=audio))

        out = np.concatenate(blocks, axis=1)
        assert out.shape == (2, 1000)
        assert not np.any(out)
        assert "1000 samples short" in caplog.text

    def test_no_automation(self):
        plugin = FakePlugin()
        plugin.gain.value = 1.0
        blocks = list(
            render_blocks(plugin, [], 48000, 10, 4, audio_input=np.ones((1, 10), np.float32))
        )
        assert plugin.gain.value == 1.0
        assert sum(b.shape[1] for b in blocks) == 10

    def test_invalid_block_size(self):
        with pytest.raises(ValueError, match="Block size"):
            list(render_blocks(FakePlugin(), [], 48000, 10, 0))


class TestRenderToFile:
    def test_writes_all_samples(self, tmp_path):
        plugin = FakePlugin()
        bound = [(plugin.gain, AutomationTrack.constant(0.5))]
        audio = np.ones((2, 1000), dtype=np.float32)
        path = tmp_path / "out.wav"

        written = render_to_file(
            path, plugin, bound, 48000, 1000, 256, bit_depth=32, audio_input=audio
        )

        assert written == 1000
        data, sr, _ = read_audio(path)
        assert sr == 48000
        assert data.shape == (2, 1000)
        np.testing.assert_allclose(data, 0.5)

    def test_latent_plugin_writes_full_length(self, tmp_path):
        path = tmp_path / "out.wav"
        audio = np.ones((1, 1000), dtype=np.float32)

        written = render_to_file(
            path, DelayingPlugin(latency=100), [], 48000, 1000, 256,
            bit_depth=32, audio_input=audio,
        )

        assert written == 1000
        data, _, _ = read_audio(path)
        assert data.shape == (1, 1000)
        np.testing.assert_allclose(data, 1.0)

    def test_nothing_to_render(self, tmp_path):
        path = tmp_path / "empty.wav"
        assert render_to_file(path, FakePlugin(), [], 48000, 0, 256) == 0
        assert not path.exists()
