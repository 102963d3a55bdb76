"""Plugin hosting for plughost, backed by pedalboard.

Wraps a pedalboard ExternalPlugin (VST3 or Audio Unit) behind the small
surface the automation engine and the render loop need: named parameters
with normalized values and text conversion, preset loading, and
block-by-block processing of audio or MIDI.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import numpy as np
import pedalboard

logger = logging.getLogger(__name__)

# Discrete parameters with more steps than this are listed by range only
_MAX_LISTED_VALUES = 128


class PluginLoadError(RuntimeError):
    pass


class HostedParameter:
    """A plugin parameter addressed by normalized (0-1) values."""

    def __init__(self, parameter):
        self._parameter = parameter

    @property
    def name(self) -> str:
        return self._parameter.name

    @property
    def label(self) -> str:
        return self._parameter.label

    @property
    def index(self) -> int:
        return self._parameter.index

    @property
    def num_steps(self) -> int:
        return self._parameter.num_steps

    @property
    def is_discrete(self) -> bool:
        return self._parameter.is_discrete

    @property
    def default_value(self) -> float:
        return self._parameter.default_raw_value

    def get_value(self) -> float:
        return self._parameter.raw_value

    def set_value(self, value: float) -> None:
        self._parameter.raw_value = value

    def get_text(self, value: float) -> str:
        """Display text for a normalized value."""
        return self._parameter.get_text_for_raw_value(value)

    def get_value_for_text(self, text: str) -> float:
        """Normalized value for display text."""
        return self._parameter.get_raw_value_for_text(text)

    def __repr__(self) -> str:
        return f"HostedParameter({self.name!r})"


class HostedPlugin:
    """A loaded plugin instance.

    Attributes:
        parameters: The plugin's parameters in plugin order.
    """

    def __init__(self, plugin):
        self._plugin = plugin
        self.parameters = [HostedParameter(p) for p in plugin.parameters.values()]

    @property
    def name(self) -> str:
        return self._plugin.name

    @property
    def is_instrument(self) -> bool:
        return bool(self._plugin.is_instrument)

    def load_preset(self, path: str | Path) -> None:
        """Load a preset file (.vstpreset for VST3, .aupreset for Audio Units).

        Raises:
            FileNotFoundError: If the file does not exist.
            RuntimeError: If the plugin rejects the preset.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Preset file not found: {path}")

        try:
            self._plugin.load_preset(str(path))
        except (RuntimeError, ValueError) as e:
            raise RuntimeError(f"Could not load preset {path}: {e}") from e
        logger.info("Loaded preset %s", path)

    def reset(self) -> None:
        self._plugin.reset()

    def process_audio(
        self, block: np.ndarray, sample_rate: float, block_size: int
    ) -> np.ndarray:
        """Run one block of audio, shape (channels, samples), through the plugin."""
        return self._plugin.process(
            block, sample_rate, buffer_size=block_size, reset=False
        )

    def process_midi(
        self,
        messages: Sequence,
        num_samples: int,
        sample_rate: float,
        num_channels: int,
        block_size: int,
    ) -> np.ndarray:
        """Render one block of an instrument.

        Args:
            messages: MIDI messages whose ``time`` is the offset in seconds
                from the start of the block.
            num_samples: Length of the block.
            sample_rate: Sample rate in Hz.
            num_channels: Output channel count.
            block_size: Internal buffer size.
        """
        return self._plugin.process(
            list(messages),
            duration=num_samples / sample_rate,
            sample_rate=sample_rate,
            num_channels=num_channels,
            buffer_size=block_size,
            reset=False,
        )

    def __repr__(self) -> str:
        return f"HostedPlugin({self.name!r}, {len(self.parameters)} parameters)"


def load_plugin(path: str | Path, plugin_name: str | None = None) -> HostedPlugin:
    """Load a VST3 or Audio Unit plugin.

    Args:
        path: Path to the plugin bundle or file.
        plugin_name: Plugin to pick from a bundle containing several.

    Raises:
        FileNotFoundError: If the path does not exist.
        PluginLoadError: If the plugin cannot be instantiated.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Plugin not found: {path}")

    try:
        plugin = pedalboard.load_plugin(str(path), plugin_name=plugin_name)
    except (ImportError, RuntimeError, ValueError) as e:
        raise PluginLoadError(f"Error creating plugin instance: {e}") from e

    hosted = HostedPlugin(plugin)
    logger.debug("Loaded %r from %s", hosted, path)
    return hosted


def all_value_strings(parameter: HostedParameter) -> list[str]:
    """Text of every step of a discrete parameter.

    Returns an empty list for continuous parameters and for discrete ones
    with too many steps to list.
    """
    num_steps = parameter.num_steps
    if not parameter.is_discrete or not 2 <= num_steps <= _MAX_LISTED_VALUES:
        return []
    return [parameter.get_text(i / (num_steps - 1)) for i in range(num_steps)]
