#!/usr/bin/env python3
"""
Render a file through an effect while sweeping its first parameter.

Set PLUGHOST_PLUGIN to an effect plugin path and pass an input and output
file:

    export PLUGHOST_PLUGIN=/path/to/effect.vst3
    python automate_effect.py input.wav output.wav
"""

import os
import sys

import plughost
from plughost.audio_io import read_audio


def get_plugin_path():
    """Get plugin path from environment."""
    path = os.environ.get("PLUGHOST_PLUGIN")
    if not path:
        print("Set PLUGHOST_PLUGIN environment variable to a plugin path")
        print("Example: export PLUGHOST_PLUGIN=/path/to/effect.vst3")
        sys.exit(1)
    return path


def main():
    if len(sys.argv) != 3:
        print(f"Usage: {sys.argv[0]} INPUT OUTPUT")
        return 1

    audio, sample_rate, bit_depth = read_audio(sys.argv[1])
    plugin = plughost.load_plugin(get_plugin_path())
    if not plugin.parameters:
        print("Plugin has no parameters")
        return 1

    # Sweep the first parameter up over the first half, then back down
    name = plugin.parameters[0].name
    automation = plughost.parse_automation_definition(
        {name: {"0%": 0.0, "50%": 1.0, "100%": 0.0}},
        plugin,
        sample_rate,
        audio.shape[1],
    )
    print(f"Automating '{name}': {automation[name]!r}")

    written = plughost.render_to_file(
        sys.argv[2],
        plugin,
        plughost.bind_automation(plugin, automation),
        sample_rate,
        audio.shape[1],
        block_size=512,
        bit_depth=bit_depth,
        audio_input=audio,
    )
    print(f"Wrote {written} samples to {sys.argv[2]}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
