#!/usr/bin/env python3
"""
plughost - Offline audio plugin host CLI.

Renders audio and/or MIDI through a VST3 or Audio Unit plugin into an audio
file, with plugin parameters set or automated over time.

Usage:
    plughost params /path/to/plugin.vst3
    plughost process /path/to/effect.vst3 -i input.wav -o output.wav
    plughost process /path/to/synth.vst3 -m song.mid -o output.wav
    plughost process /path/to/effect.vst3 -i input.wav -o output.wav \\
        --param-file automation.json --param "Mix:0.5:n"
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from plughost.automation import (
    AutomationError,
    ParamOverride,
    bind_automation,
    build_automation,
    parse_param_arg,
    supports_text_round_trip,
)
from plughost.host import PluginLoadError, all_value_strings, load_plugin

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 44100
DEFAULT_BLOCK_SIZE = 1024
DEFAULT_BIT_DEPTH = 16


def _param_arg(arg_str: str) -> ParamOverride:
    """argparse type for --param: check the format before anything is loaded."""
    try:
        return parse_param_arg(arg_str)
    except AutomationError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _load_plugin(args: argparse.Namespace):
    try:
        return load_plugin(args.plugin, plugin_name=args.plugin_name)
    except (FileNotFoundError, PluginLoadError) as e:
        print(f"Error loading plugin: {e}", file=sys.stderr)
        return None


def cmd_params(args: argparse.Namespace) -> int:
    """List plugin parameters."""
    plugin = _load_plugin(args)
    if plugin is None:
        return 1

    params = plugin.parameters
    print("Plugin parameters:")

    # align indices to the widest one
    idx_width = len(str(len(params) - 1)) if params else 1
    indent = " " * (2 + idx_width)

    for i, param in enumerate(params):
        label = param.label
        print(f"{i:>{idx_width}}: {param.name}")

        values = all_value_strings(param)
        if values:
            print(f"{indent}Values:  {', '.join(values)}")
        else:
            print(
                f"{indent}Values:  {param.get_text(0.0)}{label} "
                f"to {param.get_text(1.0)}{label}"
            )

        print(f"{indent}Default: {param.get_text(param.default_value)}{label}")
        supported = "true" if supports_text_round_trip(param) else "false"
        print(f"{indent}Supports text values: {supported}")

    return 0


def cmd_process(args: argparse.Namespace) -> int:
    """Process audio and/or MIDI through a plugin (offline)."""
    from plughost.audio_io import get_audio_info, read_audio, stack_inputs
    from plughost.midi_io import read_midi_file
    from plughost.render import render_to_file

    # Check output doesn't exist (unless --overwrite)
    if os.path.exists(args.output) and not args.overwrite:
        print(
            f"Error: Output file '{args.output}' already exists. "
            f"Use -y/--overwrite to overwrite.",
            file=sys.stderr,
        )
        return 1

    input_files = args.input or []
    midi_path = args.midi_input

    if not input_files and midi_path is None:
        print(
            "Error: At least one of --input or --midi-input is required.",
            file=sys.stderr,
        )
        return 1

    # --- Read audio inputs; they dictate the sample rate ---
    audio_input = None
    sample_rate = args.sample_rate or DEFAULT_SAMPLE_RATE
    bit_depth = DEFAULT_BIT_DEPTH
    total_samples = 0

    if input_files:
        # Check every input before decoding any of them
        infos = []
        for inp_path in input_files:
            try:
                info = get_audio_info(inp_path)
            except (FileNotFoundError, RuntimeError) as e:
                print(f"Error reading input '{inp_path}': {e}", file=sys.stderr)
                return 1
            logger.debug(
                "Input %s: %d ch, %d Hz, %d-bit, %d samples",
                inp_path,
                info["channels"],
                info["sample_rate"],
                info["bit_depth"],
                info["frames"],
            )
            if infos and info["sample_rate"] != infos[0]["sample_rate"]:
                print(
                    f"Error: Mismatched sample rate between input files: "
                    f"'{inp_path}' is {info['sample_rate']} Hz, "
                    f"'{input_files[0]}' is {infos[0]['sample_rate']} Hz",
                    file=sys.stderr,
                )
                return 1
            infos.append(info)
        bit_depth = infos[0]["bit_depth"]

        inputs = []
        for inp_path in input_files:
            try:
                data, sr, _ = read_audio(inp_path)
            except (FileNotFoundError, RuntimeError) as e:
                print(f"Error reading input '{inp_path}': {e}", file=sys.stderr)
                return 1
            inputs.append((data, sr))

        try:
            audio_input, sample_rate = stack_inputs(inputs)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        if args.sample_rate and args.sample_rate != sample_rate:
            logger.warning(
                "Ignoring --sample-rate %s: input files are %s Hz",
                args.sample_rate,
                sample_rate,
            )
        total_samples = audio_input.shape[1]

    if args.bit_depth is not None:
        bit_depth = args.bit_depth

    # --- Read MIDI input ---
    midi_events = []
    if midi_path is not None:
        try:
            midi_events, midi_length = read_midi_file(midi_path, sample_rate)
        except (FileNotFoundError, RuntimeError) as e:
            print(f"Error loading MIDI: {e}", file=sys.stderr)
            return 1
        total_samples = max(total_samples, midi_length)

    if total_samples == 0:
        print("Error: No audio or MIDI input data to process.", file=sys.stderr)
        return 1

    # --- Load plugin and preset ---
    plugin = _load_plugin(args)
    if plugin is None:
        return 1

    if args.preset:
        try:
            plugin.load_preset(args.preset)
        except (FileNotFoundError, RuntimeError) as e:
            print(f"Error loading preset: {e}", file=sys.stderr)
            return 1

    # --- Parse automation ---
    try:
        automation = build_automation(
            plugin,
            sample_rate,
            total_samples,
            param_file=args.param_file,
            param_args=args.param or (),
        )
        bound = bind_automation(plugin, automation)
    except (FileNotFoundError, AutomationError) as e:
        print(f"Error loading automation: {e}", file=sys.stderr)
        return 1

    if args.out_channels is not None and not plugin.is_instrument:
        print(
            "Error: --out-channels only applies to instrument plugins; "
            "effects output as many channels as their input.",
            file=sys.stderr,
        )
        return 1

    if audio_input is not None:
        num_channels = args.out_channels or audio_input.shape[0]
    else:
        num_channels = args.out_channels or 2

    # --- Print summary ---
    print(f"Plugin: {plugin.name}")
    print(f"  Sample rate: {sample_rate} Hz")
    print(f"  Block size:  {args.block_size}")
    if audio_input is not None:
        print(f"  Input:       {audio_input.shape[0]} ch, {audio_input.shape[1]} samples")
    if midi_path is not None:
        print(f"  MIDI events: {len(midi_events)}")
    if automation:
        print(f"  Automation:  {len(automation)} parameter(s)")
    print(f"  Output:      {bit_depth}-bit -> {args.output}")

    # --- Process ---
    try:
        written = render_to_file(
            args.output,
            plugin,
            bound,
            sample_rate,
            total_samples,
            args.block_size,
            bit_depth=bit_depth,
            audio_input=audio_input,
            midi_events=midi_events,
            num_channels=num_channels,
        )
    except (RuntimeError, ValueError) as e:
        print(f"Error processing: {e}", file=sys.stderr)
        return 1

    duration = written / sample_rate
    print(f"Wrote {written} samples ({duration:.2f}s) to {args.output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plughost",
        description="Offline audio plugin host",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  plughost params /path/to/plugin.vst3
  plughost process /path/to/effect.vst3 -i input.wav -o output.wav
  plughost process /path/to/effect.vst3 -i input.wav -o output.wav --param "Mix:0.5:n"
  plughost process /path/to/synth.vst3 -m song.mid -o output.wav
""",
    )

    # Global options
    parser.add_argument(
        "-r",
        "--sample-rate",
        type=float,
        default=None,
        help=(
            f"Sample rate in Hz when no audio input is given "
            f"(default: {DEFAULT_SAMPLE_RATE})"
        ),
    )
    parser.add_argument(
        "-b",
        "--block-size",
        type=int,
        default=DEFAULT_BLOCK_SIZE,
        help=f"Block size in samples (default: {DEFAULT_BLOCK_SIZE})",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debug output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # params
    params_p = subparsers.add_parser("params", help="List plugin parameters")
    params_p.add_argument("plugin", help="Path to plugin")
    params_p.add_argument(
        "--plugin-name", help="Plugin to load from a bundle with several plugins"
    )
    params_p.set_defaults(func=cmd_params)

    # process
    process_p = subparsers.add_parser(
        "process",
        help="Process audio and/or MIDI through a plugin (offline)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Automation file format (JSON):
  {
    "Mix": 0.5,
    "Mode": "Stereo",
    "Cutoff": {"0": 0.0, "1.5s": 0.7, "50%": 1.0}
  }

Keyframe times are samples ("1000"), seconds ("1.5s") or a percentage of
the input length ("50%"). Numbers are normalized values (0-1); strings are
converted by the plugin.

Examples:
  # Effect with automation file and an override
  plughost process /path/to/effect.vst3 -i input.wav -o output.wav \\
    --param-file automation.json --param "Mix:0.5:n"

  # Render synth with MIDI
  plughost process /path/to/synth.vst3 -m song.mid -o output.wav
""",
    )
    process_p.add_argument("plugin", help="Path to plugin")
    process_p.add_argument(
        "--plugin-name", help="Plugin to load from a bundle with several plugins"
    )
    process_p.add_argument(
        "-o",
        "--output",
        required=True,
        help="Output audio file path",
    )
    process_p.add_argument(
        "-i",
        "--input",
        action="append",
        metavar="FILE",
        help="Input audio file (repeatable; channels are stacked)",
    )
    process_p.add_argument(
        "-m",
        "--midi-input",
        metavar="FILE",
        help="Input MIDI file",
    )
    process_p.add_argument(
        "--preset", metavar="FILE", help="Preset file (.vstpreset or .aupreset)"
    )
    process_p.add_argument(
        "--param-file",
        metavar="FILE",
        help="JSON file with plugin parameters and automation",
    )
    process_p.add_argument(
        "--param",
        action="append",
        type=_param_arg,
        metavar="SPEC",
        help=(
            'Set parameter: "Name:TextValue" or "Name:value:n" (repeatable). '
            "Takes precedence over --param-file"
        ),
    )
    process_p.add_argument(
        "-y",
        "--overwrite",
        action="store_true",
        help="Overwrite output file if it exists",
    )
    process_p.add_argument(
        "-d",
        "--bit-depth",
        type=int,
        default=None,
        choices=[8, 16, 24, 32],
        help=f"Output bit depth (default: match input or {DEFAULT_BIT_DEPTH})",
    )
    process_p.add_argument(
        "-c",
        "--out-channels",
        type=int,
        default=None,
        metavar="N",
        help="Output channel count, instruments only (default: input channels or 2)",
    )
    process_p.set_defaults(func=cmd_process)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
