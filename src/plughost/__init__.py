"""
plughost - offline audio plugin host with parameter automation.

Example usage:
    >>> import plughost
    >>>
    >>> plugin = plughost.load_plugin("/path/to/effect.vst3")
    >>> automation = plughost.parse_automation_definition(
    ...     {"Mix": {"0": 0.0, "1s": 1.0}, "Mode": "Stereo"},
    ...     plugin,
    ...     sample_rate=44100,
    ...     total_length_samples=88200,
    ... )
    >>> automation["Mix"].value_at(22050)
    0.5
    >>>
    >>> # Push the values for a block into the plugin
    >>> bound = plughost.bind_automation(plugin, automation)
    >>> plughost.apply_automation(bound, 22050)
"""

from plughost.automation import (
    AutomationError,
    AutomationTrack,
    DuplicateKeyframeTimeError,
    DuplicateParameterError,
    InvalidParamArgumentError,
    InvalidSampleIndexError,
    InvalidTimeFormatError,
    InvalidValueTypeError,
    ParamOverride,
    TextUnsupportedForParameterError,
    UnknownParameterError,
    ValueOutOfRangeError,
    apply_automation,
    bind_automation,
    build_automation,
    find_param_by_name,
    merge_param_overrides,
    normalize_value,
    parse_automation_definition,
    parse_automation_file,
    parse_automation_json,
    parse_param_arg,
    parse_time,
    supports_text_round_trip,
    value_at,
)
from plughost.host import HostedParameter, HostedPlugin, PluginLoadError, load_plugin
from plughost.render import render_blocks, render_to_file

__all__ = [
    # Plugin hosting
    "load_plugin",
    "HostedPlugin",
    "HostedParameter",
    "PluginLoadError",
    # Automation
    "AutomationTrack",
    "ParamOverride",
    "parse_time",
    "normalize_value",
    "supports_text_round_trip",
    "parse_automation_definition",
    "parse_automation_json",
    "parse_automation_file",
    "parse_param_arg",
    "merge_param_overrides",
    "build_automation",
    "find_param_by_name",
    "value_at",
    "bind_automation",
    "apply_automation",
    # Rendering
    "render_blocks",
    "render_to_file",
    # Errors
    "AutomationError",
    "InvalidTimeFormatError",
    "InvalidSampleIndexError",
    "DuplicateKeyframeTimeError",
    "ValueOutOfRangeError",
    "InvalidValueTypeError",
    "UnknownParameterError",
    "DuplicateParameterError",
    "TextUnsupportedForParameterError",
    "InvalidParamArgumentError",
]
__version__ = "0.1.0"
