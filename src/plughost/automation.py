"""Parameter automation parsing and interpolation for plughost.

Automation documents are JSON objects mapping parameter names to either a
single value held for the whole run, or a set of keyframes:

    {
        "Gain": 0.5,                                // static normalized value
        "Mode": "Stereo",                           // static text value
        "Cutoff": {"0": 0.0, "1.5s": 0.7, "50%": 1.0}  // keyframes
    }

Keyframe time formats:
    "1000"   - sample index
    "1.5s"   - seconds, truncated to a whole sample
    "50%"    - percentage of the total input length, rounded half away
               from zero

Numeric values are normalized parameter values in [0, 1]. Text values are
converted by the plugin and are only accepted for parameters whose
text-to-value conversion round-trips (see supports_text_round_trip).

Between keyframes values are linearly interpolated; before the first and
after the last keyframe the nearest keyframe's value is held.
"""

from __future__ import annotations

import json
import logging
import math
from bisect import bisect_right
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator, Mapping, NamedTuple, Sequence

from plughost.utils import parse_float_strict, parse_int_strict, seconds_to_samples

if TYPE_CHECKING:
    from plughost.host import HostedParameter, HostedPlugin

logger = logging.getLogger(__name__)

TEXT_ROUND_TRIP_EPSILON = 1e-4
TEXT_ROUND_TRIP_MAX_SAMPLES = 100


# -- Errors --


class AutomationError(ValueError):
    """Base class for invalid automation definitions.

    Attributes:
        message: Description of the problem.
        parameter: Name of the parameter being parsed, if known.
    """

    def __init__(self, message: str, parameter: str | None = None):
        super().__init__(message)
        self.message = message
        self.parameter = parameter

    def __str__(self) -> str:
        if self.parameter is None:
            return self.message
        return f"Parameter '{self.parameter}': {self.message}"


class InvalidTimeFormatError(AutomationError):
    pass


class InvalidSampleIndexError(InvalidTimeFormatError):
    pass


class DuplicateKeyframeTimeError(AutomationError):
    def __init__(
        self,
        time: int,
        time_expr: str,
        first_time_expr: str,
        parameter: str | None = None,
    ):
        super().__init__(
            f"Duplicate keyframe time: {time} (obtained from input string "
            f"'{time_expr}', already defined by '{first_time_expr}')",
            parameter,
        )
        self.time = time
        self.time_expr = time_expr
        self.first_time_expr = first_time_expr


class ValueOutOfRangeError(AutomationError):
    def __init__(self, value: float, parameter: str | None = None):
        super().__init__(
            f"Normalized parameter value must be between 0 and 1, but is {value}",
            parameter,
        )
        self.value = value


class InvalidValueTypeError(AutomationError):
    pass


class UnknownParameterError(AutomationError):
    pass


class DuplicateParameterError(AutomationError):
    pass


class TextUnsupportedForParameterError(AutomationError):
    pass


class InvalidParamArgumentError(AutomationError):
    pass


# -- Data model --


class AutomationTrack:
    """Keyframes of a single parameter, ordered by time.

    Times are unique sample indices in ascending order; a track always holds
    at least one keyframe. Tracks are immutable once built.
    """

    __slots__ = ("_times", "_values")

    def __init__(self, keyframes: Iterable[tuple[int, float]]):
        ordered = sorted(keyframes, key=lambda kf: kf[0])
        if not ordered:
            raise ValueError("An automation track needs at least one keyframe")
        times = tuple(int(t) for t, _ in ordered)
        for prev, cur in zip(times, times[1:]):
            if prev == cur:
                raise ValueError(f"Duplicate keyframe time: {cur}")
        self._times = times
        self._values = tuple(float(v) for _, v in ordered)

    @classmethod
    def constant(cls, value: float) -> "AutomationTrack":
        """Track holding ``value`` for the whole run."""
        return cls([(0, value)])

    @property
    def times(self) -> tuple[int, ...]:
        return self._times

    @property
    def values(self) -> tuple[float, ...]:
        return self._values

    @property
    def keyframes(self) -> tuple[tuple[int, float], ...]:
        return tuple(zip(self._times, self._values))

    def __len__(self) -> int:
        return len(self._times)

    def __iter__(self) -> Iterator[tuple[int, float]]:
        return zip(self._times, self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AutomationTrack):
            return NotImplemented
        return self._times == other._times and self._values == other._values

    def __hash__(self) -> int:
        return hash((self._times, self._values))

    def __repr__(self) -> str:
        return f"AutomationTrack({list(self.keyframes)!r})"

    def value_at(self, sample_index: int) -> float:
        """Evaluate the track at a sample index.

        Linear interpolation between the surrounding keyframes, flat
        extrapolation outside the keyframe range.
        """
        times = self._times
        values = self._values
        # first keyframe strictly after sample_index
        nxt = bisect_right(times, sample_index)

        if nxt == 0:
            return values[0]
        if nxt == len(times):
            return values[-1]

        prev = nxt - 1
        t0 = times[prev]
        v0 = values[prev]
        return v0 + (values[nxt] - v0) * (sample_index - t0) / (times[nxt] - t0)


# Parameter name -> keyframes
ParameterAutomation = dict[str, AutomationTrack]

# Automation resolved against live plugin parameters
BoundAutomation = list[tuple["HostedParameter", AutomationTrack]]


def value_at(track: AutomationTrack, sample_index: int) -> float:
    """Evaluate ``track`` at ``sample_index``. See AutomationTrack.value_at."""
    return track.value_at(sample_index)


# -- Parameter lookup --


def find_param_by_name(plugin: HostedPlugin, name: str) -> HostedParameter:
    """Find a plugin parameter by name.

    An exact match wins; otherwise a case-insensitive match is accepted if
    it is unambiguous.

    Raises:
        UnknownParameterError: If no parameter with that name exists.
    """
    name_lower = name.lower()
    folded = []
    for param in plugin.parameters:
        if param.name == name:
            return param
        if param.name.lower() == name_lower:
            folded.append(param)

    if len(folded) == 1:
        return folded[0]

    raise UnknownParameterError(
        f"Unknown parameter identifier '{name}'. "
        f"Use 'plughost params <plugin>' to list available parameters."
    )


# -- Time expressions --


def parse_time(expr: str, sample_rate: float, total_length_samples: int) -> int:
    """Convert a keyframe time expression into a sample index.

    Formats:
        "1000"   - sample index, digits only
        "1.5s"   - seconds, truncated toward zero
        "50%"    - percentage of ``total_length_samples``, rounded half
                   away from zero

    Whitespace around the expression and before the suffix is ignored.

    Raises:
        InvalidTimeFormatError: If a suffixed number is malformed or the
            resolved time is negative.
        InvalidSampleIndexError: If a plain sample index is malformed.
    """
    expr = expr.strip()

    is_seconds = expr.endswith("s")
    is_percentage = expr.endswith("%")

    if is_seconds or is_percentage:
        number = expr[:-1].strip()
        try:
            time = parse_float_strict(number)
        except ValueError:
            raise InvalidTimeFormatError(
                f"Invalid floating-point number '{number}' in keyframe time '{expr}'"
            ) from None

        if time < 0:
            raise InvalidTimeFormatError(f"Keyframe time must not be negative: '{expr}'")

        try:
            if is_seconds:
                return seconds_to_samples(time, sample_rate)
            return math.floor(time / 100 * total_length_samples + 0.5)
        except OverflowError:
            raise InvalidTimeFormatError(
                f"Keyframe time out of range: '{expr}'"
            ) from None

    try:
        return parse_int_strict(expr)
    except ValueError:
        raise InvalidSampleIndexError(f"Invalid sample index '{expr}'") from None


# -- Values --


def normalize_value(primitive: object, parameter: HostedParameter) -> float:
    """Convert a JSON primitive into a normalized parameter value.

    Numbers are taken as normalized values and must lie in [0, 1]. Strings
    are converted with the parameter's text-to-value conversion; the result
    is trusted as is.

    Raises:
        ValueOutOfRangeError: If a number lies outside [0, 1].
        InvalidValueTypeError: If the primitive is neither number nor string.
    """
    # bool is an int subclass, but JSON true/false is not a value
    if isinstance(primitive, bool):
        raise InvalidValueTypeError(
            f"Invalid parameter value type: {json.dumps(primitive)}. "
            f"Must be a number or string"
        )

    if isinstance(primitive, (int, float)):
        try:
            value = float(primitive)
        except OverflowError:
            raise ValueOutOfRangeError(primitive) from None
        if not 0.0 <= value <= 1.0:
            raise ValueOutOfRangeError(value)
        return value

    if isinstance(primitive, str):
        return float(parameter.get_value_for_text(primitive))

    raise InvalidValueTypeError(
        f"Invalid parameter value type: {type(primitive).__name__}. "
        f"Must be a number or string"
    )


def supports_text_round_trip(parameter: HostedParameter) -> bool:
    """Test whether the parameter's text conversion round-trips.

    Samples up to 100 evenly spaced normalized values, converts each to text
    and back, and requires the result to be within 1e-4 of the original.

    This is a sampled approximation: a parameter whose text mapping only
    breaks between the sampled points passes, and a parameter with fewer
    discrete steps is judged on those steps alone.
    """
    num_values = min(TEXT_ROUND_TRIP_MAX_SAMPLES, parameter.num_steps)
    if num_values < 2:
        return True

    for i in range(num_values):
        normalized = i / (num_values - 1)
        text = parameter.get_text(normalized)
        from_text = parameter.get_value_for_text(text)
        if abs(normalized - from_text) >= TEXT_ROUND_TRIP_EPSILON:
            logger.debug(
                "Parameter '%s' fails text round trip: %r -> '%s' -> %r",
                parameter.name,
                normalized,
                text,
                from_text,
            )
            return False

    return True


# -- Automation documents --


def _parse_track(
    definition: object,
    parameter: HostedParameter,
    sample_rate: float,
    total_length_samples: int,
) -> tuple[AutomationTrack, bool]:
    """Build one parameter's track; also report whether text values were used."""
    if not isinstance(definition, Mapping):
        # single value for the entire run
        value = normalize_value(definition, parameter)
        return AutomationTrack.constant(value), isinstance(definition, str)

    keyframes: dict[int, float] = {}
    sources: dict[int, str] = {}
    used_text = False

    for time_expr, primitive in definition.items():
        time = parse_time(time_expr, sample_rate, total_length_samples)
        if time in keyframes:
            raise DuplicateKeyframeTimeError(time, time_expr, sources[time])

        keyframes[time] = normalize_value(primitive, parameter)
        sources[time] = time_expr
        used_text |= isinstance(primitive, str)

    if not keyframes:
        raise AutomationError("Keyframe object must contain at least one keyframe")

    return AutomationTrack(keyframes.items()), used_text


def parse_automation_definition(
    definition: Mapping[str, object],
    plugin: HostedPlugin,
    sample_rate: float,
    total_length_samples: int,
) -> ParameterAutomation:
    """Parse a decoded automation document.

    Args:
        definition: Mapping of parameter names to values or keyframe objects.
        plugin: Plugin providing the parameters.
        sample_rate: Sample rate used to convert seconds to samples.
        total_length_samples: Input length used to convert percentages.

    Returns:
        Mapping of canonical parameter names to their tracks.

    Raises:
        AutomationError: On the first invalid entry. Errors raised while a
            parameter is being parsed carry its name in ``parameter``.
    """
    if not isinstance(definition, Mapping):
        raise AutomationError(
            "Automation definition must be a JSON object mapping parameter "
            "names to values."
        )

    automation: ParameterAutomation = {}

    for param_name, param_definition in definition.items():
        try:
            parameter = find_param_by_name(plugin, param_name)
            if parameter.name in automation:
                raise DuplicateParameterError(
                    f"Parameter is defined more than once (as '{param_name}')"
                )

            track, used_text = _parse_track(
                param_definition, parameter, sample_rate, total_length_samples
            )

            if used_text and not supports_text_round_trip(parameter):
                raise TextUnsupportedForParameterError(
                    "Text value used, but parameter only supports normalized values"
                )
        except AutomationError as e:
            if e.parameter is None:
                e.parameter = param_name
            raise

        automation[parameter.name] = track
        logger.debug("Parsed automation for '%s': %r", parameter.name, track)

    return automation


def parse_automation_json(
    text: str,
    plugin: HostedPlugin,
    sample_rate: float,
    total_length_samples: int,
) -> ParameterAutomation:
    """Parse an automation document from a JSON string."""
    try:
        definition = json.loads(text)
    except json.JSONDecodeError as e:
        raise AutomationError(f"Invalid JSON in automation definition: {e}") from e

    return parse_automation_definition(
        definition, plugin, sample_rate, total_length_samples
    )


def parse_automation_file(
    path: str | Path,
    plugin: HostedPlugin,
    sample_rate: float,
    total_length_samples: int,
) -> ParameterAutomation:
    """Parse a JSON automation file.

    Raises:
        FileNotFoundError: If the file does not exist.
        AutomationError: If the document is invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Automation file not found: {path}")

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise AutomationError(f"Automation file {path} is not valid UTF-8: {e}") from e

    return parse_automation_json(text, plugin, sample_rate, total_length_samples)


# -- Applying automation --


def bind_automation(
    plugin: HostedPlugin, automation: ParameterAutomation
) -> BoundAutomation:
    """Resolve each automated parameter name against the plugin once.

    Raises:
        UnknownParameterError: If a parameter no longer exists.
    """
    return [(find_param_by_name(plugin, name), track) for name, track in automation.items()]


def apply_automation(bound: BoundAutomation, sample_index: int) -> None:
    """Set every automated parameter to its value at ``sample_index``."""
    for parameter, track in bound:
        parameter.set_value(track.value_at(sample_index))


# -- Command-line overrides --


class ParamOverride(NamedTuple):
    """A parsed ``--param`` argument.

    ``value`` is a float when ``is_normalized`` is set, otherwise the text
    to convert via the parameter.
    """

    name: str
    value: object
    is_normalized: bool


def _split_param_arg(arg_str: str) -> list[str]:
    """Split on ':' outside of single or double quotes, dropping the quotes."""
    tokens = []
    current = []
    quote = None
    for ch in arg_str:
        if quote:
            if ch == quote:
                quote = None
            else:
                current.append(ch)
        elif ch in "\"'":
            quote = ch
        elif ch == ":":
            tokens.append("".join(current))
            current = []
        else:
            current.append(ch)
    tokens.append("".join(current))
    return tokens


def parse_param_arg(arg_str: str) -> ParamOverride:
    """Parse a CLI --param argument string.

    Formats:
        "Name:TextValue"  - text value, converted by the plugin
        "Name:0.5:n"      - normalized value (0-1)

    Quote a name or value to include colons in it: '"Ratio":"1:4"'.

    Raises:
        InvalidParamArgumentError: If the argument is malformed.
        ValueOutOfRangeError: If a normalized value lies outside [0, 1].
    """
    tokens = _split_param_arg(arg_str)

    if len(tokens) not in (2, 3):
        raise InvalidParamArgumentError(
            f"'{arg_str}' is not a colon-separated key-value pair"
        )

    name, value_str = tokens[0].strip(), tokens[1].strip()
    if not name:
        raise InvalidParamArgumentError(f"Missing parameter name in '{arg_str}'")

    if len(tokens) == 2:
        return ParamOverride(name, value_str, False)

    if tokens[2].strip() != "n":
        raise InvalidParamArgumentError(
            f"Invalid parameter modifier: '{tokens[2]}'. Only 'n' is allowed"
        )

    try:
        value = parse_float_strict(value_str)
    except ValueError:
        raise InvalidParamArgumentError(
            f"Normalized parameter value must be a number, but is '{value_str}'"
        ) from None

    if not 0.0 <= value <= 1.0:
        raise ValueOutOfRangeError(value, name)

    return ParamOverride(name, value, True)


def merge_param_overrides(
    automation: ParameterAutomation,
    overrides: Sequence[ParamOverride],
    plugin: HostedPlugin,
) -> ParameterAutomation:
    """Merge command-line overrides into an automation table.

    Each override becomes a constant track and replaces any automation of
    the same parameter from the file, which is reported as a warning.

    Returns:
        A new automation table; ``automation`` is not modified.

    Raises:
        UnknownParameterError: If an override names an unknown parameter.
        TextUnsupportedForParameterError: If a text value is given for a
            parameter that only supports normalized values.
    """
    merged = dict(automation)

    for override in overrides:
        try:
            parameter = find_param_by_name(plugin, override.name)

            if override.is_normalized:
                value = float(override.value)
            else:
                if not supports_text_round_trip(parameter):
                    raise TextUnsupportedForParameterError(
                        "Parameter does not support text values. "
                        "Use :n suffix to supply a normalized value instead"
                    )
                value = float(parameter.get_value_for_text(str(override.value)))
        except AutomationError as e:
            if e.parameter is None:
                e.parameter = override.name
            raise

        if parameter.name in automation:
            logger.warning(
                "Plugin parameter '%s' is specified in the parameter file and "
                "overridden by a command-line parameter.",
                parameter.name,
            )

        merged[parameter.name] = AutomationTrack.constant(value)

    return merged


def build_automation(
    plugin: HostedPlugin,
    sample_rate: float,
    total_length_samples: int,
    param_file: str | Path | None = None,
    param_args: Iterable[str | ParamOverride] = (),
) -> ParameterAutomation:
    """Build the automation for a run from a parameter file and CLI overrides.

    Args:
        plugin: Plugin providing the parameters.
        sample_rate: Sample rate used to convert seconds to samples.
        total_length_samples: Input length used to convert percentages.
        param_file: Optional JSON automation file.
        param_args: ``--param`` strings or already parsed overrides. These
            take precedence over the file.

    Raises:
        FileNotFoundError: If ``param_file`` does not exist.
        AutomationError: If any input is invalid.
    """
    automation: ParameterAutomation = {}
    if param_file is not None:
        automation = parse_automation_file(
            param_file, plugin, sample_rate, total_length_samples
        )

    overrides = [
        arg if isinstance(arg, ParamOverride) else parse_param_arg(arg)
        for arg in param_args
    ]
    automation = merge_param_overrides(automation, overrides, plugin)

    logger.info("Automating %d parameter(s)", len(automation))
    return automation
