"""Audio file I/O utilities for plughost.

Uses pedalboard.io.AudioFile for reading and writing audio files. Reading
supports every format the platform decoders handle (WAV, AIFF, FLAC, MP3,
Ogg Vorbis); writing supports WAV, AIFF and FLAC at 8, 16, 24 or 32 bits
(32-bit WAV is written as float). The bit depth of an input is taken from
its sample format as reported by soundfile.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
import soundfile as sf
from pedalboard.io import AudioFile

VALID_BIT_DEPTHS = (8, 16, 24, 32)

# soundfile subtype -> bit depth
_SUBTYPE_BIT_DEPTHS = {
    "PCM_S8": 8,
    "PCM_U8": 8,
    "PCM_16": 16,
    "PCM_24": 24,
    "PCM_32": 32,
    "FLOAT": 32,
    "DOUBLE": 32,
}

# AudioFile.file_dtype -> bit depth, for files libsndfile cannot open
_DTYPE_BIT_DEPTHS = {
    "int8": 8,
    "uint8": 8,
    "int16": 16,
    "int32": 32,
    "float32": 32,
    "float64": 32,
}


def _bit_depth(path: Path, file_dtype: str) -> int:
    """Bit depth of an audio file, from its sample format where known."""
    try:
        subtype = sf.info(str(path)).subtype
    except RuntimeError:
        subtype = None
    if subtype in _SUBTYPE_BIT_DEPTHS:
        return _SUBTYPE_BIT_DEPTHS[subtype]
    return _DTYPE_BIT_DEPTHS.get(file_dtype, 24)


def read_audio(path: str | Path) -> tuple[np.ndarray, int, int]:
    """Read an audio file.

    Returns:
        Tuple of (data, sample_rate, bit_depth) where data is a float32
        ndarray of shape (channels, samples).

    Raises:
        FileNotFoundError: If the file does not exist.
        RuntimeError: If the file cannot be decoded.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Audio file not found: {path}")

    try:
        with AudioFile(str(path)) as f:
            data = f.read(f.frames)
            sample_rate = f.samplerate
            bit_depth = _bit_depth(path, f.file_dtype)
    except (RuntimeError, ValueError) as e:
        raise RuntimeError(f"Could not read input file {path}: {e}") from e

    return np.asarray(data, dtype=np.float32), int(sample_rate), bit_depth


def get_audio_info(path: str | Path) -> dict:
    """Get audio file metadata without loading the samples.

    Returns:
        Dict with keys: channels, sample_rate, frames, duration, bit_depth.

    Raises:
        FileNotFoundError: If the file does not exist.
        RuntimeError: If the file cannot be decoded.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Audio file not found: {path}")

    try:
        with AudioFile(str(path)) as f:
            return {
                "channels": f.num_channels,
                "sample_rate": int(f.samplerate),
                "frames": f.frames,
                "duration": f.duration,
                "bit_depth": _bit_depth(path, f.file_dtype),
            }
    except (RuntimeError, ValueError) as e:
        raise RuntimeError(f"Could not read input file {path}: {e}") from e


def stack_inputs(inputs: Sequence[tuple[np.ndarray, int]]) -> tuple[np.ndarray, int]:
    """Combine several inputs into one multichannel buffer.

    Channels are stacked in input order; shorter inputs are zero-padded to
    the longest one.

    Args:
        inputs: (data, sample_rate) pairs with data of shape (channels, samples).

    Returns:
        Tuple of (data, sample_rate).

    Raises:
        ValueError: If there are no inputs or the sample rates differ.
    """
    if not inputs:
        raise ValueError("No audio inputs given")

    sample_rate = inputs[0][1]
    for _, sr in inputs[1:]:
        if sr != sample_rate:
            raise ValueError(
                f"Mismatched sample rate between input files: {sr} Hz vs {sample_rate} Hz"
            )

    length = max(data.shape[1] for data, _ in inputs)
    channels = sum(data.shape[0] for data, _ in inputs)
    stacked = np.zeros((channels, length), dtype=np.float32)

    row = 0
    for data, _ in inputs:
        stacked[row : row + data.shape[0], : data.shape[1]] = data
        row += data.shape[0]

    return stacked, sample_rate


def open_audio_writer(
    path: str | Path,
    sample_rate: float,
    num_channels: int,
    bit_depth: int = 16,
):
    """Open an audio file for writing.

    Use as a context manager; write (channels, samples) float32 blocks with
    ``write()``.

    Raises:
        ValueError: If the bit depth or format is not supported.
    """
    if bit_depth not in VALID_BIT_DEPTHS:
        raise ValueError(f"Bit depth must be 8, 16, 24, or 32, got {bit_depth}")

    return AudioFile(
        str(path), "w", samplerate=sample_rate, num_channels=num_channels, bit_depth=bit_depth
    )
