"""
WAV Container Encoding.

All audio written by myspeech is a canonical 44-byte-header RIFF/WAVE file
with uncompressed little-endian linear PCM and no extra chunks:

    offset  size  field
    0       4     "RIFF"
    4       4     chunk size = 36 + data size
    8       4     "WAVE"
    12      4     "fmt "
    16      4     16 (fmt chunk size)
    20      2     1 (PCM)
    22      2     channels
    24      4     sample rate
    28      4     byte rate = sample_rate * channels * bits / 8
    32      2     block align = channels * bits / 8
    34      2     bits per sample
    36      4     "data"
    40      4     data size = samples * channels * bits / 8
    44      ...   samples

The header is packed with ``struct`` so the byte layout is exact. Reading
engine-produced files (which may carry extra chunks or other subtypes) goes
through soundfile instead.

Example:
    >>> import numpy as np
    >>> data = encode_wav(np.zeros(22050, dtype=np.int16), 22050)
    >>> len(data)
    44144
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import soundfile as sf

from myspeech.core.logging import debug, get_logger

_LOG = get_logger("myspeech.audio")

WAV_HEADER_SIZE = 44

# little-endian: RIFF id, size, WAVE id, fmt id, fmt size, format, channels,
# sample rate, byte rate, block align, bits, data id, data size
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass(frozen=True)
class WavHeader:
    """Parsed fields of a canonical 44-byte WAV header."""
    chunk_size: int
    audio_format: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int

    @property
    def num_samples(self) -> int:
        return self.data_size // self.block_align if self.block_align else 0

    @property
    def duration_seconds(self) -> float:
        return self.num_samples / self.sample_rate if self.sample_rate else 0.0


def wav_size(num_samples: int, channels: int = 1, bits_per_sample: int = 16) -> int:
    """Exact encoded byte length for ``num_samples`` frames."""
    return WAV_HEADER_SIZE + num_samples * channels * (bits_per_sample // 8)


def encode_wav(
    samples: np.ndarray,
    sample_rate: int,
    channels: int = 1,
    bits_per_sample: int = 16,
) -> bytes:
    """
    Serialize int16 PCM samples into a WAV byte string.

    Args:
        samples: int16 samples. Multi-channel audio must already be
            interleaved (frame-major) in a flat array.
        sample_rate: Samples per second per channel.
        channels: Channel count.
        bits_per_sample: Only 16 is supported.

    Returns:
        ``44 + len(samples) * 2`` bytes.

    Raises:
        ValueError: On non-positive rate/channels, an unsupported bit
            depth, or a sample count not divisible by ``channels``.
    """
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    if channels <= 0:
        raise ValueError(f"channels must be positive, got {channels}")
    if bits_per_sample != 16:
        raise ValueError(f"only 16-bit PCM is supported, got {bits_per_sample}")

    pcm = np.asarray(samples).reshape(-1)
    if pcm.dtype != np.int16:
        pcm = np.clip(pcm, -32768, 32767).astype(np.int16)
    if pcm.size % channels:
        raise ValueError(f"{pcm.size} samples do not divide into {channels} channels")

    bytes_per_sample = bits_per_sample // 8
    data_size = pcm.size * bytes_per_sample
    block_align = channels * bytes_per_sample
    header = _HEADER.pack(
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        1,
        channels,
        sample_rate,
        sample_rate * block_align,
        block_align,
        bits_per_sample,
        b"data",
        data_size,
    )
    return header + pcm.astype("<i2", copy=False).tobytes()


def parse_wav_header(data: bytes) -> WavHeader:
    """
    Parse the first 44 bytes of a canonical WAV file.

    Raises:
        ValueError: If the data is too short or the chunk ids don't match.
    """
    if len(data) < WAV_HEADER_SIZE:
        raise ValueError(f"WAV data too short: {len(data)} bytes")

    (riff, chunk_size, wave, fmt, fmt_size, audio_format, channels, sample_rate,
     byte_rate, block_align, bits, data_id, data_size) = _HEADER.unpack_from(data)

    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_id != b"data":
        raise ValueError("not a canonical RIFF/WAVE header")
    if fmt_size != 16:
        raise ValueError(f"unexpected fmt chunk size {fmt_size}")

    return WavHeader(
        chunk_size=chunk_size,
        audio_format=audio_format,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_size=data_size,
    )


def probe_duration(path: Path | str) -> Optional[float]:
    """
    Duration in seconds of an audio file on disk, or None if unreadable.

    Used for engine output, whose container details we don't control.
    """
    try:
        info = sf.info(str(path))
    except (RuntimeError, OSError) as e:
        # soundfile raises LibsndfileError (a RuntimeError) for unknown formats
        debug(_LOG, "probe_failed", path=str(path), error=str(e))
        return None
    if not info.samplerate:
        return None
    return info.frames / float(info.samplerate)
