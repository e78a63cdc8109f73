"""Per-track audio transform: decode, layer, loop-splice, fade, encode.

A decoded track may carry more than two channels; these are stereo layers
stacked side by side (e.g. a calm and an intense mix of the same piece).
Each layer is exported as its own file. Layers are taken from the end of the
channel list, so the first layer popped gets the highest layer number.

All sample positions below are per-channel unless named "interleaved".
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

import numpy as np
import soundfile as sf
from mutagen import MutagenError
from mutagen.oggvorbis import OggVorbis

from .encoders import Encoder, ExportTarget
from .errors import DecodingError, ExportingError

logger = logging.getLogger(__name__)

LOOP_START_TAG = "LoopStart"
LOOP_END_TAG = "LoopEnd"

STEREO = 2


@dataclass(frozen=True)
class LoopRegion:
    """Loop [start, end) in per-channel sample units."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass
class DecodedAudio:
    """One decoded audio entry."""

    samples: np.ndarray  # int16, shape (channels, frames)
    rate: int
    loop: Optional[LoopRegion] = None

    @property
    def channels(self) -> int:
        return self.samples.shape[0]

    @property
    def frames(self) -> int:
        return self.samples.shape[1]


def _first_value(comments: Mapping[str, Sequence[str]], key: str) -> Optional[str]:
    values = comments.get(key)
    if not values:
        return None
    if isinstance(values, str):
        return values
    return values[0]


def _parse_sample_offset(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    value = value.strip()
    if not value.isdigit():
        return None
    return int(value)


def extract_loop_region(comments: Mapping[str, Sequence[str]]) -> Optional[LoopRegion]:
    """
    Read the loop region from Vorbis comments.

    Both LoopStart and LoopEnd must be present and parse as non-negative
    integers; otherwise the track has no loop region.
    """
    start = _parse_sample_offset(_first_value(comments, LOOP_START_TAG))
    end = _parse_sample_offset(_first_value(comments, LOOP_END_TAG))
    if start is None or end is None:
        return None
    return LoopRegion(start=start, end=end)


def decode_ogg(data: bytes) -> DecodedAudio:
    """Decode one Ogg Vorbis entry into 16-bit samples.

    Raises:
        DecodingError: If the payload is not a decodable Ogg Vorbis stream
    """
    try:
        vorbis = OggVorbis(io.BytesIO(data))
    except MutagenError as e:
        raise DecodingError(f"Unable to read Vorbis headers: {e}") from e

    comments = vorbis.tags if vorbis.tags is not None else {}
    loop = extract_loop_region(comments)

    try:
        samples, rate = sf.read(io.BytesIO(data), dtype="int16", always_2d=True)
    except (sf.SoundFileError, RuntimeError) as e:
        raise DecodingError(f"Unable to decode Vorbis samples: {e}") from e

    return DecodedAudio(samples=np.ascontiguousarray(samples.T), rate=int(rate), loop=loop)


def interleave(channels: Sequence[np.ndarray]) -> np.ndarray:
    """Interleave channels frame by frame, stopping at the shortest channel."""
    length = min(len(c) for c in channels)
    return np.stack([c[:length] for c in channels], axis=1).reshape(-1)


def split_layers(samples: np.ndarray) -> List[np.ndarray]:
    """
    Split (channels, frames) samples into interleaved stereo layers.

    Pairs are popped from the end of the channel list, so the returned list
    starts with the last two channels.

    Raises:
        ExportingError: If there are fewer than 2 channels or an odd number
    """
    channel_count = samples.shape[0]
    if channel_count < 2:
        raise ExportingError("needs at least 2 channels")
    if channel_count % 2 != 0:
        raise ExportingError("needs Left/Right channels")

    channels = list(samples)
    layers = []
    while channels:
        right = channels.pop()
        left = channels.pop()
        layers.append(interleave([left, right]))
    return layers


def splice_loop(samples: np.ndarray, loop: LoopRegion, channels: int = STEREO) -> np.ndarray:
    """
    Play the loop region twice before continuing into the tail.

    Output is prefix + loop + loop + tail, so it grows by
    (loop.end - loop.start) * channels interleaved samples. A loop region that
    is empty or runs past the end of the track is ignored.
    """
    start = loop.start * channels
    end = loop.end * channels
    if loop.start >= loop.end or end > len(samples):
        logger.warning(
            "Ignoring loop region %d..%d for a track of %d frames",
            loop.start,
            loop.end,
            len(samples) // channels,
        )
        return samples

    segment = samples[start:end]
    return np.concatenate([samples[:start], segment, segment, samples[end:]])


def fade_out(
    samples: np.ndarray,
    rate: int,
    channels: int = STEREO,
    max_seconds: float = 30.0,
    fraction: float = 0.05,
) -> np.ndarray:
    """
    Fade the end of the track linearly towards silence.

    The fade covers min(max_seconds, fraction of the track) in frames. Inside
    the fade, a sample in frame f is scaled by
    (fade_length + fade_start_frame - f) / fade_length, which is 1 on the
    first faded frame and 1 / fade_length on the last. Scaled values are
    truncated toward zero.
    """
    length = len(samples)
    fade_length = min(int(rate * max_seconds), int(length / channels * fraction))
    if fade_length <= 0:
        return samples.copy()

    fade_start = length - fade_length * channels
    frame = np.arange(fade_start, length) // channels
    scale = (fade_length + fade_start // channels - frame) / fade_length

    faded = samples.copy()
    faded[fade_start:] = (samples[fade_start:].astype(np.float64) * scale).astype(np.int16)
    return faded


def export_file_name(
    base: str, entry_index: int, entry_count: int, layer_index: int, layer_count: int
) -> str:
    """
    Name of one exported layer.

    Suffixes are only added when needed: ``_entry{N}`` with several entries in
    the container, ``_layer{M}`` with several layers, where
    M = layer_count - layer_index.
    """
    name = base
    if entry_count > 1:
        name += f"_entry{entry_index}"
    if layer_count > 1:
        name += f"_layer{layer_count - layer_index}"
    return name


class AudioTrackTransformer:
    """Turns one audio entry into one encoded file per stereo layer."""

    def __init__(
        self,
        target: ExportTarget,
        encoder: Encoder,
        fade_max_s: float = 30.0,
        fade_fraction: float = 0.05,
    ):
        self.target = target
        self.encoder = encoder
        self.fade_max_s = fade_max_s
        self.fade_fraction = fade_fraction

    def export(
        self, output_base_name: str, entry_index: int, entry_count: int, payload: bytes
    ) -> List[Path]:
        """Decode, transform and encode one entry.

        Args:
            output_base_name: Relative output path without suffix or extension
            entry_index: Position of this entry in its container
            entry_count: Number of audio entries in the container
            payload: Ogg Vorbis bytes of the entry

        Returns:
            Written files, in layer pop order

        Raises:
            DecodingError: If the payload cannot be decoded
            ExportingError: If validation or encoding fails
        """
        decoded = decode_ogg(payload)
        layers = split_layers(decoded.samples)

        written = []
        for layer_index, layer in enumerate(layers):
            if decoded.loop is not None:
                layer = splice_loop(layer, decoded.loop, STEREO)
            layer = fade_out(
                layer,
                decoded.rate,
                STEREO,
                max_seconds=self.fade_max_s,
                fraction=self.fade_fraction,
            )

            name = export_file_name(
                output_base_name, entry_index, entry_count, layer_index, len(layers)
            )
            written.append(
                self.encoder.encode(layer, decoded.rate, STEREO, self.target.output_dir / name)
            )

        logger.debug("Exported %s entry %d as %d layers", output_base_name, entry_index, len(layers))
        return written
