"""Output encoders, selected from configuration at startup.

Every encoder takes one stereo layer of interleaved int16 samples and writes
one file. OGG (libvorbis) is always offered; MP3 needs an ffmpeg build with
libmp3lame and fails per track otherwise.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

import numpy as np

from .errors import ExportingError, InvalidConfigurationError
from .ffmpeg_runner import FfmpegErrorType, FfmpegResult, FfmpegRunner, stderr_tail

logger = logging.getLogger(__name__)


class ExportMode(str, Enum):
    """Encoding of exported tracks."""

    OGG = "ogg"
    MP3 = "mp3"

    @property
    def extension(self) -> str:
        return f".{self.value}"


@dataclass(frozen=True)
class ExportTarget:
    """Where and how tracks are exported. Shared read-only by all workers."""

    mode: ExportMode
    output_dir: Path


class FfmpegError(ExportingError):
    """ffmpeg failed while encoding a layer."""

    def __init__(self, output_path: Path, result: FfmpegResult):
        kind = result.error_type.value if result.error_type is not None else "unknown"
        super().__init__(
            f"ffmpeg failed writing {output_path} ({kind} error): {stderr_tail(result)}"
        )
        self.output_path = output_path
        self.result = result

    @property
    def error_type(self) -> Optional[FfmpegErrorType]:
        return self.result.error_type


class Encoder(ABC):
    """Writes one encoded file per stereo layer."""

    mode: ExportMode

    def __init__(self, runner: Optional[FfmpegRunner] = None):
        self.runner = runner or FfmpegRunner()

    @abstractmethod
    def codec_args(self) -> List[str]:
        """ffmpeg output options selecting the codec."""
        pass

    def encode(self, samples: np.ndarray, sample_rate: int, channels: int, output_base: Path) -> Path:
        """Encode interleaved samples next to output_base.

        Args:
            samples: Interleaved int16 samples
            sample_rate: Sample rate in Hz
            channels: Interleaved channel count
            output_base: Output path without extension; parents are created

        Returns:
            Path of the written file

        Raises:
            FfmpegError: If ffmpeg fails
            OSError: If the parent directory cannot be created
        """
        output_path = output_base.with_name(output_base.name + self.mode.extension)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        pcm = np.ascontiguousarray(samples, dtype="<i2").tobytes()
        result = self.runner.encode_pcm(
            pcm=pcm,
            sample_rate=sample_rate,
            channels=channels,
            output_path=str(output_path),
            codec_args=self.codec_args(),
        )
        if not result.success:
            raise FfmpegError(output_path, result)

        logger.debug("Wrote %s in %.2fs", output_path, result.duration_s)
        return output_path


class OggEncoder(Encoder):
    mode = ExportMode.OGG

    def __init__(self, runner: Optional[FfmpegRunner] = None, quality: int = 6):
        super().__init__(runner)
        self.quality = quality

    def codec_args(self) -> List[str]:
        return ["-c:a", "libvorbis", "-q:a", str(self.quality)]


class Mp3Encoder(Encoder):
    mode = ExportMode.MP3

    def __init__(self, runner: Optional[FfmpegRunner] = None, bitrate: str = "320k"):
        super().__init__(runner)
        self.bitrate = bitrate

    def codec_args(self) -> List[str]:
        return ["-c:a", "libmp3lame", "-b:a", self.bitrate]


def encoder_for(mode: ExportMode, runner: Optional[FfmpegRunner] = None, **options) -> Encoder:
    """Create the encoder for an export mode.

    Args:
        mode: Selected export mode
        runner: Shared ffmpeg runner (default: a new runner)
        **options: ``ogg_quality`` and/or ``mp3_bitrate``
    """
    if mode == ExportMode.OGG:
        return OggEncoder(runner, quality=options.get("ogg_quality", 6))
    if mode == ExportMode.MP3:
        return Mp3Encoder(runner, bitrate=options.get("mp3_bitrate", "320k"))
    raise InvalidConfigurationError(f"Unsupported export mode: {mode}")
