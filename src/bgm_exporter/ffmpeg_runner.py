"""FFmpeg runner for encoding raw PCM into distributable audio files.

PCM is piped to ffmpeg on stdin; the encoded file is written by ffmpeg
itself. The runner enforces a global timeout, classifies failures and keeps
the tail of ffmpeg's stderr for error messages.
"""

import logging
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


class FfmpegErrorType(Enum):
    """FFmpeg error classification."""
    PERMANENT = "permanent"     # Invalid arguments, missing encoder, bad output path
    TRANSIENT = "transient"     # Disk I/O stall, resource exhaustion
    TIMEOUT = "timeout"         # Global timeout exceeded


@dataclass
class FfmpegResult:
    """Result of FFmpeg execution."""
    success: bool
    returncode: int
    stderr: str
    duration_s: float
    error_type: Optional[FfmpegErrorType] = None


class FfmpegRunner:
    """Runs ffmpeg with PCM on stdin.

    Example:
        >>> runner = FfmpegRunner(global_timeout_s=600)
        >>> result = runner.encode_pcm(
        ...     pcm=layer.tobytes(),
        ...     sample_rate=44100,
        ...     channels=2,
        ...     output_path="out/bgm_town.ogg",
        ...     codec_args=["-c:a", "libvorbis", "-q:a", "6"],
        ... )
        >>> if not result.success:
        ...     print(f"Error: {result.error_type}")
    """

    def __init__(self, global_timeout_s: int = 600, ffmpeg_loglevel: str = "error"):
        """Initialize FFmpeg runner.

        Args:
            global_timeout_s: Maximum duration for any FFmpeg operation
            ffmpeg_loglevel: FFmpeg log level (error, warning, info, verbose)
        """
        self.global_timeout_s = global_timeout_s
        self.ffmpeg_loglevel = ffmpeg_loglevel

    def encode_pcm(
        self,
        pcm: bytes,
        sample_rate: int,
        channels: int,
        output_path: str,
        codec_args: Sequence[str],
    ) -> FfmpegResult:
        """Encode signed 16-bit little-endian interleaved PCM to output_path.

        Args:
            pcm: Raw interleaved samples
            sample_rate: Sample rate in Hz
            channels: Number of interleaved channels
            output_path: Encoded file to write (overwritten if present)
            codec_args: Encoder selection, e.g. ["-c:a", "libvorbis", "-q:a", "6"]

        Returns:
            FfmpegResult with success status and metadata
        """
        cmd = [
            self._get_ffmpeg_exe(),
            "-y",
            "-hide_banner",
            "-loglevel", self.ffmpeg_loglevel,
            "-f", "s16le",
            "-ar", str(sample_rate),
            "-ac", str(channels),
            "-i", "pipe:0",
            "-vn",
            *codec_args,
            str(output_path),
        ]
        return self._run_ffmpeg(cmd, pcm)

    def _run_ffmpeg(self, cmd: List[str], input_bytes: bytes) -> FfmpegResult:
        """Execute FFmpeg with timeout enforcement.

        Args:
            cmd: FFmpeg command as list
            input_bytes: Data written to ffmpeg's stdin

        Returns:
            FfmpegResult with execution details
        """
        start_time = time.time()
        logger.debug("Running %s", " ".join(cmd))

        try:
            completed = subprocess.run(
                cmd,
                input=input_bytes,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=self.global_timeout_s,
            )
        except subprocess.TimeoutExpired as e:
            # subprocess.run kills the child before re-raising
            stderr = (e.stderr or b"").decode("utf-8", errors="replace")
            return FfmpegResult(
                success=False,
                returncode=-1,
                stderr=stderr,
                duration_s=time.time() - start_time,
                error_type=FfmpegErrorType.TIMEOUT,
            )

        stderr = (completed.stderr or b"").decode("utf-8", errors="replace")
        error_type = None
        if completed.returncode != 0:
            error_type = self._classify_error(stderr)
            logger.debug("ffmpeg exited with %d: %s", completed.returncode, stderr[-500:])

        return FfmpegResult(
            success=(completed.returncode == 0),
            returncode=completed.returncode,
            stderr=stderr,
            duration_s=time.time() - start_time,
            error_type=error_type,
        )

    def _classify_error(self, stderr: str) -> FfmpegErrorType:
        """Classify FFmpeg error from its stderr output."""
        stderr_lower = stderr.lower()

        # Permanent errors
        permanent_patterns = [
            "no such file or directory",
            "invalid data found",
            "invalid argument",
            "permission denied",
            "unknown encoder",
            "encoder not found",
            "is a directory",
        ]

        for pattern in permanent_patterns:
            if pattern in stderr_lower:
                return FfmpegErrorType.PERMANENT

        # Transient errors
        transient_patterns = [
            "i/o error",
            "resource temporarily unavailable",
            "no space left",
            "disk full",
        ]

        for pattern in transient_patterns:
            if pattern in stderr_lower:
                return FfmpegErrorType.TRANSIENT

        # Default: treat as transient
        return FfmpegErrorType.TRANSIENT

    @staticmethod
    def _get_ffmpeg_exe() -> str:
        """Get FFmpeg executable path."""
        import imageio_ffmpeg
        return imageio_ffmpeg.get_ffmpeg_exe()


def check_ffmpeg() -> bool:
    """Verify ffmpeg is installed and runs."""
    try:
        exe = FfmpegRunner._get_ffmpeg_exe()
        subprocess.run(
            [exe, "-version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
        )
        return True
    except (FileNotFoundError, RuntimeError, subprocess.CalledProcessError, OSError):
        return False


def stderr_tail(result: FfmpegResult, limit: int = 500) -> str:
    return result.stderr.strip()[-limit:] if result.stderr else "Unknown error"
