import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

from bgm_exporter.encoders import (
    ExportMode,
    FfmpegError,
    Mp3Encoder,
    OggEncoder,
    encoder_for,
)
from bgm_exporter.errors import ExportingError
from bgm_exporter.ffmpeg_runner import FfmpegErrorType, FfmpegResult


def mock_runner(success=True, stderr=""):
    runner = MagicMock()
    runner.encode_pcm.return_value = FfmpegResult(
        success=success,
        returncode=0 if success else 1,
        stderr=stderr,
        duration_s=0.01,
        error_type=None if success else FfmpegErrorType.PERMANENT,
    )
    return runner


class TestEncoderSelection:
    def test_ogg(self):
        encoder = encoder_for(ExportMode.OGG, mock_runner(), ogg_quality=4)
        assert isinstance(encoder, OggEncoder)
        assert encoder.codec_args() == ["-c:a", "libvorbis", "-q:a", "4"]

    def test_mp3(self):
        encoder = encoder_for(ExportMode.MP3, mock_runner(), mp3_bitrate="192k")
        assert isinstance(encoder, Mp3Encoder)
        assert encoder.codec_args() == ["-c:a", "libmp3lame", "-b:a", "192k"]

    def test_mode_from_string(self):
        assert ExportMode("mp3").extension == ".mp3"


class TestEncode:
    def test_writes_under_new_directories(self):
        runner = mock_runner()
        encoder = OggEncoder(runner)
        samples = np.array([1, -1, 2, -2], dtype=np.int16)

        with tempfile.TemporaryDirectory() as tmpdir:
            base = Path(tmpdir) / "music" / "ffxiv" / "BGM_Town_layer2"
            output = encoder.encode(samples, 44100, 2, base)

            assert output == base.with_name("BGM_Town_layer2.ogg")
            assert output.parent.is_dir()

        kwargs = runner.encode_pcm.call_args.kwargs
        assert kwargs["pcm"] == samples.astype("<i2").tobytes()
        assert kwargs["sample_rate"] == 44100
        assert kwargs["channels"] == 2
        assert kwargs["output_path"].endswith("BGM_Town_layer2.ogg")

    def test_failure_raises_exporting_error(self):
        encoder = Mp3Encoder(mock_runner(success=False, stderr="Unknown encoder 'libmp3lame'"))

        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(ExportingError) as exc_info:
                encoder.encode(np.zeros(4, dtype=np.int16), 44100, 2, Path(tmpdir) / "bgm")

        assert isinstance(exc_info.value, FfmpegError)
        assert exc_info.value.error_type == FfmpegErrorType.PERMANENT
        assert "libmp3lame" in exc_info.value.reason
        assert "(permanent error)" in exc_info.value.reason
