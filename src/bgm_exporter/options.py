"""Validated runtime options for one pipeline invocation.

Everything here is checked when the options are built, so configuration
errors surface before any phase runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .archive import ArchiveStore, DirectoryArchive
from .audio import AudioTrackTransformer
from .encoders import Encoder, ExportMode, ExportTarget, encoder_for
from .errors import InvalidConfigurationError, UnableToCreateSaveFileError
from .ffmpeg_runner import FfmpegRunner
from .manifest import ManifestFile, load_manifest
from .models import BGMExportConfig
from .sheet import CsvSheet, Sheet

logger = logging.getLogger(__name__)


@dataclass
class ArchiveOptions:
    """Where tracks come from and how many workers read them."""

    archive: ArchiveStore
    sheet: Sheet
    worker_count: int = 4
    known_skips: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.worker_count < 1:
            raise InvalidConfigurationError(
                f"Worker count must be at least 1, got {self.worker_count}"
            )
        self.known_skips = tuple(self.known_skips)

    @classmethod
    def from_config(cls, config: BGMExportConfig) -> "ArchiveOptions":
        """
        Raises:
            NoArchiveError: If the archive root is not a directory
            ArchiveError: If the sheet cannot be read
            InvalidConfigurationError: If the worker count is below 1
        """
        archive = DirectoryArchive(Path(config.archive.root))
        sheet = CsvSheet(archive.root / config.archive.sheet)
        return cls(
            archive=archive,
            sheet=sheet,
            worker_count=config.processing.worker_count,
            known_skips=tuple(config.archive.known_skips),
        )


@dataclass
class ExportOptions:
    """Export target plus the transform settings applied to every track."""

    target: ExportTarget
    encoder: Encoder
    fade_max_s: float = 30.0
    fade_fraction: float = 0.05

    def __post_init__(self):
        if self.encoder.mode != self.target.mode:
            raise InvalidConfigurationError(
                f"Encoder writes {self.encoder.mode.value}, target wants {self.target.mode.value}"
            )

    def transformer(self) -> AudioTrackTransformer:
        return AudioTrackTransformer(
            self.target,
            self.encoder,
            fade_max_s=self.fade_max_s,
            fade_fraction=self.fade_fraction,
        )


@dataclass
class ManifestOptions:
    """Manifest persistence, change detection and export settings.

    Hashing runs only when a save file or a prior manifest is given.
    """

    save_file: Optional[Path] = None
    compare: Optional[ManifestFile] = None
    export: Optional[ExportOptions] = None

    def __post_init__(self):
        if self.save_file is not None:
            self.save_file = Path(self.save_file)
            check_save_file(self.save_file)

    @property
    def hashing_enabled(self) -> bool:
        return self.save_file is not None or self.compare is not None

    @classmethod
    def create(
        cls,
        save_file: Optional[Path] = None,
        compare_file: Optional[Path] = None,
        export: Optional[ExportOptions] = None,
    ) -> "ManifestOptions":
        """Build options, loading the prior manifest from compare_file.

        Raises:
            UnableToCreateSaveFileError: If save_file exists or its directory doesn't
            UnableToReadCompareFileError: If compare_file cannot be loaded
        """
        compare = load_manifest(Path(compare_file)) if compare_file is not None else None
        return cls(save_file=save_file, compare=compare, export=export)

    @classmethod
    def from_config(
        cls, config: BGMExportConfig, runner: Optional[FfmpegRunner] = None
    ) -> "ManifestOptions":
        export = None
        if config.export.mode is not None:
            mode = ExportMode(config.export.mode)
            runner = runner or FfmpegRunner(
                global_timeout_s=config.encoding.global_timeout_s,
                ffmpeg_loglevel=config.encoding.ffmpeg_loglevel,
            )
            export = ExportOptions(
                target=ExportTarget(mode=mode, output_dir=Path(config.export.output_dir)),
                encoder=encoder_for(
                    mode,
                    runner,
                    ogg_quality=config.encoding.ogg_quality,
                    mp3_bitrate=config.encoding.mp3_bitrate,
                ),
                fade_max_s=config.export.fade_max_s,
                fade_fraction=config.export.fade_fraction,
            )

        return cls.create(
            save_file=config.manifest.save_file,
            compare_file=config.manifest.compare_file,
            export=export,
        )


def check_save_file(path: Path) -> None:
    """The manifest is written with exclusive create; refuse a path that can't be.

    Raises:
        UnableToCreateSaveFileError: If path exists or its parent is not a directory
    """
    if path.exists():
        raise UnableToCreateSaveFileError(f"The save file already exists: {path}")
    parent = path.parent
    if not parent.is_dir():
        raise UnableToCreateSaveFileError(
            f"The save file directory does not exist: {parent}"
        )
