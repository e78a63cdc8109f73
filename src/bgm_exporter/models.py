"""Pydantic models for configuration."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

DEFAULT_KNOWN_SKIPS = [
    "music/ffxiv/BGM_Season_China01.scd",
    "music/ffxiv/BGM_Event_OP01.scd",
    "music/ffxiv/BGM_Leves_Lim_01.scd",
]


class ArchiveConfig(BaseModel):
    """Location of the unpacked archive and its BGM sheet."""

    root: str = Field(default=".", description="Archive root directory")
    sheet: str = Field(
        default="bgm.csv", description="BGM sheet, relative to the archive root"
    )
    known_skips: List[str] = Field(
        default_factory=lambda: list(DEFAULT_KNOWN_SKIPS),
        description="Identifiers that are never processed",
    )


class ProcessingConfig(BaseModel):
    """Worker pool settings."""

    worker_count: int = Field(
        default=4, ge=1, description="Worker threads used for hashing and exporting"
    )


class ManifestConfig(BaseModel):
    """Manifest save/compare paths. Hashing only runs if one is set."""

    save_file: Optional[str] = Field(
        default=None, description="New manifest to write; must not exist yet"
    )
    compare_file: Optional[str] = Field(
        default=None, description="Prior manifest; unchanged tracks are not re-exported"
    )


class ExportConfig(BaseModel):
    """Export target and track transform settings."""

    mode: Optional[Literal["ogg", "mp3"]] = Field(
        default=None, description="Output encoding (None = don't export)"
    )
    output_dir: str = Field(default="output", description="Export directory")
    fade_max_s: float = Field(
        default=30.0, ge=0.0, description="Longest fade-out in seconds"
    )
    fade_fraction: float = Field(
        default=0.05, ge=0.0, le=1.0, description="Longest fade-out as a fraction of the track"
    )


class EncodingConfig(BaseModel):
    """FFmpeg encoder settings."""

    ogg_quality: int = Field(default=6, ge=-1, le=10, description="libvorbis -q:a quality")
    mp3_bitrate: str = Field(default="320k", description="libmp3lame bitrate (e.g., '192k')")
    global_timeout_s: int = Field(
        default=600, gt=0, description="Maximum duration of one ffmpeg run in seconds"
    )
    ffmpeg_loglevel: str = Field(
        default="error", description="FFmpeg log level: error, warning, info, verbose"
    )


class BGMExportConfig(BaseModel):
    """Complete application configuration with validation."""

    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    manifest: ManifestConfig = Field(default_factory=ManifestConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "BGMExportConfig":
        """Create config from nested dict (YAML)."""
        return cls(**data)

    def merge_cli_overrides(self, cli_args: dict) -> "BGMExportConfig":
        """Apply CLI overrides and return new config instance."""
        config_dict = self.model_dump()

        if "archive" in cli_args:
            config_dict["archive"]["root"] = cli_args["archive"]
        if "sheet" in cli_args:
            config_dict["archive"]["sheet"] = cli_args["sheet"]
        if "workers" in cli_args:
            config_dict["processing"]["worker_count"] = cli_args["workers"]
        if "save" in cli_args:
            config_dict["manifest"]["save_file"] = cli_args["save"]
        if "compare" in cli_args:
            config_dict["manifest"]["compare_file"] = cli_args["compare"]
        if "export_ogg" in cli_args:
            config_dict["export"]["mode"] = "ogg"
            config_dict["export"]["output_dir"] = cli_args["export_ogg"]
        if "export_mp3" in cli_args:
            config_dict["export"]["mode"] = "mp3"
            config_dict["export"]["output_dir"] = cli_args["export_mp3"]

        return BGMExportConfig.from_dict(config_dict)
