"""Track manifest: fingerprints of the last run, used for change detection.

A manifest maps a sheet row index to the entry name and the SHA-1 of its raw
payload. Comparing fresh fingerprints against a prior manifest tells the
exporter which tracks changed since that run.

File format (UTF-8 JSON, keys in ascending numeric order):

    {"files": {"3": {"index": 3, "name": "music/ffxiv/bgm_town.scd",
                     "sha1": "<40 hex chars>"}}}
"""

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ErrorWritingSaveFileError, UnableToReadCompareFileError

logger = logging.getLogger(__name__)

# Recorded for every track when hashing is disabled
EMPTY_DIGEST = "0" * 40


def fingerprint(data: bytes) -> str:
    """SHA-1 hex digest of an entry's raw payload."""
    return hashlib.sha1(data).hexdigest()


class TrackManifest(BaseModel):
    """Fingerprint of one processed track."""

    index: int = Field(..., ge=0, description="Sheet row index")
    name: str = Field(..., description="Archive identifier of the entry")
    sha1: str = Field(..., description="SHA-1 of the raw payload, lowercase hex")

    model_config = {"frozen": True}

    @field_validator("sha1")
    @classmethod
    def sha1_is_hex_digest(cls, v: str) -> str:
        """Validate that sha1 is a 160-bit hex digest."""
        v = v.lower()
        if len(v) != 40 or any(c not in "0123456789abcdef" for c in v):
            raise ValueError(f"sha1 must be 40 hex characters, got {v!r}")
        return v


class ManifestFile(BaseModel):
    """Manifest of a whole run, keyed by sheet row index."""

    files: Dict[int, TrackManifest] = Field(default_factory=dict)

    @model_validator(mode="after")
    def keys_match_entries(self) -> "ManifestFile":
        for key, entry in self.files.items():
            if key != entry.index:
                raise ValueError(f"Manifest key {key} holds entry for index {entry.index}")
        return self

    @classmethod
    def from_entries(cls, entries: Iterable[TrackManifest]) -> "ManifestFile":
        """Build a manifest with entries in ascending index order.

        Raises:
            ValueError: If two entries share an index
        """
        files: Dict[int, TrackManifest] = {}
        for entry in sorted(entries, key=lambda e: e.index):
            if entry.index in files:
                raise ValueError(f"Duplicate manifest index {entry.index}")
            files[entry.index] = entry
        return cls(files=files)

    def to_json(self) -> str:
        ordered = ManifestFile(files=dict(sorted(self.files.items())))
        return ordered.model_dump_json(indent=2)


@dataclass
class ManifestDiff:
    """Fresh fingerprints partitioned against a prior manifest."""

    changed: List[TrackManifest] = field(default_factory=list)
    unchanged: List[TrackManifest] = field(default_factory=list)

    @property
    def all(self) -> List[TrackManifest]:
        return sorted(self.changed + self.unchanged, key=lambda e: e.index)


def diff_manifest(
    entries: Iterable[TrackManifest], prior: Optional[ManifestFile]
) -> ManifestDiff:
    """
    Partition fresh entries into changed and unchanged.

    An entry is changed if there is no prior manifest, the prior manifest has
    no entry at its index, or the prior fingerprint differs. Both lists keep
    ascending index order.
    """
    diff = ManifestDiff()
    for entry in sorted(entries, key=lambda e: e.index):
        previous = prior.files.get(entry.index) if prior is not None else None
        if previous is not None and previous.sha1 == entry.sha1:
            diff.unchanged.append(entry)
        else:
            diff.changed.append(entry)
    return diff


def load_manifest(path: Path) -> ManifestFile:
    """Read a prior run's manifest.

    Raises:
        UnableToReadCompareFileError: If the file is missing, unreadable or
            does not match the manifest schema
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
        return ManifestFile.model_validate_json(text)
    except (OSError, UnicodeDecodeError, ValidationError) as e:
        raise UnableToReadCompareFileError(
            f"The compare file was unable to be read or parsed: {path}"
        ) from e


def save_manifest(path: Path, manifest: ManifestFile) -> None:
    """Write manifest to a new file. Existing files are never overwritten.

    Raises:
        ErrorWritingSaveFileError: If the file exists or cannot be written
    """
    try:
        with open(path, "x", encoding="utf-8") as f:
            f.write(manifest.to_json())
    except OSError as e:
        raise ErrorWritingSaveFileError(
            f"There was an error writing to the save file {path}: {e}"
        ) from e
    logger.info("Saved manifest with %d tracks to %s", len(manifest.files), path)
