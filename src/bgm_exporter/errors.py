"""Error taxonomy for the BGM export pipeline.

Configuration errors are raised before any phase runs, resolution errors
before hashing starts, and phase-fatal errors abort only the phase that
raised them. Per-item failures never surface here; they are reported to the
progress observer instead.
"""

from __future__ import annotations

from typing import List, Sequence


class BGMExportError(Exception):
    """Base error for the bgm_exporter package."""


class NoArchiveError(BGMExportError):
    """Raised when the archive root does not exist or is not a directory."""

    def __init__(self, root: str):
        super().__init__(f"No archive at this location: {root}")
        self.root = root


class InvalidConfigurationError(BGMExportError):
    """Raised for invalid runtime options (e.g. a worker count below 1)."""


class ArchiveError(BGMExportError):
    """Raised by the archive collaborator when an entry cannot be located or read."""


class ArchiveErrorBatch(BGMExportError):
    """Several archive errors collected while resolving a request."""

    def __init__(self, errors: Sequence[BGMExportError]):
        self.errors: List[BGMExportError] = list(errors)
        super().__init__(
            f"Several errors occurred while reading the archive: "
            f"{[str(e) for e in self.errors]}"
        )


class InvalidIndexError(BGMExportError):
    """Raised when requested row indices are out of range for the sheet."""

    def __init__(self, indices: Sequence[int]):
        self.indices: List[int] = list(indices)
        super().__init__(f"The requested index was invalid {self.indices}")


class UnableToCreateSaveFileError(BGMExportError):
    """Raised when the manifest save path already exists or cannot be created."""


class UnableToReadCompareFileError(BGMExportError):
    """Raised when the compare manifest is missing, unreadable or malformed."""


class ErrorWritingSaveFileError(BGMExportError):
    """Raised when writing the manifest fails."""


class ExportingError(BGMExportError):
    """Raised when a track cannot be exported."""

    def __init__(self, reason: str):
        super().__init__(f"An error occurred during the export process. Reason: {reason}")
        self.reason = reason


class DecodingError(BGMExportError):
    """Raised when an Ogg Vorbis payload cannot be decoded."""


class UnableToSelectError(BGMExportError):
    """Raised when a selector matches no row of the sheet."""
