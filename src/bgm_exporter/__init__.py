"""Fingerprint, diff and export background music from a game archive."""

from .callbacks import LoggingObserver, NoOpObserver, ProcessPhase, ProgressObserver, TqdmObserver
from .errors import BGMExportError
from .options import ArchiveOptions, ExportOptions, ManifestOptions
from .pipeline import ProcessReport, process, process_all, process_one

__all__ = [
    "ArchiveOptions",
    "BGMExportError",
    "ExportOptions",
    "LoggingObserver",
    "ManifestOptions",
    "NoOpObserver",
    "ProcessPhase",
    "ProcessReport",
    "ProgressObserver",
    "TqdmObserver",
    "process",
    "process_all",
    "process_one",
]
