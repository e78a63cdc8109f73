"""Pipeline orchestrator: resolve, hash, diff, save, export.

Phases run strictly in ProcessPhase order on the calling thread; the
threaded phases (hashing and exporting) fan out over a ParallelExecutor and
are consumed here, so observer calls never overlap.

Usage:
    archive_options = ArchiveOptions.from_config(config)
    manifest_options = ManifestOptions.from_config(config)
    report = pipeline.process_all(archive_options, manifest_options, TqdmObserver())
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from . import config as config_lib
from .callbacks import NoOpObserver, ProcessPhase, ProgressObserver
from .errors import ExportingError
from .executor import Continue, ParallelExecutor, WorkItem, consume
from .manifest import (
    EMPTY_DIGEST,
    ManifestFile,
    TrackManifest,
    diff_manifest,
    fingerprint,
    save_manifest,
)
from .options import ArchiveOptions, ExportOptions, ManifestOptions
from .sheet import Selector, resolve_rows, select_row, write_sheet_csv

logger = logging.getLogger(__name__)


@dataclass
class ProcessReport:
    """Outcome of a successful pipeline run."""

    resolved: int = 0
    hashed: int = 0
    changed: int = 0
    unchanged: int = 0
    exported: int = 0
    skipped: int = 0
    errored: int = 0
    manifest: Optional[ManifestFile] = None
    written: List[Path] = field(default_factory=list)


@contextmanager
def _phase(observer: ProgressObserver, phase: ProcessPhase):
    # post_phase is only sent when the phase finishes without raising
    observer.pre_phase(phase)
    yield
    observer.post_phase(phase)


def process(
    archive_options: ArchiveOptions,
    manifest_options: ManifestOptions,
    indices: Sequence[int],
    observer: Optional[ProgressObserver] = None,
) -> ProcessReport:
    """
    Run the pipeline for the given sheet rows.

    Args:
        archive_options: Archive, sheet and worker settings
        manifest_options: Save/compare manifests and export target
        indices: Sheet rows to process
        observer: Progress observer (default: NoOpObserver)

    Returns:
        ProcessReport with per-phase counts

    Raises:
        InvalidIndexError: If any index is outside the sheet
        ArchiveErrorBatch: If any requested row cannot be parsed
        ErrorWritingSaveFileError: If the manifest cannot be written
        ExportingError: If the output directory cannot be created
    """
    observer = observer or NoOpObserver()
    executor = ParallelExecutor(archive_options.archive, archive_options.worker_count)
    report = ProcessReport()

    with _phase(observer, ProcessPhase.BEGIN):
        logger.info(
            "Processing %d requested rows with %d workers",
            len(indices),
            archive_options.worker_count,
        )

    with _phase(observer, ProcessPhase.READING_INDEX):
        work = resolve_rows(archive_options.sheet, indices, archive_options.known_skips)
        report.resolved = len(work)

    digests: Optional[Dict[int, str]] = None
    if manifest_options.hashing_enabled:
        with _phase(observer, ProcessPhase.HASHING):
            digests = _hash_tracks(executor, work, observer, report)

    with _phase(observer, ProcessPhase.COLLECTING):
        entries = [
            TrackManifest(
                index=item.index,
                name=str(item.identifier),
                sha1=digests[item.index] if digests is not None else EMPTY_DIGEST,
            )
            for item in work
            # Tracks that failed hashing have no fingerprint to record
            if digests is None or item.index in digests
        ]
        diff = diff_manifest(entries, manifest_options.compare)
        report.manifest = ManifestFile.from_entries(diff.all)
        report.changed = len(diff.changed)
        report.unchanged = len(diff.unchanged)
        logger.info("%d tracks changed, %d unchanged", report.changed, report.unchanged)

    if manifest_options.save_file is not None:
        with _phase(observer, ProcessPhase.SAVING_MANIFEST):
            save_manifest(manifest_options.save_file, report.manifest)

    if manifest_options.export is not None:
        with _phase(observer, ProcessPhase.EXPORTING):
            changed = {entry.index for entry in diff.changed}
            _export_tracks(
                executor,
                [item for item in work if item.index in changed],
                manifest_options.export,
                observer,
                report,
            )

    return report


def _hash_tracks(
    executor: ParallelExecutor,
    work: List[WorkItem],
    observer: ProgressObserver,
    report: ProcessReport,
) -> Dict[int, str]:
    def hash_item(index: int, data: bytes) -> Continue:
        return Continue(index, (index, fingerprint(data)))

    summary = consume(executor.run(work, hash_item), len(work), observer)
    report.hashed = len(summary.values)
    report.errored += summary.errored
    return dict(summary.values)


def _export_tracks(
    executor: ParallelExecutor,
    work: List[WorkItem],
    export: ExportOptions,
    observer: ProgressObserver,
    report: ProcessReport,
) -> None:
    output_dir = export.target.output_dir
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExportingError(f"Unable to create output directory {output_dir}: {e}") from e

    archive = executor.archive
    transformer = export.transformer()
    identifiers = {item.index: item.identifier for item in work}

    def export_item(index: int, data: bytes) -> Continue:
        entries = archive.decode_audio_container(data)
        if not entries:
            return Continue(index, None)

        # Drop the container suffix, keep the container directory
        base = identifiers[index].path[:-4]
        written: List[Path] = []
        for entry_index, payload in enumerate(entries):
            written.extend(transformer.export(base, entry_index, len(entries), payload))
        return Continue(index, written)

    summary = consume(executor.run(work, export_item), len(work), observer)
    report.exported = len(summary.values)
    report.skipped = summary.completed - summary.errored - report.exported
    report.errored += summary.errored
    for paths in summary.values:
        report.written.extend(paths)


def process_all(
    archive_options: ArchiveOptions,
    manifest_options: ManifestOptions,
    observer: Optional[ProgressObserver] = None,
) -> ProcessReport:
    """Process every row of the sheet."""
    indices = list(range(archive_options.sheet.row_count()))
    return process(archive_options, manifest_options, indices, observer)


def process_one(
    selector: Selector,
    archive_options: ArchiveOptions,
    manifest_options: ManifestOptions,
    observer: Optional[ProgressObserver] = None,
) -> ProcessReport:
    """Process the single row a selector picks (row index, file or title).

    Raises:
        UnableToSelectError: If the selector matches no row
    """
    row = select_row(archive_options.sheet, selector)
    return process(archive_options, manifest_options, [row], observer)


def run_process(
    cli_args: Dict[str, Any], observer: Optional[ProgressObserver] = None
) -> ProcessReport:
    """Resolve configuration from YAML plus CLI overrides and run the pipeline.

    Args:
        cli_args: CLI values, keyed like BGMExportConfig.merge_cli_overrides
            expects, plus optional ``index`` (list of rows) and ``title``
        observer: Progress observer

    Returns:
        ProcessReport of the run
    """
    config = config_lib.resolve_config(cli_args)
    archive_options = ArchiveOptions.from_config(config)
    manifest_options = ManifestOptions.from_config(config)

    if cli_args.get("title") is not None:
        return process_one(cli_args["title"], archive_options, manifest_options, observer)
    if cli_args.get("index"):
        return process(archive_options, manifest_options, cli_args["index"], observer)
    return process_all(archive_options, manifest_options, observer)


def run_sheet_listing(cli_args: Dict[str, Any], output: Path) -> int:
    """Write the configured archive's sheet as a CSV listing of row indices.

    Returns:
        Number of rows written
    """
    config = config_lib.resolve_config(cli_args)
    archive_options = ArchiveOptions.from_config(config)
    return write_sheet_csv(archive_options.sheet, Path(output))
