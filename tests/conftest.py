import struct
import threading
from collections import Counter
from typing import Dict, List

import pytest

from bgm_exporter.archive import ArchiveIdentifier, ArchiveStore
from bgm_exporter.callbacks import ProgressObserver
from bgm_exporter.errors import ArchiveError
from bgm_exporter.sheet import Sheet


def build_ogg_page(body: bytes, header_type: int = 0, serial: int = 1, sequence: int = 0) -> bytes:
    """Build one Ogg page around body (checksum left at zero)."""
    segments = [255] * (len(body) // 255) + [len(body) % 255]
    header = b"OggS" + struct.pack(
        "<BBqIIIB", 0, header_type, 0, serial, sequence, 0, len(segments)
    )
    return header + bytes(segments) + body


class MemoryArchive(ArchiveStore):
    """Archive held in a dict of identifier path -> payload."""

    def __init__(self, entries: Dict[str, bytes]):
        self.entries = {k.lower(): v for k, v in entries.items()}
        self.resolve_calls: Counter = Counter()
        self._lock = threading.Lock()

    def resolve_index(self, identifier: ArchiveIdentifier):
        with self._lock:
            self.resolve_calls[identifier.container_name] += 1
        names = {
            path.rsplit("/", 1)[1]
            for path in self.entries
            if path.rsplit("/", 1)[0] == identifier.container_name.lower()
        }
        if not names:
            raise ArchiveError(f"Container not found: {identifier.container_name}")
        return frozenset(names)

    def read_raw(self, identifier: ArchiveIdentifier, container) -> bytes:
        if identifier.file_name.lower() not in container:
            raise ArchiveError(f"Entry not found in container: {identifier}")
        return self.entries[identifier.path.lower()]

    def decode_audio_container(self, data: bytes) -> List[bytes]:
        return [data] if data else []


class ListSheet(Sheet):
    def __init__(self, rows: List[List[str]]):
        self._rows = rows

    def row_count(self) -> int:
        return len(self._rows)

    def read_cell(self, row: int, column: int = 0) -> str:
        if row < 0 or row >= len(self._rows):
            raise ArchiveError(f"Sheet row {row} does not exist")
        cells = self._rows[row]
        return cells[column] if column < len(cells) else ""


class RecordingObserver(ProgressObserver):
    """Records every observer call as a tuple."""

    def __init__(self):
        self.events = []
        self.threads = set()

    def _record(self, *event):
        self.threads.add(threading.get_ident())
        self.events.append(event)

    def pre_phase(self, phase):
        self._record("pre_phase", phase)

    def post_phase(self, phase):
        self._record("post_phase", phase)

    def process_begin(self, total_count):
        self._record("begin", total_count)

    def process_progress(self, total_count, completed_count, item_index, is_skip):
        self._record("progress", total_count, completed_count, item_index, is_skip)

    def process_nonfatal_error(self, item_index, reason):
        self._record("error", item_index, reason)

    def process_complete(self, completed_count, errored_count):
        self._record("complete", completed_count, errored_count)

    def of(self, kind: str) -> list:
        return [e for e in self.events if e[0] == kind]

    def phases(self, kind: str = "pre_phase") -> list:
        return [e[1] for e in self.of(kind)]


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def bgm_archive():
    """Five-row sheet over an in-memory archive; row 2 is empty."""
    archive = MemoryArchive(
        {
            "music/ffxiv/BGM_Town.scd": b"town",
            "music/ffxiv/BGM_Field.scd": b"field",
            "music/ex1/BGM_Boss.scd": b"boss",
            "music/ex1/BGM_Silence.scd": b"",
        }
    )
    sheet = ListSheet(
        [
            ["music/ffxiv/BGM_Town.scd", "Town"],
            ["music/ffxiv/BGM_Field.scd", "Field"],
            ["", ""],
            ["music/ex1/BGM_Boss.scd", "Boss"],
            ["music/ex1/BGM_Silence.scd", "Silence"],
        ]
    )
    return archive, sheet
