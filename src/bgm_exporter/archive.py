"""Archive store boundary.

The pipeline only needs three things from the game archive: resolve the
container an entry lives in, read an entry's raw bytes, and split a raw
payload into its audio entries. ``ArchiveStore`` describes that boundary;
``DirectoryArchive`` implements it over an unpacked archive on disk, where
each container is a directory and each entry a file inside it.
"""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, FrozenSet, List

from mutagen.ogg import OggPage
from mutagen.ogg import error as OggError

from .errors import ArchiveError, NoArchiveError

logger = logging.getLogger(__name__)

OGG_CAPTURE = b"OggS"


@dataclass(frozen=True)
class ArchiveIdentifier:
    """Location of one entry inside the archive (e.g. ``music/ffxiv/BGM_Town.scd``)."""

    path: str

    @classmethod
    def parse(cls, text: str) -> "ArchiveIdentifier":
        """Parse an identifier string read from the sheet.

        Raises:
            ArchiveError: If the string has no directory component or the
                file name lacks a three-letter extension
        """
        normalized = text.strip().replace("\\", "/")
        pure = PurePosixPath(normalized)
        if pure.is_absolute() or ".." in pure.parts:
            raise ArchiveError(f"Invalid archive identifier: {text!r}")
        if len(pure.parts) < 2:
            raise ArchiveError(f"Archive identifier has no container: {text!r}")
        if len(pure.suffix) != 4:
            raise ArchiveError(f"Archive identifier has no file type: {text!r}")
        return cls(path=str(pure))

    @property
    def container_name(self) -> str:
        return str(PurePosixPath(self.path).parent)

    @property
    def file_name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def base_name(self) -> str:
        """File name without the 4-character container suffix (``.scd``)."""
        return self.file_name[:-4]

    def __str__(self) -> str:
        return self.path


class ArchiveStore(ABC):
    """Read-only access to the game archive.

    Implementations must be safe to share between worker threads. Container
    handles are cached per worker by the executor, so resolve_index may be
    expensive.
    """

    @abstractmethod
    def resolve_index(self, identifier: ArchiveIdentifier) -> Any:
        """Open the container holding identifier and return its handle.

        Raises:
            ArchiveError: If the container does not exist
        """
        pass

    @abstractmethod
    def read_raw(self, identifier: ArchiveIdentifier, container: Any) -> bytes:
        """Read the raw payload of identifier using an opened container handle.

        Raises:
            ArchiveError: If the entry cannot be read
        """
        pass

    def decode_audio_container(self, data: bytes) -> List[bytes]:
        """Split a raw payload into its ordered audio entries."""
        return split_ogg_streams(data)


class DirectoryArchive(ArchiveStore):
    """Archive unpacked on disk: one directory per container, one file per entry."""

    def __init__(self, root: Path):
        self.root = Path(root)
        if not self.root.is_dir():
            raise NoArchiveError(str(root))

    def resolve_index(self, identifier: ArchiveIdentifier) -> FrozenSet[str]:
        container_dir = self.root / identifier.container_name
        if not container_dir.is_dir():
            raise ArchiveError(f"Container not found: {identifier.container_name}")
        try:
            names = frozenset(p.name.lower() for p in container_dir.iterdir() if p.is_file())
        except OSError as e:
            raise ArchiveError(f"Unable to list container {identifier.container_name}: {e}") from e
        logger.debug("Indexed container %s", identifier.container_name)
        return names

    def read_raw(self, identifier: ArchiveIdentifier, container: FrozenSet[str]) -> bytes:
        if identifier.file_name.lower() not in container:
            raise ArchiveError(f"Entry not found in container: {identifier}")

        container_dir = self.root / identifier.container_name
        try:
            # Index entries are lowercase; files on disk may not be
            for candidate in container_dir.iterdir():
                if candidate.name.lower() == identifier.file_name.lower():
                    return candidate.read_bytes()
        except OSError as e:
            raise ArchiveError(f"Unable to read {identifier}: {e}") from e
        raise ArchiveError(f"Entry vanished from container: {identifier}")


def split_ogg_streams(data: bytes) -> List[bytes]:
    """
    Split a payload into chained Ogg logical streams.

    Each beginning-of-stream page starts a new entry. Bytes before the first
    page and between streams (container headers, padding) are ignored. A
    truncated final page is kept as-is so the decoder can report it.

    Returns:
        Ordered list of Ogg streams; empty if the payload holds no Ogg page
    """
    streams: List[bytearray] = []
    fileobj = io.BytesIO(data)
    pos = data.find(OGG_CAPTURE)

    while pos != -1:
        fileobj.seek(pos)
        try:
            page = OggPage(fileobj)
        except OggError:
            next_pos = data.find(OGG_CAPTURE, pos + len(OGG_CAPTURE))
            if next_pos == -1 and streams:
                # Truncated trailing page
                streams[-1] += data[pos:]
            pos = next_pos
            continue

        page_end = fileobj.tell()
        if page.first or not streams:
            streams.append(bytearray())
        # Page bytes are copied as stored, checksum included
        streams[-1] += data[pos:page_end]

        if data.startswith(OGG_CAPTURE, page_end):
            pos = page_end
        else:
            pos = data.find(OGG_CAPTURE, page_end)

    return [bytes(s) for s in streams]

