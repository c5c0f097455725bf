"""Central-directory driven ZIP reader.

Only what the two supported export formats need: find the End Of Central
Directory record, resolve ZIP64 extensions, walk the central directory and
expose the raw (possibly compressed) byte range of matching entries.

The central directory is authoritative. iOS writes zero sizes into local
file headers (general purpose flag bit 3, data descriptors follow the data),
so sizes are always taken from the central directory and the local header is
only used to find where the data starts.
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from bioage.core.archive.errors import (
    ArchiveFormatError,
    EntryNotFoundError,
    HealthImportError,
    InvalidLocalHeaderError,
    UnsupportedCompressionError,
)

logger = logging.getLogger(__name__)

EOCD_SIGNATURE = 0x06054B50
ZIP64_LOCATOR_SIGNATURE = 0x07064B50
ZIP64_EOCD_SIGNATURE = 0x06064B50
CENTRAL_HEADER_SIGNATURE = 0x02014B50
LOCAL_HEADER_SIGNATURE = 0x04034B50

EOCD_SIZE = 22
CENTRAL_HEADER_SIZE = 46
LOCAL_HEADER_SIZE = 30
# Fixed EOCD record plus the longest possible archive comment.
MAX_EOCD_SEARCH = 65_558

ZIP64_EXTRA_TAG = 0x0001
ZIP64_SENTINEL = 0xFFFFFFFF

METHOD_STORED = 0
METHOD_DEFLATE = 8
SUPPORTED_METHODS = frozenset({METHOD_STORED, METHOD_DEFLATE})

NameMatcher = Callable[[str], bool]


@dataclass(frozen=True)
class ZipEntry:
    """One central-directory record."""

    name: str
    compression_method: int
    compressed_size: int
    uncompressed_size: int
    local_header_offset: int
    flags: int = 0

    @property
    def uses_data_descriptor(self) -> bool:
        return bool(self.flags & 0x08)


@dataclass(frozen=True)
class EntryRange:
    """Resolved location of an entry's data inside the archive buffer."""

    entry: ZipEntry
    data_start: int
    data_length: int

    @property
    def name(self) -> str:
        return self.entry.name

    @property
    def compression_method(self) -> int:
        return self.entry.compression_method


def _matcher(target: str | NameMatcher) -> NameMatcher:
    if callable(target):
        return target
    return lambda name: name == target


class ArchiveReader:
    """Read-only view over a ZIP archive held in memory.

    Usage::

        reader = ArchiveReader(data)
        rng = reader.locate(lambda n: n.endswith("export.xml"))
        payload = reader.read(rng)   # memoryview, still compressed
    """

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        view = memoryview(data)
        if view.format != "B" or view.ndim != 1:
            view = view.cast("B")
        self._view = view
        self._size = len(self._view)
        self._cd_offset: int | None = None
        self._cd_size: int | None = None

    @property
    def size(self) -> int:
        return self._size

    # ------------------------------------------------------------------
    # Little-endian field access
    # ------------------------------------------------------------------

    def _u16(self, offset: int) -> int:
        return struct.unpack_from("<H", self._view, offset)[0]

    def _u32(self, offset: int) -> int:
        return struct.unpack_from("<I", self._view, offset)[0]

    def _u64(self, offset: int) -> int:
        return struct.unpack_from("<Q", self._view, offset)[0]

    def _has(self, offset: int, length: int) -> bool:
        return 0 <= offset and offset + length <= self._size

    # ------------------------------------------------------------------
    # End of central directory
    # ------------------------------------------------------------------

    def _find_eocd(self) -> int:
        if self._size < EOCD_SIZE:
            raise ArchiveFormatError()
        window_start = max(0, self._size - MAX_EOCD_SEARCH)
        window = bytes(self._view[window_start:self._size - EOCD_SIZE + 4])
        found = window.rfind(struct.pack("<I", EOCD_SIGNATURE))
        if found == -1:
            raise ArchiveFormatError()
        return window_start + found

    def _central_directory(self) -> tuple[int, int]:
        """Return ``(offset, size)`` of the central directory, ZIP64-aware."""
        if self._cd_offset is not None and self._cd_size is not None:
            return self._cd_offset, self._cd_size

        eocd = self._find_eocd()
        cd_size = self._u32(eocd + 12)
        cd_offset = self._u32(eocd + 16)

        locator = eocd - 20
        if locator >= 0 and self._u32(locator) == ZIP64_LOCATOR_SIGNATURE:
            zip64_eocd = self._u64(locator + 8)
            if self._has(zip64_eocd, 56) and self._u32(zip64_eocd) == ZIP64_EOCD_SIGNATURE:
                cd_size = self._u64(zip64_eocd + 40)
                cd_offset = self._u64(zip64_eocd + 48)
                logger.debug("Using ZIP64 central directory at %d (%d bytes)", cd_offset, cd_size)

        self._cd_offset, self._cd_size = cd_offset, cd_size
        return cd_offset, cd_size

    # ------------------------------------------------------------------
    # Central directory walk
    # ------------------------------------------------------------------

    def _resolve_zip64(
        self,
        extra_start: int,
        extra_len: int,
        compressed: int,
        uncompressed: int,
        local_offset: int,
    ) -> tuple[int, int, int]:
        pos = extra_start
        end = extra_start + extra_len
        while pos + 4 <= end and self._has(pos, 4):
            tag = self._u16(pos)
            size = self._u16(pos + 2)
            pos += 4
            if tag == ZIP64_EXTRA_TAG:
                # Only the sentineled fields are present, in this fixed order.
                if uncompressed == ZIP64_SENTINEL and self._has(pos, 8):
                    uncompressed = self._u64(pos)
                    pos += 8
                if compressed == ZIP64_SENTINEL and self._has(pos, 8):
                    compressed = self._u64(pos)
                    pos += 8
                if local_offset == ZIP64_SENTINEL and self._has(pos, 8):
                    local_offset = self._u64(pos)
                break
            pos += size
        return compressed, uncompressed, local_offset

    def iter_entries(self) -> Iterator[ZipEntry]:
        """Yield every central-directory record without touching entry data."""
        cd_offset, cd_size = self._central_directory()
        pos = cd_offset
        end = cd_offset + cd_size
        while pos < end:
            if not self._has(pos, CENTRAL_HEADER_SIZE) or self._u32(pos) != CENTRAL_HEADER_SIGNATURE:
                break
            flags = self._u16(pos + 8)
            method = self._u16(pos + 10)
            compressed = self._u32(pos + 20)
            uncompressed = self._u32(pos + 24)
            name_len = self._u16(pos + 28)
            extra_len = self._u16(pos + 30)
            comment_len = self._u16(pos + 32)
            local_offset = self._u32(pos + 42)

            name_start = pos + CENTRAL_HEADER_SIZE
            name = bytes(self._view[name_start:name_start + name_len]).decode("utf-8", errors="replace")

            if ZIP64_SENTINEL in (compressed, uncompressed, local_offset):
                compressed, uncompressed, local_offset = self._resolve_zip64(
                    name_start + name_len, extra_len, compressed, uncompressed, local_offset
                )

            yield ZipEntry(
                name=name,
                compression_method=method,
                compressed_size=compressed,
                uncompressed_size=uncompressed,
                local_header_offset=local_offset,
                flags=flags,
            )
            pos = name_start + name_len + extra_len + comment_len

    def names(self) -> list[str]:
        """Return every entry name listed in the central directory."""
        return [entry.name for entry in self.iter_entries()]

    # ------------------------------------------------------------------
    # Entry resolution
    # ------------------------------------------------------------------

    def resolve(self, entry: ZipEntry) -> EntryRange:
        """Validate an entry and compute the byte range of its data.

        Raises:
            UnsupportedCompressionError: method is neither stored nor deflate.
            InvalidLocalHeaderError: no local file header at the recorded offset.
            ArchiveFormatError: the data range runs past the end of the buffer.
        """
        if entry.compression_method not in SUPPORTED_METHODS:
            raise UnsupportedCompressionError(entry.compression_method)

        offset = entry.local_header_offset
        if not self._has(offset, LOCAL_HEADER_SIZE) or self._u32(offset) != LOCAL_HEADER_SIGNATURE:
            raise InvalidLocalHeaderError()

        name_len = self._u16(offset + 26)
        extra_len = self._u16(offset + 28)
        data_start = offset + LOCAL_HEADER_SIZE + name_len + extra_len
        if not self._has(data_start, entry.compressed_size):
            raise ArchiveFormatError(
                f"Entry {entry.name!r} extends past the end of the archive — the file is truncated."
            )
        return EntryRange(entry=entry, data_start=data_start, data_length=entry.compressed_size)

    def locate(self, target: str | NameMatcher) -> EntryRange:
        """Find and resolve the first entry whose name matches ``target``.

        Raises:
            EntryNotFoundError: no central-directory name matches.
        """
        matches = _matcher(target)
        for entry in self.iter_entries():
            if matches(entry.name):
                logger.info(
                    "Located archive entry %s (method %d, %d bytes compressed)",
                    entry.name,
                    entry.compression_method,
                    entry.compressed_size,
                )
                return self.resolve(entry)
        raise EntryNotFoundError()

    def locate_all(
        self,
        predicate: NameMatcher,
        *,
        skip_invalid: bool = True,
    ) -> list[EntryRange]:
        """Resolve every entry whose name satisfies ``predicate``.

        With ``skip_invalid`` (the default) entries that cannot be read —
        unsupported compression or a broken local header — are logged and
        skipped instead of failing the whole walk.
        """
        ranges: list[EntryRange] = []
        for entry in self.iter_entries():
            if not predicate(entry.name):
                continue
            try:
                ranges.append(self.resolve(entry))
            except HealthImportError as exc:
                if not skip_invalid:
                    raise
                logger.warning("Skipping archive entry %s: %s", entry.name, exc.message)
        return ranges

    def read(self, rng: EntryRange) -> memoryview:
        """Return the raw (still compressed) bytes of a resolved entry."""
        return self._view[rng.data_start:rng.data_start + rng.data_length]
