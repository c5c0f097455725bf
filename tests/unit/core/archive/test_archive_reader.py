"""Tests for the central-directory driven ZIP reader."""

from __future__ import annotations

import io
import zipfile
import zlib

import pytest

from bioage.core.archive.errors import (
    ArchiveFormatError,
    EntryNotFoundError,
    InvalidLocalHeaderError,
    UnsupportedCompressionError,
)
from bioage.core.archive.reader import METHOD_DEFLATE, METHOD_STORED, ArchiveReader
from conftest import build_zip


def _zipfile_bytes(files: dict[str, bytes], compression: int = zipfile.ZIP_DEFLATED, comment: bytes = b"") -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=compression) as zf:
        for name, payload in files.items():
            zf.writestr(name, payload)
        zf.comment = comment
    return buf.getvalue()


def _inflate(raw) -> bytes:
    return zlib.decompress(bytes(raw), -zlib.MAX_WBITS)


PAYLOAD = b"<HealthData>" + b"<Record/>" * 500 + b"</HealthData>"


class TestStoredAndDeflate:
    def test_stored_entry_round_trip(self):
        reader = ArchiveReader(_zipfile_bytes({"export.xml": PAYLOAD}, zipfile.ZIP_STORED))
        rng = reader.locate("export.xml")
        assert rng.compression_method == METHOD_STORED
        assert bytes(reader.read(rng)) == PAYLOAD

    def test_deflate_entry_returns_compressed_slice(self):
        reader = ArchiveReader(_zipfile_bytes({"apple_health_export/export.xml": PAYLOAD}))
        rng = reader.locate("apple_health_export/export.xml")
        assert rng.compression_method == METHOD_DEFLATE
        assert rng.data_length < len(PAYLOAD)
        assert _inflate(reader.read(rng)) == PAYLOAD

    def test_picks_named_entry_among_several(self):
        data = _zipfile_bytes({
            "apple_health_export/export_cda.xml": b"<cda/>",
            "apple_health_export/export.xml": PAYLOAD,
            "apple_health_export/workout-routes/route_1.gpx": b"<gpx/>",
        })
        reader = ArchiveReader(data)
        rng = reader.locate(lambda name: name.endswith("/export.xml"))
        assert rng.name == "apple_health_export/export.xml"
        assert _inflate(reader.read(rng)) == PAYLOAD

    def test_accepts_memoryview_and_bytearray(self):
        data = _zipfile_bytes({"export.xml": PAYLOAD})
        for source in (memoryview(data), bytearray(data)):
            reader = ArchiveReader(source)
            assert _inflate(reader.read(reader.locate("export.xml"))) == PAYLOAD

    def test_archive_comment_does_not_hide_end_record(self):
        data = _zipfile_bytes({"export.xml": PAYLOAD}, comment=b"c" * 4000)
        reader = ArchiveReader(data)
        assert reader.names() == ["export.xml"]


class TestCentralDirectory:
    def test_iter_entries_reports_sizes_and_methods(self):
        data = _zipfile_bytes({"a.json": b"{}", "b.txt": b"hello" * 100})
        entries = {e.name: e for e in ArchiveReader(data).iter_entries()}
        assert set(entries) == {"a.json", "b.txt"}
        assert entries["b.txt"].uncompressed_size == 500
        assert entries["b.txt"].compression_method == METHOD_DEFLATE

    def test_zip64_fields_resolved_from_extra(self):
        data = build_zip([("export.xml", PAYLOAD, 8), ("other.txt", b"x" * 50, 0)], zip64=True)
        reader = ArchiveReader(data)
        entries = list(reader.iter_entries())
        assert [e.name for e in entries] == ["export.xml", "other.txt"]
        assert entries[0].uncompressed_size == len(PAYLOAD)
        assert entries[1].local_header_offset > 0
        assert _inflate(reader.read(reader.locate("export.xml"))) == PAYLOAD
        assert bytes(reader.read(reader.locate("other.txt"))) == b"x" * 50

    def test_data_descriptor_sizes_taken_from_central_directory(self):
        data = build_zip([("apple_health_export/export.xml", PAYLOAD, 8)], data_descriptor=True)
        reader = ArchiveReader(data)
        rng = reader.locate("apple_health_export/export.xml")
        assert rng.entry.uses_data_descriptor
        assert rng.data_length > 0
        assert _inflate(reader.read(rng)) == PAYLOAD

    def test_zip64_with_data_descriptor(self):
        data = build_zip([("export.xml", PAYLOAD, 8)], zip64=True, data_descriptor=True)
        reader = ArchiveReader(data)
        assert _inflate(reader.read(reader.locate("export.xml"))) == PAYLOAD


class TestErrors:
    def test_not_a_zip(self):
        with pytest.raises(ArchiveFormatError):
            ArchiveReader(b"this is plainly not an archive" * 10).names()

    def test_too_small(self):
        with pytest.raises(ArchiveFormatError):
            ArchiveReader(b"PK").names()

    def test_missing_entry_carries_export_hint(self):
        reader = ArchiveReader(_zipfile_bytes({"something.txt": b"x"}))
        with pytest.raises(EntryNotFoundError) as exc_info:
            reader.locate("export.xml")
        assert "Export All Health Data" in str(exc_info.value)

    def test_bzip2_method_rejected(self):
        data = build_zip([("export.xml", b"BZh91AY&SY", 12)])
        reader = ArchiveReader(data)
        with pytest.raises(UnsupportedCompressionError) as exc_info:
            reader.locate("export.xml")
        assert exc_info.value.method == 12
        assert "12" in str(exc_info.value)

    def test_bad_local_header(self):
        data = bytearray(build_zip([("export.xml", PAYLOAD, 8)]))
        data[0:4] = b"XXXX"
        with pytest.raises(InvalidLocalHeaderError):
            ArchiveReader(bytes(data)).locate("export.xml")

    def test_locate_all_skips_unreadable_entries(self):
        data = build_zip([
            ("Takeout/Fit/All Data/a.json", b"{}", 0),
            ("Takeout/Fit/All Data/b.json", b"{}", 12),
            ("Takeout/Fit/All Data/c.json", b"{}", 8),
        ])
        ranges = ArchiveReader(data).locate_all(lambda n: n.endswith(".json"))
        assert [r.name for r in ranges] == ["Takeout/Fit/All Data/a.json", "Takeout/Fit/All Data/c.json"]

    def test_locate_all_strict_mode_raises(self):
        data = build_zip([("a.json", b"{}", 12)])
        with pytest.raises(UnsupportedCompressionError):
            ArchiveReader(data).locate_all(lambda n: True, skip_invalid=False)
