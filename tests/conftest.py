"""Shared test fixtures for BioAge Health tests."""

from __future__ import annotations

import struct
import sys
import zlib
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("REFERENCE_DIR", "")
    monkeypatch.setenv("DB_PATH", str(tmp_path / "profile.db"))
    monkeypatch.setenv("DEFAULT_AGE", "40")
    monkeypatch.setenv("DEFAULT_SEX", "female")
    monkeypatch.setenv("DEFAULT_ETHNICITY", "general")
    monkeypatch.delenv("SCORE_ANCHORS", raising=False)
    monkeypatch.delenv("BIO_AGE_CLAMP_YEARS", raising=False)
    monkeypatch.delenv("BIO_AGE_S_BA", raising=False)

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from bioage.domains.health.domain_logic.models import (  # noqa: E402
    EntrySource,
    HealthEntry,
    MetricId,
)


def make_entry(
    metric_id: MetricId,
    value: float,
    date: str = "2026-01-15",
    source: EntrySource = EntrySource.MANUAL,
    secondary_value: float | None = None,
    id: str | None = None,
) -> HealthEntry:
    """Create a HealthEntry with sensible defaults."""
    return HealthEntry(
        id=id or f"test_{metric_id.value}_{date}_{value}",
        metric_id=metric_id,
        value=value,
        secondary_value=secondary_value,
        date=date,
        source=source,
    )


# ---------------------------------------------------------------------------
# Sample exports
# ---------------------------------------------------------------------------

SAMPLE_APPLE_XML = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE HealthData [
]>
<HealthData locale="en_US">
 <ExportDate value="2026-02-10 10:00:00 -0500"/>
 <Me HKCharacteristicTypeIdentifierDateOfBirth="1984-06-02"
     HKCharacteristicTypeIdentifierBiologicalSex="HKBiologicalSexMale"
     HKCharacteristicTypeIdentifierBloodType="HKBloodTypeNotSet"/>
 <Record type="HKQuantityTypeIdentifierVO2Max" sourceName="Apple Watch" unit="mL/min·kg" value="44.2" startDate="2026-02-01 08:00:00 -0500" endDate="2026-02-01 08:30:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierRestingHeartRate" sourceName="Apple Watch" unit="count/min" value="58" startDate="2026-02-01 07:00:00 -0500" endDate="2026-02-01 07:00:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierRestingHeartRate" sourceName="Apple Watch" unit="count/min" value="61" startDate="2026-02-01 21:00:00 -0500" endDate="2026-02-01 21:00:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierBloodPressureSystolic" sourceName="Omron" unit="mmHg" value="121" startDate="2026-02-02 08:00:00 -0500" endDate="2026-02-02 08:00:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierBloodPressureDiastolic" sourceName="Omron" unit="mmHg" value="79" startDate="2026-02-02 08:00:00 -0500" endDate="2026-02-02 08:00:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierBloodGlucose" sourceName="OneTouch" unit="mmol&lt;180.1558800000541&gt;/L" value="5.2" startDate="2026-02-03 07:00:00 -0500" endDate="2026-02-03 07:00:00 -0500">
  <MetadataEntry key="HKBloodGlucoseMealTime" value="1"/>
 </Record>
 <Record type="HKQuantityTypeIdentifierBodyFatPercentage" sourceName="Withings" unit="%" value="0.185" startDate="2026-02-04 07:00:00 -0500" endDate="2026-02-04 07:00:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierStepCount" sourceName="iPhone" unit="count" value="8000" startDate="2026-02-04 07:00:00 -0500" endDate="2026-02-04 23:00:00 -0500"/>
</HealthData>
"""


@pytest.fixture
def apple_xml() -> str:
    return SAMPLE_APPLE_XML


# ---------------------------------------------------------------------------
# Hand-built ZIP archives
# ---------------------------------------------------------------------------

_LOCAL = "<IHHHHHIIIHH"
_CENTRAL = "<IHHHHHHIIIHHHHHII"
_EOCD = "<IHHHHIIH"
_ZIP64_EOCD = "<IQHHIIQQQQ"
_ZIP64_LOCATOR = "<IIQI"
_U32_MAX = 0xFFFFFFFF


def _deflate_raw(payload: bytes) -> bytes:
    compressor = zlib.compressobj(9, zlib.DEFLATED, -zlib.MAX_WBITS)
    return compressor.compress(payload) + compressor.flush()


def build_zip(
    files: list[tuple[str, bytes, int]],
    *,
    zip64: bool = False,
    data_descriptor: bool = False,
    comment: bytes = b"",
) -> bytes:
    """Assemble a ZIP byte-for-byte.

    ``files`` holds ``(name, payload, method)``. Method 8 deflates the
    payload; any other method stores the payload bytes as-is under that
    method number. ``zip64`` moves sizes/offsets into ZIP64 extra fields and
    adds a ZIP64 end record; ``data_descriptor`` zeroes the local header sizes
    like iOS does.
    """
    out = bytearray()
    central = bytearray()
    for name, payload, method in files:
        raw_name = name.encode("utf-8")
        data = _deflate_raw(payload) if method == 8 else payload
        crc = zlib.crc32(payload)
        offset = len(out)
        flags = 0x08 if data_descriptor else 0
        if data_descriptor:
            local_crc, local_c, local_u = 0, 0, 0
        else:
            local_crc, local_c, local_u = crc, len(data), len(payload)
        out += struct.pack(
            _LOCAL, 0x04034B50, 20, flags, method, 0, 0, local_crc, local_c, local_u, len(raw_name), 0
        )
        out += raw_name + data
        if data_descriptor:
            out += struct.pack("<IIII", 0x08074B50, crc, len(data), len(payload))

        if zip64:
            extra = struct.pack("<HHQQQ", 0x0001, 24, len(payload), len(data), offset)
            c_size, u_size, local_off = _U32_MAX, _U32_MAX, _U32_MAX
        else:
            extra = b""
            c_size, u_size, local_off = len(data), len(payload), offset
        central += struct.pack(
            _CENTRAL, 0x02014B50, 45, 20, flags, method, 0, 0, crc,
            c_size, u_size, len(raw_name), len(extra), 0, 0, 0, 0, local_off,
        )
        central += raw_name + extra

    count = len(files)
    cd_offset = len(out)
    out += central
    if zip64:
        zip64_eocd = len(out)
        out += struct.pack(_ZIP64_EOCD, 0x06064B50, 44, 45, 45, 0, 0, count, count, len(central), cd_offset)
        out += struct.pack(_ZIP64_LOCATOR, 0x07064B50, 0, zip64_eocd, 1)
        out += struct.pack(_EOCD, 0x06054B50, 0, 0, 0xFFFF, 0xFFFF, _U32_MAX, _U32_MAX, len(comment))
    else:
        out += struct.pack(_EOCD, 0x06054B50, 0, 0, count, count, len(central), cd_offset, len(comment))
    out += comment
    return bytes(out)
