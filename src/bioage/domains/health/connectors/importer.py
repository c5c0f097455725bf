"""Ingestion boundary: turn an uploaded export file into an ImportResult.

Format detection:
- ``.zip`` holding any ``*fit*.json`` entry → Google Fit Takeout
- any other ``.zip`` → Apple Health (``apple_health_export/export.xml``)
- ``.xml`` → raw Apple Health ``export.xml``
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from bioage.core.archive.decompressor import CancellationToken, StreamingDecompressor
from bioage.core.archive.errors import ImportCancelledError, UnsupportedFileTypeError
from bioage.core.archive.reader import ArchiveReader
from bioage.domains.health.connectors.apple_health_parser import (
    DEFAULT_LOOKBACK_CHARS,
    parse_apple_health_stream,
    parse_apple_health_text,
)
from bioage.domains.health.connectors.google_fit_parser import (
    is_google_fit_archive,
    parse_google_fit_archive,
)
from bioage.domains.health.domain_logic.models import ImportResult

logger = logging.getLogger(__name__)

APPLE_EXPORT_NAMES = frozenset({"apple_health_export/export.xml", "export.xml"})

ProgressCallback = Callable[[int], None]


def _import_apple_archive(
    reader: ArchiveReader,
    decompressor: StreamingDecompressor,
    lookback_chars: int,
    progress: ProgressCallback | None,
    cancel: CancellationToken | None,
) -> ImportResult:
    rng = reader.locate(lambda name: name in APPLE_EXPORT_NAMES)
    chunks = decompressor.iter_text(
        reader.read(rng),
        rng.compression_method,
        progress=progress,
        cancel=cancel,
    )
    return parse_apple_health_stream(chunks, lookback_chars=lookback_chars)


def import_health_file(
    filename: str,
    data: bytes | memoryview,
    *,
    progress: ProgressCallback | None = None,
    cancel: CancellationToken | None = None,
    decompressor: StreamingDecompressor | None = None,
    lookback_chars: int = DEFAULT_LOOKBACK_CHARS,
) -> ImportResult:
    """Import one export file held in memory.

    Args:
        filename: Original file name; only its extension is used.
        data: Raw file bytes.
        progress: Called with 0-99 while the import runs.
        cancel: Token checked between chunks (e.g. ``threading.Event``).

    Raises:
        HealthImportError: any subclass; the import is abandoned as a whole.
    """
    decompressor = decompressor or StreamingDecompressor()
    lname = filename.lower()

    if cancel is not None and cancel.is_set():
        raise ImportCancelledError()

    if lname.endswith(".zip"):
        reader = ArchiveReader(data)
        if is_google_fit_archive(reader):
            logger.info("Detected Google Fit Takeout archive: %s", filename)
            result = parse_google_fit_archive(
                reader, decompressor=decompressor, progress=progress, cancel=cancel
            )
        else:
            logger.info("Detected Apple Health archive: %s", filename)
            result = _import_apple_archive(reader, decompressor, lookback_chars, progress, cancel)
    elif lname.endswith(".xml"):
        logger.info("Reading raw Apple Health XML: %s", filename)
        result = parse_apple_health_text(bytes(data).decode("utf-8", errors="replace"))
    else:
        raise UnsupportedFileTypeError(f"Unsupported file type: {Path(filename).suffix or filename!r}.")

    logger.info(
        "Imported %d entries from %s (%s)",
        len(result.entries),
        filename,
        result.source.value,
    )
    return result


def import_health_path(
    path: str | Path,
    *,
    progress: ProgressCallback | None = None,
    cancel: CancellationToken | None = None,
    decompressor: StreamingDecompressor | None = None,
    lookback_chars: int = DEFAULT_LOOKBACK_CHARS,
) -> ImportResult:
    """Read ``path`` from disk and import it."""
    path = Path(path).expanduser()
    if not path.is_file():
        raise FileNotFoundError(f"Export file not found: {path}")
    return import_health_file(
        path.name,
        path.read_bytes(),
        progress=progress,
        cancel=cancel,
        decompressor=decompressor,
        lookback_chars=lookback_chars,
    )
