"""Import error taxonomy.

Every error raised at the ingestion boundary derives from
``HealthImportError``. All of them are terminal for the import call that
raised them: nothing is retried and no partial entry set is returned.

Each error carries a ``hint`` — a short remediation message (usually the
exact menu path to re-export) that is appended to ``str(error)``.
"""

from __future__ import annotations

APPLE_EXPORT_HINT = (
    "Please export from: iPhone Health app → Profile photo → Export All Health Data."
)
GOOGLE_FIT_EXPORT_HINT = (
    "Please export from: Google Takeout → Fit → Include All Data → Download ZIP."
)


class HealthImportError(Exception):
    """Base class for failures while importing a health export."""

    default_message = "Health data import failed."
    hint = ""

    def __init__(self, message: str | None = None, *, hint: str | None = None) -> None:
        self.message = message or self.default_message
        if hint is not None:
            self.hint = hint
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\n\n{self.hint}"
        return self.message

    @property
    def error_type(self) -> str:
        return type(self).__name__


class ArchiveFormatError(HealthImportError):
    """No End-Of-Central-Directory record: not a ZIP, or truncated."""

    default_message = "Not a valid ZIP file — end of central directory record not found."
    hint = "The archive may be incomplete. Re-download or re-export it and try again."


class EntryNotFoundError(HealthImportError):
    """The expected entry is absent from the central directory."""

    default_message = "Could not find export.xml inside the ZIP."
    hint = APPLE_EXPORT_HINT


class NoDataFilesFoundError(HealthImportError):
    """A Google Fit archive contained no candidate JSON data files."""

    default_message = "No Google Fit data files found."
    hint = GOOGLE_FIT_EXPORT_HINT


class UnsupportedCompressionError(HealthImportError):
    """A central-directory entry declares a method other than store/deflate."""

    hint = "Re-create the archive with standard (Deflate) compression."

    def __init__(self, method: int, *, hint: str | None = None) -> None:
        self.method = method
        super().__init__(
            f"Unsupported ZIP compression method {method}. Expected Deflate (8) or Stored (0).",
            hint=hint,
        )


class InvalidLocalHeaderError(HealthImportError):
    """Local file header signature mismatch at the computed offset."""

    default_message = "Invalid local file header — the archive is corrupted."
    hint = "Re-download or re-export the archive and try again."


class DecompressionError(HealthImportError):
    """The underlying deflate stream is malformed or truncated."""

    default_message = "Failed to decompress archive entry."
    hint = "The archive is corrupted. Re-download or re-export it and try again."


class NoMatchingRecordsError(HealthImportError):
    """The export parsed cleanly but no record matched a tracked metric."""

    default_message = "No matching records found."
    hint = "Export must contain VO₂ Max, Resting Heart Rate, Blood Pressure, Glucose, or Body Fat."


class ImportCancelledError(HealthImportError):
    """The caller cancelled the import while it was streaming."""

    default_message = "Import cancelled."


class UnsupportedFileTypeError(HealthImportError):
    """The uploaded file is neither a ``.zip`` nor a ``.xml`` export."""

    default_message = "Unsupported file type."
    hint = "Upload the Apple Health export.zip / export.xml or a Google Takeout ZIP."
