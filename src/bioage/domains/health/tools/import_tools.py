"""MCP tool for importing Apple Health / Google Fit export files.

The import itself is blocking (ZIP walk, inflate, regex extraction) and runs
in a worker thread. Progress is forwarded to the client through the MCP
progress notification channel.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from concurrent.futures import Future
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from bioage.core.archive.decompressor import StreamingDecompressor
from bioage.core.archive.errors import HealthImportError
from bioage.domains.health.connectors.importer import import_health_path

if TYPE_CHECKING:
    from bioage.core.config.settings import Settings
    from bioage.domains.health.connectors.entry_store import EntryStore
    from bioage.domains.health.connectors.profile_store import ProfileService

logger = logging.getLogger(__name__)


def error_response(exc: HealthImportError) -> str:
    return json.dumps({
        "status": "error",
        "error_type": exc.error_type,
        "message": exc.message,
        "hint": exc.hint,
    })


def register_import_tools(
    mcp: FastMCP,
    entry_store: EntryStore,
    profiles: ProfileService,
    settings: Settings,
) -> None:
    """Register the export import tool on the MCP server."""

    @mcp.tool
    async def import_health_export(ctx: Context, file_path: str) -> str:
        """Import an Apple Health or Google Fit export into this session.

        Accepts an Apple Health ``export.zip`` / ``export.xml`` or a Google
        Takeout ZIP containing Fit data. Imported readings replace earlier
        imports for the same metric and date; manual entries are kept.
        Biological sex and age found in an Apple export update the profile.

        Args:
            file_path: Path to the export file on this machine.
        """
        loop = asyncio.get_running_loop()
        pending: list[Future] = []

        def on_progress(pct: int) -> None:
            pending.append(
                asyncio.run_coroutine_threadsafe(ctx.report_progress(pct, 100), loop)
            )

        decompressor = StreamingDecompressor(
            settings.decompress_chunk_size,
            settings.decompress_max_pending_chunks,
        )
        start_time = time.monotonic()
        try:
            result = await asyncio.to_thread(
                import_health_path,
                file_path,
                progress=on_progress,
                decompressor=decompressor,
                lookback_chars=settings.record_lookback_bytes,
            )
        except HealthImportError as exc:
            logger.warning("Import of %s failed: %s", file_path, exc.message)
            return error_response(exc)
        except FileNotFoundError as exc:
            return json.dumps({"status": "error", "error_type": "FileNotFoundError", "message": str(exc)})
        finally:
            if pending:
                await asyncio.gather(*(asyncio.wrap_future(f) for f in pending), return_exceptions=True)

        replaced = entry_store.merge_import(result)
        profile = profiles.apply_import(result)
        await ctx.report_progress(100, 100)

        elapsed_ms = (time.monotonic() - start_time) * 1000
        return json.dumps({
            "status": "imported",
            **result.summary(),
            "entries_replaced": replaced,
            "profile": profile.to_dict(),
            "duration_ms": round(elapsed_ms, 1),
        })
