"""MCP tools for manual biomarker logging and browsing session entries."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from bioage.domains.health.connectors.entry_store import EntryValidationError
from bioage.domains.health.domain_logic.models import EntrySource, MetricId

if TYPE_CHECKING:
    from bioage.domains.health.connectors.entry_store import EntryStore

logger = logging.getLogger(__name__)


def register_entry_tools(mcp: FastMCP, entry_store: EntryStore) -> None:
    """Register manual entry and entry management tools on the MCP server."""

    @mcp.tool
    async def log_health_entry(
        ctx: Context,
        metric_id: str,
        value: float,
        secondary_value: float | None = None,
        entry_date: str = "",
        note: str = "",
    ) -> str:
        """Log one biomarker reading by hand.

        Args:
            metric_id: One of 'vo2max', 'restingHeartRate', 'bloodPressure',
                'fastingGlucose', 'bodyFatPercent'.
            value: The reading (systolic for blood pressure). Glucose in mg/dL,
                body fat in percent.
            secondary_value: Diastolic pressure, blood pressure only.
            entry_date: Date of the reading (ISO 8601). Defaults to today.
            note: Optional free-text note.
        """
        try:
            entry = entry_store.add_manual(
                metric_id,
                value,
                secondary_value=secondary_value,
                entry_date=entry_date or None,
                note=note,
            )
        except EntryValidationError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        return json.dumps({"status": "saved", "entry": entry.to_dict()})

    @mcp.tool
    async def list_health_entries(
        ctx: Context,
        metric_id: str = "",
        limit: int = 50,
    ) -> str:
        """List recorded entries, newest first.

        Args:
            metric_id: Restrict to one metric. Empty lists all metrics.
            limit: Maximum number of entries to return.
        """
        metric = None
        if metric_id:
            try:
                metric = MetricId.parse(metric_id)
            except ValueError as exc:
                return json.dumps({"status": "error", "message": str(exc)})

        entries = entry_store.entries(metric)
        entries.sort(key=lambda e: e.date, reverse=True)
        limit = max(1, min(limit, 500))
        return json.dumps({
            "total": len(entries),
            "import_count": entry_store.import_count,
            "import_sources": [s.value for s in entry_store.import_sources],
            "entries": [e.to_dict() for e in entries[:limit]],
        })

    @mcp.tool
    async def clear_health_entries(ctx: Context, source: str = "") -> str:
        """Remove entries from this session.

        Args:
            source: 'Manual', 'AppleHealth' or 'GoogleFit' to remove only that
                source. Empty removes everything.
        """
        selected = None
        if source:
            try:
                selected = EntrySource(source)
            except ValueError:
                valid = ", ".join(s.value for s in EntrySource)
                return json.dumps({"status": "error", "message": f"Unknown source {source!r}; expected one of: {valid}"})
        removed = entry_store.clear(selected)
        logger.info("Cleared %d entries (source=%s)", removed, source or "all")
        return json.dumps({"status": "cleared", "removed": removed, "source": source or "all"})
