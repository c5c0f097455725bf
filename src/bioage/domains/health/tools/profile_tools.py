"""MCP tools for the age / sex / ethnicity profile."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from bioage.domains.health.connectors.profile_store import ProfileValidationError

if TYPE_CHECKING:
    from bioage.domains.health.connectors.profile_store import ProfileService
    from bioage.domains.health.domain_logic.reference import ReferenceTables


def register_profile_tools(mcp: FastMCP, profiles: ProfileService, tables: ReferenceTables) -> None:
    """Register profile tools on the MCP server."""

    @mcp.tool
    async def get_profile(ctx: Context) -> str:
        """Return the current profile and the available ethnicity options."""
        profile = profiles.load()
        ethnicity = tables.ethnicities.get(profile.ethnicity)
        return json.dumps({
            **profile.to_dict(),
            "ethnicity_label": ethnicity.label if ethnicity else profile.ethnicity,
            "ethnicity_note": ethnicity.note if ethnicity else "",
            "ethnicity_options": [
                {"id": e.id, "label": e.label, "subtitle": e.subtitle}
                for e in tables.ethnicities.values()
            ],
        })

    @mcp.tool
    async def update_profile(
        ctx: Context,
        age: int | None = None,
        sex: str | None = None,
        ethnicity: str | None = None,
    ) -> str:
        """Update chronological age, biological sex or ethnicity.

        Sex selects the scoring bands and regression constants; ethnicity only
        tightens some optimal targets.

        Args:
            age: Whole years, 18-100.
            sex: 'female' or 'male'.
            ethnicity: An id from get_profile's ethnicity_options.
        """
        try:
            profile = profiles.update(age=age, sex=sex, ethnicity=ethnicity)
        except ProfileValidationError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        return json.dumps({"status": "updated", **profile.to_dict()})
