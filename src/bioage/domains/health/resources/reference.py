"""MCP resources exposing the reference tables."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastmcp import FastMCP

from bioage.domains.health.domain_logic.models import METRIC_ORDER
from bioage.domains.health.domain_logic.reference import resolve_metric

if TYPE_CHECKING:
    from bioage.domains.health.connectors.profile_store import ProfileService
    from bioage.domains.health.domain_logic.reference import ReferenceTables


def register_reference_resources(mcp: FastMCP, tables: ReferenceTables, profiles: ProfileService) -> None:
    """Register reference table resources on the MCP server."""

    @mcp.resource("reference://metrics")
    def metric_reference_resource() -> str:
        """Metric definitions resolved for the current profile's sex and ethnicity."""
        profile = profiles.load()
        return json.dumps(
            {
                "sex": profile.sex,
                "ethnicity": profile.ethnicity,
                "metrics": [
                    resolve_metric(metric_id, profile.sex, profile.ethnicity, tables).to_dict()
                    for metric_id in METRIC_ORDER
                ],
                "ethnicities": [
                    {"id": e.id, "label": e.label, "note": e.note}
                    for e in tables.ethnicities.values()
                ],
            },
            indent=2,
        )
