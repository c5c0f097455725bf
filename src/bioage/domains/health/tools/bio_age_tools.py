"""MCP tools for metric scores, biological age and the improvement plan."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from bioage.domains.health.domain_logic.bio_age import bio_age_trajectory
from bioage.domains.health.domain_logic.impact_ranker import DEFAULT_PLAN_SIZE, action_plan, rank_impacts
from bioage.domains.health.domain_logic.reference import resolve_metric
from bioage.domains.health.domain_logic.summary import score_latest, summarize

if TYPE_CHECKING:
    from bioage.domains.health.connectors.entry_store import EntryStore
    from bioage.domains.health.connectors.profile_store import ProfileService
    from bioage.domains.health.domain_logic.summary import EngineParameters

logger = logging.getLogger(__name__)

_NO_DATA_MESSAGE = "No entries yet. Import an export or log a reading first."


def register_bio_age_tools(
    mcp: FastMCP,
    entry_store: EntryStore,
    profiles: ProfileService,
    params: EngineParameters,
) -> None:
    """Register scoring and estimation tools on the MCP server."""

    @mcp.tool
    async def metric_scores(ctx: Context) -> str:
        """Score the latest reading of each metric on a 15-100 scale.

        Scores use the profile's sex-specific bands; the optimal range shown
        also reflects the profile's ethnicity.
        """
        profile = profiles.load()
        scored = score_latest(entry_store.entries(), profile.sex, profile.ethnicity, params)
        metrics = []
        for s in scored:
            metric = resolve_metric(s.metric_id, profile.sex, profile.ethnicity, params.tables)
            metrics.append({**s.to_dict(), "label": metric.label, "unit": metric.unit})
        return json.dumps({"profile": profile.to_dict(), "metrics": metrics})

    @mcp.tool
    async def biological_age(ctx: Context, months: int = 12) -> str:
        """Estimate biological age from the latest readings.

        Returns the estimate, how many years younger (positive) or older
        (negative) it is than chronological age, the overall score and a
        monthly trajectory.

        Args:
            months: Length of the monthly trajectory (1-36).
        """
        profile = profiles.load()
        entries = entry_store.entries()
        summary = summarize(entries, profile.age, profile.sex, profile.ethnicity, params)
        if summary.bio_age is None:
            return json.dumps({
                "status": "insufficient_data",
                "message": _NO_DATA_MESSAGE,
                "chronological_age": profile.age,
            })

        trajectory = bio_age_trajectory(
            entries,
            profile.age,
            profile.sex,
            months=max(1, min(months, 36)),
            s_ba=params.s_ba,
            clamp_years=params.clamp_years,
            tables=params.tables,
        )
        return json.dumps({
            "status": "ok",
            "chronological_age": summary.chronological_age,
            "bio_age": summary.bio_age,
            "years_younger": summary.delta,
            "overall_score": summary.overall_score,
            "metrics_used": [s.metric_id.value for s in summary.scored],
            "trajectory": [
                {"month": p.label, "as_of": p.as_of, "bio_age": p.bio_age}
                for p in trajectory
            ],
            "disclaimer": "Wellness estimate only; not a medical diagnosis.",
        })

    @mcp.tool
    async def impact_plan(ctx: Context, top: int = DEFAULT_PLAN_SIZE) -> str:
        """Rank metrics by bio-age years recoverable at their optimal target.

        Each row shows the bio age if that one metric reached the best end of
        its optimal range, the years gained, and a recommendation matched to
        the metric's current tier.

        Args:
            top: Size of the action plan (the ranking itself is always complete).
        """
        profile = profiles.load()
        rows = rank_impacts(
            entry_store.entries(),
            profile.age,
            profile.sex,
            profile.ethnicity,
            anchors=params.anchors,
            s_ba=params.s_ba,
            clamp_years=params.clamp_years,
            tables=params.tables,
        )
        if not rows:
            return json.dumps({"status": "insufficient_data", "message": _NO_DATA_MESSAGE})
        plan = action_plan(rows, top)
        return json.dumps({
            "status": "ok",
            "current_bio_age": rows[0].current_bio_age,
            "ranking": [r.to_dict() for r in rows],
            "plan": [
                {"metric_id": r.metric_id.value, "action": r.action, "detail": r.detail, "gain_years": r.gain}
                for r in plan
            ],
        })
