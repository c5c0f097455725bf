"""MCP Prompts: interaction templates for the bio-age journey."""

from __future__ import annotations

from fastmcp import FastMCP


def register_bio_age_prompts(mcp: FastMCP) -> None:
    """Register bio-age MCP prompts."""

    @mcp.prompt()
    def bio_age_review_prompt(focus: str = "my biggest opportunities") -> str:
        """Prompt template for reviewing biological age and the action plan."""
        return f"""Please review my biological age, focusing on {focus}.

1. Call biological_age and tell me how my estimate compares to my real age
2. Call metric_scores and explain which metrics are holding me back
3. Call impact_plan and walk me through the top actions, starting with the
   one that recovers the most years

Keep it plain-language and encouraging. This is a wellness estimate, not a
diagnosis, so point me to a clinician for anything in a clinical range."""
