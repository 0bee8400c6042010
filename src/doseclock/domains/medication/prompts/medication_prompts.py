"""MCP Prompts — pre-built interaction templates for the morning sequence."""

from __future__ import annotations

from fastmcp import FastMCP


def register_medication_prompts(mcp: FastMCP) -> None:
    """Register medication domain MCP prompts."""

    @mcp.prompt()
    def morning_sequence_prompt(target_efficiency: int = 90) -> str:
        """Prompt template for planning today's medication sequence."""
        return f"""I'm starting my morning medication sequence. Please:

1. Start the sequence (ask me whether I took the first batch earlier)
2. Set the alarm threshold to {target_efficiency}% efficiency
3. Tell me the projected time of my first meal at that threshold
4. Remind me which dose is active and how long until it is ready

Keep it short; I'll check back when the alarm goes off."""
