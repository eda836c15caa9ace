"""
Output rendering for upgrade runs.

Aligns columns by terminal display width so emoji status icons line up.
"""

from __future__ import annotations

import json
import os
from typing import Sequence

from wcwidth import wcswidth

from .decision import Decision
from .runner import RunResult, UpgradeOutcome


USE_EMOJI = os.environ.get("GO_LATEST_EMOJI", "1") == "1"

EMOJI_ICONS = {
    Decision.UPGRADED: "⬆",
    Decision.ALREADY_LATEST: "✅",
    Decision.SKIPPED_PINNED: "📌",
    Decision.EXCLUDED: "⏭",
    Decision.RESOLVE_FAILED: "❓",
    Decision.INSTALL_FAILED: "❌",
    Decision.DISCOVERY_FAILED: "❌",
    Decision.CANCELLED: "⛔",
}

PLAIN_ICONS = {
    Decision.UPGRADED: "↑",
    Decision.ALREADY_LATEST: "✓",
    Decision.SKIPPED_PINNED: "=",
    Decision.EXCLUDED: "-",
    Decision.RESOLVE_FAILED: "?",
    Decision.INSTALL_FAILED: "x",
    Decision.DISCOVERY_FAILED: "x",
    Decision.CANCELLED: "!",
}

HEADERS = ("", "PROGRAM", "INSTALLED", "LATEST", "STATUS")


def status_icon(decision: Decision, use_emoji: bool | None = None) -> str:
    if use_emoji is None:
        use_emoji = USE_EMOJI
    icons = EMOJI_ICONS if use_emoji else PLAIN_ICONS
    return icons.get(decision, "?")


def display_width(text: str) -> int:
    """Display width of text in terminal cells."""
    width = wcswidth(text)
    # Non-printable characters make wcswidth give up
    return width if width >= 0 else len(text)


def pad(text: str, width: int) -> str:
    return text + " " * max(0, width - display_width(text))


def outcome_row(outcome: UpgradeOutcome, use_emoji: bool | None = None) -> tuple[str, ...]:
    return (
        status_icon(outcome.decision, use_emoji),
        outcome.name,
        outcome.current_version or "-",
        outcome.target_version,
        outcome.decision.value,
    )


def render_summary(
    outcomes: Sequence[UpgradeOutcome],
    use_emoji: bool | None = None,
    separator: str = "  ",
) -> str:
    """
    Render outcomes as an aligned table sorted by program name.

    Args:
        outcomes: Outcomes to render
        use_emoji: Use emoji icons (defaults to GO_LATEST_EMOJI)
        separator: Text between columns

    Returns:
        Table text without trailing newline
    """
    rows = [HEADERS] + [
        outcome_row(o, use_emoji) for o in sorted(outcomes, key=lambda o: o.name)
    ]
    widths = [
        max(display_width(row[col]) for row in rows)
        for col in range(len(HEADERS))
    ]

    lines = []
    for row in rows:
        cells = [pad(cell, widths[col]) for col, cell in enumerate(row)]
        lines.append(separator.join(cells).rstrip())
    return "\n".join(lines)


def render_json(result: RunResult) -> str:
    return json.dumps(result.to_dict(), indent=2)
