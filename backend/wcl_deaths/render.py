from __future__ import annotations

from typing import List

from wcl_deaths.grouping import describe_death
from wcl_deaths.ranking import SortDirection, SortKey
from wcl_deaths.view_state import (
    ViewMode,
    ViewState,
    expanded_details,
    is_empty,
    visible_players,
)

COLUMNS = [
    (SortKey.NAME, "Player", 24),
    (SortKey.BAD_DEATHS, "Bad Deaths", 10),
    (SortKey.AVG_DEATH_ORDER, "Avg Death Order", 15),
    (SortKey.EARLY_DEATHS, "Top-3 Deaths", 12),
]


def _header(state: ViewState) -> str:
    cells = []
    for key, title, width in COLUMNS:
        if key is state.sort_key:
            arrow = "▲" if state.sort_direction is SortDirection.ASCENDING else "▼"
            title = f"{title} {arrow}"
        cells.append(f"{title:<{width}}")
    return " | ".join(cells)


def render_results(state: ViewState) -> List[str]:
    if is_empty(state):
        return ["No bad deaths found."]

    header = _header(state)
    lines = ["Bad Deaths Summary", header, "-" * len(header)]
    for player in visible_players(state):
        marker = "▲" if player.name in state.expanded else "▼"
        lines.append(
            f"{player.name:<24} | {player.bad_deaths:<10} | "
            f"{player.avg_death_order:<15.1f} | {player.early_deaths:<12} {marker}"
        )
        for group in expanded_details(state, player.name):
            lines.append(f"    {group.date.isoformat()}")
            lines.extend(f"      {describe_death(record)}" for record in group.records)
    return lines


def render(state: ViewState) -> str:
    if state.mode is ViewMode.FORM:
        names = ", ".join(f"{encounter.id}: {encounter.name}" for encounter in state.encounters)
        return f"Awaiting submission. Encounters: {names or 'none loaded'}"
    if state.mode is ViewMode.LOADING:
        return "Analyzing…"
    if state.mode is ViewMode.ERROR:
        return f"Error: {state.error}"
    return "\n".join(render_results(state))
