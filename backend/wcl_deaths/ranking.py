from __future__ import annotations

import locale
import logging
import unicodedata
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Tuple

from wcl_deaths.records import PlayerSummary

logger = logging.getLogger(__name__)


class SortKey(str, Enum):
    NAME = "name"
    BAD_DEATHS = "bad_deaths"
    AVG_DEATH_ORDER = "avg_death_order"
    EARLY_DEATHS = "early_deaths"


class SortDirection(str, Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"

    def flipped(self) -> "SortDirection":
        if self is SortDirection.ASCENDING:
            return SortDirection.DESCENDING
        return SortDirection.ASCENDING


DEFAULT_SORT: Tuple[SortKey, SortDirection] = (SortKey.BAD_DEATHS, SortDirection.DESCENDING)


def use_system_collation() -> None:
    """Collate names with the locale from the environment (LC_ALL / LANG)."""
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as exc:
        logger.warning(f"Falling back to the C collation: {exc}")


def _name_key(summary: PlayerSummary) -> Tuple[str, str]:
    # Accents only break ties, so "Éowyn" sorts among the E names even in the C locale.
    folded = summary.name.casefold()
    base = "".join(
        char for char in unicodedata.normalize("NFKD", folded) if not unicodedata.combining(char)
    )
    return locale.strxfrm(base), locale.strxfrm(folded)


_KEY_FUNCS: Dict[SortKey, Callable[[PlayerSummary], Any]] = {
    SortKey.NAME: _name_key,
    SortKey.BAD_DEATHS: lambda summary: summary.bad_deaths,
    SortKey.AVG_DEATH_ORDER: lambda summary: summary.avg_death_order,
    SortKey.EARLY_DEATHS: lambda summary: summary.early_deaths,
}


def default_direction(key: SortKey) -> SortDirection:
    if key is SortKey.NAME:
        return SortDirection.ASCENDING
    return SortDirection.DESCENDING


def toggle_sort(
    current_key: SortKey, current_direction: SortDirection, clicked: SortKey
) -> Tuple[SortKey, SortDirection]:
    if clicked is current_key:
        return current_key, current_direction.flipped()
    return clicked, default_direction(clicked)


def sort_summaries(
    summaries: Iterable[PlayerSummary],
    key: SortKey = SortKey.BAD_DEATHS,
    direction: SortDirection = SortDirection.DESCENDING,
) -> List[PlayerSummary]:
    # sorted() keeps equal elements in input order even with reverse=True.
    return sorted(
        summaries,
        key=_KEY_FUNCS[SortKey(key)],
        reverse=SortDirection(direction) is SortDirection.DESCENDING,
    )


def default_order(summaries: Iterable[PlayerSummary]) -> List[PlayerSummary]:
    """Most bad deaths first, then players alphabetically."""
    by_name = sort_summaries(summaries, SortKey.NAME, SortDirection.ASCENDING)
    return sort_summaries(by_name, SortKey.BAD_DEATHS, SortDirection.DESCENDING)
