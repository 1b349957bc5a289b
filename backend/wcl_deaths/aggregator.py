from __future__ import annotations

from typing import Callable, Dict, Hashable, Iterable, List, Sequence, Tuple, TypeVar

from wcl_deaths.records import DeathRecord, PlayerSummary, validate_records

EARLY_DEATH_WINDOW = 3

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


def group_ordered(items: Iterable[T], key: Callable[[T], K]) -> List[Tuple[K, List[T]]]:
    """Group items by key, keys in first-appearance order, items in input order."""
    index: Dict[K, int] = {}
    groups: List[Tuple[K, List[T]]] = []
    for item in items:
        group_key = key(item)
        position = index.get(group_key)
        if position is None:
            index[group_key] = len(groups)
            groups.append((group_key, [item]))
        else:
            groups[position][1].append(item)
    return groups


def summarize_player(
    name: str, records: Sequence[DeathRecord], early_window: int = EARLY_DEATH_WINDOW
) -> PlayerSummary:
    bad_orders = [record.death_order for record in records if record.bad]
    # Players without bad deaths report 0.0 instead of being dropped.
    avg_death_order = sum(bad_orders) / len(bad_orders) if bad_orders else 0.0
    early_deaths = sum(1 for record in records if record.death_order <= early_window)
    return PlayerSummary(
        name=name,
        bad_deaths=len(bad_orders),
        avg_death_order=avg_death_order,
        early_deaths=early_deaths,
        details=tuple(records),
    )


def aggregate(
    records: Iterable[DeathRecord],
    early_window: int = EARLY_DEATH_WINDOW,
    roster: Iterable[str] = (),
) -> List[PlayerSummary]:
    """Build one PlayerSummary per distinct player name.

    The whole batch is validated before anything is summarized, so a single
    malformed record raises InvalidRecord and no summaries are produced.
    Names in ``roster`` without any record follow as zero summaries.
    """
    batch = list(records)
    validate_records(batch)
    summaries = [
        summarize_player(name, group, early_window)
        for name, group in group_ordered(batch, lambda record: record.player_name)
    ]
    seen = {summary.name for summary in summaries}
    for name in roster:
        if name and name not in seen:
            seen.add(name)
            summaries.append(summarize_player(name, (), early_window))
    return summaries
