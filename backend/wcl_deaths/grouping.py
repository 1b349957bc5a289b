from __future__ import annotations

from typing import Iterable, List

from wcl_deaths.aggregator import group_ordered
from wcl_deaths.records import DateGroup, DeathRecord


def group_by_date(details: Iterable[DeathRecord]) -> List[DateGroup]:
    """Group a player's deaths by date, oldest date first.

    Records inside a group keep the order they had in ``details``.
    """
    groups = group_ordered(details, lambda record: record.date)
    return [
        DateGroup(date=day, records=tuple(records))
        for day, records in sorted(groups, key=lambda pair: pair[0].isoformat())
    ]


def describe_death(record: DeathRecord) -> str:
    return (
        f"Fight {record.fight_id} — died {record.death_order}/{record.out_of} "
        f"to {record.ability_name}"
    )
