"""Presentation state for the deaths results view.

``ViewState`` is immutable. ``reduce`` takes the current state and one event
and returns the next state; the caller replaces its reference. Responses are
tagged with the request id that produced them, and only the outstanding
request may settle a ``LOADING`` state.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple, Union

from wcl_deaths.grouping import group_by_date
from wcl_deaths.models import EncounterInfo
from wcl_deaths.ranking import DEFAULT_SORT, SortDirection, SortKey, sort_summaries, toggle_sort
from wcl_deaths.records import DateGroup, PlayerSummary


class ViewMode(str, Enum):
    FORM = "form"
    LOADING = "loading"
    RESULTS = "results"
    ERROR = "error"


@dataclass(frozen=True)
class ViewState:
    mode: ViewMode = ViewMode.FORM
    encounters: Tuple[EncounterInfo, ...] = ()
    selected_encounter_id: Optional[int] = None
    pending_request_id: Optional[int] = None
    players: Tuple[PlayerSummary, ...] = ()
    error: Optional[str] = None
    expanded: FrozenSet[str] = field(default_factory=frozenset)
    sort_key: SortKey = DEFAULT_SORT[0]
    sort_direction: SortDirection = DEFAULT_SORT[1]

    @property
    def can_submit(self) -> bool:
        return self.mode is ViewMode.FORM


@dataclass(frozen=True)
class EncountersLoaded:
    encounters: Tuple[EncounterInfo, ...]


@dataclass(frozen=True)
class EncounterSelected:
    encounter_id: int


@dataclass(frozen=True)
class Submitted:
    request_id: int


@dataclass(frozen=True)
class Succeeded:
    request_id: int
    players: Tuple[PlayerSummary, ...]


@dataclass(frozen=True)
class Failed:
    request_id: int
    message: str


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class SortClicked:
    key: SortKey


@dataclass(frozen=True)
class ExpandToggled:
    name: str


Event = Union[
    EncountersLoaded,
    EncounterSelected,
    Submitted,
    Succeeded,
    Failed,
    Back,
    SortClicked,
    ExpandToggled,
]


def _is_current(state: ViewState, request_id: int) -> bool:
    return state.mode is ViewMode.LOADING and state.pending_request_id == request_id


def reduce(state: ViewState, event: Event) -> ViewState:
    if isinstance(event, EncountersLoaded):
        selected = state.selected_encounter_id
        known_ids = {encounter.id for encounter in event.encounters}
        if selected not in known_ids:
            selected = event.encounters[0].id if event.encounters else None
        return replace(state, encounters=tuple(event.encounters), selected_encounter_id=selected)

    if isinstance(event, EncounterSelected):
        if state.mode is not ViewMode.FORM:
            return state
        return replace(state, selected_encounter_id=event.encounter_id)

    if isinstance(event, Submitted):
        if not state.can_submit:
            return state
        return replace(
            state,
            mode=ViewMode.LOADING,
            pending_request_id=event.request_id,
            players=(),
            error=None,
        )

    if isinstance(event, Succeeded):
        if not _is_current(state, event.request_id):
            return state
        return replace(
            state,
            mode=ViewMode.RESULTS,
            pending_request_id=None,
            players=tuple(event.players),
            error=None,
            expanded=frozenset(),
            sort_key=DEFAULT_SORT[0],
            sort_direction=DEFAULT_SORT[1],
        )

    if isinstance(event, Failed):
        if not _is_current(state, event.request_id):
            return state
        return replace(
            state,
            mode=ViewMode.ERROR,
            pending_request_id=None,
            players=(),
            error=event.message,
        )

    if isinstance(event, Back):
        if state.mode not in (ViewMode.RESULTS, ViewMode.ERROR):
            return state
        return ViewState(
            encounters=state.encounters,
            selected_encounter_id=state.selected_encounter_id,
        )

    if isinstance(event, SortClicked):
        if state.mode is not ViewMode.RESULTS:
            return state
        key, direction = toggle_sort(state.sort_key, state.sort_direction, SortKey(event.key))
        return replace(state, sort_key=key, sort_direction=direction)

    if isinstance(event, ExpandToggled):
        if state.mode is not ViewMode.RESULTS:
            return state
        if event.name in state.expanded:
            expanded = state.expanded - {event.name}
        else:
            expanded = state.expanded | {event.name}
        return replace(state, expanded=expanded)

    raise TypeError(f"Unsupported view event: {event!r}")


def visible_players(state: ViewState) -> List[PlayerSummary]:
    return sort_summaries(state.players, state.sort_key, state.sort_direction)


def is_empty(state: ViewState) -> bool:
    return state.mode is ViewMode.RESULTS and not any(
        player.bad_deaths > 0 for player in state.players
    )


def expanded_details(state: ViewState, name: str) -> List[DateGroup]:
    if name not in state.expanded:
        return []
    for player in state.players:
        if player.name == name:
            return group_by_date(player.details)
    return []
