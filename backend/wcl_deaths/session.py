from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import aiohttp
from pydantic import ValidationError

from wcl_deaths.models import EncounterInfo, EncountersResponse
from wcl_deaths.ranking import SortKey
from wcl_deaths.records import InvalidRecord, PlayerSummary
from wcl_deaths.view_state import (
    Back,
    EncounterSelected,
    EncountersLoaded,
    Event,
    ExpandToggled,
    Failed,
    SortClicked,
    Submitted,
    Succeeded,
    ViewState,
    reduce,
)

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
HOUR_MS = 60 * 60 * 1000


class TransportError(RuntimeError):
    pass


def day_start_ms(day: date) -> int:
    """Epoch millis of midnight UTC on ``day``."""
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp() * 1000)


def reports_request(codes: Sequence[str], encounter_id: int) -> Dict[str, Any]:
    return {
        "reports": [code.strip() for code in codes if code.strip()],
        "encounter_id": encounter_id,
    }


def guild_request(
    guild_name: str,
    server_slug: str,
    server_region: str,
    start_date: date,
    end_date: date,
    encounter_id: int,
    utc_offset_hours: int = -8,
) -> Dict[str, Any]:
    """Guild lookup body; both bounds are local midnights in ``utc_offset_hours``.

    With the default UTC-8 offset ``end_time`` is
    ``day_start_ms(end_date) + 24h + 8h``, the end of the selected end date.
    """
    shift = -utc_offset_hours * HOUR_MS
    return {
        "guild_name": guild_name.strip(),
        "guild_server_slug": server_slug.strip(),
        "guild_server_region": server_region.strip(),
        "start_time": day_start_ms(start_date) + shift,
        "end_time": day_start_ms(end_date) + DAY_MS + shift,
        "encounter_id": encounter_id,
    }


class DeathsApiClient:
    """aiohttp client for the deaths analysis service."""

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 300,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session
        self._own_session = session is None
        self.timeout = timeout

    async def fetch_encounters(self) -> List[EncounterInfo]:
        payload = await self._request("GET", "/api/encounters")
        try:
            return EncountersResponse.model_validate(payload).encounters
        except ValidationError as exc:
            raise TransportError(f"Malformed encounter list: {exc}") from exc

    async def analyze(self, body: Dict[str, Any]) -> List[PlayerSummary]:
        payload = await self._request("POST", "/api/analyze", json_body=body)
        players = payload.get("players", [])
        if not isinstance(players, list):
            raise InvalidRecord("Response field 'players' must be a list.")
        return [PlayerSummary.from_payload(entry) for entry in players]

    async def _request(
        self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if self.session is None:
            self.session = aiohttp.ClientSession()
        url = f"{self.base_url}{path}"
        try:
            async with self.session.request(
                method,
                url,
                json=json_body,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status >= 300:
                    text = (await response.text()).strip()
                    raise TransportError(text or response.reason or f"HTTP {response.status}")
                try:
                    payload = await response.json()
                except (aiohttp.ContentTypeError, ValueError) as exc:
                    raise TransportError(f"Non-JSON response from {url}: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise TransportError(f"Request to {url} timed out after {self.timeout}s") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(str(exc)) from exc
        if not isinstance(payload, dict):
            raise TransportError(f"Unexpected response from {url}: expected a JSON object")
        return payload

    async def close(self) -> None:
        if self._own_session and self.session:
            await self.session.close()


class AnalysisSession:
    """Issues requests to the service and feeds their outcomes to ``reduce``.

    Every submission gets a fresh request id; the reducer drops any response
    carrying an id other than the outstanding one.
    """

    def __init__(
        self,
        api: DeathsApiClient,
        state: Optional[ViewState] = None,
        on_change: Optional[Callable[[ViewState], None]] = None,
    ) -> None:
        self.api = api
        self.state = state or ViewState()
        self.on_change = on_change
        self._last_request_id = 0

    def dispatch(self, event: Event) -> ViewState:
        next_state = reduce(self.state, event)
        if next_state is not self.state:
            self.state = next_state
            if self.on_change is not None:
                self.on_change(next_state)
        return self.state

    async def load_encounters(self) -> ViewState:
        encounters = await self.api.fetch_encounters()
        return self.dispatch(EncountersLoaded(tuple(encounters)))

    def select_encounter(self, encounter_id: int) -> ViewState:
        return self.dispatch(EncounterSelected(encounter_id))

    async def submit(self, body: Dict[str, Any]) -> ViewState:
        if not self.state.can_submit:
            logger.info("Ignoring submission while a request is outstanding")
            return self.state

        self._last_request_id += 1
        request_id = self._last_request_id
        self.dispatch(Submitted(request_id))
        try:
            players = await self.api.analyze(body)
        except TransportError as exc:
            return self.dispatch(Failed(request_id, str(exc)))
        except InvalidRecord as exc:
            logger.warning(f"Rejected analysis response: {exc}")
            return self.dispatch(Failed(request_id, f"Analysis failed: {exc}"))
        return self.dispatch(Succeeded(request_id, tuple(players)))

    def back(self) -> ViewState:
        return self.dispatch(Back())

    def sort_by(self, key: SortKey) -> ViewState:
        return self.dispatch(SortClicked(SortKey(key)))

    def toggle(self, name: str) -> ViewState:
        return self.dispatch(ExpandToggled(name))
