from __future__ import annotations

import logging
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import numpy as np
import pandas as pd

from wcl_deaths.aggregator import EARLY_DEATH_WINDOW, aggregate
from wcl_deaths.encounters import EncounterCatalog, EncounterConfig
from wcl_deaths.models import AnalyzeRequest, GuildAnalyzeRequest, ReportsAnalyzeRequest
from wcl_deaths.ranking import default_order
from wcl_deaths.records import DeathRecord, PlayerSummary
from wcl_deaths.wcl_client import WarcraftLogsClient

logger = logging.getLogger(__name__)

DEATH_COLUMNS = ["timestamp", "target_id", "ability_id", "death_order"]


def ms_to_report_date(ms: float, utc_offset_hours: int = -8) -> date:
    """Calendar date of an epoch-millis timestamp in a fixed UTC offset."""
    tz = timezone(timedelta(hours=utc_offset_hours))
    return datetime.fromtimestamp(ms / 1000, tz=tz).date()


def is_real_encounter(fight: Dict[str, Any]) -> bool:
    # Trash pulls have encounterID 0; kill is null outside boss fights.
    return bool(fight.get("encounterID")) and fight.get("kill") is not None


def rank_fight_deaths(events: List[Dict[str, Any]], friendly_players: Iterable[int]) -> pd.DataFrame:
    """Friendly deaths of one fight ordered by time, with a 1-based death_order."""
    friendly = set(friendly_players)
    if not events:
        return pd.DataFrame(columns=DEATH_COLUMNS)
    df = pd.DataFrame(
        {
            "timestamp": [event.get("timestamp") for event in events],
            "target_id": [event.get("targetID") for event in events],
            "ability_id": [event.get("killingAbilityGameID") for event in events],
        }
    )
    df = df[df["target_id"].isin(friendly)]
    df = df.sort_values("timestamp", kind="mergesort").reset_index(drop=True)
    df["death_order"] = np.arange(1, len(df) + 1)
    return df


def _ability_id(value: Any) -> Optional[int]:
    if value is None or pd.isna(value):
        return None
    return int(value)


class DeathAnalyzer:
    """Turn Warcraft Logs reports into classified death records and summaries."""

    def __init__(
        self,
        client: WarcraftLogsClient,
        catalog: EncounterCatalog,
        utc_offset_hours: int = -8,
        early_window: int = EARLY_DEATH_WINDOW,
    ) -> None:
        self.client = client
        self.catalog = catalog
        self.utc_offset_hours = utc_offset_hours
        self.early_window = early_window

    def resolve_report_codes(self, request: AnalyzeRequest) -> List[str]:
        if isinstance(request, ReportsAnalyzeRequest):
            return list(dict.fromkeys(request.reports))
        if isinstance(request, GuildAnalyzeRequest):
            reports = self.client.fetch_guild_reports(
                request.guild_name,
                request.guild_server_slug,
                request.guild_server_region,
                request.start_time,
                request.end_time,
            )
            logger.info(f"Found {len(reports)} report(s): {[code for code, _ in reports]}")
            return list(dict.fromkeys(code for code, _ in reports))
        raise TypeError(f"Unsupported analyze request: {type(request).__name__}")

    def collect_records(
        self, codes: List[str], encounter: EncounterConfig
    ) -> Tuple[List[DeathRecord], List[str]]:
        """Death records of the relevant fights plus every player who took part in them."""
        bad_abilities: Set[int] = set(encounter.bad_abilities)
        ability_names = self.client.fetch_ability_names(encounter.bad_abilities)
        records: List[DeathRecord] = []
        roster: List[str] = []

        for code in codes:
            t0 = time.perf_counter()
            report = self.client.fetch_report(code)
            report_date = ms_to_report_date(float(report.get("startTime") or 0), self.utc_offset_hours)
            actor_names = {
                int(actor["id"]): str(actor["name"])
                for actor in report.get("actors", [])
                if actor.get("type") == "Player"
            }
            fights = [
                fight
                for fight in report.get("fights", [])
                if is_real_encounter(fight) and fight.get("encounterID") == encounter.id
            ]

            for fight in fights:
                friendly_players = fight.get("friendlyPlayers") or []
                roster.extend(
                    actor_names[int(actor_id)] for actor_id in friendly_players if int(actor_id) in actor_names
                )
                events = self.client.fetch_deaths(
                    code, int(fight["id"]), fight["startTime"], fight["endTime"]
                )
                ranked = rank_fight_deaths(events, friendly_players)
                # Battle resurrections can push deaths past the roster size.
                out_of = max(len(friendly_players), len(ranked))
                for row in ranked.itertuples(index=False):
                    name = actor_names.get(int(row.target_id))
                    if name is None:
                        continue
                    ability_id = _ability_id(row.ability_id)
                    records.append(
                        DeathRecord(
                            player_name=name,
                            date=report_date,
                            fight_id=int(fight["id"]),
                            death_order=int(row.death_order),
                            out_of=out_of,
                            ability_name=ability_names.get(ability_id, f"Unknown({ability_id})"),
                            bad=ability_id in bad_abilities,
                        )
                    )

            logger.info(
                f"[TIMING] report {code}: {time.perf_counter() - t0:.2f}s ({len(fights)} fights)"
            )

        return records, list(dict.fromkeys(roster))

    def analyze(self, request: AnalyzeRequest) -> List[PlayerSummary]:
        total_start = time.perf_counter()
        encounter = self.catalog.find(request.encounter_id)
        codes = self.resolve_report_codes(request)
        records, roster = self.collect_records(codes, encounter)
        summaries = default_order(aggregate(records, self.early_window, roster))
        logger.info(
            f"[TIMING] analyze: {time.perf_counter() - total_start:.2f}s "
            f"({len(records)} deaths, {len(summaries)} players)"
        )
        return summaries
