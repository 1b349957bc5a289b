from __future__ import annotations

from datetime import date
from typing import Dict, List

import pytest

from wcl_deaths.analysis import DeathAnalyzer, ms_to_report_date, rank_fight_deaths
from wcl_deaths.encounters import EncounterCatalog, EncounterConfig, EncounterNotFound
from wcl_deaths.models import GuildAnalyzeRequest, ReportsAnalyzeRequest

# 2024-03-06 04:00 UTC, still 2024-03-05 in UTC-8.
REPORT_START_MS = 1709697600000

BAD_SLAM = 1001
BAD_FIRE = 1002
HARMLESS = 2000


class _FakeClient:
    def __init__(self) -> None:
        self.reports: Dict[str, dict] = {}
        self.deaths: Dict[tuple, List[dict]] = {}
        self.guild_reports: List[tuple] = []
        self.guild_calls: List[tuple] = []

    def fetch_report(self, code: str) -> dict:
        return self.reports[code]

    def fetch_deaths(self, code: str, fight_id: int, start_time: float, end_time: float) -> List[dict]:
        return self.deaths.get((code, fight_id), [])

    def fetch_ability_names(self, ability_ids) -> Dict[int, str]:
        names = {BAD_SLAM: "Crushing Slam", BAD_FIRE: "Fire Pool"}
        return {ability_id: names[ability_id] for ability_id in ability_ids if ability_id in names}

    def fetch_guild_reports(self, *args) -> List[tuple]:
        self.guild_calls.append(args)
        return self.guild_reports


def _build_fight(fight_id: int, encounter_id: int = 3009, kill=False, players=(1, 2, 3, 4)) -> dict:
    return {
        "id": fight_id,
        "name": "Boss",
        "encounterID": encounter_id,
        "startTime": 1000 * fight_id,
        "endTime": 1000 * fight_id + 900,
        "kill": kill,
        "friendlyPlayers": list(players),
    }


def _build_death(timestamp: int, target: int, ability: int) -> dict:
    return {"timestamp": timestamp, "targetID": target, "killingAbilityGameID": ability, "fight": 0}


def _build_report(fights: List[dict]) -> dict:
    return {
        "code": "abc",
        "startTime": REPORT_START_MS,
        "actors": [
            {"id": 1, "name": "Brann", "type": "Player", "subType": "Warrior"},
            {"id": 2, "name": "Moira", "type": "Player", "subType": "Priest"},
            {"id": 3, "name": "Dagran", "type": "Player", "subType": "Rogue"},
            {"id": 4, "name": "Falstad", "type": "Player", "subType": "Shaman"},
            {"id": 90, "name": "Boss", "type": "NPC", "subType": "Boss"},
        ],
        "fights": fights,
    }


def _build_analyzer(client: _FakeClient) -> DeathAnalyzer:
    catalog = EncounterCatalog(
        encounter=[EncounterConfig(id=3009, name="Vexie", bad_abilities=[BAD_SLAM, BAD_FIRE])]
    )
    return DeathAnalyzer(client, catalog)


def test_rank_fight_deaths_orders_by_time_and_skips_enemies() -> None:
    events = [
        _build_death(500, 2, BAD_SLAM),
        _build_death(100, 90, HARMLESS),
        _build_death(300, 1, BAD_FIRE),
    ]
    ranked = rank_fight_deaths(events, [1, 2])
    assert list(ranked["target_id"]) == [1, 2]
    assert list(ranked["death_order"]) == [1, 2]
    assert rank_fight_deaths([], [1]).empty


def test_report_date_uses_fixed_offset() -> None:
    assert ms_to_report_date(REPORT_START_MS) == date(2024, 3, 5)
    assert ms_to_report_date(REPORT_START_MS, utc_offset_hours=0) == date(2024, 3, 6)


def test_collect_records_classifies_and_ranks_deaths() -> None:
    client = _FakeClient()
    client.reports["abc"] = _build_report(
        [
            _build_fight(1),
            _build_fight(2, encounter_id=3010),
            _build_fight(3, encounter_id=0, kill=None),
            _build_fight(4, kill=True),
        ]
    )
    client.deaths[("abc", 1)] = [
        _build_death(1200, 2, HARMLESS),
        _build_death(1100, 1, BAD_SLAM),
        _build_death(1300, 3, BAD_FIRE),
    ]
    client.deaths[("abc", 2)] = [_build_death(2100, 1, BAD_SLAM)]
    client.deaths[("abc", 4)] = [_build_death(4100, 3, BAD_SLAM)]

    analyzer = _build_analyzer(client)
    records, roster = analyzer.collect_records(["abc"], analyzer.catalog.find(3009))

    assert roster == ["Brann", "Moira", "Dagran", "Falstad"]
    assert [(r.player_name, r.fight_id, r.death_order, r.bad) for r in records] == [
        ("Brann", 1, 1, True),
        ("Moira", 1, 2, False),
        ("Dagran", 1, 3, True),
        ("Dagran", 4, 1, True),
    ]
    assert records[0].ability_name == "Crushing Slam"
    assert records[1].ability_name == f"Unknown({HARMLESS})"
    assert all(record.out_of == 4 for record in records)
    assert all(record.date == date(2024, 3, 5) for record in records)


def test_out_of_never_below_death_count() -> None:
    client = _FakeClient()
    client.reports["abc"] = _build_report([_build_fight(1, players=(1, 2))])
    client.deaths[("abc", 1)] = [
        _build_death(1100, 1, BAD_SLAM),
        _build_death(1200, 2, BAD_SLAM),
        _build_death(1300, 1, BAD_FIRE),
    ]
    analyzer = _build_analyzer(client)
    records, _ = analyzer.collect_records(["abc"], analyzer.catalog.find(3009))
    assert [record.out_of for record in records] == [3, 3, 3]


def test_analyze_returns_summaries_most_bad_deaths_first() -> None:
    client = _FakeClient()
    client.reports["abc"] = _build_report([_build_fight(1), _build_fight(4, kill=True)])
    client.deaths[("abc", 1)] = [
        _build_death(1100, 1, BAD_SLAM),
        _build_death(1200, 2, HARMLESS),
        _build_death(1300, 3, BAD_FIRE),
    ]
    client.deaths[("abc", 4)] = [_build_death(4100, 3, BAD_SLAM)]

    summaries = _build_analyzer(client).analyze(ReportsAnalyzeRequest(reports=["abc"], encounter_id=3009))

    assert [summary.name for summary in summaries] == ["Dagran", "Brann", "Falstad", "Moira"]
    dagran = summaries[0]
    assert dagran.bad_deaths == 2
    assert dagran.avg_death_order == 2.0
    assert dagran.early_deaths == 2
    assert summaries[3].bad_deaths == 0
    assert summaries[3].to_payload()["details"] == []


def test_players_who_never_died_are_listed_after_bad_deaths() -> None:
    client = _FakeClient()
    client.reports["abc"] = _build_report([_build_fight(1, players=(1, 2))])
    client.deaths[("abc", 1)] = [_build_death(1100, 1, BAD_SLAM)]

    summaries = _build_analyzer(client).analyze(ReportsAnalyzeRequest(reports=["abc"], encounter_id=3009))

    assert [summary.name for summary in summaries] == ["Brann", "Moira"]
    clean = summaries[1]
    assert (clean.bad_deaths, clean.avg_death_order, clean.early_deaths) == (0, 0.0, 0)
    assert clean.details == ()


def test_roster_ignores_fights_of_other_encounters() -> None:
    client = _FakeClient()
    client.reports["abc"] = _build_report(
        [_build_fight(1, players=(1,)), _build_fight(2, encounter_id=3010, players=(2, 3))]
    )
    analyzer = _build_analyzer(client)
    _, roster = analyzer.collect_records(["abc"], analyzer.catalog.find(3009))
    assert roster == ["Brann"]


def test_guild_request_looks_up_reports() -> None:
    client = _FakeClient()
    client.reports["abc"] = _build_report([_build_fight(1)])
    client.guild_reports = [("abc", REPORT_START_MS), ("abc", REPORT_START_MS)]
    request = GuildAnalyzeRequest(
        guild_name="Ironforge Rangers",
        guild_server_slug="khaz-modan",
        guild_server_region="US",
        start_time=1709625600000,
        end_time=1709798400000,
        encounter_id=3009,
    )
    analyzer = _build_analyzer(client)
    assert analyzer.resolve_report_codes(request) == ["abc"]
    assert client.guild_calls == [
        ("Ironforge Rangers", "khaz-modan", "US", 1709625600000, 1709798400000)
    ]


def test_unknown_encounter_is_rejected() -> None:
    analyzer = _build_analyzer(_FakeClient())
    with pytest.raises(EncounterNotFound, match="Encounter ID 42 not found in config"):
        analyzer.analyze(ReportsAnalyzeRequest(reports=["abc"], encounter_id=42))
