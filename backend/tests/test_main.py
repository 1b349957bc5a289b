from __future__ import annotations

from datetime import date

import pytest
from fastapi.testclient import TestClient

from wcl_deaths import main
from wcl_deaths.encounters import EncounterCatalog, EncounterConfig, EncounterNotFound
from wcl_deaths.models import GuildAnalyzeRequest, ReportsAnalyzeRequest
from wcl_deaths.records import DeathRecord, InvalidRecord, PlayerSummary
from wcl_deaths.wcl_client import WCLAPIError

client = TestClient(main.app)


class _StubAnalyzer:
    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.result = result or []
        self.error = error
        self.requests = []

    def analyze(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result


def _build_summary() -> PlayerSummary:
    records = (
        DeathRecord("Kurdran", date(2024, 1, 2), 1, 1, 10, "X"),
        DeathRecord("Kurdran", date(2024, 1, 1), 2, 2, 10, "Y"),
        DeathRecord("Kurdran", date(2024, 1, 1), 3, 8, 10, "Harmless", bad=False),
    )
    return PlayerSummary(
        name="Kurdran", bad_deaths=2, avg_death_order=1.5, early_deaths=2, details=records
    )


@pytest.fixture
def stub_analyzer(monkeypatch):
    analyzer = _StubAnalyzer(result=[_build_summary()])
    monkeypatch.setattr(main, "get_analyzer", lambda: analyzer)
    return analyzer


def test_encounters_lists_configured_encounters(monkeypatch) -> None:
    catalog = EncounterCatalog(
        encounter=[
            EncounterConfig(id=3009, name="Vexie", bad_abilities=[1]),
            EncounterConfig(id=3010, name="Cauldron"),
        ]
    )
    monkeypatch.setattr(main, "get_catalog", lambda: catalog)

    response = client.get("/api/encounters")
    assert response.status_code == 200
    assert response.json() == {
        "encounters": [{"id": 3009, "name": "Vexie"}, {"id": 3010, "name": "Cauldron"}]
    }


def test_analyze_with_report_codes(stub_analyzer) -> None:
    response = client.post("/api/analyze", json={"reports": [" abc ", ""], "encounter_id": 3009})
    assert response.status_code == 200
    player = response.json()["players"][0]
    assert player["name"] == "Kurdran"
    assert player["bad_deaths"] == 2
    assert player["avg_death_order"] == 1.5
    assert player["early_deaths"] == 2
    assert player["details"] == [
        {"date": "2024-01-02", "fight_id": 1, "death_order": 1, "out_of": 10, "ability_name": "X"},
        {"date": "2024-01-01", "fight_id": 2, "death_order": 2, "out_of": 10, "ability_name": "Y"},
    ]
    request = stub_analyzer.requests[0]
    assert isinstance(request, ReportsAnalyzeRequest)
    assert request.reports == ["abc"]


def test_analyze_with_guild_range(stub_analyzer) -> None:
    body = {
        "guild_name": "Wildhammer",
        "guild_server_slug": "aerie-peak",
        "guild_server_region": "EU",
        "start_time": 1704096000000,
        "end_time": 1704211200000,
        "encounter_id": 3009,
    }
    response = client.post("/api/analyze", json=body)
    assert response.status_code == 200
    assert isinstance(stub_analyzer.requests[0], GuildAnalyzeRequest)


def test_invalid_body_is_plain_text_error(stub_analyzer) -> None:
    response = client.post("/api/analyze", json={"reports": [], "encounter_id": 3009})
    assert response.status_code == 422
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text.startswith("Invalid request")
    assert stub_analyzer.requests == []


@pytest.mark.parametrize(
    "error, status, text",
    [
        (EncounterNotFound("Encounter ID 7 not found in config"), 404, "Encounter ID 7 not found in config"),
        (FileNotFoundError("Report 'zzz' not found."), 404, "Report 'zzz' not found."),
        (InvalidRecord("Kurdran: death_order 5 exceeds out_of 4 in fight 1."), 422, "Analysis failed: "),
        (WCLAPIError("WCL API error: 503 - busy"), 502, "WCL API error: 503 - busy"),
    ],
)
def test_analyze_errors_map_to_status_and_text(monkeypatch, error, status, text) -> None:
    monkeypatch.setattr(main, "get_analyzer", lambda: _StubAnalyzer(error=error))
    response = client.post("/api/analyze", json={"reports": ["abc"], "encounter_id": 7})
    assert response.status_code == status
    assert response.text.startswith(text)


def test_health() -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
