from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

logger = logging.getLogger(__name__)


class WCLAPIError(RuntimeError):
    pass


class WCLConfigError(ValueError):
    pass


REPORT_QUERY = """
query GetReport($code: String!) {
  reportData {
    report(code: $code) {
      code
      startTime
      masterData {
        actors {
          id
          name
          type
          subType
        }
      }
      fights {
        id
        name
        encounterID
        startTime
        endTime
        kill
        difficulty
        friendlyPlayers
      }
    }
  }
}
"""

DEATHS_QUERY = """
query GetDeaths($code: String!, $fightId: Int!, $startTime: Float!, $endTime: Float!) {
  reportData {
    report(code: $code) {
      events(
        fightIDs: [$fightId]
        startTime: $startTime
        endTime: $endTime
        dataType: Deaths
      ) {
        data
        nextPageTimestamp
      }
    }
  }
}
"""

GUILD_REPORTS_QUERY = """
query GuildReports(
  $guildName: String!
  $serverSlug: String!
  $serverRegion: String!
  $startTime: Float!
  $endTime: Float!
  $page: Int!
) {
  reportData {
    reports(
      guildName: $guildName
      guildServerSlug: $serverSlug
      guildServerRegion: $serverRegion
      startTime: $startTime
      endTime: $endTime
      page: $page
    ) {
      data {
        code
        startTime
      }
      has_more_pages
    }
  }
}
"""

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class WarcraftLogsClient:
    """Warcraft Logs v2 GraphQL client using OAuth client credentials."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str = "https://www.warcraftlogs.com/oauth/token",
        api_url: str = "https://www.warcraftlogs.com/api/v2/client",
        timeout: float = 30,
        max_retries: int = 3,
        use_cache: bool = False,
        cache_dir: Optional[Path] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not client_id or not client_secret:
            raise WCLConfigError(
                "WCL_CLIENT_ID and WCL_CLIENT_SECRET are required to query Warcraft Logs."
            )

        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.api_url = api_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.use_cache = use_cache
        self.cache_dir = cache_dir or (
            Path(__file__).resolve().parents[1] / "data" / "wcl_cache"
        )
        if self.use_cache:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.session = session or requests.Session()
        self._token: Optional[str] = None
        self._token_expiry: float = 0.0

    def refresh_token(self) -> None:
        logger.info("Refreshing Warcraft Logs API token")
        try:
            response = self.session.post(
                self.token_url,
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise WCLAPIError(f"WCL token error: {exc}") from exc
        if response.status_code != 200:
            detail = _extract_error_detail(response)
            raise WCLAPIError(f"WCL token error: {response.status_code} - {detail}")
        payload = response.json()
        self._token = payload["access_token"]
        # Refresh a minute before the server-side expiry.
        self._token_expiry = time.time() + int(payload.get("expires_in", 3600)) - 60

    def _ensure_token(self) -> str:
        if not self._token or time.time() >= self._token_expiry:
            self.refresh_token()
        return self._token or ""

    def query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run a GraphQL query and return its ``data`` object."""
        last_error: Optional[str] = None
        refreshed = False
        attempt = 0
        while attempt < self.max_retries:
            token = self._ensure_token()
            try:
                response = self.session.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                    json={"query": query, "variables": variables or {}},
                    timeout=self.timeout,
                )
            except requests.Timeout:
                last_error = f"WCL API error: timeout after {self.timeout}s"
                response = None
            except requests.RequestException as exc:
                raise WCLAPIError(f"WCL API error: {exc}") from exc

            if response is not None:
                if response.status_code == 401 and not refreshed:
                    self._token = None
                    refreshed = True
                    continue
                if response.status_code in RETRYABLE_STATUS:
                    detail = _extract_error_detail(response)
                    last_error = f"WCL API error: {response.status_code} - {detail}"
                elif response.status_code != 200:
                    detail = _extract_error_detail(response)
                    raise WCLAPIError(f"WCL API error: {response.status_code} - {detail}")
                else:
                    try:
                        payload = response.json()
                    except ValueError as exc:
                        raise WCLAPIError(f"Non-JSON response from WCL API: {exc}") from exc
                    if payload.get("errors"):
                        raise WCLAPIError(f"GraphQL errors: {json.dumps(payload['errors'])}")
                    return payload.get("data") or {}

            attempt += 1
            if attempt < self.max_retries:
                delay = 2 ** attempt
                logger.warning(f"{last_error}; retrying in {delay}s ({attempt}/{self.max_retries})")
                time.sleep(delay)

        raise WCLAPIError(last_error or "WCL API error: No response received.")

    def fetch_report(self, code: str) -> Dict[str, Any]:
        """Actors, fights and start time of one report."""
        cache_key = f"report_{code}"
        cached = self._load_from_cache(cache_key)
        if cached is not None:
            return cached

        data = self.query(REPORT_QUERY, {"code": code})
        report = (data.get("reportData") or {}).get("report")
        if report is None:
            raise FileNotFoundError(f"Report '{code}' not found.")
        normalized = {
            "code": report.get("code", code),
            "startTime": report.get("startTime"),
            "actors": (report.get("masterData") or {}).get("actors") or [],
            "fights": report.get("fights") or [],
        }
        self._save_to_cache(cache_key, normalized)
        return normalized

    def fetch_deaths(
        self, code: str, fight_id: int, start_time: float, end_time: float
    ) -> List[Dict[str, Any]]:
        cache_key = f"deaths_{code}_{fight_id}"
        cached = self._load_from_cache(cache_key)
        if cached is not None:
            return cached

        events: List[Dict[str, Any]] = []
        current_start = start_time
        while True:
            data = self.query(
                DEATHS_QUERY,
                {
                    "code": code,
                    "fightId": fight_id,
                    "startTime": current_start,
                    "endTime": end_time,
                },
            )
            node = data["reportData"]["report"]["events"]
            events.extend(node.get("data") or [])
            next_page = node.get("nextPageTimestamp")
            if next_page is None:
                break
            current_start = next_page

        self._save_to_cache(cache_key, events)
        return events

    def fetch_ability_names(self, ability_ids: Iterable[int]) -> Dict[int, str]:
        ids = list(dict.fromkeys(int(ability_id) for ability_id in ability_ids))
        if not ids:
            return {}
        fields = "\n".join(f"a{ability_id}: ability(id: {ability_id}) {{ name }}" for ability_id in ids)
        data = self.query(f"{{ gameData {{ {fields} }} }}")
        game_data = data.get("gameData") or {}
        names: Dict[int, str] = {}
        for ability_id in ids:
            name = (game_data.get(f"a{ability_id}") or {}).get("name")
            if name:
                names[ability_id] = str(name)
        return names

    def fetch_guild_reports(
        self,
        guild_name: str,
        server_slug: str,
        server_region: str,
        start_time: float,
        end_time: float,
    ) -> List[Tuple[str, float]]:
        """(code, startTime) for every guild report inside the window."""
        reports: List[Tuple[str, float]] = []
        page = 1
        while True:
            data = self.query(
                GUILD_REPORTS_QUERY,
                {
                    "guildName": guild_name,
                    "serverSlug": server_slug,
                    "serverRegion": server_region,
                    "startTime": start_time,
                    "endTime": end_time,
                    "page": page,
                },
            )
            node = (data.get("reportData") or {}).get("reports") or {}
            for entry in node.get("data") or []:
                reports.append((str(entry["code"]), float(entry["startTime"])))
            if not node.get("has_more_pages"):
                break
            page += 1
        return reports

    def _load_from_cache(self, cache_key: str) -> Optional[Any]:
        if not self.use_cache:
            return None
        cache_file = self.cache_dir / f"{self._slugify(cache_key)}.json"
        if not cache_file.exists():
            return None
        try:
            with cache_file.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (json.JSONDecodeError, IOError):
            return None

    def _save_to_cache(self, cache_key: str, payload: Any) -> None:
        if not self.use_cache:
            return
        cache_file = self.cache_dir / f"{self._slugify(cache_key)}.json"
        with cache_file.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle)

    @staticmethod
    def _slugify(value: str) -> str:
        # Report codes are case-sensitive.
        cleaned = "".join(ch if ch.isalnum() else "_" for ch in value.strip())
        return cleaned.strip("_")


def _extract_error_detail(response: requests.Response) -> str:
    text = response.text.strip()
    try:
        payload = response.json()
    except ValueError:
        return text or "No response body"

    if isinstance(payload, dict):
        if "errors" in payload:
            return json.dumps(payload["errors"])
        if "error" in payload:
            return str(payload["error"])
        if "message" in payload:
            return str(payload["message"])
        return json.dumps(payload)

    return text or "No response body"
