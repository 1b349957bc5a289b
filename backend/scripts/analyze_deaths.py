from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import date

from wcl_deaths.ranking import SortKey, use_system_collation
from wcl_deaths.render import render
from wcl_deaths.session import (
    AnalysisSession,
    DeathsApiClient,
    TransportError,
    guild_request,
    reports_request,
)
from wcl_deaths.settings import Settings, load_env
from wcl_deaths.view_state import ViewMode


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show bad deaths per player for an encounter.")
    parser.add_argument(
        "--reports",
        nargs="*",
        default=None,
        help=(
            "Report codes. Supports comma-separated or space-delimited input. "
            "Example: --reports AbVphwHqgLJ7ZQ3Y xYz123"
        ),
    )
    parser.add_argument("--guild", default=os.getenv("WCL_GUILD_NAME"), help="Guild name.")
    parser.add_argument("--server", default=os.getenv("WCL_GUILD_SERVER"), help="Server slug.")
    parser.add_argument("--region", default=os.getenv("WCL_GUILD_REGION", "US"), help="Server region.")
    parser.add_argument("--start", type=date.fromisoformat, help="First raid date (YYYY-MM-DD).")
    parser.add_argument("--end", type=date.fromisoformat, help="Last raid date (YYYY-MM-DD).")
    parser.add_argument(
        "--encounter",
        type=int,
        default=None,
        help="Encounter ID. Defaults to the first encounter the service lists.",
    )
    parser.add_argument(
        "--sort",
        nargs="*",
        default=[],
        choices=[key.value for key in SortKey],
        help="Column clicks to apply in order; clicking a column twice flips it.",
    )
    parser.add_argument("--expand", nargs="*", default=[], help="Players to expand.")
    parser.add_argument("--api-url", default=None, help="Deaths service base URL.")
    return parser.parse_args()


def _parse_report_args(raw: object) -> list[str]:
    if not raw:
        return []
    values = [str(value).strip() for value in raw if str(value).strip()]
    joined = ",".join(values)
    return [value.strip() for value in joined.split(",") if value.strip()]


async def run(args: argparse.Namespace) -> int:
    load_env()
    use_system_collation()
    settings = Settings.from_env()
    api = DeathsApiClient(args.api_url or settings.deaths_api_url)
    session = AnalysisSession(api)
    try:
        try:
            await session.load_encounters()
        except TransportError as exc:
            print(f"Error: {exc}")
            return 1
        if args.encounter is not None:
            session.select_encounter(args.encounter)
        encounter_id = session.state.selected_encounter_id
        if encounter_id is None:
            print("No encounters configured on the service.")
            return 1

        codes = _parse_report_args(args.reports)
        if codes:
            body = reports_request(codes, encounter_id)
        elif args.guild and args.server and args.start and args.end:
            body = guild_request(
                args.guild,
                args.server,
                args.region,
                args.start,
                args.end,
                encounter_id,
                utc_offset_hours=settings.report_utc_offset_hours,
            )
        else:
            print("Provide --reports, or --guild, --server, --start and --end.")
            return 2

        state = await session.submit(body)
        if state.mode is ViewMode.RESULTS:
            for key in args.sort:
                session.sort_by(SortKey(key))
            for name in args.expand:
                session.toggle(name)
        print(render(session.state))
        return 0 if session.state.mode is ViewMode.RESULTS else 1
    finally:
        await api.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(run(_parse_args())))
