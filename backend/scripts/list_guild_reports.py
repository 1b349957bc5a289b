"""List a guild's reports in a date range and the configured boss fights in each."""
from __future__ import annotations

import argparse
import sys
from collections import Counter
from datetime import date

from wcl_deaths.analysis import is_real_encounter, ms_to_report_date
from wcl_deaths.encounters import load_encounters
from wcl_deaths.session import guild_request
from wcl_deaths.settings import Settings, load_env
from wcl_deaths.wcl_client import WarcraftLogsClient, WCLAPIError


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("guild", help="Guild name.")
    parser.add_argument("server", help="Server slug, e.g. area-52.")
    parser.add_argument("--region", default="US", help="Server region.")
    parser.add_argument("--start", type=date.fromisoformat, required=True)
    parser.add_argument("--end", type=date.fromisoformat, required=True)
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    load_env()
    settings = Settings.from_env()
    catalog = load_encounters(settings.encounter_config_path)
    names = {encounter.id: encounter.name for encounter in catalog.encounter}

    client = WarcraftLogsClient(
        client_id=settings.wcl_client_id,
        client_secret=settings.wcl_client_secret,
        token_url=settings.wcl_token_url,
        api_url=settings.wcl_api_url,
        timeout=settings.wcl_timeout,
        max_retries=settings.wcl_max_retries,
        use_cache=settings.wcl_use_cache,
        cache_dir=settings.wcl_cache_dir,
    )
    window = guild_request(
        args.guild,
        args.server,
        args.region,
        args.start,
        args.end,
        encounter_id=0,
        utc_offset_hours=settings.report_utc_offset_hours,
    )

    try:
        reports = client.fetch_guild_reports(
            args.guild, args.server, args.region, window["start_time"], window["end_time"]
        )
    except WCLAPIError as exc:
        print(f"Error: {exc}")
        return 1

    print(f"Found {len(reports)} report(s) for {args.guild}")
    print("=" * 80)
    print(f"{'Report':<20} | {'Date':<10} | Configured fights")
    print("-" * 80)
    for code, start_ms in reports:
        report = client.fetch_report(code)
        pulls = Counter(
            names[fight["encounterID"]]
            for fight in report["fights"]
            if is_real_encounter(fight) and fight.get("encounterID") in names
        )
        summary = ", ".join(f"{name} x{count}" for name, count in pulls.most_common()) or "-"
        day = ms_to_report_date(start_ms, settings.report_utc_offset_hours)
        print(f"{code:<20} | {day.isoformat():<10} | {summary}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
