"""
Compute season aggregates (standings, tyres, teammate battles) into the cache.

Reads the raw schedule/roster cache written by fetch_season_data.py when it
exists and fetches session results from OpenF1.

Usage:
    python scripts/process_data.py
    python scripts/process_data.py --years 2025 --only standings
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import Config
from f1stats.api_client import OpenF1Client, OpenF1Error
from f1stats.auth import TokenProvider
from f1stats.cache import DataCache
from f1stats.openf1 import OpenF1Service
from f1stats.standings import get_season_points
from f1stats.team_battles import get_team_battles
from f1stats.tyres import get_season_tyre_data

DEFAULT_YEARS = [2023, 2024, 2025]

PROCESSORS = {
    "standings": get_season_points,
    "tyres": get_season_tyre_data,
    "team-battles": get_team_battles,
}


async def run(years, kinds, data_dir: Path, force: bool = False) -> int:
    config = Config(data_dir=data_dir)
    cache = DataCache(str(config.data_dir))
    tokens = TokenProvider(
        username=config.openf1_username,
        password=config.openf1_password,
        api_key=config.openf1_api_key,
        token_url=config.token_url,
    )
    failures = 0

    async with OpenF1Client(
        base_url=config.api_url,
        token_provider=tokens,
        min_interval=config.request_interval_sec,
    ) as client:
        service = OpenF1Service(client, cache)
        for year in years:
            for kind in kinds:
                if force:
                    cache.path_for(kind, year).unlink(missing_ok=True)
                print(f"\n=== {kind} {year} ===")
                try:
                    result = await PROCESSORS[kind](service, year)
                except OpenF1Error as e:
                    print(f"Error processing {kind} for {year}: {e}")
                    failures += 1
                    continue
                print(f"{len(result)} entries saved to {cache.path_for(kind, year)}")

    return 1 if failures else 0


def main():
    parser = argparse.ArgumentParser(description="Process cached F1 season data")
    parser.add_argument("--years", type=int, nargs="+", default=DEFAULT_YEARS,
                        help="Seasons to process")
    parser.add_argument("--only", choices=sorted(PROCESSORS), action="append",
                        help="Restrict to one aggregate (repeatable)")
    parser.add_argument("--data-dir", type=Path, default=Path("data"),
                        help="Cache root directory")
    parser.add_argument("--force", action="store_true",
                        help="Recompute even if a processed file exists")
    args = parser.parse_args()

    kinds = args.only or list(PROCESSORS)
    return asyncio.run(run(args.years, kinds, args.data_dir, force=args.force))


if __name__ == "__main__":
    sys.exit(main())
