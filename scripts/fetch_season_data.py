"""
Fetch season schedules and rosters from OpenF1 into the local data cache.

Usage:
    python scripts/fetch_season_data.py
    python scripts/fetch_season_data.py --years 2024 2025 --data-dir data
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
from f1stats.schedule import fetch_season

DEFAULT_YEARS = [2023, 2024, 2025]


async def run(years, data_dir: Path) -> int:
    config = Config(data_dir=data_dir)
    tokens = TokenProvider(
        username=config.openf1_username,
        password=config.openf1_password,
        api_key=config.openf1_api_key,
        token_url=config.token_url,
    )
    cache = DataCache(str(config.data_dir))
    failures = 0

    async with OpenF1Client(
        base_url=config.api_url,
        token_provider=tokens,
        min_interval=config.request_interval_sec,
    ) as client:
        service = OpenF1Service(client, cache)
        for year in years:
            try:
                await fetch_season(service, cache, year)
            except OpenF1Error as e:
                print(f"Error fetching season {year}: {e}")
                failures += 1

    return 1 if failures else 0


def main():
    parser = argparse.ArgumentParser(description="Fetch OpenF1 season data")
    parser.add_argument("--years", type=int, nargs="+", default=DEFAULT_YEARS,
                        help="Seasons to fetch")
    parser.add_argument("--data-dir", type=Path, default=Path("data"),
                        help="Cache root directory")
    args = parser.parse_args()

    return asyncio.run(run(args.years, args.data_dir))


if __name__ == "__main__":
    sys.exit(main())
