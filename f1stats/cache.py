"""
JSON file cache for season data, keyed by data kind and year.
"""

import json
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, List, Optional

# Raw API dumps vs. aggregates computed from them
RAW_KINDS = ("seasons", "drivers")
PROCESSED_KINDS = ("standings", "tyres", "team-battles")


def to_jsonable(data: Any) -> Any:
    """Convert dataclasses (and lists of them) into plain JSON structures."""
    if is_dataclass(data) and not isinstance(data, type):
        return asdict(data)
    if isinstance(data, (list, tuple)):
        return [to_jsonable(item) for item in data]
    if isinstance(data, dict):
        return {key: to_jsonable(value) for key, value in data.items()}
    return data


class DataCache:
    """Stores JSON blobs under <root>/raw/<kind>/<year>.json and <root>/processed/..."""

    def __init__(self, root: str = "./data"):
        self.root = Path(root)

    def path_for(self, kind: str, year: int) -> Path:
        """File path for a kind/year pair."""
        if kind in RAW_KINDS:
            group = "raw"
        elif kind in PROCESSED_KINDS:
            group = "processed"
        else:
            raise ValueError(f"Unknown cache kind: {kind}")
        return self.root / group / kind / f"{year}.json"

    def read(self, kind: str, year: int) -> Optional[Any]:
        """
        Read a cached blob.

        Returns:
            Parsed JSON, or None on a miss or an unreadable file.
        """
        path = self.path_for(kind, year)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            print(f"[Cache] Failed to read {path}: {e}")
            return None

    def write(self, kind: str, year: int, data: Any) -> Optional[Path]:
        """
        Write a blob to the cache.

        Returns:
            Path written, or None if the write failed.
        """
        path = self.path_for(kind, year)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(to_jsonable(data), f, indent=2)
        except (OSError, TypeError, ValueError) as e:
            print(f"[Cache] Failed to write {path}: {e}")
            return None
        return path

    def available_seasons(self) -> List[int]:
        """Years with a cached season schedule, newest first."""
        seasons_dir = self.root / "raw" / "seasons"
        if not seasons_dir.is_dir():
            return []
        years = []
        for f in seasons_dir.glob("*.json"):
            if f.stem.isdigit():
                years.append(int(f.stem))
        return sorted(years, reverse=True)
