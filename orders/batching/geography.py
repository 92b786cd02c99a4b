"""
Purpose: County adjacency used for geographic batching.
What it does:
- Holds a county -> neighbouring counties table as configuration data
- Answers "same county?" / "adjacent county?" symmetrically and case-insensitively
- Can be loaded from a JSON file ({"County": ["Neighbour", ...], ...}),
  or from the file named by COUNTY_ADJACENCY_PATH

The built-in table is a small UK sample, not an exhaustive map.

Rule: No batching decisions here, only lookups.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Set, Union

from dotenv import load_dotenv

DEFAULT_UK_ADJACENCY: Dict[str, List[str]] = {
    "Greater London": ["Surrey", "Kent", "Essex", "Hertfordshire"],
    "Surrey": ["Greater London", "Kent", "West Sussex", "Hampshire", "Berkshire"],
    "Kent": ["Greater London", "Surrey", "East Sussex"],
    "Essex": ["Greater London", "Hertfordshire", "Suffolk", "Cambridgeshire"],
    "Birmingham": ["Warwickshire", "Staffordshire", "Worcestershire"],
    "Manchester": ["Lancashire", "Cheshire", "Derbyshire"],
    "Liverpool": ["Merseyside", "Lancashire", "Cheshire"],
    "Leeds": ["West Yorkshire", "North Yorkshire", "Lancashire"],
    "Sheffield": ["South Yorkshire", "Derbyshire", "Nottinghamshire"],
    "Bristol": ["Somerset", "Gloucestershire", "South Gloucestershire"],
    "Newcastle": ["Northumberland", "Durham", "Cumbria"],
    "Cardiff": ["Vale of Glamorgan", "Rhondda Cynon Taf", "Caerphilly"],
    "Edinburgh": ["Midlothian", "East Lothian", "West Lothian"],
    "Glasgow": ["East Dunbartonshire", "North Lanarkshire", "South Lanarkshire"],
    "Belfast": ["County Antrim", "County Down"],
}


def _norm(county: Optional[str]) -> str:
    return (county or "").strip().casefold()


class CountyAdjacency:
    """
    Symmetric adjacency lookup: if A lists B, B is adjacent to A too.
    """
    def __init__(self, table: Mapping[str, Iterable[str]]):
        self._neighbours: Dict[str, Set[str]] = {}
        for county, neighbours in table.items():
            for neighbour in neighbours:
                a, b = _norm(county), _norm(neighbour)
                if not a or not b or a == b:
                    continue
                self._neighbours.setdefault(a, set()).add(b)
                self._neighbours.setdefault(b, set()).add(a)

    @classmethod
    def default(cls) -> CountyAdjacency:
        return cls(DEFAULT_UK_ADJACENCY)

    @classmethod
    def from_json(cls, path: Union[Path, str]) -> CountyAdjacency:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"County adjacency file {path} must contain a JSON object")
        return cls(data)

    @classmethod
    def from_env(cls) -> CountyAdjacency:
        """
        Use COUNTY_ADJACENCY_PATH when set, otherwise the built-in sample table.
        """
        load_dotenv()
        path = os.getenv("COUNTY_ADJACENCY_PATH")
        if path:
            return cls.from_json(path)
        return cls.default()

    def same_county(self, a: Optional[str], b: Optional[str]) -> bool:
        return bool(_norm(a)) and _norm(a) == _norm(b)

    def are_adjacent(self, a: Optional[str], b: Optional[str]) -> bool:
        return _norm(b) in self._neighbours.get(_norm(a), set())

    def __contains__(self, county: str) -> bool:
        return _norm(county) in self._neighbours
