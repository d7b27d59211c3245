# gnarhub/constants/mountains.py
"""
Mountains a session can be posted at.

Keyed by mountain id; the display name is what notifications show.
"""

from typing import Dict, List, NamedTuple, Optional


class Mountain(NamedTuple):
    id: str
    name: str
    state: str
    passes: List[str]
    region: str


MOUNTAINS: Dict[str, Mountain] = {
    m.id: m
    for m in [
        Mountain("loon", "Loon Mountain", "NH", ["ikon"], "icecoast"),
        Mountain("sunday-river", "Sunday River", "ME", ["ikon"], "icecoast"),
        Mountain("sugarloaf", "Sugarloaf", "ME", ["ikon"], "icecoast"),
        Mountain("killington", "Killington", "VT", ["ikon"], "icecoast"),
        Mountain("sugarbush", "Sugarbush", "VT", ["ikon"], "icecoast"),
        Mountain("stratton", "Stratton", "VT", ["ikon"], "icecoast"),
        Mountain("mount-snow", "Mount Snow", "VT", ["epic"], "icecoast"),
        Mountain("okemo", "Okemo", "VT", ["epic"], "icecoast"),
        Mountain("stowe", "Stowe", "VT", ["epic"], "icecoast"),
        Mountain("jay-peak", "Jay Peak", "VT", ["indy"], "icecoast"),
        Mountain("cannon", "Cannon Mountain", "NH", ["indy"], "icecoast"),
        Mountain("bretton-woods", "Bretton Woods", "NH", ["ikon"], "icecoast"),
        Mountain("waterville", "Waterville Valley", "NH", ["ikon"], "icecoast"),
        Mountain("wachusett", "Wachusett", "MA", ["epic"], "icecoast"),
    ]
}


def get_mountain(mountain_id: str) -> Optional[Mountain]:
    return MOUNTAINS.get(mountain_id)


def mountain_name(mountain_id: str) -> str:
    """Display name for notifications; unknown ids fall back to 'Unknown'."""
    mountain = MOUNTAINS.get(mountain_id)
    return mountain.name if mountain else "Unknown"


def get_mountains_by_pass(pass_name: str) -> List[Mountain]:
    return [m for m in MOUNTAINS.values() if pass_name in m.passes]
