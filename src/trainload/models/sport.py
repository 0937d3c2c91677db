"""
Sport mode mapping.

Maps free-form activity type labels (as delivered by Strava, Garmin or file
imports) to three primary sport groups:
- running (walking, hiking, trail running, treadmill, ...)
- cycling (all bike types, virtual rides, gravel, mountain, ...)
- swimming (pool, open water, lap swimming, ...)
"""
from enum import Enum


class SportMode(str, Enum):
    """Primary sport group."""
    RUNNING = "running"
    CYCLING = "cycling"
    SWIMMING = "swimming"


class Objective(str, Enum):
    """Direction in which a mean-maximal value is better."""
    MAXIMIZE = "maximize"
    MINIMIZE = "minimize"

    def better(self, candidate: float, current: float) -> bool:
        """True if candidate strictly beats current."""
        if self is Objective.MAXIMIZE:
            return candidate > current
        return candidate < current


_SPORT_GROUPS: dict[SportMode, tuple[str, ...]] = {
    SportMode.RUNNING: (
        "running", "run", "walk", "walking", "hike", "hiking",
        "trail_run", "trailrun", "virtual_run", "virtualrun",
        "treadmill", "treadmill_running", "train_running",
    ),
    SportMode.CYCLING: (
        "cycling", "ride", "virtual_ride", "virtualride",
        "e_bike_ride", "ebikeride", "e_mountain_bike_ride",
        "mountain_bike_ride", "mountainbikeride", "gravel_ride",
        "gravelride", "handcycle",
    ),
    SportMode.SWIMMING: (
        "swimming", "swim", "pool_swim", "open_water_swim", "lap_swimming",
    ),
}

_SPORT_MODE_MAP: dict[str, SportMode] = {
    label: mode for mode, labels in _SPORT_GROUPS.items() for label in labels
}


def normalize_sport_mode(sport: str | SportMode | None) -> SportMode:
    """
    Normalize any sport label to its primary sport group.

    Unknown or empty labels fall back to cycling.

    Args:
        sport: Sport label, e.g. 'VirtualRide', 'walk', 'Trail Run'

    Returns:
        The primary SportMode
    """
    if isinstance(sport, SportMode):
        return sport
    if not sport:
        return SportMode.CYCLING

    key = sport.strip().lower().replace(" ", "_").replace("-", "_")
    if key in _SPORT_MODE_MAP:
        return _SPORT_MODE_MAP[key]
    return _SPORT_MODE_MAP.get(key.replace("_", ""), SportMode.CYCLING)
