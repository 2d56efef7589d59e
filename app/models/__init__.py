from app import db  # noqa: F401 - imported for model imports

from .game_result import GameResult
from .league import League, LeagueMember
from .locked_line import LockedLine
from .pick import Pick
from .weekly_points import WeeklyPoints

__all__ = [
    "League",
    "LeagueMember",
    "Pick",
    "LockedLine",
    "GameResult",
    "WeeklyPoints",
]
