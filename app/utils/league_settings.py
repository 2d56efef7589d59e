"""
League settings normalization

Leagues store free-form settings written by several client versions. This
module folds the legacy fields into one canonical shape so the scoring
engine, the line-lock snapshot and the API all read the same values.
"""

LEAGUE_TYPE_INDIVIDUAL = "individual"
LEAGUE_TYPE_FREE_FOR_ALL = "freeForAll"
LEAGUE_TYPE_SURVIVOR = "survivor"
LEAGUE_TYPE_HEAD_TO_HEAD = "headToHead"
LEAGUE_TYPE_MONEYLINE_MANIA = "moneylineMania"

LEAGUE_TYPES = (
    LEAGUE_TYPE_INDIVIDUAL,
    LEAGUE_TYPE_FREE_FOR_ALL,
    LEAGUE_TYPE_SURVIVOR,
    LEAGUE_TYPE_HEAD_TO_HEAD,
    LEAGUE_TYPE_MONEYLINE_MANIA,
)

# Leagues that only grade straight-up winners
WINNER_ONLY_LEAGUE_TYPES = (LEAGUE_TYPE_MONEYLINE_MANIA,)

DEFAULT_SCORING = {"winner": 1, "spread": 1, "total": 1}
DEFAULT_LOCK_OFFSET_MINUTES = 60
DEFAULT_TIEBREAKER = "totalPoints"


def _number(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value == value:  # NaN check
        return value
    return None


def _lock_offset_minutes(raw):
    explicit = _number(raw.get("lockOffsetMinutes"))
    if explicit is not None:
        return max(0, explicit)

    hours = _number(raw.get("lineLockTime"))
    if hours is not None:
        return max(0, round(hours * 60))

    # "opening" and anything unrecognized lock an hour before kickoff
    return DEFAULT_LOCK_OFFSET_MINUTES


def _scoring(league_type, raw):
    if league_type in WINNER_ONLY_LEAGUE_TYPES:
        winner = _number((raw.get("scoring") or {}).get("winner"))
        return {
            "winner": DEFAULT_SCORING["winner"] if winner is None else winner,
            "spread": 0,
            "total": 0,
        }

    scoring = raw.get("scoring") or {}
    weights = {}
    for dimension, default in DEFAULT_SCORING.items():
        value = _number(scoring.get(dimension))
        if value is None:
            value = default
        if value < 0:
            raise ValueError(f"Scoring weight for {dimension} must be non-negative")
        weights[dimension] = value
    return weights


def normalize_league_settings(league_type, raw_settings=None):
    """
    Normalize raw league settings.

    Args:
        league_type: one of LEAGUE_TYPES
        raw_settings: settings dict as stored on the league (may be None)

    Returns:
        dict: lockOffsetMinutes, scoring, visibility, pickDeadlineOffset,
        tiebreaker, seasonMode, showOthersPicks, original
    """
    raw = dict(raw_settings or {})

    return {
        "lockOffsetMinutes": _lock_offset_minutes(raw),
        "scoring": _scoring(league_type, raw),
        "visibility": "public" if raw.get("visibility") == "public" else "private",
        "pickDeadlineOffset": _number(raw.get("pickDeadlineOffset")) or 0,
        "tiebreaker": raw.get("tiebreaker") or DEFAULT_TIEBREAKER,
        "seasonMode": raw.get("seasonMode") or "regular",
        "showOthersPicks": bool(raw.get("showOthersPicks")),
        "original": raw,
    }
