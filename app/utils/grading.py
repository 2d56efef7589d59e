"""
Pick grading for a single pick dimension

Each grader takes one selection (winner token, spread token or over/under
direction) and a final game result and returns one of the outcome
constants below. Missing lines and unknown teams are expected in real
sports data, so they are reported as outcomes instead of raised.

Results may be plain dicts (API payloads, cache snapshots) or GameResult
rows; both expose the same field names.
"""

from collections.abc import Mapping

from app.utils.lines import (
    AWAY,
    HOME,
    SpreadLine,
    normalize_direction,
    normalize_spread,
    normalize_token,
    normalize_total,
    spread_from_home_line,
)

CORRECT = "correct"
INCORRECT = "incorrect"
PUSH = "push"
UNGRADED = "ungraded"

TIE = "TIE"

# Shared by spread and total grading. Changing it changes every cached score.
PUSH_TOLERANCE = 1e-4

# Where a resolved line came from, reported by the detailed grader
SOURCE_LOCKED = "locked_line"
SOURCE_LOCKED_NUMERIC = "locked_line_numeric"
SOURCE_RESULT = "result_numeric"


def result_field(result, name, default=None):
    """Read a field from a result dict or model"""
    if isinstance(result, Mapping):
        return result.get(name, default)
    return getattr(result, name, default)


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _scores(result):
    return int(result_field(result, "home_score")), int(
        result_field(result, "away_score")
    )


def resolve_spread_line(locked_spread, result):
    """
    Resolve the spread used for grading.

    The league's locked line wins; the result's home-perspective numeric
    line is only consulted when the locked line is missing or unparseable.

    Returns:
        tuple: (SpreadLine or None, source or None)
    """
    parsed = normalize_spread(
        locked_spread,
        result_field(result, "home_team"),
        result_field(result, "away_team"),
    )
    if parsed is not None:
        source = SOURCE_LOCKED
        if isinstance(locked_spread, str) and locked_spread.strip()[:1] in "+-":
            source = SOURCE_LOCKED_NUMERIC
        return parsed, source

    fallback = result_field(result, "spread_line")
    if _is_number(fallback):
        return spread_from_home_line(fallback), SOURCE_RESULT

    return None, None


def resolve_total_line(locked_total, result):
    """Resolve the over/under line, locked line first. Returns (line, source)."""
    line = normalize_total(locked_total)
    if line is not None:
        return line, SOURCE_LOCKED

    fallback = result_field(result, "total_line")
    if _is_number(fallback):
        return float(fallback), SOURCE_RESULT

    return None, None


def grade_winner(picked_token, result):
    """Grade a straight-up (moneyline) pick. Never ungraded."""
    winner = normalize_token(result_field(result, "winner"))
    if winner == TIE:
        return PUSH
    if normalize_token(picked_token) == winner:
        return CORRECT
    return INCORRECT


def spread_margin(spread_line, result):
    """Home margin after applying the line; positive means home covered."""
    home_score, away_score = _scores(result)
    if spread_line.favored_side == HOME:
        home_signed = -spread_line.line
    else:
        home_signed = spread_line.line
    return (home_score - away_score) + home_signed


def grade_spread(picked_token, spread_line, result):
    """
    Grade a spread pick.

    Args:
        picked_token: team the user took against the spread
        spread_line: SpreadLine from normalize_spread, or None to fall back
            to the result's numeric spread_line
        result: final game result

    Returns:
        str: one of CORRECT, INCORRECT, PUSH, UNGRADED
    """
    if spread_line is None:
        spread_line, _ = resolve_spread_line(None, result)
        if spread_line is None:
            return UNGRADED
    elif not isinstance(spread_line, SpreadLine):
        spread_line = SpreadLine(*spread_line)

    adjusted = spread_margin(spread_line, result)
    if abs(adjusted) < PUSH_TOLERANCE:
        return PUSH

    covering_team = (
        result_field(result, "home_team")
        if adjusted > 0
        else result_field(result, "away_team")
    )
    if normalize_token(picked_token) == normalize_token(covering_team):
        return CORRECT
    return INCORRECT


def grade_total(picked_direction, total_line, result):
    """Grade an over/under pick against the combined final score."""
    if total_line is None:
        total_line, _ = resolve_total_line(None, result)
        if total_line is None:
            return UNGRADED

    home_score, away_score = _scores(result)
    combined = home_score + away_score
    direction = normalize_direction(picked_direction)

    if abs(combined - total_line) < PUSH_TOLERANCE:
        return PUSH
    if (combined > total_line and direction == "over") or (
        combined < total_line and direction == "under"
    ):
        return CORRECT
    return INCORRECT


def covering_side(spread_line, result):
    """'home', 'away' or 'push' for diagnostics"""
    adjusted = spread_margin(spread_line, result)
    if abs(adjusted) < PUSH_TOLERANCE:
        return PUSH
    return HOME if adjusted > 0 else AWAY
