"""
Scoring Engine for the Pick'em weekly results

This module folds one user's picks for a league/week into a WeeklyScore.
It is the single implementation shared by the server recomputation job
(app/services/scoring_service.py) and the client-side fallback, so the
two can never disagree. Nothing in here touches Flask or the database;
callers pass plain snapshots of picks, results and the league.

Bump SCORING_VERSION whenever grading semantics change: cached rows
stamped with an older version are treated as stale and recomputed.
"""

from collections.abc import Mapping
from datetime import datetime, timezone

from app.utils.grading import (
    CORRECT,
    INCORRECT,
    PUSH,
    UNGRADED,
    covering_side,
    grade_spread,
    grade_total,
    grade_winner,
    resolve_spread_line,
    resolve_total_line,
    result_field,
    spread_margin,
)
from app.utils.league_settings import normalize_league_settings
from app.utils.lines import normalize_direction, normalize_token

SCORING_VERSION = 2

DIMENSIONS = ("winner", "spread", "total")

SOURCE_SERVER = "server-computed"
SOURCE_CLIENT = "client-computed"


def points_value(points):
    """Whole-number totals serialize as ints on both paths"""
    if isinstance(points, float) and points.is_integer():
        return int(points)
    return points


class ScoringWeights:
    """Points awarded per correct pick in each dimension"""

    def __init__(self, winner=1, spread=1, total=1):
        for name, value in (("winner", winner), ("spread", spread), ("total", total)):
            if value < 0:
                raise ValueError(f"Scoring weight for {name} must be non-negative")
        self.winner = winner
        self.spread = spread
        self.total = total

    @classmethod
    def from_league(cls, league):
        context = league_context(league)
        settings = normalize_league_settings(
            context.get("type"), context.get("settings")
        )
        return cls(**settings["scoring"])

    def scaled(self, factor):
        return ScoringWeights(
            self.winner * factor, self.spread * factor, self.total * factor
        )

    def for_dimension(self, dimension):
        return getattr(self, dimension)

    def to_dict(self):
        return {"winner": self.winner, "spread": self.spread, "total": self.total}

    def __eq__(self, other):
        return isinstance(other, ScoringWeights) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"<ScoringWeights winner={self.winner} spread={self.spread} total={self.total}>"


class WeeklyScore:
    """Computed aggregate for one (user, league, week, season)"""

    COUNTERS = (
        "winner_correct",
        "winner_incorrect",
        "spread_correct",
        "spread_incorrect",
        "spread_push",
        "total_correct",
        "total_incorrect",
        "total_push",
        "games_picked",
        "games_graded",
    )

    def __init__(
        self,
        user_id,
        league_code=None,
        week=None,
        season=None,
        scoring_weights=None,
        computed_at=None,
        source=SOURCE_SERVER,
    ):
        self.user_id = user_id
        self.league_code = league_code
        self.week = week
        self.season = season
        self.scoring_weights = scoring_weights or ScoringWeights()
        self.total_points = 0
        for counter in self.COUNTERS:
            setattr(self, counter, 0)
        self.is_complete = True
        self.scoring_version = SCORING_VERSION
        self.computed_at = computed_at
        self.source = source

    def record(self, dimension, outcome):
        """Apply one graded dimension to the counters and running total"""
        if outcome == CORRECT:
            setattr(self, f"{dimension}_correct", getattr(self, f"{dimension}_correct") + 1)
            self.total_points += self.scoring_weights.for_dimension(dimension)
        elif outcome == INCORRECT:
            setattr(
                self, f"{dimension}_incorrect", getattr(self, f"{dimension}_incorrect") + 1
            )
        elif outcome == PUSH and dimension != "winner":
            # A tied game voids a winner pick without a counter
            setattr(self, f"{dimension}_push", getattr(self, f"{dimension}_push") + 1)

    @property
    def correct(self):
        return self.winner_correct + self.spread_correct + self.total_correct

    @property
    def incorrect(self):
        return self.winner_incorrect + self.spread_incorrect + self.total_incorrect

    def to_dict(self, include_timestamp=True):
        data = {
            "user_id": self.user_id,
            "league_code": self.league_code,
            "week": self.week,
            "season": self.season,
            "total_points": points_value(self.total_points),
        }
        for counter in self.COUNTERS:
            data[counter] = getattr(self, counter)
        data["is_complete"] = self.is_complete
        data["scoring_weights"] = self.scoring_weights.to_dict()
        data["scoring_version"] = self.scoring_version
        data["source"] = self.source
        if include_timestamp:
            data["computed_at"] = (
                self.computed_at.isoformat() if self.computed_at else None
            )
        return data

    def __repr__(self):
        return (
            f"<WeeklyScore user={self.user_id} league={self.league_code} "
            f"week={self.week} points={self.total_points} complete={self.is_complete}>"
        )


def league_context(league):
    """Plain mapping view of a league (dict or League model)"""
    if hasattr(league, "to_scoring_context"):
        return league.to_scoring_context()
    if isinstance(league, Mapping):
        return league
    raise TypeError(f"Unsupported league type: {type(league).__name__}")


def _locked_entry(context, game_id):
    locked = context.get("locked_lines") or {}
    entry = locked.get(str(game_id))
    if entry is None:
        entry = locked.get(game_id)
    return entry or {}


def _locked_total(entry):
    # Older clients wrote the camelCase key
    value = entry.get("over_under")
    if value is None:
        value = entry.get("overUnder")
    return value


def _pick_field(pick, name):
    if isinstance(pick, Mapping):
        return pick.get(name)
    return getattr(pick, name, None)


def _final_results_by_game(results):
    by_game = {}
    for result in results or []:
        if not result_field(result, "is_final"):
            continue
        by_game.setdefault(str(result_field(result, "game_id")), result)
    return by_game


def _user_picks(picks, user_id):
    return [p for p in picks or [] if str(_pick_field(p, "user_id")) == str(user_id)]


def grade_pick(pick, result, locked_entry):
    """
    Grade every present dimension of one pick.

    Returns:
        dict: dimension -> outcome, only for dimensions the pick has
    """
    outcomes = {}

    winner = _pick_field(pick, "winner")
    if winner:
        outcomes["winner"] = grade_winner(winner, result)

    spread = _pick_field(pick, "spread")
    if spread:
        spread_line, _ = resolve_spread_line(locked_entry.get("spread"), result)
        outcomes["spread"] = (
            UNGRADED if spread_line is None else grade_spread(spread, spread_line, result)
        )

    total = _pick_field(pick, "total")
    if total:
        total_line, _ = resolve_total_line(_locked_total(locked_entry), result)
        outcomes["total"] = (
            UNGRADED if total_line is None else grade_total(total, total_line, result)
        )

    return outcomes


def aggregate(
    league,
    picks,
    results,
    user_id,
    week=None,
    season=None,
    now=None,
    source=SOURCE_SERVER,
):
    """
    Compute a user's WeeklyScore for one league/week.

    Args:
        league: League model or mapping with code, type, settings, locked_lines
        picks: picks for the league/week (any users; filtered to user_id)
        results: game results for the week; non-final ones are ignored
        user_id: user to score
        week, season: stamped on the score; taken from the picks when omitted
        now: computation timestamp (defaults to the current UTC time)
        source: provenance label stored on the score

    Returns:
        WeeklyScore
    """
    context = league_context(league)
    user_picks = _user_picks(picks, user_id)
    results_by_game = _final_results_by_game(results)

    if user_picks:
        week = week if week is not None else _pick_field(user_picks[0], "week")
        season = season if season is not None else _pick_field(user_picks[0], "season")

    score = WeeklyScore(
        user_id,
        league_code=context.get("code"),
        week=week,
        season=season,
        scoring_weights=ScoringWeights.from_league(context),
        computed_at=now or datetime.now(timezone.utc),
        source=source,
    )

    tainted = False
    for pick in user_picks:
        score.games_picked += 1

        game_id = str(_pick_field(pick, "game_id"))
        result = results_by_game.get(game_id)
        if result is None:
            continue

        outcomes = grade_pick(pick, result, _locked_entry(context, game_id))

        if any(outcome != UNGRADED for outcome in outcomes.values()):
            score.games_graded += 1
        if UNGRADED in outcomes.values():
            tainted = True

        for dimension in DIMENSIONS:
            if dimension in outcomes:
                score.record(dimension, outcomes[dimension])

    score.is_complete = not tainted and score.games_graded == score.games_picked
    return score


def grade_picks_detailed(league, picks, results, user_id):
    """
    Per-pick grading breakdown for diagnostics.

    Returns one dict per pick of the user with the locked strings, the
    resolved lines and where they came from, and the outcome of each
    dimension. Uses the same resolution and grading as aggregate().
    """
    context = league_context(league)
    results_by_game = _final_results_by_game(results)
    rows = []

    for pick in _user_picks(picks, user_id):
        game_id = str(_pick_field(pick, "game_id"))
        result = results_by_game.get(game_id)
        entry = _locked_entry(context, game_id)

        row = {
            "game_id": game_id,
            "winner_pick": _pick_field(pick, "winner"),
            "spread_pick": _pick_field(pick, "spread"),
            "total_pick": _pick_field(pick, "total"),
            "picked_team": normalize_token(_pick_field(pick, "spread")),
            "picked_direction": normalize_direction(_pick_field(pick, "total")),
            "locked_spread": entry.get("spread"),
            "locked_total": _locked_total(entry),
            "is_final": result is not None,
            "spread_parsed": None,
            "spread_source": None,
            "spread_adjusted": None,
            "spread_cover": None,
            "total_parsed": None,
            "total_source": None,
            "outcomes": {},
        }

        if result is not None:
            row.update(
                {
                    "home_team": result_field(result, "home_team"),
                    "away_team": result_field(result, "away_team"),
                    "home_score": result_field(result, "home_score"),
                    "away_score": result_field(result, "away_score"),
                    "winner": result_field(result, "winner"),
                }
            )

            spread_line, spread_source = resolve_spread_line(entry.get("spread"), result)
            if spread_line is not None:
                row["spread_parsed"] = spread_line._asdict()
                row["spread_source"] = spread_source
                row["spread_adjusted"] = spread_margin(spread_line, result)
                row["spread_cover"] = covering_side(spread_line, result)

            total_line, total_source = resolve_total_line(_locked_total(entry), result)
            row["total_parsed"] = total_line
            row["total_source"] = total_source

            row["outcomes"] = grade_pick(pick, result, entry)

        rows.append(row)

    return rows
