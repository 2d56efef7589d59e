"""
Weekly Points Orchestration

Runs the shared scoring engine (app/utils/scoring.py) in two places:

- the server path, triggered when a game result becomes final, which
  recomputes every member of each affected league and writes the
  WeeklyPoints result cache;
- the client path, used when the cache is missing or stale, which computes
  the same scores on demand and keeps them in Flask-Caching until the week's
  inputs change.

Both paths call the same aggregate() so they always agree.
"""

import math
import threading
from datetime import timezone

from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.models import GameResult, League, Pick, WeeklyPoints
from app.utils.cache_utils import (
    get_cached_weekly_points,
    invalidate_weekly_points,
    set_cached_weekly_points,
)
from app.utils.logging_config import ContextualLogger
from app.utils.scoring import (
    SCORING_VERSION,
    SOURCE_CLIENT,
    SOURCE_SERVER,
    aggregate,
    grade_picks_detailed,
    points_value,
)

SOURCE_SERVER_CACHED = "server-cached"
SOURCE_CLIENT_FALLBACK = "client-fallback"


class LeagueNotFound(LookupError):
    """No league with the requested code"""


def _naive_utc(value):
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _ranked(scores):
    return sorted(
        scores,
        key=lambda s: (-s["total_points"], -s["games_picked"], str(s["user_id"])),
    )


class ScoringService:
    """Server and client orchestration of weekly scoring"""

    def __init__(self):
        self.logger = ContextualLogger(__name__)
        self._pending = set()
        self._pending_lock = threading.Lock()

    # -- inputs ---------------------------------------------------------

    def get_league(self, league_code):
        league = League.get_by_code(league_code)
        if league is None:
            raise LeagueNotFound(f"League {league_code} not found")
        return league

    def _load_inputs(self, league, week, season):
        """Read-only snapshots of everything one computation needs"""
        picks = [p.to_snapshot() for p in Pick.get_for_league_week(league.code, week, season)]
        results = [r.to_snapshot() for r in GameResult.get_for_week(week, season)]

        user_ids = league.get_member_ids()
        # Picks from users who have since left still count for that week
        for pick in picks:
            if pick["user_id"] not in user_ids:
                user_ids.append(pick["user_id"])

        return league.to_scoring_context(), picks, results, user_ids

    def _compute(self, league, week, season, source, now=None):
        context, picks, results, user_ids = self._load_inputs(league, week, season)
        return [
            aggregate(
                context,
                picks,
                results,
                user_id,
                week=week,
                season=season,
                now=now,
                source=source,
            )
            for user_id in user_ids
        ]

    # -- server path ----------------------------------------------------

    def recompute_league_week(self, league_code, week, season, now=None):
        """
        Recompute and store every member's score for a league/week.

        Full replace: running it twice over the same inputs writes the same
        values.

        Returns:
            int: number of WeeklyPoints rows written
        """
        log = self.logger.bind(league=league_code, week=week, season=season)
        league = self.get_league(league_code)

        scores = self._compute(league, week, season, SOURCE_SERVER, now=now)
        for score in scores:
            WeeklyPoints.upsert(score)
        db.session.commit()

        invalidate_weekly_points(league_code, week, season)
        log.info(f"Recomputed weekly points for {len(scores)} users")

        from app.socketio_handlers import broadcast_weekly_points_updated

        broadcast_weekly_points_updated(
            league_code, week, season, _ranked([s.to_dict() for s in scores])
        )
        return len(scores)

    def on_game_final(self, game_id):
        """
        Recompute every league with a pick on a final game whose result
        just changed: it became final or picked up a late fallback line.

        Write failures are rolled back and queued for retry_pending(); they
        are never raised to the result ingestion caller.

        Returns:
            int: number of WeeklyPoints rows written
        """
        result = GameResult.query.filter_by(game_id=str(game_id)).first()
        if result is None or not result.is_final:
            self.logger.warning(f"Game {game_id} is not final, nothing to recompute")
            return 0

        week, season = result.week, result.season
        written = 0
        for league_code in Pick.get_league_codes_for_game(game_id, week):
            try:
                written += self.recompute_league_week(league_code, week, season)
            except SQLAlchemyError as e:
                db.session.rollback()
                self._queue(league_code, week, season)
                self.invalidate(league_code, week, season)
                self.logger.bind(league=league_code, week=week, season=season).error(
                    f"Recompute failed, queued for retry: {e}"
                )
        return written

    def _queue(self, league_code, week, season):
        with self._pending_lock:
            self._pending.add((league_code, week, season))

    @property
    def pending(self):
        with self._pending_lock:
            return sorted(self._pending)

    def retry_pending(self):
        """
        Re-run queued recomputations. Failures stay queued.

        Returns:
            tuple: (succeeded, failed)
        """
        with self._pending_lock:
            queued = sorted(self._pending)
            self._pending.clear()

        succeeded = failed = 0
        for league_code, week, season in queued:
            try:
                self.recompute_league_week(league_code, week, season)
                succeeded += 1
            except LeagueNotFound:
                self.logger.warning(f"Dropping retry for missing league {league_code}")
            except SQLAlchemyError as e:
                db.session.rollback()
                self._queue(league_code, week, season)
                failed += 1
                self.invalidate(league_code, week, season)
                self.logger.bind(league=league_code, week=week, season=season).error(
                    f"Retry failed: {e}"
                )

        if queued:
            self.logger.info(f"Retried {len(queued)} recomputations: {succeeded} ok, {failed} failed")
        return succeeded, failed

    # -- client path ----------------------------------------------------

    def compute_client_side(self, league, picks, results, user_id, week=None, season=None):
        """Same aggregation as the server path over caller-supplied inputs"""
        return aggregate(
            league, picks, results, user_id, week=week, season=season, source=SOURCE_CLIENT
        )

    def _cache_is_fresh(self, rows, league, week, season):
        if not rows:
            return False
        with self._pending_lock:
            if (league.code, week, season) in self._pending:
                return False
        if any(row.scoring_version != SCORING_VERSION for row in rows):
            return False

        cached_users = {row.user_id for row in rows}
        if not set(league.get_member_ids()) <= cached_users:
            return False

        latest = _naive_utc(GameResult.latest_finalization(week, season))
        if latest is not None:
            if any(_naive_utc(row.computed_at) < latest for row in rows):
                return False
        return True

    def get_weekly_points(self, league_code, week, season, fresh=False):
        """
        Weekly scores for every member of a league.

        Serves the result cache when it is current; otherwise computes the
        scores locally. Never waits on missing inputs: picks without a
        result or a line simply leave the score incomplete.

        Returns:
            dict: {"source": "server-cached" | "client-fallback", "data": [...]}
        """
        league = self.get_league(league_code)

        if not fresh:
            rows = WeeklyPoints.get_for_league_week(league_code, week, season)
            if self._cache_is_fresh(rows, league, week, season):
                return {
                    "source": SOURCE_SERVER_CACHED,
                    "data": [row.to_dict() for row in rows],
                }

            cached = get_cached_weekly_points(league_code, week, season)
            if cached is not None:
                return {"source": SOURCE_CLIENT_FALLBACK, "data": cached}

        scores = self._compute(league, week, season, SOURCE_CLIENT)
        data = _ranked([score.to_dict() for score in scores])
        set_cached_weekly_points(league_code, week, season, data)
        return {"source": SOURCE_CLIENT_FALLBACK, "data": data}

    def invalidate(self, league_code, week, season):
        """Signal that picks, locked lines or results for a week changed"""
        invalidate_weekly_points(league_code, week, season)

        from app.socketio_handlers import broadcast_weekly_points_invalidated

        broadcast_weekly_points_invalidated(league_code, week, season)

    def on_inputs_changed(self, league_code, week, season):
        """
        Picks or locked lines for a league/week changed.

        Stored rows are recomputed so the result cache never lags its inputs;
        without stored rows only the client-path cache is dropped.
        """
        exists = (
            WeeklyPoints.query.filter_by(league_code=league_code, week=week, season=season)
            .first()
            is not None
        )
        if not exists:
            self.invalidate(league_code, week, season)
            return 0

        try:
            return self.recompute_league_week(league_code, week, season)
        except SQLAlchemyError as e:
            db.session.rollback()
            self._queue(league_code, week, season)
            self.invalidate(league_code, week, season)
            self.logger.bind(league=league_code, week=week, season=season).error(
                f"Recompute after input change failed, queued for retry: {e}"
            )
            return 0

    def invalidate_week(self, week, season):
        """Invalidate every league holding picks for a week"""
        codes = (
            db.session.query(Pick.league_code)
            .filter(Pick.week == week, Pick.season == season)
            .distinct()
            .all()
        )
        for (league_code,) in codes:
            self.invalidate(league_code, week, season)
        return len(codes)

    # -- read models ----------------------------------------------------

    def diagnose(self, league_code, week, season, user_id):
        """Per-pick grading breakdown for one user, straight from the engine"""
        league = self.get_league(league_code)
        context, picks, results, _ = self._load_inputs(league, week, season)
        return grade_picks_detailed(context, picks, results, user_id)

    def get_leaderboard(self, league_code, week, season):
        """Cached rows ranked by points, then games picked"""
        self.get_league(league_code)
        leaderboard = []
        for rank, row in enumerate(
            WeeklyPoints.get_for_league_week(league_code, week, season), start=1
        ):
            leaderboard.append(
                {
                    "rank": rank,
                    "user_id": row.user_id,
                    "total_points": points_value(row.total_points),
                    "winner_correct": row.winner_correct,
                    "spread_correct": row.spread_correct,
                    "total_correct": row.total_correct,
                    "games_picked": row.games_picked,
                    "is_complete": row.is_complete,
                }
            )
        return leaderboard

    def get_user_weekly_stats(self, user_id, week, season):
        """Correct/incorrect totals across all of a user's leagues"""
        wins = losses = 0
        for row in WeeklyPoints.get_for_user_week(user_id, week, season):
            wins += (row.winner_correct or 0) + (row.spread_correct or 0) + (row.total_correct or 0)
            losses += (
                (row.winner_incorrect or 0)
                + (row.spread_incorrect or 0)
                + (row.total_incorrect or 0)
            )

        total = wins + losses
        # Halves round up
        win_percentage = math.floor(wins / total * 100 + 0.5) if total else 0
        return {
            "win_percentage": win_percentage,
            "overall_wins": wins,
            "overall_losses": losses,
        }


# Global scoring service instance
scoring_service = ScoringService()
