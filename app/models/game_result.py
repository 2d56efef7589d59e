from datetime import datetime, timezone

from app import db
from app.utils.grading import TIE


class GameResult(db.Model):
    """Authoritative outcome of one game, as reported by the scores feed"""

    __tablename__ = "game_results"

    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.String(50), nullable=False, unique=True, index=True)
    week = db.Column(db.Integer, nullable=False)
    season = db.Column(db.Integer, nullable=False)

    # Teams and scores
    home_team = db.Column(db.String(10), nullable=False)
    away_team = db.Column(db.String(10), nullable=False)
    home_score = db.Column(db.Integer, nullable=False, default=0)
    away_score = db.Column(db.Integer, nullable=False, default=0)

    # Winner token: home_team, away_team or "TIE"
    winner = db.Column(db.String(10))

    # Numeric fallback lines used when a league has no locked line
    spread_line = db.Column(db.Float)  # home perspective, negative = home favored
    total_line = db.Column(db.Float)

    # Status
    is_final = db.Column(db.Boolean, default=False, nullable=False)
    finalized_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("idx_game_result_week", "week", "season"),
        db.Index("idx_game_result_final", "is_final"),
        db.CheckConstraint("home_score >= 0 AND away_score >= 0", name="non_negative_scores"),
    )

    def __repr__(self):
        return (
            f"<GameResult {self.game_id} {self.away_team} {self.away_score} @ "
            f"{self.home_team} {self.home_score}{' FINAL' if self.is_final else ''}>"
        )

    @staticmethod
    def compute_winner(home_team, away_team, home_score, away_score):
        """Winner token for a score line"""
        if home_score > away_score:
            return home_team
        if away_score > home_score:
            return away_team
        return TIE

    @property
    def margin(self):
        return self.home_score - self.away_score

    @property
    def combined_score(self):
        return self.home_score + self.away_score

    @staticmethod
    def record(
        game_id,
        week,
        season,
        home_team,
        away_team,
        home_score,
        away_score,
        is_final,
        spread_line=None,
        total_line=None,
    ):
        """
        Insert or update a game result from the feed.

        A final result is never reverted to non-final. Fallback lines are only
        filled in, never cleared.

        Returns:
            tuple: (GameResult, became_final, lines_filled) where lines_filled
            is True when a fallback line arrived for an already-final game
        """
        if home_score is None or away_score is None:
            raise ValueError(f"Game {game_id}: scores are required")
        if home_score < 0 or away_score < 0:
            raise ValueError(f"Game {game_id}: scores must be non-negative")

        result = GameResult.query.filter_by(game_id=str(game_id)).first()
        if result is None:
            result = GameResult(game_id=str(game_id), is_final=False)
            db.session.add(result)

        if result.is_final:
            # Final results are immutable apart from late fallback lines
            lines_filled = False
            if result.spread_line is None and spread_line is not None:
                result.spread_line = spread_line
                lines_filled = True
            if result.total_line is None and total_line is not None:
                result.total_line = total_line
                lines_filled = True
            return result, False, lines_filled

        result.week = week
        result.season = season
        result.home_team = home_team
        result.away_team = away_team
        result.home_score = int(home_score)
        result.away_score = int(away_score)
        if spread_line is not None:
            result.spread_line = spread_line
        if total_line is not None:
            result.total_line = total_line

        became_final = bool(is_final)
        if became_final:
            result.is_final = True
            result.winner = GameResult.compute_winner(
                home_team, away_team, result.home_score, result.away_score
            )
            result.finalized_at = datetime.now(timezone.utc)

        return result, became_final, False

    @staticmethod
    def get_for_week(week, season, final_only=True):
        query = GameResult.query.filter_by(week=week, season=season)
        if final_only:
            query = query.filter(GameResult.is_final.is_(True))
        return query.order_by(GameResult.game_id).all()

    @staticmethod
    def latest_finalization(week, season):
        """Most recent finalized_at for a week, or None"""
        return (
            db.session.query(db.func.max(GameResult.finalized_at))
            .filter_by(week=week, season=season, is_final=True)
            .scalar()
        )

    def to_snapshot(self):
        """Plain dict used by the scoring engine"""
        return {
            "game_id": self.game_id,
            "week": self.week,
            "season": self.season,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "winner": self.winner,
            "spread_line": self.spread_line,
            "total_line": self.total_line,
            "is_final": self.is_final,
        }

    def to_dict(self):
        """Convert result to dictionary for API responses"""
        data = self.to_snapshot()
        data["finalized_at"] = self.finalized_at.isoformat() if self.finalized_at else None
        return data
