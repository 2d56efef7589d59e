from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from app import db
from app.utils.scoring import WeeklyScore, points_value


class WeeklyPoints(db.Model):
    """Result cache: computed WeeklyScore per (user, league, week, season)"""

    __tablename__ = "weekly_points"

    id = db.Column(db.Integer, primary_key=True)
    league_code = db.Column(db.String(20), nullable=False)
    user_id = db.Column(db.String(64), nullable=False)
    week = db.Column(db.Integer, nullable=False)
    season = db.Column(db.Integer, nullable=False)

    # Computed totals
    total_points = db.Column(db.Float, nullable=False, default=0.0)

    # Breakdown by pick type
    winner_correct = db.Column(db.Integer, default=0)
    winner_incorrect = db.Column(db.Integer, default=0)
    spread_correct = db.Column(db.Integer, default=0)
    spread_incorrect = db.Column(db.Integer, default=0)
    spread_push = db.Column(db.Integer, default=0)
    total_correct = db.Column(db.Integer, default=0)
    total_incorrect = db.Column(db.Integer, default=0)
    total_push = db.Column(db.Integer, default=0)

    # Metadata
    games_picked = db.Column(db.Integer, default=0)
    games_graded = db.Column(db.Integer, default=0)
    is_complete = db.Column(db.Boolean, default=False)

    # Weights used for this computation (audit trail)
    scoring_weights = db.Column(db.JSON)
    scoring_version = db.Column(db.Integer, nullable=False)

    computed_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "league_code", "week", "season", name="unique_weekly_points"
        ),
        db.Index("idx_weekly_points_league_week", "league_code", "week", "season"),
        db.Index("idx_weekly_points_user", "user_id"),
    )

    def __repr__(self):
        return (
            f"<WeeklyPoints {self.league_code} week {self.week} user={self.user_id} "
            f"points={self.total_points}>"
        )

    def apply(self, score):
        """Replace every computed field with the values of a WeeklyScore"""
        self.total_points = score.total_points
        for counter in WeeklyScore.COUNTERS:
            setattr(self, counter, getattr(score, counter))
        self.is_complete = score.is_complete
        self.scoring_weights = score.scoring_weights.to_dict()
        self.scoring_version = score.scoring_version
        self.computed_at = score.computed_at

    @staticmethod
    def upsert(score):
        """
        Write a WeeklyScore, replacing any existing row for the same key.

        Concurrent writers for one key are last-writer-wins; an insert that
        loses a race is retried as an update.
        """
        key = {
            "user_id": score.user_id,
            "league_code": score.league_code,
            "week": score.week,
            "season": score.season,
        }
        row = WeeklyPoints.query.filter_by(**key).first()
        if row is None:
            row = WeeklyPoints(**key)
            row.apply(score)
            try:
                with db.session.begin_nested():
                    db.session.add(row)
                return row
            except IntegrityError:
                row = WeeklyPoints.query.filter_by(**key).first()

        row.apply(score)
        return row

    @staticmethod
    def get_for_league_week(league_code, week, season):
        return (
            WeeklyPoints.query.filter_by(
                league_code=league_code, week=week, season=season
            )
            .order_by(
                WeeklyPoints.total_points.desc(),
                WeeklyPoints.games_picked.desc(),
                WeeklyPoints.user_id,
            )
            .all()
        )

    @staticmethod
    def get_for_user_week(user_id, week, season):
        return WeeklyPoints.query.filter_by(
            user_id=user_id, week=week, season=season
        ).all()

    def to_dict(self):
        """Same shape as WeeklyScore.to_dict()"""
        data = {
            "user_id": self.user_id,
            "league_code": self.league_code,
            "week": self.week,
            "season": self.season,
            "total_points": points_value(self.total_points),
        }
        for counter in WeeklyScore.COUNTERS:
            data[counter] = getattr(self, counter)
        data["is_complete"] = self.is_complete
        data["scoring_weights"] = self.scoring_weights
        data["scoring_version"] = self.scoring_version
        data["source"] = "server-cached"
        data["computed_at"] = self.computed_at.isoformat() if self.computed_at else None
        return data
