from datetime import datetime, timezone

from app import db

PICK_DIMENSIONS = ("winner", "spread", "total")


class Pick(db.Model):
    __tablename__ = "picks"

    id = db.Column(db.Integer, primary_key=True)

    # Pick identification
    league_code = db.Column(
        db.String(20), db.ForeignKey("leagues.code"), nullable=False
    )
    user_id = db.Column(db.String(64), nullable=False)
    game_id = db.Column(db.String(50), nullable=False)
    week = db.Column(db.Integer, nullable=False)
    season = db.Column(db.Integer, nullable=False)

    # Selections: team token, team token, "over"/"under"
    winner = db.Column(db.String(10))
    spread = db.Column(db.String(20))
    total = db.Column(db.String(10))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    edited_at = db.Column(db.DateTime)

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint(
            "league_code", "user_id", "game_id", name="unique_league_user_game_pick"
        ),
        db.Index("idx_pick_league_week", "league_code", "week", "season"),
        db.Index("idx_pick_game", "game_id"),
        db.Index("idx_pick_user", "user_id"),
    )

    def __repr__(self):
        return (
            f"<Pick league={self.league_code} user={self.user_id} game={self.game_id} "
            f"winner={self.winner} spread={self.spread} total={self.total}>"
        )

    @property
    def is_empty(self):
        return not any(getattr(self, dimension) for dimension in PICK_DIMENSIONS)

    @staticmethod
    def toggle(league_code, user_id, game_id, week, season, dimension, value):
        """
        Apply a pick tap with toggle semantics.

        Selecting a new value replaces the current one; selecting the value
        already held clears that dimension. A pick left with no selections is
        deleted. Lock-time enforcement is the caller's job.

        Returns:
            tuple: (Pick or None if deleted, message)
        """
        if dimension not in PICK_DIMENSIONS:
            raise ValueError(f"Unknown pick dimension: {dimension}")

        if dimension == "total" and value is not None:
            value = str(value).strip().lower()

        pick = Pick.query.filter_by(
            league_code=league_code, user_id=user_id, game_id=str(game_id)
        ).first()

        if pick is None:
            if value is None:
                return None, "Nothing to clear"
            pick = Pick(
                league_code=league_code,
                user_id=user_id,
                game_id=str(game_id),
                week=week,
                season=season,
            )
            setattr(pick, dimension, value)
            db.session.add(pick)
            return pick, "Pick created"

        if value is None or getattr(pick, dimension) == value:
            setattr(pick, dimension, None)
            message = f"{dimension.capitalize()} pick cleared"
        else:
            setattr(pick, dimension, value)
            message = f"{dimension.capitalize()} pick updated"

        pick.edited_at = datetime.now(timezone.utc)

        if pick.is_empty:
            db.session.delete(pick)
            return None, "Pick removed"

        return pick, message

    @staticmethod
    def get_for_league_week(league_code, week, season):
        """All picks (every user) for a league/week"""
        return (
            Pick.query.filter_by(league_code=league_code, week=week, season=season)
            .order_by(Pick.user_id, Pick.game_id)
            .all()
        )

    @staticmethod
    def get_league_codes_for_game(game_id, week):
        """League codes holding at least one pick on a game"""
        rows = (
            db.session.query(Pick.league_code)
            .filter(Pick.game_id == str(game_id), Pick.week == week)
            .distinct()
            .order_by(Pick.league_code)
            .all()
        )
        return [row[0] for row in rows]

    def to_snapshot(self):
        """Plain dict used by the scoring engine"""
        return {
            "league_code": self.league_code,
            "user_id": self.user_id,
            "game_id": self.game_id,
            "week": self.week,
            "season": self.season,
            "winner": self.winner,
            "spread": self.spread,
            "total": self.total,
        }

    def to_dict(self):
        """Convert pick to dictionary for API responses"""
        data = self.to_snapshot()
        data["id"] = self.id
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["edited_at"] = self.edited_at.isoformat() if self.edited_at else None
        return data
