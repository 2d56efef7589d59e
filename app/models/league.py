from datetime import datetime, timezone

from app import db
from app.utils.league_settings import LEAGUE_TYPE_FREE_FOR_ALL, normalize_league_settings


class League(db.Model):
    __tablename__ = "leagues"

    code = db.Column(db.String(20), primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    league_type = db.Column(
        db.String(30), nullable=False, default=LEAGUE_TYPE_FREE_FOR_ALL
    )

    # Raw settings as written by the clients; read through normalized_settings
    settings = db.Column(db.JSON, default=dict)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    members = db.relationship(
        "LeagueMember", backref="league", lazy="dynamic", cascade="all, delete-orphan"
    )
    locked_lines = db.relationship(
        "LockedLine", backref="league", lazy="dynamic", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<League {self.code} ({self.league_type})>"

    @property
    def normalized_settings(self):
        return normalize_league_settings(self.league_type, self.settings)

    @property
    def lock_offset_minutes(self):
        return self.normalized_settings["lockOffsetMinutes"]

    def get_member_ids(self):
        """Member user ids in join order"""
        return [
            member.user_id
            for member in self.members.order_by(
                LeagueMember.joined_at, LeagueMember.id
            ).all()
        ]

    def add_member(self, user_id):
        """Add a member if not already present"""
        existing = self.members.filter_by(user_id=user_id).first()
        if existing:
            return existing
        member = LeagueMember(league_code=self.code, user_id=user_id)
        db.session.add(member)
        return member

    def get_locked_lines_map(self):
        """Locked lines keyed by game id, in the shape the scoring engine reads"""
        return {line.game_id: line.to_scoring_entry() for line in self.locked_lines}

    def to_scoring_context(self):
        """Read-only snapshot handed to app.utils.scoring.aggregate()"""
        return {
            "code": self.code,
            "type": self.league_type,
            "settings": dict(self.settings or {}),
            "locked_lines": self.get_locked_lines_map(),
        }

    @staticmethod
    def get_by_code(code):
        return db.session.get(League, code)

    def to_dict(self):
        return {
            "code": self.code,
            "name": self.name,
            "type": self.league_type,
            "settings": self.normalized_settings,
            "members": self.get_member_ids(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class LeagueMember(db.Model):
    __tablename__ = "league_members"

    id = db.Column(db.Integer, primary_key=True)
    league_code = db.Column(
        db.String(20), db.ForeignKey("leagues.code"), nullable=False
    )
    # Opaque account id from the auth provider
    user_id = db.Column(db.String(64), nullable=False)
    joined_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("league_code", "user_id", name="unique_league_member"),
        db.Index("idx_league_member_user", "user_id"),
    )

    def __repr__(self):
        return f"<LeagueMember {self.user_id} in {self.league_code}>"
