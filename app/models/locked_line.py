import logging
import re
from datetime import datetime, timedelta, timezone

from app import db
from app.utils.lines import NOT_AVAILABLE

logger = logging.getLogger(__name__)

TEAM_IN_SPREAD_RE = re.compile(r"[A-Z]{2,4}\s*[+-]?\d")
NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def _as_utc(value):
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class LockedLine(db.Model):
    """Line snapshot for one game, frozen per league at lock time"""

    __tablename__ = "locked_lines"

    id = db.Column(db.Integer, primary_key=True)
    league_code = db.Column(
        db.String(20), db.ForeignKey("leagues.code"), nullable=False
    )
    game_id = db.Column(db.String(50), nullable=False)

    spread = db.Column(db.String(30))  # e.g. "KC -3.5"
    over_under = db.Column(db.String(20))  # e.g. "47.5"
    locked_at = db.Column(db.DateTime, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("league_code", "game_id", name="unique_league_game_line"),
    )

    def __repr__(self):
        return f"<LockedLine {self.league_code}/{self.game_id} {self.spread} o/u {self.over_under}>"

    def to_scoring_entry(self):
        return {"spread": self.spread, "over_under": self.over_under}

    @staticmethod
    def lock(league_code, game_id, spread, over_under, locked_at=None):
        """
        Store a line snapshot unless one already exists (first lock wins).

        Returns:
            tuple: (LockedLine, created)
        """
        existing = LockedLine.query.filter_by(
            league_code=league_code, game_id=str(game_id)
        ).first()
        if existing:
            return existing, False

        line = LockedLine(
            league_code=league_code,
            game_id=str(game_id),
            spread=spread,
            over_under=over_under,
            locked_at=locked_at or datetime.now(timezone.utc),
        )
        db.session.add(line)
        return line, True

    @staticmethod
    def normalize_feed_spread(spread, home_token):
        """Attach the home token to bare spreads so the favorite can be resolved"""
        if spread is None or spread == "":
            return NOT_AVAILABLE
        spread = str(spread).strip()
        if TEAM_IN_SPREAD_RE.search(spread):
            return spread
        if home_token:
            return f"{home_token} {spread}"
        return spread

    @staticmethod
    def normalize_feed_total(over_under):
        if over_under is None or over_under == "":
            return NOT_AVAILABLE
        match = NUMBER_RE.search(str(over_under))
        return match.group(0) if match else NOT_AVAILABLE

    @staticmethod
    def snapshot_for_league(league, games, now=None):
        """
        Lock current feed lines for every game past the league's lock time.

        Args:
            league: League model
            games: feed games (dicts with id, kickoff, home_team, spread, over_under)
            now: current time (defaults to UTC now)

        Returns:
            list: LockedLine rows created by this call
        """
        now = _as_utc(now) or datetime.now(timezone.utc)
        offset = timedelta(minutes=league.lock_offset_minutes)
        created = []

        for game in games or []:
            kickoff = _as_utc(game.get("kickoff"))
            if kickoff is None:
                continue
            lock_time = kickoff - offset
            if now < lock_time:
                continue

            line, was_created = LockedLine.lock(
                league.code,
                game["id"],
                LockedLine.normalize_feed_spread(game.get("spread"), game.get("home_team")),
                LockedLine.normalize_feed_total(game.get("over_under")),
                locked_at=lock_time,
            )
            if was_created:
                created.append(line)

        if created:
            logger.info(f"Locked {len(created)} lines for league {league.code}")

        return created

    def to_dict(self):
        return {
            "league_code": self.league_code,
            "game_id": self.game_id,
            "spread": self.spread,
            "over_under": self.over_under,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
        }
