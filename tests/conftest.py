"""Shared test fixtures."""

import pytest

from app import create_app, db
from app.models import GameResult, League, LockedLine, Pick
from app.services.scoring_service import scoring_service

SEASON = 2025
WEEK = 11


@pytest.fixture
def app():
    """Application built from TestingConfig with an empty in-memory database."""
    app = create_app("testing")
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
    scoring_service._pending.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def league(app):
    """Free-for-all league with weights 1/2/1 and two members."""
    league = League(
        code="ABC123",
        name="Sunday Crew",
        league_type="freeForAll",
        settings={"scoring": {"winner": 1, "spread": 2, "total": 1}},
    )
    db.session.add(league)
    league.add_member("alice")
    league.add_member("bob")
    db.session.commit()
    return league


def make_pick(league_code, user_id, game_id, winner=None, spread=None, total=None, week=WEEK):
    pick = Pick(
        league_code=league_code,
        user_id=user_id,
        game_id=str(game_id),
        week=week,
        season=SEASON,
        winner=winner,
        spread=spread,
        total=total,
    )
    db.session.add(pick)
    return pick


def record_result(game_id, home, away, home_score, away_score, is_final=True, **kwargs):
    result, _, _ = GameResult.record(
        str(game_id), WEEK, SEASON, home, away, home_score, away_score, is_final, **kwargs
    )
    return result


def lock_line(league_code, game_id, spread, over_under):
    line, _ = LockedLine.lock(league_code, str(game_id), spread, over_under)
    return line


def result_dict(game_id, home, away, home_score, away_score, is_final=True, **extra):
    """Plain result snapshot, as the client path receives it."""
    if home_score > away_score:
        winner = home
    elif away_score > home_score:
        winner = away
    else:
        winner = "TIE"
    data = {
        "game_id": str(game_id),
        "home_team": home,
        "away_team": away,
        "home_score": home_score,
        "away_score": away_score,
        "winner": winner,
        "spread_line": None,
        "total_line": None,
        "is_final": is_final,
    }
    data.update(extra)
    return data


def feed_event(game_id, home, away, home_score, away_score, status="STATUS_FINAL", odds=None):
    """One scoreboard event in the feed's JSON shape"""
    competition = {
        "competitors": [
            {"homeAway": "home", "team": {"abbreviation": home}, "score": str(home_score)},
            {"homeAway": "away", "team": {"abbreviation": away}, "score": str(away_score)},
        ],
        "status": {"type": {"name": status, "completed": status == "STATUS_FINAL"}},
    }
    if odds is not None:
        competition["odds"] = [odds]
    return {"id": game_id, "date": "2025-11-16T18:00Z", "competitions": [competition]}


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}

    def json(self):
        return self._payload


class FakeSession:
    """Hands out canned responses (or raises canned exceptions) in order"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.headers = {}
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def scoreboard(*events):
    return FakeResponse(200, {"events": list(events)})
