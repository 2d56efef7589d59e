"""
Tests for the weekly points orchestration (server and client paths).
"""

import json
from datetime import datetime, timedelta, timezone

import pytest
from conftest import SEASON, WEEK, lock_line, make_pick, record_result
from sqlalchemy.exc import OperationalError

from app import db
from app.models import WeeklyPoints
from app.services.scoring_service import LeagueNotFound, ScoringService, scoring_service
from app.utils.cache_utils import get_cached_weekly_points, set_cached_weekly_points


@pytest.fixture
def scored_week(league):
    """Two final games, one pending, picks for alice and bob"""
    lock_line(league.code, "401", "KC -3.5", "47.5")
    record_result("401", "KC", "LV", 27, 20)
    record_result("402", "BUF", "NYJ", 23, 20, spread_line=-3)
    make_pick(league.code, "alice", "401", winner="KC", spread="KC", total="under")
    make_pick(league.code, "alice", "402", spread="NYJ")
    make_pick(league.code, "bob", "401", winner="LV", spread="LV")
    make_pick(league.code, "bob", "403", winner="SF")
    db.session.commit()
    return league


def _rows():
    return {row.user_id: row for row in WeeklyPoints.query.all()}


def _by_user(data):
    return {row["user_id"]: row for row in data}


def _database_locked(*args, **kwargs):
    raise OperationalError("UPSERT", {}, Exception("database is locked"))


class TestRecompute:
    def test_writes_every_member(self, scored_week):
        written = scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        rows = _rows()

        assert written == 2
        # winner 1 + spread 2 + total 1, and a push on 402
        assert rows["alice"].total_points == 4
        assert rows["alice"].spread_push == 1
        assert rows["alice"].is_complete is True
        # 403 has no result yet
        assert rows["bob"].total_points == 0
        assert rows["bob"].games_picked == 2
        assert rows["bob"].games_graded == 1
        assert rows["bob"].is_complete is False

    def test_idempotent(self, scored_week):
        now = datetime(2025, 11, 18, tzinfo=timezone.utc)
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON, now=now)
        first = {k: v.to_dict() for k, v in _rows().items()}
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON, now=now)
        second = {k: v.to_dict() for k, v in _rows().items()}

        assert WeeklyPoints.query.count() == 2
        assert first == second

    def test_member_without_picks_gets_zero_row(self, scored_week):
        scored_week.add_member("carol")
        db.session.commit()
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        carol = _rows()["carol"]
        assert carol.total_points == 0
        assert carol.is_complete is True

    def test_departed_picker_still_scored(self, scored_week):
        make_pick("ABC123", "dave", "401", winner="KC")
        db.session.commit()
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        assert _rows()["dave"].total_points == 1

    def test_unknown_league(self, app):
        with pytest.raises(LeagueNotFound):
            scoring_service.recompute_league_week("NOPE", WEEK, SEASON)

    def test_reweighting_recomputes_all_rows(self, scored_week):
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        scored_week.settings = {"scoring": {"winner": 3, "spread": 1, "total": 1}}
        db.session.commit()
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)

        alice = _rows()["alice"]
        assert alice.total_points == 5
        assert alice.scoring_weights == {"winner": 3, "spread": 1, "total": 1}


class TestGameFinal:
    def test_recomputes_leagues_with_picks(self, scored_week):
        written = scoring_service.on_game_final("401")
        assert written == 2
        assert set(_rows()) == {"alice", "bob"}

    def test_non_final_game_does_nothing(self, scored_week):
        assert scoring_service.on_game_final("403") == 0
        assert WeeklyPoints.query.count() == 0

    def test_write_failure_is_queued_and_retried(self, scored_week, monkeypatch):
        service = ScoringService()
        original = service.recompute_league_week

        monkeypatch.setattr(service, "recompute_league_week", _database_locked)
        assert service.on_game_final("401") == 0
        assert service.pending == [("ABC123", WEEK, SEASON)]
        assert WeeklyPoints.query.count() == 0

        # Still failing: stays queued
        assert service.retry_pending() == (0, 1)
        assert service.pending == [("ABC123", WEEK, SEASON)]

        monkeypatch.setattr(service, "recompute_league_week", original)
        assert service.retry_pending() == (1, 0)
        assert service.pending == []
        assert WeeklyPoints.query.count() == 2

    def test_write_failure_drops_client_cache(self, scored_week, monkeypatch):
        service = ScoringService()
        before = service.get_weekly_points("ABC123", WEEK, SEASON)
        assert _by_user(before["data"])["bob"]["games_graded"] == 1

        record_result("403", "SF", "SEA", 24, 7)
        db.session.commit()
        monkeypatch.setattr(service, "recompute_league_week", _database_locked)

        assert service.on_game_final("403") == 0
        assert get_cached_weekly_points("ABC123", WEEK, SEASON) is None

        after = service.get_weekly_points("ABC123", WEEK, SEASON)
        assert after["source"] == "client-fallback"
        bob = _by_user(after["data"])["bob"]
        assert bob["games_graded"] == 2
        assert bob["total_points"] == 1
        assert bob["is_complete"] is True

        # A retry that fails again drops whatever was cached meanwhile
        assert get_cached_weekly_points("ABC123", WEEK, SEASON) is not None
        assert service.retry_pending() == (0, 1)
        assert get_cached_weekly_points("ABC123", WEEK, SEASON) is None

    def test_retry_drops_missing_league(self, app):
        service = ScoringService()
        service._queue("GONE", WEEK, SEASON)
        assert service.retry_pending() == (0, 0)
        assert service.pending == []


class TestWeeklyPointsRead:
    def test_client_fallback_when_nothing_cached(self, scored_week):
        payload = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)
        assert payload["source"] == "client-fallback"
        assert [row["user_id"] for row in payload["data"]] == ["alice", "bob"]
        assert payload["data"][0]["source"] == "client-computed"
        assert get_cached_weekly_points("ABC123", WEEK, SEASON) == payload["data"]

    def test_server_cache_served_when_fresh(self, scored_week):
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        payload = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)
        assert payload["source"] == "server-cached"
        assert payload["data"][0]["user_id"] == "alice"

    def test_both_paths_agree(self, scored_week):
        client = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)["data"]
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        server = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)["data"]

        ignored = {"source", "computed_at"}
        assert [{k: v for k, v in row.items() if k not in ignored} for row in client] == [
            {k: v for k, v in row.items() if k not in ignored} for row in server
        ]

    def test_both_paths_serialize_points_alike(self, scored_week):
        client = scoring_service.get_weekly_points("ABC123", WEEK, SEASON, fresh=True)
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        server = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)

        assert server["source"] == "server-cached"
        client_points = json.dumps([row["total_points"] for row in client["data"]])
        server_points = json.dumps([row["total_points"] for row in server["data"]])
        assert client_points == server_points == "[4, 0]"

    def test_rows_older_than_latest_result_are_stale(self, scored_week):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON, now=past)
        payload = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)
        assert payload["source"] == "client-fallback"

    def test_old_scoring_version_is_stale(self, scored_week):
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        for row in WeeklyPoints.query.all():
            row.scoring_version = 1
        db.session.commit()
        assert scoring_service.get_weekly_points("ABC123", WEEK, SEASON)["source"] == (
            "client-fallback"
        )

    def test_new_member_makes_cache_incomplete(self, scored_week):
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        scored_week.add_member("carol")
        db.session.commit()
        payload = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)
        assert payload["source"] == "client-fallback"
        assert "carol" in [row["user_id"] for row in payload["data"]]

    def test_client_cache_reused_until_invalidated(self, scored_week):
        set_cached_weekly_points("ABC123", WEEK, SEASON, [{"user_id": "sentinel"}])
        payload = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)
        assert payload["data"] == [{"user_id": "sentinel"}]

        scoring_service.invalidate("ABC123", WEEK, SEASON)
        payload = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)
        assert [row["user_id"] for row in payload["data"]] == ["alice", "bob"]

    def test_fresh_bypasses_caches(self, scored_week):
        set_cached_weekly_points("ABC123", WEEK, SEASON, [{"user_id": "sentinel"}])
        payload = scoring_service.get_weekly_points("ABC123", WEEK, SEASON, fresh=True)
        assert [row["user_id"] for row in payload["data"]] == ["alice", "bob"]

    def test_missing_inputs_never_block(self, league):
        make_pick("ABC123", "alice", "999", winner="KC")
        db.session.commit()
        payload = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)
        alice = payload["data"][0]
        assert alice["user_id"] == "alice"
        assert alice["is_complete"] is False
        assert alice["total_points"] == 0

    def test_input_change_recomputes_stored_rows(self, scored_week):
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        make_pick("ABC123", "bob", "402", spread="NYJ")
        db.session.commit()

        assert scoring_service.on_inputs_changed("ABC123", WEEK, SEASON) == 2
        assert _rows()["bob"].spread_push == 1

    def test_input_change_without_rows_only_invalidates(self, scored_week):
        set_cached_weekly_points("ABC123", WEEK, SEASON, [{"user_id": "sentinel"}])
        assert scoring_service.on_inputs_changed("ABC123", WEEK, SEASON) == 0
        assert get_cached_weekly_points("ABC123", WEEK, SEASON) is None
        assert WeeklyPoints.query.count() == 0

    def test_queued_recompute_marks_rows_stale(self, scored_week):
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        scoring_service._queue("ABC123", WEEK, SEASON)
        payload = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)
        assert payload["source"] == "client-fallback"

    def test_invalidate_week(self, scored_week):
        set_cached_weekly_points("ABC123", WEEK, SEASON, [{"user_id": "sentinel"}])
        assert scoring_service.invalidate_week(WEEK, SEASON) == 1
        assert get_cached_weekly_points("ABC123", WEEK, SEASON) is None


class TestReadModels:
    def test_leaderboard(self, scored_week):
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        board = scoring_service.get_leaderboard("ABC123", WEEK, SEASON)
        assert [(entry["rank"], entry["user_id"]) for entry in board] == [
            (1, "alice"),
            (2, "bob"),
        ]
        assert board[0]["total_points"] == 4
        assert isinstance(board[0]["total_points"], int)

    def test_user_weekly_stats(self, scored_week):
        scoring_service.recompute_league_week("ABC123", WEEK, SEASON)
        # alice: 3 correct on 401, spread push on 402
        assert scoring_service.get_user_weekly_stats("alice", WEEK, SEASON) == {
            "win_percentage": 100,
            "overall_wins": 3,
            "overall_losses": 0,
        }
        # bob: 2 incorrect on 401
        assert scoring_service.get_user_weekly_stats("bob", WEEK, SEASON) == {
            "win_percentage": 0,
            "overall_wins": 0,
            "overall_losses": 2,
        }

    def test_user_weekly_stats_rounds_half_up(self, league):
        row = WeeklyPoints(
            league_code="ABC123",
            user_id="erin",
            week=WEEK,
            season=SEASON,
            winner_correct=1,
            winner_incorrect=7,
            scoring_version=2,
            computed_at=datetime.now(timezone.utc),
        )
        db.session.add(row)
        db.session.commit()
        # 1 of 8 is 12.5%
        assert scoring_service.get_user_weekly_stats("erin", WEEK, SEASON)["win_percentage"] == 13

    def test_no_rows(self, app):
        assert scoring_service.get_user_weekly_stats("nobody", WEEK, SEASON) == {
            "win_percentage": 0,
            "overall_wins": 0,
            "overall_losses": 0,
        }

    def test_diagnose(self, scored_week):
        rows = scoring_service.diagnose("ABC123", WEEK, SEASON, "alice")
        by_game = {row["game_id"]: row for row in rows}
        assert by_game["401"]["spread_source"] == "locked_line"
        assert by_game["402"]["spread_source"] == "result_numeric"
        assert by_game["402"]["outcomes"] == {"spread": "push"}
