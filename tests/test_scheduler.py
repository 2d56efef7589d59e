"""
Tests for the background jobs, run synchronously against a fake feed.
"""

from datetime import datetime, timezone

import pytest
from conftest import SEASON, WEEK, FakeResponse, FakeSession, feed_event, make_pick, scoreboard
from sqlalchemy.exc import OperationalError

from app import db
from app.models import GameResult, LockedLine, WeeklyPoints
from app.services.scheduler_service import SchedulerService
from app.services.scoring_service import scoring_service
from app.utils.data_sync import DataSync


@pytest.fixture
def scheduler(app):
    """Scheduler wired to the app without starting APScheduler"""
    service = SchedulerService()
    service.app = app
    return service


def use_feed(service, *responses):
    service.data_sync = DataSync(session=FakeSession(*responses), sleep=lambda s: None)


class TestSyncResults:
    def test_two_phase_sync(self, scheduler, league):
        make_pick(league.code, "alice", "401", winner="KC")
        make_pick(league.code, "bob", "401", winner="LV")
        db.session.commit()
        use_feed(scheduler, scoreboard(feed_event("401", "KC", "LV", 27, 20)))

        outcome = scheduler.sync_results(WEEK, SEASON)

        assert outcome == {"rescored": ["401"], "rows": 2}
        rows = {row.user_id: row for row in WeeklyPoints.query.all()}
        assert rows["alice"].total_points == 1
        assert rows["bob"].total_points == 0
        assert scheduler.sync_stats["games_finalized"] == 1

    def test_recompute_failure_keeps_results(self, scheduler, league, monkeypatch):
        make_pick(league.code, "alice", "401", winner="KC")
        db.session.commit()
        use_feed(scheduler, scoreboard(feed_event("401", "KC", "LV", 27, 20)))

        def failing(*args, **kwargs):
            raise OperationalError("UPSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(scoring_service, "recompute_league_week", failing)
        outcome = scheduler.sync_results(WEEK, SEASON)

        assert outcome == {"rescored": ["401"], "rows": 0}
        assert GameResult.query.filter_by(game_id="401").one().is_final is True
        assert scoring_service.pending == [("ABC123", WEEK, SEASON)]

        monkeypatch.undo()
        assert scoring_service.retry_pending() == (1, 0)
        assert WeeklyPoints.query.count() == 2

    def test_late_line_rescores_final_game(self, scheduler, league):
        make_pick(league.code, "alice", "402", spread="NYJ")
        db.session.commit()
        use_feed(
            scheduler,
            scoreboard(feed_event("402", "BUF", "NYJ", 23, 20)),
            scoreboard(feed_event("402", "BUF", "NYJ", 23, 20, odds={"spread": -3})),
        )

        scheduler.sync_results(WEEK, SEASON)
        before = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)
        assert before["source"] == "server-cached"
        assert before["data"][0]["spread_push"] == 0
        assert before["data"][0]["is_complete"] is False

        outcome = scheduler.sync_results(WEEK, SEASON)
        assert outcome == {"rescored": ["402"], "rows": 2}
        assert scheduler.sync_stats["games_finalized"] == 1

        after = scoring_service.get_weekly_points("ABC123", WEEK, SEASON)
        alice = after["data"][0]
        assert after["source"] == "server-cached"
        assert alice["user_id"] == "alice"
        assert alice["spread_push"] == 1
        assert alice["is_complete"] is True

    def test_feed_error_is_recorded(self, scheduler):
        use_feed(scheduler, FakeResponse(404))
        scheduler._sync_results()
        assert scheduler.sync_stats["failed_syncs"] == 1
        assert "404" in scheduler.sync_stats["last_error"]

    def test_successful_job_updates_stats(self, scheduler, monkeypatch):
        monkeypatch.setattr(scheduler, "_current_week", lambda: WEEK)
        use_feed(scheduler, scoreboard())
        scheduler._sync_results()
        assert scheduler.sync_stats["successful_syncs"] == 1
        assert scheduler.sync_stats["last_error"] is None


class TestSnapshotLines:
    def test_locks_lines_inside_window(self, scheduler, league):
        use_feed(
            scheduler,
            scoreboard(
                feed_event(
                    "401",
                    "KC",
                    "LV",
                    0,
                    0,
                    status="STATUS_SCHEDULED",
                    odds={"details": "KC -3.5", "spread": -3.5, "overUnder": 47.5},
                )
            ),
        )
        now = datetime(2025, 11, 16, 17, 15, tzinfo=timezone.utc)

        assert scheduler.snapshot_lines(WEEK, SEASON, now=now) == 1
        line = LockedLine.query.one()
        assert (line.spread, line.over_under) == ("KC -3.5", "47.5")


class TestStatus:
    def test_status_without_scheduler(self, scheduler):
        status = scheduler.get_status()
        assert status["is_running"] is False
        assert status["jobs"] == []
        assert status["pending_recomputes"] == []

    def test_unknown_force_sync(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.force_sync("everything")

    def test_force_retry(self, scheduler):
        assert scheduler.force_sync("retry") == (True, "Manual retry sync completed")
