"""
Pick'em Scoring Scheduler Service

Background jobs on APScheduler:
- result sync: records final games (phase 1, committed) and then
  recomputes weekly points for every affected league (phase 2);
- line snapshot: locks the feed's current lines for games inside each
  league's lock window;
- recompute retry: re-runs recomputations whose cache write failed.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app import db
from app.models import League, LockedLine
from app.services.scoring_service import scoring_service
from app.utils.data_sync import DataSync, FeedError, current_week

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages background result syncing and weekly points recomputation"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.data_sync = None
        self.is_running = False
        self.sync_stats = self._empty_stats()

        if app:
            self.init_app(app)

    @staticmethod
    def _empty_stats():
        return {
            "last_sync": None,
            "total_syncs": 0,
            "successful_syncs": 0,
            "failed_syncs": 0,
            "last_error": None,
            "games_finalized": 0,
            "rows_recomputed": 0,
            "lines_locked": 0,
        }

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")
        self.data_sync = DataSync.from_config(app.config)

        # Register shutdown
        atexit.register(self.shutdown)

        # Start scheduler if enabled
        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        # Clear any existing jobs
        self.scheduler.remove_all_jobs()
        self._add_core_jobs()
        self.scheduler.start()
        self.is_running = True

        logger.info("Scheduler started successfully")

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Scheduler stopped")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        """Add core scheduled jobs"""
        config = self.app.config

        self.scheduler.add_job(
            func=self._sync_results,
            trigger=IntervalTrigger(minutes=config.get("RESULTS_SYNC_MINUTES", 5)),
            id="sync_results",
            name="Sync Final Results",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )

        self.scheduler.add_job(
            func=self._snapshot_lines,
            trigger=IntervalTrigger(minutes=config.get("LINES_SNAPSHOT_MINUTES", 10)),
            id="snapshot_lines",
            name="Lock Betting Lines",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=120,
        )

        self.scheduler.add_job(
            func=self._retry_recomputes,
            trigger=IntervalTrigger(minutes=config.get("RECOMPUTE_RETRY_MINUTES", 2)),
            id="retry_recomputes",
            name="Retry Failed Recomputes",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )

        logger.info("Core scheduled jobs added")

    def _current_week(self):
        return current_week(
            datetime.now(timezone.utc), self.app.config.get("SEASON_START_DATE")
        )

    def sync_results(self, week=None, season=None):
        """
        Two-phase result sync for one week.

        Phase 1 records and commits final results; phase 2 recomputes weekly
        points for leagues with picks on games that became final or picked
        up a late fallback line. A phase 2 failure never undoes phase 1.

        Returns:
            dict: {"rescored": [...], "rows": int}
        """
        week = week or self._current_week()
        season = season or self.app.config.get("SEASON_YEAR")

        # PHASE 1: record results
        changed, stats = self.data_sync.sync_week_results(week, season)
        if stats["processed"]:
            logger.info(f"Phase 1: Recorded {stats['processed']} final games for week {week}")

        # PHASE 2: recompute affected leagues
        rows = 0
        for game_id in changed:
            rows += scoring_service.on_game_final(game_id)

        if changed:
            logger.info(
                f"Phase 2: Recomputed {rows} weekly points rows "
                f"across {len(changed)} changed games"
            )

        self.sync_stats["games_finalized"] += stats["finalized"]
        self.sync_stats["rows_recomputed"] += rows
        return {"rescored": changed, "rows": rows}

    def snapshot_lines(self, week=None, season=None, now=None):
        """
        Lock current feed lines for every league.

        Returns:
            int: number of lines locked
        """
        week = week or self._current_week()
        season = season or self.app.config.get("SEASON_YEAR")
        games = self.data_sync.fetch_week_games(week)

        locked = 0
        for league in League.query.order_by(League.code).all():
            created = LockedLine.snapshot_for_league(league, games, now=now)
            if created:
                locked += len(created)
                db.session.commit()
                scoring_service.on_inputs_changed(league.code, week, season)

        self.sync_stats["lines_locked"] += locked
        return locked

    def _sync_results(self):
        with self.app.app_context():
            try:
                self.sync_results()
                self._update_stats(True)
            except FeedError as e:
                db.session.rollback()
                self._update_stats(False, str(e))
                logger.warning(f"Results feed unavailable: {e}")
            except Exception as e:
                db.session.rollback()
                self._update_stats(False, str(e))
                logger.error(f"Error in results sync: {e}", exc_info=True)

    def _snapshot_lines(self):
        with self.app.app_context():
            try:
                self.snapshot_lines()
            except FeedError as e:
                db.session.rollback()
                logger.warning(f"Lines feed unavailable: {e}")
            except Exception as e:
                db.session.rollback()
                logger.error(f"Error in line snapshot: {e}", exc_info=True)

    def _retry_recomputes(self):
        with self.app.app_context():
            try:
                scoring_service.retry_pending()
            except Exception as e:
                db.session.rollback()
                logger.error(f"Error retrying recomputes: {e}", exc_info=True)

    def _update_stats(self, success, error=None):
        """Update sync statistics"""
        self.sync_stats["last_sync"] = datetime.now(timezone.utc)
        self.sync_stats["total_syncs"] += 1

        if success:
            self.sync_stats["successful_syncs"] += 1
            self.sync_stats["last_error"] = None
        else:
            self.sync_stats["failed_syncs"] += 1
            self.sync_stats["last_error"] = error

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        return {
            "is_running": self.is_running,
            "jobs": jobs,
            "stats": self.sync_stats,
            "pending_recomputes": scoring_service.pending,
        }

    def force_sync(self, sync_type="results"):
        """Manually trigger a job"""
        jobs = {
            "results": self._sync_results,
            "lines": self._snapshot_lines,
            "retry": self._retry_recomputes,
        }
        if sync_type not in jobs:
            raise ValueError(f"Unknown sync type: {sync_type}")
        jobs[sync_type]()
        return True, f"Manual {sync_type} sync completed"


# Global scheduler instance
scheduler_service = SchedulerService()
