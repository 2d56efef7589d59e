import logging
import time
from datetime import date, datetime, timezone
from functools import wraps

import requests

from app import db
from app.models import GameResult
from app.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

FINAL_STATUSES = ("STATUS_FINAL", "STATUS_FULL_TIME", "STATUS_FINAL_OVERTIME")
REGULAR_SEASON_WEEKS = 18


class FeedError(Exception):
    """The results feed could not be read"""


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            for attempt in range(max_retries):
                try:
                    response = func(self, *args, **kwargs)

                    # Check for rate limiting
                    if response.status_code == 429:  # Too Many Requests
                        retry_after = float(
                            response.headers.get(
                                "Retry-After",
                                base_delay * (backoff_factor**attempt),
                            )
                        )
                        logger.warning(
                            f"Rate limited. Waiting {retry_after}s before retry {attempt + 1}/{max_retries}"
                        )
                        self.sleep(retry_after)
                        continue
                    elif response.status_code >= 500:  # Server errors
                        delay = base_delay * (backoff_factor**attempt)
                        logger.warning(
                            f"Server error {response.status_code}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                        )
                        self.sleep(delay)
                        continue

                    return response

                except requests.exceptions.RequestException as e:
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        self.sleep(delay)
                    else:
                        raise FeedError(str(e)) from e

            raise FeedError(f"Max retries ({max_retries}) exceeded")

        return wrapper

    return decorator


def current_week(now=None, season_start=None):
    """
    NFL regular-season week for a moment in time.

    Week 1 starts on season_start; the result is clamped to 1..18 and is 1
    before the season starts.
    """
    now = now or datetime.now(timezone.utc)
    if isinstance(season_start, str):
        season_start = date.fromisoformat(season_start)
    if season_start is None:
        return 1
    today = now.date() if isinstance(now, datetime) else now
    if today < season_start:
        return 1
    days = (today - season_start).days
    return max(1, min(REGULAR_SEASON_WEEKS, days // 7 + 1))


def _team_token(competitor):
    team = competitor.get("team", {})
    return (team.get("abbreviation") or team.get("displayName") or "").upper()


def _score(competitor):
    score = competitor.get("score")
    return int(score) if score not in (None, "") else 0


def _odds(competition):
    odds = competition.get("odds") or []
    return odds[0] if odds else {}


def _number_or_none(value):
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_event(event):
    """
    Flatten one scoreboard event into a feed game dict.

    Returns None for events without a two-team competition.
    """
    competitions = event.get("competitions") or []
    if not competitions:
        return None
    competition = competitions[0]
    competitors = competition.get("competitors") or []
    if len(competitors) != 2:
        return None

    home = next((c for c in competitors if c.get("homeAway") == "home"), competitors[1])
    away = next((c for c in competitors if c.get("homeAway") == "away"), competitors[0])

    status = competition.get("status") or event.get("status") or {}
    status_type = status.get("type", {})
    is_final = status_type.get("name") in FINAL_STATUSES or bool(
        status_type.get("completed")
    )

    odds = _odds(competition)

    return {
        "id": str(event.get("id", "")),
        "kickoff": event.get("date"),
        "home_team": _team_token(home),
        "away_team": _team_token(away),
        "home_score": _score(home),
        "away_score": _score(away),
        "is_final": is_final,
        # "KC -3.5" style text and the home-perspective number, when offered
        "spread": odds.get("details"),
        "spread_line": _number_or_none(odds.get("spread")),
        "over_under": odds.get("overUnder"),
    }


class DataSync:
    """
    Reads the ESPN NFL scoreboard with rate limiting and retries, and
    records final games as GameResult rows
    """

    def __init__(
        self,
        api_base_url=None,
        max_calls=10,
        period=60.0,
        timeout=30,
        clock=None,
        sleep=None,
        session=None,
    ):
        self.api_base_url = (
            api_base_url or "https://site.api.espn.com/apis/site/v2/sports/football/nfl"
        )
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "Pickem-Scoring/1.0"})
        self.timeout = timeout
        self.sleep = sleep or time.sleep
        self.rate_limiter = RateLimiter(
            max_calls, period, clock=clock, sleep=self.sleep
        )

    @classmethod
    def from_config(cls, app_config, **kwargs):
        return cls(
            api_base_url=app_config.get("ESPN_API_BASE_URL"),
            max_calls=app_config.get("FEED_MAX_CALLS", 10),
            period=app_config.get("FEED_PERIOD_SECONDS", 60.0),
            timeout=app_config.get("FEED_TIMEOUT", 30),
            **kwargs,
        )

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _make_api_request(self, url, params=None):
        """Make API request through the rate limiter"""
        self.rate_limiter.acquire()
        return self.session.get(url, params=params, timeout=self.timeout)

    def get_rate_limit_status(self):
        return self.rate_limiter.status()

    def fetch_week_games(self, week):
        """
        Fetch the scoreboard for a regular-season week.

        Returns:
            list: feed game dicts (see parse_event)
        """
        url = f"{self.api_base_url}/scoreboard"
        response = self._make_api_request(url, params={"seasontype": 2, "week": week})
        if response.status_code >= 400:
            raise FeedError(f"ESPN API error: {response.status_code}")

        data = response.json()
        if not data or "events" not in data:
            raise FeedError("Invalid data from ESPN API")

        games = []
        for event in data["events"]:
            game = parse_event(event)
            if game is not None:
                games.append(game)
        return games

    def sync_week_results(self, week, season):
        """
        Record final games for a week and commit them.

        Results are committed before anything is recomputed so a scoring
        failure never loses ingested scores.

        Returns:
            tuple: (list of game ids whose scoring inputs changed, stats dict).
            A game changes when it becomes final or when a fallback line
            arrives after it was already final.
        """
        stats = {"processed": 0, "finalized": 0, "lines_filled": 0, "skipped": 0, "errors": 0}
        changed = []

        games = self.fetch_week_games(week)
        for game in games:
            if not game["is_final"]:
                stats["skipped"] += 1
                continue
            try:
                _, became_final, lines_filled = GameResult.record(
                    game["id"],
                    week,
                    season,
                    game["home_team"],
                    game["away_team"],
                    game["home_score"],
                    game["away_score"],
                    True,
                    spread_line=game["spread_line"],
                    total_line=_number_or_none(game["over_under"]),
                )
            except ValueError as e:
                logger.error(f"Error recording game {game['id']}: {e}")
                stats["errors"] += 1
                continue

            stats["processed"] += 1
            if became_final:
                stats["finalized"] += 1
            if lines_filled:
                stats["lines_filled"] += 1
            if became_final or lines_filled:
                changed.append(game["id"])

        db.session.commit()
        logger.info(
            f"Week {week} results: {stats['processed']} final, "
            f"{stats['finalized']} newly final, {stats['lines_filled']} late lines, "
            f"{stats['skipped']} not final"
        )
        return changed, stats
