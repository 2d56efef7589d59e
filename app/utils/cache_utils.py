"""
Cache utilities for the pick'em scoring service
Keys and helpers for the client-path weekly points cache
"""

from flask import current_app

from app import cache


def weekly_points_key(league_code, week, season):
    """Cache key for a league/week of client-computed scores"""
    return f"weekly_points:{league_code}:{season}:{week}"


def get_cached_weekly_points(league_code, week, season):
    key = weekly_points_key(league_code, week, season)
    result = cache.get(key)
    if result is not None:
        current_app.logger.debug(f"Cache hit for key: {key}")
    return result


def set_cached_weekly_points(league_code, week, season, payload, timeout=None):
    """
    Store computed scores until invalidated

    Args:
        payload: list of WeeklyScore dicts
        timeout: seconds; defaults to CACHE_DEFAULT_TIMEOUT
    """
    key = weekly_points_key(league_code, week, season)
    cache.set(key, payload, timeout=timeout)
    current_app.logger.debug(f"Cache set for key: {key}")


def invalidate_weekly_points(league_code, week, season):
    key = weekly_points_key(league_code, week, season)
    cache.delete(key)
    current_app.logger.debug(f"Cache invalidated for key: {key}")

