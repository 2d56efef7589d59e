"""
SocketIO Event Handlers for Real-time Updates

Clients join a league room on the /scores namespace and are told when the
league's weekly points were recomputed or invalidated.
"""

import logging
from datetime import datetime, timezone

from flask import request
from flask_socketio import emit, join_room, leave_room

from app import socketio

logger = logging.getLogger(__name__)

NAMESPACE = "/scores"

# Track connected clients and their league rooms
connected_clients = {}


def league_room(league_code):
    return f"league_{league_code}"


@socketio.on("connect", namespace=NAMESPACE)
def on_connect(auth=None):
    """Handle client connection to scores namespace"""
    client_id = request.sid
    user_id = auth.get("user_id") if isinstance(auth, dict) else None
    connected_clients[client_id] = {"user_id": user_id, "subscriptions": set()}
    logger.info(f"Client connected to /scores: {client_id} (user: {user_id})")


@socketio.on("disconnect", namespace=NAMESPACE)
def on_disconnect(*args):
    """Handle client disconnection from scores namespace"""
    client = connected_clients.pop(request.sid, None)
    if client:
        logger.info(
            f"Client disconnected from /scores: {request.sid} (user: {client['user_id']})"
        )


@socketio.on("subscribe_league", namespace=NAMESPACE)
def on_subscribe_league(data):
    """
    Join a league room; with week and season, also send the current scores
    """
    client_id = request.sid
    league_code = (data or {}).get("league_code")
    if not league_code or client_id not in connected_clients:
        emit("error", {"error": "league_code is required"})
        return

    room = league_room(league_code)
    if room not in connected_clients[client_id]["subscriptions"]:
        connected_clients[client_id]["subscriptions"].add(room)
        join_room(room)
        logger.debug(f"Client {client_id} subscribed to league {league_code}")

    week = data.get("week")
    season = data.get("season")
    if week is None or season is None:
        return

    from app.services.scoring_service import LeagueNotFound, scoring_service

    try:
        payload = scoring_service.get_weekly_points(league_code, int(week), int(season))
    except LeagueNotFound as e:
        emit("error", {"error": str(e)})
        return

    emit(
        "weekly_points",
        {"league_code": league_code, "week": int(week), "season": int(season), **payload},
    )


@socketio.on("unsubscribe_league", namespace=NAMESPACE)
def on_unsubscribe_league(data):
    """Leave a league room"""
    client_id = request.sid
    league_code = (data or {}).get("league_code")
    if client_id in connected_clients and league_code:
        room = league_room(league_code)
        connected_clients[client_id]["subscriptions"].discard(room)
        leave_room(room)
        logger.debug(f"Client {client_id} unsubscribed from league {league_code}")


# Broadcast functions (called from the scoring service)
def broadcast_weekly_points_updated(league_code, week, season, scores):
    """Broadcast freshly computed weekly points to a league room"""
    try:
        socketio.emit(
            "weekly_points_updated",
            {
                "league_code": league_code,
                "week": week,
                "season": season,
                "scores": scores,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            to=league_room(league_code),
            namespace=NAMESPACE,
        )
        logger.debug(f"Broadcasted weekly points for {league_code} week {week}")
    except Exception as e:
        # Delivery is best effort; the cache write already succeeded
        logger.error(f"Error broadcasting weekly points update: {e}")


def broadcast_weekly_points_invalidated(league_code, week, season):
    """Tell a league room that its weekly points must be re-read"""
    try:
        socketio.emit(
            "weekly_points_invalidated",
            {
                "league_code": league_code,
                "week": week,
                "season": season,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            to=league_room(league_code),
            namespace=NAMESPACE,
        )
        logger.debug(f"Broadcasted invalidation for {league_code} week {week}")
    except Exception as e:
        logger.error(f"Error broadcasting weekly points invalidation: {e}")


def get_connection_stats():
    """Get detailed connection statistics"""
    return {
        "total_connections": len(connected_clients),
        "identified_users": len(
            [c for c in connected_clients.values() if c["user_id"]]
        ),
        "total_subscriptions": sum(
            len(c["subscriptions"]) for c in connected_clients.values()
        ),
    }
