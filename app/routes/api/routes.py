from functools import wraps

from flask import current_app, jsonify, request

from app import db
from app.models import GameResult, LockedLine, Pick
from app.routes.api import bp
from app.services.scoring_service import scoring_service
from app.utils.lines import normalize_spread, normalize_total


def add_security_headers(f):
    """Add security headers to API responses"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = f(*args, **kwargs)
        if hasattr(response, "headers"):
            response.headers["Cache-Control"] = (
                "no-store, no-cache, must-revalidate, max-age=0"
            )
        return response

    return decorated_function


def _season():
    return request.args.get("season", current_app.config["SEASON_YEAR"], type=int)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("JSON object body required")
    return data


@bp.route("/health")
def health():
    return jsonify({"status": "ok"})


@bp.route("/leagues/<league_code>/weeks/<int:week>/points")
@add_security_headers
def weekly_points(league_code, week):
    """Weekly points for every member, cache first with local fallback"""
    season = _season()
    fresh = request.args.get("fresh", "").lower() in ("1", "true", "yes")
    payload = scoring_service.get_weekly_points(league_code, week, season, fresh=fresh)
    return jsonify(
        {"league_code": league_code, "week": week, "season": season, **payload}
    )


@bp.route("/leagues/<league_code>/weeks/<int:week>/leaderboard")
def weekly_leaderboard(league_code, week):
    season = _season()
    return jsonify(
        {
            "league_code": league_code,
            "week": week,
            "season": season,
            "leaderboard": scoring_service.get_leaderboard(league_code, week, season),
        }
    )


@bp.route("/leagues/<league_code>/weeks/<int:week>/recompute", methods=["POST"])
def recompute(league_code, week):
    """Run the server path for a league/week on demand"""
    season = _season()
    rows = scoring_service.recompute_league_week(league_code, week, season)
    return jsonify({"success": True, "rows": rows, "week": week, "season": season})


@bp.route("/leagues/<league_code>/weeks/<int:week>/users/<user_id>/graded-picks")
def graded_picks(league_code, week, user_id):
    """Per-pick grading breakdown for debugging a score"""
    season = _season()
    return jsonify(
        {
            "league_code": league_code,
            "week": week,
            "season": season,
            "user_id": user_id,
            "picks": scoring_service.diagnose(league_code, week, season, user_id),
        }
    )


@bp.route("/leagues/<league_code>/locked-lines")
def locked_lines(league_code):
    lines = (
        LockedLine.query.filter_by(league_code=league_code)
        .order_by(LockedLine.game_id)
        .all()
    )
    return jsonify([line.to_dict() for line in lines])


@bp.route("/leagues/<league_code>/picks", methods=["POST"])
@add_security_headers
def toggle_pick(league_code):
    """Select or clear one dimension of a pick"""
    data = _json_body()
    for field in ("user_id", "game_id", "week", "season", "dimension"):
        if data.get(field) in (None, ""):
            return jsonify({"error": f"{field} is required"}), 400

    # Picks lock once the league is known and the game is decided
    scoring_service.get_league(league_code)
    result = GameResult.query.filter_by(game_id=str(data["game_id"])).first()
    if result is not None and result.is_final:
        return jsonify({"error": "Game is final, picks are locked"}), 409

    week = int(data["week"])
    season = int(data["season"])
    pick, message = Pick.toggle(
        league_code,
        str(data["user_id"]),
        data["game_id"],
        week,
        season,
        data["dimension"],
        data.get("value"),
    )
    db.session.commit()
    scoring_service.on_inputs_changed(league_code, week, season)

    return jsonify(
        {
            "success": True,
            "message": message,
            "pick": pick.to_dict() if pick is not None else None,
        }
    )


@bp.route("/lines/normalize", methods=["POST"])
def lines_normalize():
    """Show how a locked line string resolves"""
    data = _json_body()
    try:
        spread = normalize_spread(data.get("spread"), data.get("home"), data.get("away"))
        total = normalize_total(data.get("total"))
    except TypeError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(
        {
            "spread": spread._asdict() if spread is not None else None,
            "total": total,
        }
    )


@bp.route("/users/<user_id>/weeks/<int:week>/stats")
def user_weekly_stats(user_id, week):
    season = _season()
    return jsonify(scoring_service.get_user_weekly_stats(user_id, week, season))


@bp.route("/results/week/<int:week>")
def week_results(week):
    season = _season()
    results = GameResult.get_for_week(week, season, final_only=False)
    return jsonify([result.to_dict() for result in results])
