#!/usr/bin/env python
"""Diagnose why weekly points are incomplete or look wrong"""
import sys

from app import create_app
from app.models import GameResult, LockedLine, WeeklyPoints
from app.services.scoring_service import scoring_service
from app.utils.scoring import SCORING_VERSION

app = create_app()

with app.app_context():
    if len(sys.argv) < 3:
        print("usage: diagnose_scoring.py LEAGUE WEEK [SEASON]")
        sys.exit(1)

    league_code = sys.argv[1]
    week = int(sys.argv[2])
    season = int(sys.argv[3]) if len(sys.argv) > 3 else app.config["SEASON_YEAR"]

    print(f"=== Scoring Diagnostics: {league_code} week {week}, {season} ===\n")

    results = GameResult.get_for_week(week, season, final_only=False)
    final = [r for r in results if r.is_final]
    print(f"Results: {len(final)} final of {len(results)} recorded")

    locked = {line.game_id: line for line in LockedLine.query.filter_by(league_code=league_code)}
    print(f"Locked lines for league: {len(locked)}")

    # Final games that can only be graded from the fallback line, or not at all
    print("\n=== Final Games Without Locked Lines ===")
    for result in final:
        if result.game_id in locked:
            continue
        spread = "fallback" if result.spread_line is not None else "MISSING"
        total = "fallback" if result.total_line is not None else "MISSING"
        print(f"  {result}: spread {spread}, total {total}")

    rows = WeeklyPoints.get_for_league_week(league_code, week, season)
    print(f"\n=== Cached Weekly Points ({len(rows)} rows) ===")
    for row in rows:
        flags = []
        if not row.is_complete:
            flags.append("INCOMPLETE")
        if row.scoring_version != SCORING_VERSION:
            flags.append(f"STALE v{row.scoring_version}")
        print(
            f"  {row.user_id}: {row.total_points} pts, "
            f"{row.games_graded}/{row.games_picked} graded {' '.join(flags)}"
        )

        if row.is_complete:
            continue
        for pick in scoring_service.diagnose(league_code, week, season, row.user_id):
            ungraded = [d for d, o in pick["outcomes"].items() if o == "ungraded"]
            if not pick["is_final"]:
                print(f"    game {pick['game_id']}: not final")
            elif ungraded:
                print(
                    f"    game {pick['game_id']}: ungraded {', '.join(ungraded)} "
                    f"(locked spread={pick['locked_spread']!r}, total={pick['locked_total']!r})"
                )

    print(f"\n{'='*60}")
    print("To rebuild the cache, run:")
    print(f"  python manage.py scores recompute {league_code} {week} --season {season}")
