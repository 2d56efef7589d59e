#!/usr/bin/env python3
"""
Pick'em Scoring Management CLI

Command-line management for the pick'em scoring service: database setup,
result syncing, line snapshots and weekly points recomputation.
"""

import json

import click
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app import create_app, db
from app.models import GameResult, League, LockedLine, Pick, WeeklyPoints
from app.services.scoring_service import LeagueNotFound, scoring_service
from app.utils.data_sync import DataSync, FeedError, current_week
from app.utils.league_settings import LEAGUE_TYPE_FREE_FOR_ALL, LEAGUE_TYPES
from app.utils.lines import normalize_spread, normalize_total



@click.group()
@click.option("--config", "config_name", envvar="FLASK_CONFIG", default=None)
@click.pass_context
def cli(ctx, config_name):
    """Pick'em Scoring Management CLI"""
    if ctx.obj is None:
        ctx.obj = create_app(config_name)
    ctx.with_resource(ctx.obj.app_context())


def _season(app, season):
    return season or app.config["SEASON_YEAR"]


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command("init")
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command()
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
def reset(yes):
    """⚠️  DANGER: Drop and recreate all tables"""
    if not yes and not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")


# League Commands
@cli.group()
def league():
    """League commands"""
    pass


@league.command("create")
@click.argument("code")
@click.argument("name")
@click.option(
    "--type",
    "league_type",
    type=click.Choice(LEAGUE_TYPES),
    default=LEAGUE_TYPE_FREE_FOR_ALL,
)
@click.option("--settings", default=None, help="Settings as a JSON object")
@click.option("--member", "members", multiple=True, help="Member user id (repeatable)")
def create_league(code, name, league_type, settings, members):
    """Create a league"""
    try:
        raw_settings = json.loads(settings) if settings else {}
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint="--settings")

    try:
        new_league = League(code=code, name=name, league_type=league_type, settings=raw_settings)
        db.session.add(new_league)
        for user_id in members:
            new_league.add_member(user_id)
        db.session.commit()
        click.echo(f"✅ Created league {code} ({league_type}) with {len(members)} members")
    except IntegrityError:
        db.session.rollback()
        click.echo(f"❌ League {code} already exists!")


# Result Commands
@cli.group()
def results():
    """Game result commands"""
    pass


@results.command("sync")
@click.argument("week", type=int, required=False)
@click.option("--season", type=int, help="Season year")
@click.pass_obj
def sync_results(app, week, season):
    """Record final scores for a week and recompute affected leagues"""
    season = _season(app, season)
    week = week or current_week(season_start=app.config.get("SEASON_START_DATE"))
    data_sync = DataSync.from_config(app.config)

    try:
        changed, stats = data_sync.sync_week_results(week, season)
    except FeedError as e:
        db.session.rollback()
        click.echo(f"❌ Results feed error: {e}")
        return

    rows = 0
    for game_id in changed:
        rows += scoring_service.on_game_final(game_id)

    click.echo(
        f"✅ Week {week}: {stats['processed']} final games, "
        f"{stats['finalized']} newly final, {stats['lines_filled']} late lines, "
        f"{rows} weekly points rows recomputed"
    )
    if scoring_service.pending:
        click.echo(f"⚠️  {len(scoring_service.pending)} recomputations queued for retry")


# Line Commands
@cli.group()
def lines():
    """Betting line commands"""
    pass


@lines.command("normalize")
@click.argument("spread_text")
@click.option("--home", required=True, help="Home team token")
@click.option("--away", required=True, help="Away team token")
@click.option("--total", "total_text", default=None, help="Over/under text")
def normalize_line(spread_text, home, away, total_text):
    """Show how a locked line string resolves"""
    spread = normalize_spread(spread_text, home, away)
    if spread is None:
        click.echo(f"Spread '{spread_text}': unresolved (pick would be ungraded)")
    else:
        favorite = home if spread.favored_side == "home" else away
        click.echo(
            f"Spread '{spread_text}': {favorite} ({spread.favored_side}) favored by {spread.line:g}"
        )

    if total_text is not None:
        total = normalize_total(total_text)
        click.echo(f"Total '{total_text}': {'unresolved' if total is None else f'{total:g}'}")


@lines.command("snapshot")
@click.argument("week", type=int)
@click.option("--season", type=int, help="Season year")
@click.pass_obj
def snapshot_lines(app, week, season):
    """Lock current feed lines for games inside each league's lock window"""
    season = _season(app, season)
    data_sync = DataSync.from_config(app.config)

    try:
        games = data_sync.fetch_week_games(week)
    except FeedError as e:
        click.echo(f"❌ Lines feed error: {e}")
        return

    total = 0
    for each in League.query.order_by(League.code).all():
        created = LockedLine.snapshot_for_league(each, games)
        if created:
            db.session.commit()
            scoring_service.on_inputs_changed(each.code, week, season)
            total += len(created)
            click.echo(f"  {each.code}: locked {len(created)} lines")

    click.echo(f"✅ Locked {total} lines for week {week}")


# Scoring Commands
@cli.group()
def scores():
    """Weekly points commands"""
    pass


@scores.command("recompute")
@click.argument("league_code")
@click.argument("week", type=int)
@click.option("--season", type=int, help="Season year")
@click.pass_obj
def recompute(app, league_code, week, season):
    """Recompute and store weekly points for a league/week"""
    season = _season(app, season)
    try:
        rows = scoring_service.recompute_league_week(league_code, week, season)
    except LeagueNotFound as e:
        click.echo(f"❌ {e}")
        return
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error recomputing: {str(e)}")
        return

    click.echo(f"✅ Recomputed {rows} weekly points rows for {league_code} week {week}")
    for entry in scoring_service.get_leaderboard(league_code, week, season):
        flag = "" if entry["is_complete"] else " (incomplete)"
        click.echo(
            f"  {entry['rank']:>2}. {entry['user_id']}: {entry['total_points']:g} pts, "
            f"{entry['games_picked']} picked{flag}"
        )


@scores.command("diagnose")
@click.argument("league_code")
@click.argument("week", type=int)
@click.argument("user_id")
@click.option("--season", type=int, help="Season year")
@click.pass_obj
def diagnose(app, league_code, week, user_id, season):
    """Show how each of a user's picks graded"""
    season = _season(app, season)
    try:
        rows = scoring_service.diagnose(league_code, week, season, user_id)
    except LeagueNotFound as e:
        click.echo(f"❌ {e}")
        return

    if not rows:
        click.echo(f"No picks for {user_id} in {league_code} week {week}")
        return

    for row in rows:
        click.echo(f"\nGame {row['game_id']}")
        if not row["is_final"]:
            click.echo("  not final")
            continue
        click.echo(
            f"  {row['away_team']} {row['away_score']} @ {row['home_team']} {row['home_score']}"
            f" (winner {row['winner']})"
        )
        click.echo(
            f"  spread locked={row['locked_spread']!r} parsed={row['spread_parsed']} "
            f"source={row['spread_source']} cover={row['spread_cover']}"
        )
        click.echo(
            f"  total locked={row['locked_total']!r} parsed={row['total_parsed']} "
            f"source={row['total_source']}"
        )
        for dimension, outcome in row["outcomes"].items():
            click.echo(f"  {dimension}: {row[f'{dimension}_pick']} -> {outcome}")


@cli.command()
@click.pass_obj
def status(app):
    """Show application status"""
    click.echo("🏈 Pick'em Scoring Status")
    click.echo("=" * 40)

    # Database connection
    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    season = app.config["SEASON_YEAR"]
    week = current_week(season_start=app.config.get("SEASON_START_DATE"))
    click.echo(f"📅 Season {season}, week {week}")
    click.echo(f"🏆 Leagues: {League.query.count()}")
    click.echo(f"📝 Picks this week: {Pick.query.filter_by(week=week, season=season).count()}")

    final_count = GameResult.query.filter_by(week=week, season=season, is_final=True).count()
    click.echo(f"🏈 Final games this week: {final_count}")
    click.echo(
        f"📊 Weekly points rows this week: "
        f"{WeeklyPoints.query.filter_by(week=week, season=season).count()}"
    )
    if scoring_service.pending:
        click.echo(f"⚠️  Pending recomputations: {len(scoring_service.pending)}")


if __name__ == "__main__":
    cli()
