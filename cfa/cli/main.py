"""
CFA CLI - Command Line Interface for Cricket Fantasy Auction

Main entry point for all CLI commands.
"""

import json
import click
from pathlib import Path

from cfa.utils.logger import setup_logging


def _services(ctx):
    """Build services once per invocation against the configured data dir."""
    from cfa.core.services import build_services

    if "services" not in ctx.obj:
        ctx.obj["services"] = build_services(ctx.obj["config"])
        ctx.call_on_close(ctx.obj["services"].close)
    return ctx.obj["services"]


def _fail(error) -> None:
    raise click.ClickException(f"{error.kind}: {error.reason}")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (default: CFA_DATA_DIR or ./data)")
@click.option("--env-file", default=None, type=click.Path(dir_okay=False), help="Load settings from a .env file")
@click.option("--log-file", is_flag=True, help="Also write cfa.log under the log directory (default: CFA_LOG_TO_FILE)")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, env_file, log_file):
    """Cricket Fantasy Auction - live auctions for fantasy cricket leagues"""
    import logging
    from cfa.core.config import load_config

    config = load_config(
        env_file,
        data_dir=Path(data_dir).expanduser() if data_dir else None,
        log_to_file=True if log_file else None,
    )
    config.ensure_dirs()
    setup_logging(
        level=logging.DEBUG if debug else logging.INFO,
        log_dir=config.log_dir,
        log_to_file=config.log_to_file,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Server
# =============================================================================


@cli.command("serve")
@click.option("--host", default=None, help="Listen address")
@click.option("--port", default=None, type=int, help="Listen port")
@click.option("--server-timer/--no-server-timer", default=None, help="Assign lots when their timer runs out")
@click.pass_context
def serve(ctx, host, port, server_timer):
    """Run the auction server"""
    import asyncio
    from cfa.network.server import AuctionServer

    config = ctx.obj["config"]
    if host:
        config.host = host
    if port is not None:
        config.port = port
    if server_timer is not None:
        config.server_timer = server_timer

    server = AuctionServer(config)
    click.echo(f"Starting auction server on {config.host}:{config.port}...")
    click.echo(f"  Data: {config.db_path}")
    click.echo(f"  Server timer: {'on' if config.server_timer else 'off'}")

    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        click.echo("\nServer stopped")
    finally:
        server.services.close()


# =============================================================================
# Game Commands
# =============================================================================


@cli.group()
def game():
    """Game management commands"""
    pass


@game.command("create")
@click.argument("name")
@click.option("--user", required=True, help="Operator user id")
@click.pass_context
def game_create(ctx, name, user):
    """Create a new game"""
    from cfa.core.errors import AuctionError

    try:
        created = _services(ctx).games.create_game(name, user)
    except AuctionError as e:
        _fail(e)

    click.echo(f"✓ Game created: {created.name}")
    click.echo(f"  ID: {created.game_id}")
    click.echo(f"  Operator: {created.created_by}")


@game.command("join")
@click.argument("game_id")
@click.option("--user", required=True, help="Participant user id")
@click.option("--team", required=True, help="Team name")
@click.pass_context
def game_join(ctx, game_id, user, team):
    """Join a game as a participant"""
    from cfa.core.errors import AuctionError

    try:
        participant = _services(ctx).games.join_game(game_id, user, team)
    except AuctionError as e:
        _fail(e)

    click.echo(f"✓ {user} joined as {participant.team_name}")
    click.echo(f"  Budget: {participant.budget_remaining:.2f}")


@game.command("list")
@click.pass_context
def game_list(ctx):
    """List all games"""
    games = _services(ctx).games.list_games()
    if not games:
        click.echo("No games found.")
        return
    for g in games:
        click.echo(f"  {g.game_id}  {g.name}  [{g.status.value}]")


@game.command("show")
@click.argument("game_id")
@click.pass_context
def game_show(ctx, game_id):
    """Show a game's teams and auction state"""
    from cfa.core.errors import AuctionError

    services = _services(ctx)
    try:
        summary = services.games.summary(game_id)
        state = services.engine.get_state(game_id)
    except AuctionError as e:
        _fail(e)

    click.echo(f"{summary['name']} [{summary['status']}]")
    click.echo(f"  Cricketers in pool: {summary['cricketers']}")
    click.echo(f"  Auction: {state['auction_status']}")
    if state["current_cricketer"]:
        current = state["current_cricketer"]
        click.echo(f"  Current lot: {current['first_name']} {current['last_name']} "
                   f"(high bid {state['current_high_bid']:.2f})")
    if state["last_win_message"]:
        click.echo(f"  Last: {state['last_win_message']}")
    click.echo("  Teams:")
    for team in summary["participants"]:
        click.echo(f"    {team['team_name']:<20} {team['roster_size']:>2} players  "
                   f"{team['foreign_players']} foreign  {team['budget_remaining']:.2f} left")


@game.command("leaderboard")
@click.argument("game_id")
@click.option("--up-to", default=None, type=int, help="Only count matches up to this number")
@click.pass_context
def game_leaderboard(ctx, game_id, up_to):
    """Show the leaderboard"""
    from cfa.core.errors import AuctionError

    try:
        rows = _services(ctx).scoring.leaderboard(game_id, up_to)
    except AuctionError as e:
        _fail(e)

    for row in rows:
        click.echo(f"  {row['rank']:>2}. {row['team_name']:<20} {row['total_points']:>5} pts")


# =============================================================================
# Cricketer Commands
# =============================================================================


@cli.group()
def cricketer():
    """Player pool commands"""
    pass


@cricketer.command("add")
@click.argument("game_id")
@click.option("--user", required=True, help="Operator user id")
@click.option("--first-name", required=True)
@click.option("--last-name", default="")
@click.option("--type", "player_type", required=True,
              type=click.Choice(["batsman", "bowler", "wicketkeeper", "allrounder"]))
@click.option("--foreign", is_flag=True, help="Counts against the foreign quota")
@click.option("--ipl-team", default="")
@click.pass_context
def cricketer_add(ctx, game_id, user, first_name, last_name, player_type, foreign, ipl_team):
    """Add one cricketer to a game's pool"""
    from cfa.core.errors import AuctionError

    try:
        added = _services(ctx).games.add_cricketer(
            game_id, user,
            first_name=first_name,
            last_name=last_name,
            player_type=player_type,
            is_foreign=foreign,
            ipl_team=ipl_team,
        )
    except AuctionError as e:
        _fail(e)

    click.echo(f"✓ Added {added.full_name} ({added.player_type.value}) #{added.auction_order}")
    click.echo(f"  ID: {added.cricketer_id}")


@cricketer.command("import")
@click.argument("game_id")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--user", required=True, help="Operator user id")
@click.pass_context
def cricketer_import(ctx, game_id, path, user):
    """Import cricketers from a JSON array of objects"""
    from cfa.core.errors import AuctionError

    try:
        rows = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {path}: {e}")
    if not isinstance(rows, list):
        raise click.ClickException("Expected a JSON array of cricketers")

    try:
        imported = _services(ctx).games.import_cricketers(game_id, user, rows)
    except AuctionError as e:
        _fail(e)

    click.echo(f"✓ Imported {len(imported)} cricketers")


# =============================================================================
# Points Commands
# =============================================================================


@cli.group()
def points():
    """Fantasy points commands"""
    pass


@points.command("calc")
@click.argument("stats")
@click.option("--game", "game_id", default=None, help="Use this game's points table")
@click.pass_context
def points_calc(ctx, stats, game_id):
    """Score a match record given as JSON (e.g. '{"runs": 52, "fours": 4}')"""
    from pydantic import ValidationError
    from cfa.core.errors import AuctionError
    from cfa.core.scoring.points import PlayerMatchRecord, calculate_points, points_breakdown

    try:
        record = PlayerMatchRecord.model_validate_json(stats)
    except ValidationError as e:
        raise click.ClickException(str(e))

    table = None
    if game_id:
        try:
            table = _services(ctx).scoring.get_points_config(game_id)
        except AuctionError as e:
            _fail(e)

    for rule, value in points_breakdown(record, table).items():
        click.echo(f"  {rule:<12} {value:>5}")
    click.echo(f"  {'total':<12} {calculate_points(record, table):>5}")


# =============================================================================
# Demo Command
# =============================================================================


DEMO_POOL = [
    {"first_name": "Virat", "last_name": "Kohli", "player_type": "batsman", "ipl_team": "RCB"},
    {"first_name": "Jasprit", "last_name": "Bumrah", "player_type": "bowler", "ipl_team": "MI"},
    {"first_name": "Jos", "last_name": "Buttler", "player_type": "wicketkeeper",
     "ipl_team": "RR", "is_foreign": True},
    {"first_name": "Rashid", "last_name": "Khan", "player_type": "allrounder",
     "ipl_team": "GT", "is_foreign": True},
]


@cli.command("demo")
@click.pass_context
def demo(ctx):
    """Run a scripted auction end to end"""
    import tempfile
    from cfa.core.config import AuctionConfig
    from cfa.core.errors import AuctionError
    from cfa.core.services import build_services

    click.echo("=" * 60)
    click.echo("  CRICKET FANTASY AUCTION - DEMO")
    click.echo("=" * 60)
    click.echo()

    with tempfile.TemporaryDirectory() as tmp:
        config = AuctionConfig(data_dir=Path(tmp))
        services = build_services(config)
        try:
            _run_demo(services)
        except AuctionError as e:
            _fail(e)
        finally:
            services.close()


def _run_demo(services) -> None:
    from cfa.core.errors import AuctionError

    games, engine = services.games, services.engine

    click.echo("🏏 Setting up the league...")
    g = games.create_game("Demo League", "op")
    games.join_game(g.game_id, "alice", "Alice XI")
    games.join_game(g.game_id, "bob", "Bob Strikers")
    pool = games.import_cricketers(g.game_id, "op", DEMO_POOL)
    click.echo(f"  ✓ {g.name}: 2 teams, {len(pool)} cricketers")
    click.echo()

    click.echo("🔨 Lot 1: Virat Kohli")
    engine.start_lot(g.game_id, "op", pool[0].cricketer_id)
    for user, amount in (("alice", 0.5), ("bob", 9.5), ("alice", 10), ("bob", 11)):
        state = engine.place_bid(g.game_id, user, amount)
        click.echo(f"  {user} bids {amount:.2f} → next minimum {state['minimum_next_bid']:.2f}")
    try:
        engine.place_bid(g.game_id, "alice", 11.5)
    except AuctionError as e:
        click.echo(f"  ✗ alice bids 11.50: {e.reason}")
    state = engine.assign(g.game_id, "op")
    click.echo(f"  ✓ {state['last_win_message']}")
    click.echo()

    click.echo("⏸️  Lot 2: Jasprit Bumrah (pause and resume)")
    engine.start_lot(g.game_id, "op", pool[1].cricketer_id)
    engine.place_bid(g.game_id, "alice", 4)
    paused = engine.pause(g.game_id, "op")
    click.echo(f"  Paused with {paused['remaining_ms'] // 1000}s left")
    resumed = engine.resume(g.game_id, "op")
    click.echo(f"  Resumed with {resumed['remaining_ms'] // 1000}s left")
    state = engine.assign(g.game_id, "op")
    click.echo(f"  ✓ {state['last_win_message']}")
    click.echo()

    click.echo("⏭️  Lot 3: Jos Buttler (no bids)")
    engine.start_lot(g.game_id, "op", pool[2].cricketer_id)
    state = engine.assign(g.game_id, "op")
    click.echo(f"  ✓ {state['last_win_message']}")
    click.echo()

    engine.end(g.game_id, "op")
    click.echo("🏁 Auction ended")
    for participant in games.participants(g.game_id):
        roster = games.roster(participant.participant_id)
        names = ", ".join(c.full_name for c in roster) or "-"
        badges = [a["name"] for a in services.achievements.list_for_participant(participant.participant_id)]
        click.echo(f"  {participant.team_name:<14} {participant.budget_remaining:>6.2f} left  [{names}]")
        if badges:
            click.echo(f"  {'':<14} 🏆 {', '.join(badges)}")
    click.echo()

    click.echo("📊 Match 1 scores")
    match = services.scoring.create_match(g.game_id, "op", 1, "RCB", "MI", "2026-04-01")
    services.scoring.save_match_scores(g.game_id, "op", match["match_id"], [
        {"cricketer_id": pool[0].cricketer_id, "in_playing_xi": True,
         "runs": 82, "balls_faced": 50, "fours": 8, "sixes": 3},
        {"cricketer_id": pool[1].cricketer_id, "in_playing_xi": True,
         "wickets": 3, "overs_bowled": 4, "runs_conceded": 18, "dot_balls": 14},
    ])
    for row in services.scoring.leaderboard(g.game_id):
        click.echo(f"  {row['rank']}. {row['team_name']:<14} {row['total_points']:>4} pts")
    click.echo()

    click.echo("=" * 60)
    click.echo("  Demo complete")
    click.echo("=" * 60)


if __name__ == "__main__":
    cli()
