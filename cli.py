#!/usr/bin/env python3
"""
CLI for the club live scoring service
"""
import logging

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from app.config import settings
from app.database import init_db, get_session
from app.engine import dls
from app.engine.rules import PRESETS, RuleProfile
from app.engine.scorecard import innings_scorecard
from app.models import Match, Player, Team
from app.stores.sql import SqlDeliveryStore

console = Console()


@click.group()
def cli():
    """Club Live Scoring - ball-by-ball cricket scoring"""
    logging.basicConfig(level=settings.LOG_LEVEL)


@cli.command()
def init():
    """Initialize the database"""
    console.print("[yellow]Initializing database...[/yellow]")
    init_db()
    console.print("[green]Database initialized successfully![/green]")


@cli.command()
@click.argument("name")
@click.argument("short_name")
@click.option("--player", "players", multiple=True, help="Player name (repeatable)")
def add_team(name: str, short_name: str, players: tuple):
    """Register a club team and its squad"""
    init_db()
    session = get_session()
    team = Team(name=name, short_name=short_name)
    session.add(team)
    for player_name in players:
        session.add(Player(name=player_name, team=team))
    session.commit()
    console.print(f"[green]Team {team.name} created with id {team.id} and {len(players)} players[/green]")
    session.close()


@cli.command()
def profiles():
    """List the preset rule profiles"""
    table = Table(title="Rule Profiles")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Overs", justify="right")
    table.add_column("Balls/Over", justify="right")
    table.add_column("Free Hit")
    table.add_column("Powerplay", justify="right")
    table.add_column("Max/Bowler", justify="right")

    for profile_id, profile in PRESETS.items():
        table.add_row(
            profile_id,
            profile.name,
            str(profile.total_overs or "unlimited"),
            str(profile.balls_per_over),
            "no-ball" if profile.free_hit_on_no_ball else "-",
            str(profile.powerplay_overs),
            str(profile.max_overs_per_bowler or "-"),
        )

    console.print(table)


@cli.command()
@click.option("--score", type=int, required=True, help="Team 1 total")
@click.option("--team1-overs", type=float, required=True, help="Overs available to team 1")
@click.option("--original-overs", type=float, required=True, help="Team 2's original allocation")
@click.option("--revised-overs", type=float, required=True, help="Team 2's revised allocation")
@click.option("--wickets", type=int, default=0, help="Team 2 wickets lost at the interruption")
def dls_target(score: int, team1_overs: float, original_overs: float, revised_overs: float, wickets: int):
    """Compute a DLS revised target"""
    result = dls.revised_target(score, team1_overs, original_overs, revised_overs, wickets)
    console.print(Panel(
        f"Target: [bold green]{result.target}[/bold green]  (par {result.par_score})\n"
        f"Team 1 resources: {result.team1_resources:.1f}%\n"
        f"Team 2 resources: {result.team2_resources:.1f}%\n"
        f"Resource ratio: {result.resource_ratio:.4f}",
        title="DLS Revised Target",
    ))


@cli.command()
@click.argument("match_id", type=int)
def scorecard(match_id: int):
    """Print the scorecard of a match from its delivery log"""
    session = get_session()
    match = session.get(Match, match_id)
    if not match:
        console.print(f"[red]Match {match_id} not found.[/red]")
        session.close()
        return

    profile = RuleProfile.from_json(match.rule_profile_json)
    names = {p.id: p.name for p in session.query(Player).filter(Player.team_id.in_([match.team1_id, match.team2_id]))}
    deliveries = SqlDeliveryStore(session).list_by_match(match_id)

    for number in (1, 2):
        innings_deliveries = [d for d in deliveries if d.innings == number]
        if not innings_deliveries:
            continue
        card = innings_scorecard(innings_deliveries, profile.balls_per_over, names)
        totals = card["totals"]

        batting = Table(title=f"Innings {number}: {totals['runs']}/{totals['wickets']} ({totals['overs']} ov)")
        batting.add_column("Batter", style="cyan")
        batting.add_column("Dismissal")
        batting.add_column("R", justify="right", style="green")
        batting.add_column("B", justify="right")
        batting.add_column("4s", justify="right")
        batting.add_column("6s", justify="right")
        batting.add_column("SR", justify="right")
        for line in card["batting"]:
            batting.add_row(
                names.get(line["player_id"], f"#{line['player_id']}"),
                line["dismissal"],
                str(line["runs"]),
                str(line["balls"]),
                str(line["fours"]),
                str(line["sixes"]),
                f"{line['strike_rate']:.1f}",
            )
        console.print(batting)

        extras = card["extras"]
        console.print(
            f"Extras: {extras['total']} (w {extras['wides']}, nb {extras['no_balls']}, "
            f"b {extras['byes']}, lb {extras['leg_byes']})"
        )

        bowling = Table()
        bowling.add_column("Bowler", style="magenta")
        bowling.add_column("O", justify="right")
        bowling.add_column("M", justify="right")
        bowling.add_column("R", justify="right")
        bowling.add_column("W", justify="right", style="green")
        bowling.add_column("Econ", justify="right")
        for line in card["bowling"]:
            bowling.add_row(
                names.get(line["player_id"], f"#{line['player_id']}"),
                line["overs"],
                str(line["maidens"]),
                str(line["runs"]),
                str(line["wickets"]),
                f"{line['economy']:.2f}",
            )
        console.print(bowling)

    if match.result_summary:
        console.print(f"[bold]{match.result_summary}[/bold]")
    session.close()


if __name__ == "__main__":
    cli()
