"""TalentMatch CLI - Candidate matching for vacancies."""

import json
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from talentmatch.config import DATABASE_URL, DB_PATH
from talentmatch.db.connection import Datastore, init_tables
from talentmatch.db.match_results import get_match_results
from talentmatch.db.vacancies import get_vacancy, load_vacancies_from_file
from talentmatch.errors import MatchingError, VacancyNotFoundError
from talentmatch.schemas.match import MatchResult
from talentmatch.services.match_service import (
    get_live_matches,
    request_match_refresh,
    run_vacancy_matching,
)
from talentmatch.services.queue_service import MatchingQueue
from talentmatch.utils import LLMConfigurationError, check_llm_configured

app = typer.Typer(help="TalentMatch - Match candidates to vacancies")
console = Console()


def _open_store() -> Datastore:
    store = Datastore.from_config().open()
    init_tables(store)
    return store


@app.command(name="init-db")
def init_db() -> None:
    """Create the vacancy and match result tables."""
    with Datastore.from_config() as store:
        init_tables(store)

    target = "PostgreSQL (cloud)" if DATABASE_URL else str(DB_PATH)
    console.print(f"[bold green]Database initialized:[/bold green] {target}")


@app.command(name="import-vacancies")
def import_vacancies(
    vacancies_file: Path = typer.Option(
        ..., "--file", "-f", help="Path to vacancies JSON file"
    ),
) -> None:
    """Import vacancies and their requirements from a JSON file.

    The JSON file should contain an array of vacancy objects:
    [{"title": "...", "requirements": [{"type": "Technology", "value": "React"}]}]
    """
    if not vacancies_file.exists():
        console.print(f"[red]Error: File not found: {vacancies_file}[/red]")
        raise typer.Exit(1)

    try:
        with _open_store() as store:
            vacancy_ids = load_vacancies_from_file(store, vacancies_file)
    except Exception as e:
        console.print(f"[red]Error importing vacancies: {e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[bold green]Imported {len(vacancy_ids)} vacancies from {vacancies_file}[/bold green]"
    )
    if vacancy_ids:
        console.print(f"  IDs: {', '.join(str(v) for v in vacancy_ids)}")


@app.command()
def match(
    vacancy: int = typer.Option(..., "--vacancy", "-v", help="Vacancy ID"),
    top_k: int = typer.Option(10, "--top-k", "-k", help="Number of candidates to show"),
) -> None:
    """Show live ranked candidates for a vacancy (nothing is stored)."""
    try:
        with _open_store() as store:
            view = get_live_matches(vacancy, store, top_k=top_k)
    except VacancyNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except MatchingError as e:
        console.print(f"[red]Error during matching: {e}[/red]")
        raise typer.Exit(1)

    console.print(Panel(view.search_query or "(empty)", title="Search query", border_style="dim"))

    if not view.candidates:
        console.print("[yellow]No candidates found.[/yellow]")
        return

    table = Table(title=f"Candidates for '{view.vacancy.title}'")
    table.add_column("#", style="dim")
    table.add_column("User ID", style="cyan")
    table.add_column("Name")
    table.add_column("Seniority")
    table.add_column("Score", style="green")

    for i, candidate in enumerate(view.candidates, start=1):
        profile = candidate.profile
        table.add_row(
            str(i),
            str(profile.user_id),
            profile.name,
            profile.seniority or "-",
            f"{candidate.score:.1%}",
        )

    console.print(table)


@app.command()
def run(
    vacancy: int = typer.Option(..., "--vacancy", "-v", help="Vacancy ID"),
) -> None:
    """Run full matching for a vacancy now and store the results."""
    try:
        check_llm_configured()
    except LLMConfigurationError as e:
        console.print(f"[yellow]Warning: {e} Candidates will be scored by similarity only.[/yellow]")

    console.print(f"[bold cyan]Matching vacancy {vacancy}...[/bold cyan]")

    try:
        with _open_store() as store:
            summary = run_vacancy_matching(vacancy, store)
    except MatchingError as e:
        console.print(f"[red]Error during matching: {e}[/red]")
        raise typer.Exit(1)

    console.print("\n[bold green]Matching complete![/bold green]")
    console.print(f"  Vacancy: {summary.vacancy_title}")
    console.print(f"  Candidates retrieved: {summary.candidates_retrieved}")
    console.print(f"  Candidates evaluated: {summary.candidates_evaluated}")
    console.print(f"  Similarity fallbacks: {summary.fallback_count}")
    console.print(f"  Results stored: {summary.results_stored}")


@app.command()
def refresh(
    vacancy: int = typer.Option(..., "--vacancy", "-v", help="Vacancy ID"),
) -> None:
    """Clear stored results and queue a background re-evaluation."""
    try:
        queue = MatchingQueue.from_config()
        with _open_store() as store:
            ticket = request_match_refresh(vacancy, store, queue)
    except MatchingError as e:
        console.print(f"[red]Error queueing refresh: {e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[bold green]Re-evaluation queued for vacancy {ticket.vacancy_id}[/bold green] "
        f"(estimated {ticket.estimated_completion_time})"
    )


@app.command()
def results(
    vacancy: int = typer.Option(..., "--vacancy", "-v", help="Vacancy ID"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of results to show"),
    output_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """Show stored match results for a vacancy, best first."""
    try:
        with _open_store() as store:
            found = get_vacancy(store, vacancy)
            stored = get_match_results(store, vacancy, limit=limit) if found else []
    except MatchingError as e:
        console.print(f"[red]Error fetching results: {e}[/red]")
        raise typer.Exit(1)

    if found is None:
        console.print(f"[red]Error: Vacancy not found: {vacancy}[/red]")
        raise typer.Exit(1)

    if not stored:
        console.print(
            "[yellow]No match results found. "
            "Run 'talentmatch run' or 'talentmatch refresh' first.[/yellow]"
        )
        return

    if output_json:
        _output_json(stored)
    else:
        _output_pretty(stored)


@app.command()
def worker() -> None:
    """Consume matching triggers from the queue until interrupted."""
    from talentmatch.worker import main as worker_main

    raise typer.Exit(worker_main())


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("talentmatch.api.app:app", host=host, port=port)


def _output_json(matches: list[MatchResult]) -> None:
    """Output results as JSON to stdout."""
    output = [match.model_dump(mode="json", by_alias=True) for match in matches]
    json.dump(obj=output, fp=sys.stdout, indent=2)
    sys.stdout.write("\n")


def _output_pretty(matches: list[MatchResult]) -> None:
    """Output results in pretty console format."""
    console.print(f"\n[bold green]Found {len(matches)} stored matches[/bold green]\n")

    for i, match in enumerate(matches, start=1):
        content = [
            f"[cyan]Overall Score:[/cyan] {match.overall_score:.0f}/100 "
            f"(Similarity: {match.score:.1%})",
        ]

        if match.reasoning:
            content.append(f"\n[cyan]Reasoning:[/cyan] {match.reasoning}")

        if match.matched_requirements:
            content.append("\n[cyan]Matched:[/cyan]")
            content.append(f"  {', '.join(match.matched_requirements)}")

        if match.missing_requirements:
            content.append("\n[yellow]Missing:[/yellow]")
            content.append(f"  {', '.join(match.missing_requirements)}")

        panel = Panel(
            renderable="\n".join(content),
            title=f"[bold]#{i} User {match.user_id}[/bold]",
            border_style="green" if i == 1 else "blue",
        )
        console.print(panel)
        console.print()


if __name__ == "__main__":
    app()
