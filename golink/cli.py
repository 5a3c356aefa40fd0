"""``go`` command line tool."""

from __future__ import annotations

import asyncio
import sys

import typer

from golink.core.config import settings
from golink.core.logging import configure_logging
from golink.models.links.schemas import Ambiguous, Candidate, Failed, NotFound, Resolution
from golink.services.links.service import LinkResolver
from golink.workers.fetcher import close_http_client

EXIT_NOT_FOUND = 1
EXIT_AMBIGUOUS = 2

app = typer.Typer(
    name="go",
    help="Open go/ links from the terminal.",
    add_completion=False,
    pretty_exceptions_show_locals=False,
    pretty_exceptions_enable=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


async def _resolve(link: str, refresh: bool, offline: bool) -> Resolution:
    resolver = LinkResolver.from_settings()
    try:
        return await resolver.resolve(link, force_refresh=refresh, offline=offline)
    finally:
        await close_http_client()


def open_link(url: str) -> None:
    """Open *url* in the browser, printing it when that fails."""
    if typer.launch(url) != 0:
        typer.secho("Failed to open browser", fg=typer.colors.RED, err=True)
        typer.echo(url)


def _deliver(url: str, print_only: bool) -> None:
    if print_only:
        typer.echo(url)
    else:
        open_link(url)


def _format_candidates(candidates: list[Candidate]) -> str:
    return "\n".join(f"  {c.shortcut}: {c.target}" for c in candidates)


def _is_interactive() -> bool:
    return sys.stdin.isatty()


def choose_candidate(candidates: list[Candidate]) -> Candidate | None:
    """Ask the user to pick one of *candidates*; ``None`` when they cancel."""
    for number, candidate in enumerate(candidates, start=1):
        typer.echo(f"{number:>3}. {candidate.shortcut}: {candidate.target}", err=True)
    while True:
        try:
            answer = typer.prompt(
                "Choose a link (empty to cancel)", default="", show_default=False, err=True
            )
        except typer.Abort:
            return None
        answer = answer.strip()
        if not answer:
            return None
        if answer.isdigit() and 1 <= int(answer) <= len(candidates):
            return candidates[int(answer) - 1]
        typer.secho(f"Enter a number from 1 to {len(candidates)}", fg=typer.colors.RED, err=True)


@app.command()
def go(
    link: str = typer.Argument("", help="The link to open, with or without `go/`."),
    print_only: bool = typer.Option(False, "--print", help="Print the link instead of opening it."),
    as_json: bool = typer.Option(False, "--json", help="Print the resolution as JSON."),
    refresh: bool = typer.Option(False, "--refresh", help="Fetch the directory even if the cache is fresh."),
    offline: bool = typer.Option(False, "--offline", help="Use only the local cache."),
) -> None:
    """Resolve LINK and open its target."""
    configure_logging(settings.log_level)
    resolution = asyncio.run(_resolve(link, refresh, offline))

    for warning in resolution.warnings:
        typer.secho(f"warning: {warning.message}", fg=typer.colors.YELLOW, err=True)

    if as_json:
        typer.echo(resolution.model_dump_json(indent=2))
    elif isinstance(resolution, Failed):
        typer.secho(f"Error: {resolution.message}", fg=typer.colors.RED, err=True)
    elif isinstance(resolution, Ambiguous) and _is_interactive():
        typer.secho(f"Multiple links match {link!r}:", fg=typer.colors.YELLOW, err=True)
        chosen = choose_candidate(resolution.candidates)
        if chosen is None:
            raise typer.Exit()
        _deliver(chosen.target, print_only)
        return
    elif isinstance(resolution, Ambiguous):
        typer.secho(f"Multiple links match {link!r}:", fg=typer.colors.YELLOW, err=True)
        typer.echo(_format_candidates(resolution.candidates), err=True)
    elif isinstance(resolution, NotFound):
        typer.secho("No links found", fg=typer.colors.RED, err=True)
        if resolution.candidates:
            typer.echo("Did you mean:", err=True)
            typer.echo(_format_candidates(resolution.candidates), err=True)
    else:
        _deliver(resolution.entry.target, print_only)

    if isinstance(resolution, Ambiguous):
        raise typer.Exit(code=EXIT_AMBIGUOUS)
    if isinstance(resolution, (NotFound, Failed)):
        raise typer.Exit(code=EXIT_NOT_FOUND)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
