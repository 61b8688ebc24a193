"""CLI entry point for repomaint."""

import asyncio
import json
import logging
import os
import re
from datetime import timedelta
from pathlib import Path

# Load .env file if it exists
from dotenv import load_dotenv
load_dotenv()

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from repomaint.analyzers.github import GitHubFetcher
from repomaint.analyzers.llm_cache import ResponseCache
from repomaint.analyzers.llm_client import LLMClient
from repomaint.analyzers.pipeline import AnalysisPipeline
from repomaint.models.schemas import AnalysisMode, LLMAnalysis, MaintainabilityReport
from repomaint.monitoring import MetricsCollector

app = typer.Typer(help="Repository maintainability index for GitHub projects.")

console = Console()

_REPO_RE = re.compile(
    r"^(?:https?://github\.com/)?(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$"
)

MODE_STYLES = {
    AnalysisMode.FALLBACK: ("yellow", "Some sections use stock defaults instead of model output."),
    AnalysisMode.API_ERROR: ("red", "The LLM service could not be reached for part of the analysis."),
    AnalysisMode.PARSE_ERROR: ("red", "The model's replies could not be parsed reliably."),
    AnalysisMode.QUALITY_LOW: ("yellow", "The model reported low confidence in its own review."),
}


def parse_repository(value: str) -> tuple[str, str]:
    """Split ``owner/repo`` or a GitHub URL into owner and repository name.

    Raises:
        typer.BadParameter: If the value is not a recognizable repository.
    """
    match = _REPO_RE.match(value.strip())
    if not match:
        raise typer.BadParameter(f"Expected owner/repo or a GitHub URL, got '{value}'")
    return match.group("owner"), match.group("repo")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _score_bar(score: float, width: int = 20) -> str:
    """Create a visual score bar."""
    filled = int(score / 100 * width)
    empty = width - filled
    color = "green" if score >= 75 else "yellow" if score >= 60 else "red"
    return f"[{color}]{'█' * filled}[/{color}][dim]{'░' * empty}[/dim]"


def _ten_point(score: int) -> str:
    color = "green" if score >= 7 else "yellow" if score >= 5 else "red"
    return f"[{color}]{score}[/{color}]/10"


@app.command()
def analyze(
    repositories: list[str] = typer.Argument(..., help="Repositories as owner/repo or GitHub URLs"),
    output_format: str = typer.Option("text", "--format", "-f", help="Output format: text or json"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the report to a file"),
    token: str | None = typer.Option(None, "--token", "-t", help="GitHub token (defaults to GITHUB_TOKEN)"),
    llm: bool = typer.Option(False, "--llm", help="Add AI analysis of README, commits and community"),
    model: str | None = typer.Option(None, "--model", "-m", help="OpenRouter model for LLM analysis"),
    timeout: float = typer.Option(30.0, "--timeout", help="Seconds before a batch LLM call is retried"),
    cache_ttl_hours: float = typer.Option(24.0, "--cache-ttl-hours", help="LLM response cache lifetime"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print the report"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Analyze the maintainability of one or more GitHub repositories."""
    if output_format not in ("text", "json"):
        raise typer.BadParameter("--format must be 'text' or 'json'")
    targets = [parse_repository(r) for r in repositories]
    _configure_logging(verbose)

    asyncio.run(
        _analyze(
            targets,
            output_format,
            output,
            token,
            llm,
            model,
            timeout,
            cache_ttl_hours,
            quiet,
            verbose,
        )
    )


async def _analyze(
    targets: list[tuple[str, str]],
    output_format: str,
    output: Path | None,
    token: str | None,
    use_llm: bool,
    model: str | None,
    timeout: float,
    cache_ttl_hours: float,
    quiet: bool,
    verbose: bool,
) -> None:
    """Async implementation of analyze."""
    llm_client = None
    if use_llm:
        api_key = os.environ.get("OPENROUTER_API_KEY")
        if api_key:
            llm_client = LLMClient(api_key=api_key, model=model)
        else:
            console.print("[yellow]OPENROUTER_API_KEY is not set; skipping LLM analysis[/yellow]")

    metrics = MetricsCollector()
    cache = ResponseCache(ttl=timedelta(hours=cache_ttl_hours))
    show_progress = not quiet and output_format == "text"
    reports: list[MaintainabilityReport] = []

    async with AnalysisPipeline(
        github_token=token or os.environ.get("GITHUB_TOKEN"),
        llm_client=llm_client,
        cache=cache,
        metrics=metrics,
        llm_timeout=timeout,
    ) as pipeline:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            disable=not show_progress,
        ) as progress:
            task = progress.add_task("Analyzing...", total=None)
            for owner, repo in targets:
                progress.update(task, description=f"Analyzing {owner}/{repo}...")
                try:
                    report = await pipeline.analyze(owner, repo)
                except httpx.HTTPError as e:
                    console.print(f"[red]Error analyzing {owner}/{repo}: {e}[/red]")
                    raise typer.Exit(1)
                if report is None:
                    console.print(f"[red]Repository {owner}/{repo} not found[/red]")
                    raise typer.Exit(1)
                reports.append(report)

    if output_format == "json":
        payload = [r.model_dump(mode="json") for r in reports]
        text = json.dumps(payload[0] if len(payload) == 1 else payload, indent=2)
        if output:
            output.write_text(text)
        else:
            console.print_json(text)
    else:
        for report in reports:
            _print_report(report)
        if output:
            output.write_text(
                json.dumps([r.model_dump(mode="json") for r in reports], indent=2)
            )

    if output and not quiet:
        console.print(f"\n[green]Saved to {output}[/green]")

    if verbose:
        stats = metrics.get_metrics()
        console.print(
            f"[dim]LLM analyses: {stats.analyses_total} "
            f"(degraded: {stats.degraded_count}, cached: {stats.cache_hits}), "
            f"tokens: {stats.tokens_used}, cache: {cache.stats()}[/dim]"
        )


def _print_report(report: MaintainabilityReport) -> None:
    console.print()
    console.print(f"[bold cyan]{report.repository}[/bold cyan]")
    console.print()

    score_color = "green" if report.overall_score >= 75 else "yellow" if report.overall_score >= 60 else "red"
    console.print(
        Panel(
            f"[bold][{score_color}]{report.overall_score:.1f}[/{score_color}][/bold] / 100  "
            f"Rating: [bold]{report.rating.value}[/bold]",
            title="Maintainability Score",
            expand=False,
        )
    )
    console.print()

    table = Table(title="Metrics", show_header=True)
    table.add_column("Metric", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Weight", justify="right", style="dim")
    table.add_column("Bar", width=20)
    table.add_column("Details", style="dim", max_width=60)

    for metric in report.metrics.values():
        table.add_row(
            metric.name,
            f"{metric.score:.1f}",
            f"{metric.weight * 100:.0f}%",
            _score_bar(metric.score),
            metric.details,
        )
    console.print(table)
    console.print()
    console.print(f"[bold]Recommendation:[/bold] {report.recommendation}")

    if report.llm_analysis is not None:
        _print_llm_analysis(report.llm_analysis)


def _print_llm_analysis(analysis: LLMAnalysis) -> None:
    console.print()
    if analysis.mode is not AnalysisMode.REAL:
        color, message = MODE_STYLES[analysis.mode]
        console.print(
            Panel(
                f"[bold {color}]Degraded analysis ({analysis.mode.value})[/bold {color}]\n\n{message}",
                title="AI Analysis Notice",
                expand=False,
                border_style=color,
            )
        )

    scores = Table(title="AI Analysis", show_header=False, box=None)
    scores.add_column("Aspect", style="bold")
    scores.add_column("Score", justify="right")

    scores.add_row("README clarity", _ten_point(analysis.readme.clarity))
    scores.add_row("README completeness", _ten_point(analysis.readme.completeness))
    scores.add_row("Newcomer friendliness", _ten_point(analysis.readme.newcomer_friendly))
    scores.add_row("Commit clarity", _ten_point(analysis.commits.clarity))
    scores.add_row("Commit consistency", _ten_point(analysis.commits.consistency))
    scores.add_row("Commit informativeness", _ten_point(analysis.commits.informativeness))
    scores.add_row("Community responsiveness", _ten_point(analysis.community.responsiveness))
    scores.add_row("Community helpfulness", _ten_point(analysis.community.helpfulness))
    scores.add_row("Community tone", _ten_point(analysis.community.tone))
    console.print(scores)

    strengths = analysis.readme.strengths + analysis.community.strengths
    if strengths:
        console.print()
        console.print("[bold green]Strengths:[/bold green]")
        for item in strengths:
            console.print(f"  [green]+[/green] {item}")

    suggestions = analysis.readme.suggestions + analysis.community.suggestions
    if suggestions:
        console.print()
        console.print("[bold yellow]Suggestions:[/bold yellow]")
        for item in suggestions:
            console.print(f"  [yellow]![/yellow] {item}")

    if analysis.commits.patterns:
        console.print()
        console.print("[bold]Commit patterns:[/bold]")
        for item in analysis.commits.patterns:
            console.print(f"  - {item}")

    if analysis.integrated_insights:
        console.print()
        console.print("[bold]Insights:[/bold]")
        for item in analysis.integrated_insights:
            console.print(f"  - {item}")

    if analysis.recommendations:
        console.print()
        recs = Table(title="AI Recommendations", show_header=True)
        recs.add_column("Severity")
        recs.add_column("Recommendation", style="bold")
        recs.add_column("Impact", justify="right")
        recs.add_column("Confidence", justify="right", style="dim")
        for rec in analysis.recommendations:
            color = "red" if rec.severity.value == "HIGH" else "yellow"
            recs.add_row(
                f"[{color}]{rec.severity.value}[/{color}]",
                f"{rec.title}\n[dim]{rec.description}[/dim]",
                str(rec.impact),
                f"{rec.confidence}%",
            )
        console.print(recs)

    console.print()
    cached = " (cached)" if analysis.from_cache else ""
    console.print(
        f"[dim]Confidence: {analysis.confidence:.1f}% | "
        f"Quality indicator: {analysis.quality_indicator} | "
        f"{analysis.tokens_used} tokens used{cached}[/dim]"
    )


@app.command()
def github_info(
    repository: str = typer.Argument(..., help="Repository as owner/repo or GitHub URL"),
    token: str | None = typer.Option(None, "--token", "-t", help="GitHub token (defaults to GITHUB_TOKEN)"),
) -> None:
    """Show basic GitHub data for a repository."""
    owner, repo = parse_repository(repository)
    asyncio.run(_github_info(owner, repo, token))


async def _github_info(owner: str, repo: str, token: str | None) -> None:
    """Async implementation of github_info."""
    fetcher = GitHubFetcher(token=token)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task("Fetching GitHub data...", total=None)
        try:
            info = await fetcher.get_repository(owner, repo)
        except httpx.HTTPError as e:
            console.print(f"[red]Error fetching {owner}/{repo}: {e}[/red]")
            raise typer.Exit(1)

    if info is None:
        console.print(f"[red]Repository {owner}/{repo} not found[/red]")
        raise typer.Exit(1)

    console.print()
    console.print(f"[bold cyan]{info.full_name}[/bold cyan]")
    if info.description:
        console.print(f"[dim]{info.description}[/dim]")
    console.print()

    table = Table(title="Repository Stats", show_header=False, box=None)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Stars", f"{info.stars:,}")
    table.add_row("Forks", f"{info.forks:,}")
    table.add_row("Open Issues", str(info.open_issues))
    table.add_row("Default Branch", info.default_branch)
    table.add_row("Issues Enabled", "Yes" if info.has_issues else "No")
    table.add_row("Updated", info.updated_at.isoformat() if info.updated_at else "-")
    table.add_row(
        "Rate Limit",
        f"{fetcher.rate_limit_remaining}/{fetcher.rate_limit_total}",
    )
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    from repomaint import __version__

    console.print(f"repomaint v{__version__}")


if __name__ == "__main__":
    app()
