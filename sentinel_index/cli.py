"""CLI entry point — command definitions using Click.

Commands:
    init        Generate a template config file
    analyze     Index connectors and tables, export as JSON or CSV
    solutions   List the solution directories of the repository
    commit      Show the latest commit SHA of the configured branch
"""

import io
import logging
import sys

import click

from sentinel_index import __version__

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers shared by all data commands
# ---------------------------------------------------------------------------

def _make_client(ctx: click.Context):
    """Load config and return a ready GitHubClient. Exits on error."""
    from sentinel_index.client import GitHubClient
    from sentinel_index.config import ConfigError, load

    obj = ctx.obj
    try:
        config = load(obj["config_path"])
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)

    if obj["branch"]:
        config.branch = obj["branch"]

    logger.debug(
        "Using %s@%s (%s)", config.repository, config.branch, config.solutions_path
    )
    client = GitHubClient(
        owner=config.owner, name=config.name, branch=config.branch, timeout=config.timeout
    )
    return config, client


def _emit(text: str, ctx: click.Context) -> None:
    """Write text to stdout or to the file specified by --output."""
    output_path: str | None = ctx.obj["output_path"]
    if output_path:
        with open(output_path, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        click.echo(f"Report written to '{output_path}'", err=True)
    else:
        click.echo(text, nl=not text.endswith("\n"))


def _handle_client_errors(func):
    """Decorator that catches GitHubClient exceptions and exits cleanly."""
    import functools

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        from sentinel_index.client import (
            AccessDeniedError,
            GitHubClientError,
            NetworkError,
            NotFoundError,
        )

        try:
            return func(*args, **kwargs)
        except AccessDeniedError as exc:
            click.echo(f"Access denied: {exc}", err=True)
            sys.exit(1)
        except NotFoundError as exc:
            click.echo(f"Not found: {exc}", err=True)
            sys.exit(1)
        except NetworkError as exc:
            click.echo(f"Network error: {exc}", err=True)
            sys.exit(1)
        except GitHubClientError as exc:
            click.echo(f"GitHub error: {exc}", err=True)
            sys.exit(1)

    return wrapper


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", "config_path", default=None,
              help="Path to a YAML configuration file (defaults are used when omitted).")
@click.option("--output", "output_path", default=None,
              help="Write the report to a file instead of stdout.")
@click.option("--pretty", is_flag=True, default=False,
              help="Pretty-print JSON output.")
@click.option("--branch", default=None,
              help="Repository branch (overrides config).")
@click.option("--verbose", is_flag=True, default=False,
              help="Enable verbose logging.")
@click.version_option(__version__, prog_name="sentinel-index")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, output_path: str | None,
        pretty: bool, branch: str | None, verbose: bool) -> None:
    """Microsoft Sentinel solution index — map data connectors to the tables they ingest."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["output_path"] = output_path
    ctx.obj["pretty"] = pretty
    ctx.obj["branch"] = branch
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@cli.command("init")
@click.option("--output", "output_path", default="sentinel-index.yaml", show_default=True,
              help="Path where the template config file will be written.")
def init_command(output_path: str) -> None:
    """Generate a template sentinel-index.yaml file."""
    from sentinel_index.config import ConfigError, generate_template
    try:
        generate_template(output_path)
        click.echo(f"Template written to '{output_path}'.")
        click.echo("Edit it to point at another repository, branch or solutions path.")
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------

@cli.command("analyze")
@click.option("--format", "output_format", type=click.Choice(["json", "csv"]),
              default="json", show_default=True,
              help="json: full index (metadata, mappings, issues); csv: mappings only.")
@click.option("--issues-output", "issues_path", default=None,
              help="Also write the detected issues to this file (JSON for a .json path, CSV otherwise).")
@click.option("--detection-methods", is_flag=True, default=False,
              help="Add the 'Detection Method' column to the CSV output.")
@click.pass_context
@_handle_client_errors
def analyze_command(ctx: click.Context, output_format: str, issues_path: str | None,
                    detection_methods: bool) -> None:
    """Index every connector and the tables it ingests."""
    from sentinel_index.analyzer import SolutionAnalyzer
    from sentinel_index.reports.csv_report import write_issues_csv, write_mappings_csv
    from sentinel_index.reports.json_report import issues_to_json, result_to_json

    config, client = _make_client(ctx)
    analyzer = SolutionAnalyzer(
        client, solutions_path=config.solutions_path, max_workers=config.max_workers
    )
    result = analyzer.analyze()

    if output_format == "json":
        _emit(result_to_json(result, pretty=ctx.obj["pretty"]), ctx)
    else:
        buffer = io.StringIO()
        write_mappings_csv(result.mappings, buffer, show_detection_methods=detection_methods)
        _emit(buffer.getvalue(), ctx)

    if issues_path:
        with open(issues_path, "w", encoding="utf-8", newline="") as f:
            if issues_path.lower().endswith(".json"):
                f.write(issues_to_json(result.issues, pretty=ctx.obj["pretty"]))
                written = bool(result.issues)
            else:
                written = write_issues_csv(result.issues, f)
        if written:
            click.echo(f"Issues written to '{issues_path}'", err=True)
        else:
            click.echo("No issues detected.", err=True)

    click.echo(
        f"{len(result.mappings)} mappings, {len(result.issues)} issues "
        f"({result.metadata.get('repository')}@{result.metadata.get('commitSha')})",
        err=True,
    )


# ---------------------------------------------------------------------------
# solutions
# ---------------------------------------------------------------------------

@cli.command("solutions")
@click.pass_context
@_handle_client_errors
def solutions_command(ctx: click.Context) -> None:
    """List the solution directories under the configured solutions path."""
    config, client = _make_client(ctx)
    entries = client.list_directory(config.solutions_path)
    names = [e["name"] for e in entries if e.get("type") == "dir"]
    _emit("\n".join(names) + "\n" if names else "", ctx)


# ---------------------------------------------------------------------------
# commit
# ---------------------------------------------------------------------------

@cli.command("commit")
@click.pass_context
@_handle_client_errors
def commit_command(ctx: click.Context) -> None:
    """Show the latest commit SHA of the configured branch."""
    _, client = _make_client(ctx)
    _emit(client.get_latest_commit_sha() + "\n", ctx)
