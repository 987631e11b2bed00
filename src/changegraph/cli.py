# src/changegraph/cli.py
"""changegraph command line interface.

Entry point for the changegraph CLI tool.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from changegraph import __version__
from changegraph.contracts.errors import ProviderContractError, SettingsError
from changegraph.core.config import ChangeGraphSettings, load_settings

__all__ = ["app"]

app = typer.Typer(
    name="changegraph",
    help="changegraph: audit records for aggregate change sets.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"changegraph version {__version__}")
        raise typer.Exit()


def _fail(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """changegraph: audit records for aggregate change sets."""
    from changegraph.core.logging import configure_logging

    log_level = "DEBUG" if verbose else "INFO"
    configure_logging(json_output=json_logs, level=log_level)
    # Explicit flags win over the logging section of a settings file
    ctx.obj = {"logging_overridden": verbose or json_logs}


def _load_config(settings: str | None) -> ChangeGraphSettings:
    if settings is None:
        return ChangeGraphSettings()

    settings_path = Path(settings).expanduser()
    try:
        return load_settings(settings_path)
    except (YamlParserError, YamlScannerError) as e:
        raise _fail(f"YAML syntax error in {settings}: {e.problem}") from None
    except SettingsError as e:
        raise _fail(f"Error: {e}") from None
    except ValidationError as e:
        typer.secho("Configuration errors:", fg=typer.colors.RED, err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.secho(f"  - {loc}: {error['msg']}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None


@app.command()
def demo(
    ctx: typer.Context,
    settings: str | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    output_format: Literal["console", "json"] = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json' (structured JSON).",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the audit record to this file instead of stdout.",
    ),
    actor: str | None = typer.Option(
        None,
        "--actor",
        help="Actor id stamped on field-level records.",
    ),
) -> None:
    """Build the demo aggregate, change it, and print its audit record."""
    from sqlalchemy.orm import Session

    from changegraph.core.formatters import ConsoleFormatter, JSONFormatter
    from changegraph.core.logging import configure_logging
    from changegraph.demo import create_demo_engine, run_scenario
    from changegraph.engine.auditor import AuditLogger
    from changegraph.providers.sqlalchemy import SqlAlchemyChangeTracker

    config = _load_config(settings)
    if settings is not None and not (ctx.obj or {}).get("logging_overridden", False):
        configure_logging(json_output=config.logging.json_output, level=config.logging.level)

    engine = create_demo_engine(config.database)
    try:
        with Session(engine, expire_on_commit=False) as session:
            scenario = run_scenario(session)
            auditor = AuditLogger(SqlAlchemyChangeTracker(session), config.audit)
            record = auditor.create_audit_log(scenario.root, actor_id=actor)
            session.rollback()
    except ProviderContractError as e:
        raise _fail(f"Change tracker error: {e}") from None
    finally:
        engine.dispose()

    formatter = JSONFormatter() if output_format == "json" else ConsoleFormatter()
    rendered = formatter.format(record)
    if output is not None:
        output.write_text(rendered + "\n", encoding="utf-8")
        typer.echo(f"Audit record written to {output}")
    else:
        typer.echo(rendered)


if __name__ == "__main__":
    app()
