"""
fieldpipe — CLI entrypoint.

Usage:
    fieldpipe --help
    fieldpipe discover
    fieldpipe order data_loader summarizer
    fieldpipe validate-module ridgeline --category plot
    fieldpipe run coha_dispersal
    fieldpipe plots --data data.yml
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
import yaml

from fieldpipe import __version__
from fieldpipe.core.observability.logging_config import setup_logging

_STATUS_COLORS = {"success": "green", "partial": "yellow", "failed": "red"}
_STATUS_ICONS = {"success": "✅", "partial": "⚠️ ", "failed": "❌"}

_category_option = click.option(
    "--category",
    type=click.Choice(["plot", "domain"]),
    default="domain",
    show_default=True,
    help="Module category.",
)
_json_option = click.option(
    "--json-output", "--json", "as_json", is_flag=True, help="Output as JSON."
)


@click.group()
@click.version_option(version=__version__, prog_name="fieldpipe")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to pipeline.yml (default: auto-detect).",
)
@click.option(
    "--base-dir",
    "-b",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory holding plot_modules/ and domain_modules/.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    base_dir: str | None,
) -> None:
    """fieldpipe — discover, order and run analysis modules."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["base_dir"] = Path(base_dir) if base_dir else None

    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = None  # FIELDPIPE_LOG_LEVEL or WARNING
    setup_logging(level=level)


def _engine(ctx: click.Context):
    """Build the EngineContext for this invocation (config optional)."""
    from fieldpipe.core.config.loader import ConfigError, find_config_file, load_pipeline_config
    from fieldpipe.core.context import EngineContext

    config_path = ctx.obj.get("config_path") or find_config_file()
    config = None
    if config_path is not None:
        try:
            config = load_pipeline_config(config_path)
        except ConfigError as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(1)

    base_dir = ctx.obj.get("base_dir")
    return EngineContext.create(base_dir=base_dir or ".", config=config)


def _load_data_file(path: str | None):
    if path is None:
        return None
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


# ── discover ────────────────────────────────────────────────────────


@cli.command()
@click.option("--category", type=click.Choice(["plot", "domain"]), default=None)
@_json_option
@click.pass_context
def discover(ctx: click.Context, category: str | None, as_json: bool) -> None:
    """List modules found under the base directory."""
    from fieldpipe.core.engine.discovery import discover as discover_modules

    engine = _engine(ctx)
    found = discover_modules(engine.base_dir, category)

    if as_json:
        click.echo(json.dumps(found.to_dict(), indent=2))
        return

    for label, modules in (("Plot modules", found.plot_modules),
                           ("Domain modules", found.domain_modules)):
        if category and not label.lower().startswith(category):
            continue
        click.secho(f"\n   {label}: {len(modules)}", bold=True)
        for name, d in modules.items():
            markers = [
                Path(p).name
                for p in (d.module_file, d.interface_file, d.config_file, d.readme_file)
                if p
            ]
            click.echo(f"     • {name}  ({', '.join(markers)})")
    click.echo()


# ── order ───────────────────────────────────────────────────────────


@cli.command()
@click.argument("names", nargs=-1)
@_category_option
@_json_option
@click.pass_context
def order(ctx: click.Context, names: tuple[str, ...], category: str, as_json: bool) -> None:
    """Show the dependency-resolved load order of modules.

    With no NAMES, every discovered module of the category is included.
    """
    from fieldpipe.core.engine.discovery import discover as discover_modules
    from fieldpipe.core.engine.loader import load
    from fieldpipe.core.services.dependency_resolver import (
        build_graph,
        format_graph,
        topological_sort,
    )

    engine = _engine(ctx)
    wanted = list(names) or list(discover_modules(engine.base_dir, category).of(category))

    modules, errors = {}, []
    for name in wanted:
        outcome = load(name, category, engine.base_dir)
        if outcome.loaded:
            modules[name] = outcome.plugin_module
        else:
            errors.extend(outcome.errors)

    graph = build_graph(modules, wanted)
    outcome = topological_sort(graph)
    if not outcome.ok:
        errors.append(outcome.error or "Cannot determine module load order")

    if as_json:
        click.echo(json.dumps({
            "order": outcome.order,
            "cycles": outcome.cycles.cycles,
            "errors": errors,
        }, indent=2))
        sys.exit(0 if not errors else 1)

    click.echo(format_graph(graph))
    for err in errors:
        click.secho(f"❌ {err}", fg="red")
    if errors:
        sys.exit(1)


# ── validate-module ─────────────────────────────────────────────────


@cli.command("validate-module")
@click.argument("name")
@_category_option
@click.option(
    "--params",
    "params_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML file of parameters to check against the module's schema.",
)
@_json_option
@click.pass_context
def validate_module(
    ctx: click.Context, name: str, category: str, params_file: str | None, as_json: bool
) -> None:
    """Load a module and check its interface (and optionally a config)."""
    from fieldpipe.core.engine.loader import load, validate_interface
    from fieldpipe.core.services.schema_validator import validate_config

    engine = _engine(ctx)
    outcome = load(name, category, engine.base_dir)
    payload: dict = {"load": outcome.to_dict()}
    ok = outcome.loaded

    if outcome.loaded:
        check = validate_interface(outcome.plugin_module, category, name)
        payload["interface"] = check.to_dict()
        ok = check.valid

        if check.valid and params_file:
            schema = check.plugin.schema()
            if schema is None:
                payload["config"] = {"valid": False, "errors": ["Module declares no schema"]}
                ok = False
            else:
                params = _load_data_file(params_file) or {}
                result = validate_config(params, schema)
                payload["config"] = result.to_dict()
                ok = ok and result.valid

    if as_json:
        click.echo(json.dumps(payload, indent=2, default=str))
        sys.exit(0 if ok else 1)

    if not outcome.loaded:
        click.secho(f"❌ Could not load '{name}'", fg="red", bold=True)
        for err in outcome.errors:
            click.echo(f"   • {err}")
        sys.exit(1)

    iface = payload["interface"]
    if iface["valid"]:
        click.secho(f"✅ {name}: {iface['interface_style']}-style {category} module", fg="green")
    else:
        click.secho(f"❌ {name}: no known interface", fg="red", bold=True)
        click.echo(f"   Missing: {', '.join(iface['missing'])}")

    cfg = payload.get("config")
    if cfg is not None:
        if cfg["valid"]:
            click.secho("✅ Parameters are valid", fg="green")
        else:
            click.secho("❌ Parameter errors:", fg="red")
            for err in cfg["errors"]:
                click.echo(f"   • {err}")
        for warn in cfg.get("warnings", []):
            click.secho(f"   ⚠️  {warn}", fg="yellow")

    if not ok:
        sys.exit(1)


# ── run ─────────────────────────────────────────────────────────────


@cli.command()
@click.argument("domain")
@click.option("--output-dir", "-o", type=click.Path(file_okay=False), default=None)
@_json_option
@click.pass_context
def run(ctx: click.Context, domain: str, output_dir: str | None, as_json: bool) -> None:
    """Initialize the pipeline and set up a domain module."""
    from fieldpipe.core.engine.executor import run_analysis

    engine = _engine(ctx)
    result = run_analysis(engine, domain, output_dir)

    if as_json:
        click.echo(result.to_json())
        sys.exit(1 if result.failed else 0)

    icon = _STATUS_ICONS.get(result.status, "?")
    click.secho(f"{icon} {result.summary()}", fg=_STATUS_COLORS.get(result.status))
    if result.failed:
        sys.exit(1)
    if not ctx.obj.get("quiet"):
        for label, path in result.data["output_dirs"].items():
            click.echo(f"   {label:<8} {path}")


# ── plots ───────────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--data",
    "data_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML/JSON file passed to every plot module as its data.",
)
@click.option("--output-dir", "-o", type=click.Path(file_okay=False), default=None)
@click.option("--dpi", type=int, default=300, show_default=True)
@click.option("--fail-fast", is_flag=True, help="Stop at the first failing module.")
@click.option(
    "--halt-on-error", is_flag=True, help="Exit with the error report if any module failed."
)
@_json_option
@click.pass_context
def plots(
    ctx: click.Context,
    data_file: str | None,
    output_dir: str | None,
    dpi: int,
    fail_fast: bool,
    halt_on_error: bool,
    as_json: bool,
) -> None:
    """Run every discovered plot module."""
    from fieldpipe.core.engine.executor import orchestrate_plot_generation
    from fieldpipe.core.errors import PipelineHaltedError
    from fieldpipe.core.services.error_report import format_error_report

    engine = _engine(ctx)
    try:
        report = orchestrate_plot_generation(
            engine,
            _load_data_file(data_file),
            output_base=output_dir,
            continue_on_error=not fail_fast,
            dpi=dpi,
            halt_on_error=halt_on_error,
        )
    except PipelineHaltedError as e:
        if as_json:
            click.echo(json.dumps({"halted": str(e), **e.report.to_dict()}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red", bold=True)
            click.echo(format_error_report(e.report))
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(1 if report.status == "failed" else 0)

    color = _STATUS_COLORS.get(report.status, "white")
    click.secho(
        f"{_STATUS_ICONS.get(report.status, '?')} Plot generation: {report.status}",
        fg=color,
        bold=True,
    )
    click.echo(
        f"   Modules: {report.modules_found} found, {report.modules_loaded} loaded, "
        f"{report.modules_failed} failed"
    )
    click.echo(f"   Plots:   {report.plots_generated} generated, {report.plots_failed} failed")
    for category, count in report.error_report.counts_by_category.items():
        click.echo(f"   {category}: {count} error(s)")
    for err in report.errors:
        click.secho(f"   • {err}", fg="red")
    if report.status == "failed":
        sys.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
