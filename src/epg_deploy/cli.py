"""Click CLI for epg-deploy.

The environment is read exactly once, in the group callback; commands get
the resulting Settings from the click context.
"""

import json
import logging
from pathlib import Path

import click
import yaml
from rich.logging import RichHandler

from .config import load_settings, unique
from .errors import CombineError
from .models import CachePaths
from .output.console import err_console, print_combine_result, print_settings, print_topology
from .runner import COMBINE_FAILED_EXIT

logger = logging.getLogger("epg_deploy")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, verbose):
    """epg-deploy — process topology and combined channels for the EPG grabber."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = load_settings()


@cli.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["table", "json", "yaml", "pm2"]),
    default="table",
    help="Output format (default: table)",
)
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None, help="Write to file instead of stdout")
@click.pass_context
def topology(ctx, fmt, output):
    """Show the processes this environment would run.

    \b
    Examples:
      epg-deploy topology                              # table
      epg-deploy topology --format pm2 -o eco.json     # for pm2-runtime
    """
    from .output.pm2 import to_pm2_ecosystem
    from .topology import build_topology

    topo = build_topology(ctx.obj["settings"])

    if fmt == "table":
        print_topology(topo)
        return

    if fmt == "json":
        text = topo.model_dump_json(indent=2)
    elif fmt == "yaml":
        text = yaml.safe_dump(topo.model_dump(), default_flow_style=False, sort_keys=False)
    else:
        text = json.dumps(to_pm2_ecosystem(topo), indent=2)

    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text.rstrip("\n") + "\n", encoding="utf-8")
        logger.info("Topology (%s, %d processes) written to %s", topo.mode, len(topo.processes), path)
    else:
        click.echo(text.rstrip("\n"))


@cli.command("settings")
@click.pass_context
def settings_cmd(ctx):
    """Show the configuration resolved from the environment."""
    print_settings(ctx.obj["settings"])


@cli.command()
@click.option("--site", "-s", "sites", multiple=True, help="Site to include (default: SITE env)")
@click.option("--sites-dir", type=click.Path(file_okay=False), default=None, help="Directory holding one folder per site")
@click.option("--combined-dir", type=click.Path(file_okay=False), default=None, help="Where channels.xml and its metadata go")
@click.pass_context
def combine(ctx, sites, sites_dir, combined_dir):
    """Build (or confirm) the combined channels.xml for several sites."""
    from .combiner import ensure_combined_document

    settings = ctx.obj["settings"]
    layout = settings.layout
    wanted = unique(sites) if sites else settings.sites
    if not wanted:
        err_console.print("[red]No sites given (pass --site or set SITE)[/red]")
        raise SystemExit(2)

    paths = CachePaths.in_directory(combined_dir or layout.combined_dir)
    try:
        result = ensure_combined_document(wanted, sites_dir or layout.sites_dir, paths)
    except CombineError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise SystemExit(COMBINE_FAILED_EXIT)

    print_combine_result(result)


@cli.command(
    "combine-and-grab",
    context_settings={"ignore_unknown_options": True},
)
@click.option("--site", "-s", "sites", multiple=True, required=True, help="Site to include (repeatable)")
@click.option("--sites-dir", type=click.Path(file_okay=False), required=True, help="Directory holding one folder per site")
@click.option("--combined-dir", type=click.Path(file_okay=False), required=True, help="Where channels.xml and its metadata go")
@click.option("--cwd", type=click.Path(file_okay=False), default=None, help="Working directory for the grab command")
@click.argument("grab_argv", nargs=-1, required=True, type=click.UNPROCESSED)
def combine_and_grab_cmd(sites, sites_dir, combined_dir, cwd, grab_argv):
    """Refresh the combined channels.xml, then run GRAB_ARGV.

    Exits with the grab command's status, or 70 if channels.xml
    could not be written.

    \b
    Example:
      epg-deploy combine-and-grab -s a.com -s b.com --sites-dir sites \\
          --combined-dir /tmp/epg -- node grab.js --channels /tmp/epg/channels.xml
    """
    from .runner import combine_and_grab

    paths = CachePaths.in_directory(combined_dir)
    try:
        code = combine_and_grab(unique(sites), sites_dir, paths, list(grab_argv), cwd=cwd)
    except CombineError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise SystemExit(COMBINE_FAILED_EXIT)

    raise SystemExit(code)


if __name__ == "__main__":
    cli()
