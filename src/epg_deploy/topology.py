"""Settings → process topology for the supervisor.

Mode precedence, evaluated fresh on every start:
  - two or more sites  → multi: merge fragments, grab from the merged file
  - exactly one site   → single: grab --site <site>
  - no sites           → fallback: curated channels.xml, or all sites if ALL_SITES

The static file server is always present.
"""

import shlex

from .config import Settings, slugify
from .grab_args import build_grab_args, grab_command
from .models import Mode, ProcessDescriptor, Topology

RESTART_BACKOFF_MS = 5000
SERVE_NAME = "serve"
GRAB_NAME = "grab"
STARTUP_NAME = "grab-at-startup"


def select_mode(sites: list[str]) -> Mode:
    if len(sites) > 1:
        return "multi"
    if len(sites) == 1:
        return "single"
    return "fallback"


def serve_descriptor(settings: Settings) -> ProcessDescriptor:
    layout = settings.layout
    command = [layout.node, layout.serve_js, "-l", f"tcp://0.0.0.0:{settings.port}", layout.public_dir]
    return ProcessDescriptor(name=SERVE_NAME, cwd=layout.root, command=command, job=command)


def scheduled_descriptor(settings: Settings, name: str, job: list[str]) -> ProcessDescriptor:
    """Always-on cron runner executing job on every trigger."""
    layout = settings.layout
    command = [
        layout.node, layout.chronos_js,
        "--execute", shlex.join(job),
        "--pattern", settings.schedule,
        "--log",
    ]
    return ProcessDescriptor(
        name=name,
        cwd=layout.root,
        command=command,
        job=job,
        schedule=settings.schedule,
        restart="always",
        backoff_ms=RESTART_BACKOFF_MS,
    )


def startup_descriptor(settings: Settings, name: str, job: list[str]) -> ProcessDescriptor:
    """Run job once at container start; a zero exit stops it for good."""
    return ProcessDescriptor(
        name=name,
        cwd=settings.layout.root,
        command=job,
        job=job,
        restart="once",
        stop_exit_codes=[0],
    )


def combine_job(settings: Settings, grab_argv: list[str]) -> list[str]:
    """argv of the packaged combine-then-grab entry point."""
    layout = settings.layout
    argv = [layout.python, "-m", "epg_deploy", "combine-and-grab"]
    for site in settings.sites:
        argv += ["--site", site]
    argv += ["--sites-dir", layout.sites_dir, "--combined-dir", layout.combined_dir, "--"]
    return argv + grab_argv


def _name_suffix(settings: Settings, mode: Mode) -> str:
    if mode == "multi":
        return ":combined"
    if mode == "single":
        return f":{slugify(settings.sites[0])}"
    return ""


def build_topology(settings: Settings) -> Topology:
    """Every descriptor for this configuration snapshot."""
    mode = select_mode(settings.sites)
    grab_argv = grab_command(settings, build_grab_args(settings, mode))
    job = combine_job(settings, grab_argv) if mode == "multi" else grab_argv
    suffix = _name_suffix(settings, mode)

    processes = [
        serve_descriptor(settings),
        scheduled_descriptor(settings, GRAB_NAME + suffix, job),
    ]
    if settings.run_at_startup:
        processes.append(startup_descriptor(settings, STARTUP_NAME + suffix, job))

    return Topology(mode=mode, processes=processes)
