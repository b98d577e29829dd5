"""Settings + mode → argv for the external grab script.

Flag order is fixed; downstream snapshots compare it verbatim.
"""

from .config import Settings
from .models import Mode


def data_source_args(settings: Settings, mode: Mode) -> list[str]:
    """Exactly one data-source flag, chosen by mode."""
    layout = settings.layout
    if mode == "multi":
        return ["--channels", layout.combined_path]
    if mode == "single":
        return ["--site", settings.sites[0]]
    # ALL_SITES only matters when no site was requested
    return ["--channels", layout.all_channels if settings.all_sites else layout.channels]


def build_grab_args(settings: Settings, mode: Mode) -> list[str]:
    """Flags passed to grab.ts for the given mode."""
    args = data_source_args(settings, mode)
    args += ["--output", settings.layout.output]
    args += ["--maxConnections", str(settings.max_connections)]
    if settings.days is not None:
        args += ["--days", str(settings.days)]
    if settings.timeout is not None:
        args += ["--timeout", str(settings.timeout)]
    if settings.delay is not None:
        args += ["--delay", str(settings.delay)]
    if settings.proxy:
        args += ["--proxy", settings.proxy]
    if settings.lang_csv:
        args += ["--lang", settings.lang_csv]
    if settings.gzip:
        args.append("--gzip")
    if settings.curl:
        args.append("--curl")
    return args


def grab_command(settings: Settings, args: list[str]) -> list[str]:
    """Full argv running grab.ts through tsx, no shell involved."""
    layout = settings.layout
    return [layout.node, layout.tsx_js, layout.grab_script, *args]
