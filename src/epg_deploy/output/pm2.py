"""Topology → pm2 ecosystem (the format pm2-runtime loads).

Every app runs its argv directly (``interpreter: none``); nothing goes
through a shell.
"""

from ..models import ProcessDescriptor, Topology


def to_pm2_app(process: ProcessDescriptor) -> dict:
    app = {
        "name": process.name,
        "cwd": process.cwd,
        "script": process.command[0],
        "args": list(process.command[1:]),
        "interpreter": "none",
        "autorestart": process.restart == "always",
    }
    if process.backoff_ms:
        app["exp_backoff_restart_delay"] = process.backoff_ms
    if process.stop_exit_codes:
        app["stop_exit_codes"] = list(process.stop_exit_codes)
    app["watch"] = False
    return app


def to_pm2_ecosystem(topology: Topology) -> dict:
    return {"apps": [to_pm2_app(p) for p in topology.processes]}
