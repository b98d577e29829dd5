"""Combine-then-grab: the routine multi-site descriptors run on every trigger."""

import logging
import shlex
import signal
import subprocess
from collections.abc import Sequence
from pathlib import Path

from .combiner import ensure_combined_document
from .models import CachePaths

logger = logging.getLogger(__name__)

COMBINE_FAILED_EXIT = 70
COMMAND_NOT_FOUND_EXIT = 127


def run_grab(argv: Sequence[str], cwd: str | Path | None = None) -> int:
    """Run the grab command and return its exit status unchanged.

    Death by signal N is reported as 128 + N, the way a shell would.
    """
    logger.info("Running %s", shlex.join(argv))
    try:
        completed = subprocess.run(list(argv), cwd=cwd, check=False)
    except FileNotFoundError as exc:
        logger.error("Grab command not found: %s", exc)
        return COMMAND_NOT_FOUND_EXIT

    code = completed.returncode
    if code < 0:
        try:
            name = signal.Signals(-code).name
        except ValueError:
            name = str(-code)
        logger.warning("Grab command killed by %s", name)
        return 128 - code
    if code != 0:
        logger.warning("Grab command exited with status %d", code)
    return code


def combine_and_grab(
    sites: Sequence[str],
    sites_dir: str | Path,
    paths: CachePaths,
    grab_argv: Sequence[str],
    cwd: str | Path | None = None,
) -> int:
    """Refresh the combined document, then run grab against it.

    CombineError from the combiner propagates; the caller maps it to
    COMBINE_FAILED_EXIT so it is distinguishable from a grab failure.
    """
    result = ensure_combined_document(sites, sites_dir, paths)
    if result.skipped:
        logger.warning("%d fragment(s) contributed nothing", len(result.skipped))
    return run_grab(grab_argv, cwd=cwd)
