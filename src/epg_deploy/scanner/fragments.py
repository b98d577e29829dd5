"""Scan site directories → channel fragment files with modification times.

Each site owns ``<sites_dir>/<site>/``; any ``*.channels.xml`` file anywhere
in that subtree (suffix matched case-insensitively) is one of its fragments.
"""

import logging
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

from ..models import FragmentFile, FragmentScan

logger = logging.getLogger(__name__)

FRAGMENT_MARKER = "channels"
FRAGMENT_SUFFIX = f".{FRAGMENT_MARKER}.xml"


def is_fragment_name(name: str) -> bool:
    return name.lower().endswith(FRAGMENT_SUFFIX)


def _walk(directory: str) -> Iterator[os.DirEntry]:
    """Yield fragment entries under directory, subdirectories first."""
    try:
        with os.scandir(directory) as it:
            entries = list(it)
    except OSError as exc:
        logger.warning("Cannot list %s: %s", directory, exc)
        return

    files = []
    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                yield from _walk(entry.path)
            elif entry.is_file() and is_fragment_name(entry.name):
                files.append(entry)
        except OSError as exc:
            logger.warning("Skipping %s: %s", entry.path, exc)
    yield from files


def scan_site(site: str, sites_dir: str | Path) -> list[FragmentFile]:
    """Fragments for one site. A missing site directory yields nothing."""
    site_dir = Path(sites_dir) / site
    if not site_dir.is_dir():
        logger.warning("Site directory not found: %s", site_dir)
        return []

    fragments = []
    for entry in _walk(str(site_dir)):
        try:
            mtime_ms = entry.stat().st_mtime_ns / 1_000_000
        except OSError as exc:
            logger.warning("Cannot stat %s: %s", entry.path, exc)
            continue
        fragments.append(FragmentFile(path=entry.path, site=site, mtime_ms=mtime_ms))

    logger.debug("Site %s: %d fragment(s)", site, len(fragments))
    return fragments


def collect_fragments(sites: Iterable[str], sites_dir: str | Path) -> FragmentScan:
    """Scan every site; files come back sorted by full path."""
    by_path: dict[str, FragmentFile] = {}
    for site in sites:
        for fragment in scan_site(site, sites_dir):
            # nested site directories can reach the same file twice
            by_path.setdefault(fragment.path, fragment)

    found = sorted(by_path.values(), key=lambda f: f.path)
    max_mtime = max((f.mtime_ms for f in found), default=0)
    return FragmentScan(files=found, max_mtime_ms=max_mtime)
