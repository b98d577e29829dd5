import os
from pathlib import Path

import pytest

from epg_deploy.config import load_settings
from epg_deploy.models import CachePaths


def write_fragment(base: Path, rel: str, body: str, mtime: float | None = None) -> Path:
    path = base / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def channels(*items: str) -> str:
    inner = "\n".join(f'  <channel site="x" xmltv_id="{i}">{i}</channel>' for i in items)
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<channels>\n{inner}\n</channels>\n'


@pytest.fixture
def sites_dir(tmp_path) -> Path:
    d = tmp_path / "sites"
    d.mkdir()
    return d


@pytest.fixture
def cache_paths(tmp_path) -> CachePaths:
    return CachePaths.in_directory(tmp_path / "scratch")


@pytest.fixture
def make_settings(tmp_path):
    def _make(**env):
        env.setdefault("EPG_COMBINED_DIR", str(tmp_path / "scratch"))
        return load_settings({k: str(v) for k, v in env.items()})

    return _make
