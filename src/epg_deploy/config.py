"""Container environment → immutable Settings.

This is the only module that looks at environment variables. Everything
downstream receives a ``Settings`` value built once by ``load_settings``.

Accepted formats for SITE and CLANG:
  - multiline scalar (one entry per line)
  - comma / semicolon / whitespace separated: "example.com, example.io"
  - JSON array string: '["example.com","example.io"]'
"""

import json
import logging
import math
import os
import re
import sys
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

FALSE_STRINGS = {"", "0", "false", "no", "off", "null", "undefined"}

DEFAULT_SCHEDULE = "0 0 * * *"
DEFAULT_PORT = 3000
DEFAULT_MAX_CONNECTIONS = 1
SLUG_MAX_LENGTH = 80

_RADIX_PREFIXES = ("0x", "0o", "0b")
_LIST_DELIMITERS = re.compile(r"[\n\r,;\s]+")
_SLUG_INVALID = re.compile(r"[^a-z0-9._-]+")


def resolve_bool(raw: str | None, default: bool = False) -> bool:
    """Truthy unless the value is one of FALSE_STRINGS (case/space-insensitive)."""
    if raw is None:
        return default
    return str(raw).strip().lower() not in FALSE_STRINGS


def resolve_int(raw: str | None) -> int | float | None:
    """Parse a numeric env value; anything non-finite comes back as None.

    Integral values are returned as int, other finite values as float.
    ``0x``/``0o``/``0b`` prefixes are accepted.
    """
    if raw is None:
        return None
    text = str(raw).strip()
    if not text or "_" in text:
        return None
    try:
        return int(text, 0) if text[:2].lower() in _RADIX_PREFIXES else int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        logger.debug("Ignoring non-numeric value %r", raw)
        return None
    if not math.isfinite(value):
        logger.debug("Ignoring non-finite value %r", raw)
        return None
    return int(value) if value.is_integer() else value


def _stringify(value: object) -> str:
    # JSON scalars rendered the way they were written
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, list):
        return ",".join(_stringify(v) for v in value)
    return str(value)


def resolve_list(raw: str | None) -> list[str]:
    """Parse a JSON array or a delimiter-separated string into trimmed entries."""
    if raw is None:
        return []
    text = str(raw).strip()
    if not text:
        return []

    if text.startswith("["):
        try:
            data = json.loads(text)
        except ValueError:
            logger.debug("Value %r is not a JSON array, splitting on delimiters", text[:80])
        else:
            if isinstance(data, list):
                items = (_stringify(x).strip() for x in data)
                return [x for x in items if x]

    return [x for x in _LIST_DELIMITERS.split(text) if x]


def slugify(text: str) -> str:
    """Process-name-safe form of a site identifier."""
    return _SLUG_INVALID.sub("-", str(text).lower())[:SLUG_MAX_LENGTH]


def unique(items: Iterable[str]) -> list[str]:
    """Drop repeats, keep first-seen order."""
    return list(dict.fromkeys(items))


class DeployLayout(BaseModel):
    """Paths inside the container image."""

    model_config = ConfigDict(frozen=True)

    root: str = "/epg"
    sites_dir: str = "/epg/sites"
    channels: str = "channels.xml"
    all_channels: str = "all_channels.xml"
    output: str = "public/guide.xml"
    public_dir: str = "public"
    combined_dir: str = str(Path(tempfile.gettempdir()) / "epg-deploy")
    node: str = "/nodejs/bin/node"
    serve_js: str = "node_modules/serve/bin/serve.js"
    chronos_js: str = "node_modules/chronos-cli/bin/chronos.js"
    tsx_js: str = "node_modules/tsx/dist/cli.js"
    grab_script: str = "scripts/commands/epg/grab.ts"
    python: str = sys.executable

    @property
    def combined_path(self) -> str:
        return str(Path(self.combined_dir) / "channels.xml")

    @property
    def metadata_path(self) -> str:
        return str(Path(self.combined_dir) / "channels.meta.json")


class Settings(BaseModel):
    """One configuration snapshot, resolved at process start."""

    model_config = ConfigDict(frozen=True)

    schedule: str = DEFAULT_SCHEDULE
    port: int = DEFAULT_PORT
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    gzip: bool = False
    curl: bool = False
    run_at_startup: bool = True
    timeout: int | float | None = None
    delay: int | float | None = None
    days: int | float | None = None
    proxy: str | None = None
    all_sites: bool = False
    sites: list[str] = []
    languages: list[str] = []
    layout: DeployLayout = DeployLayout()

    @property
    def lang_csv(self) -> str | None:
        return ",".join(self.languages) if self.languages else None


# Layout field -> environment variable
LAYOUT_ENV = {
    "root": "EPG_ROOT",
    "sites_dir": "EPG_SITES_DIR",
    "channels": "EPG_CHANNELS",
    "all_channels": "EPG_ALL_CHANNELS",
    "output": "EPG_OUTPUT",
    "public_dir": "EPG_PUBLIC_DIR",
    "combined_dir": "EPG_COMBINED_DIR",
    "node": "EPG_NODE",
    "serve_js": "EPG_SERVE_JS",
    "chronos_js": "EPG_CHRONOS_JS",
    "tsx_js": "EPG_TSX_JS",
    "grab_script": "EPG_GRAB_SCRIPT",
    "python": "EPG_PYTHON",
}


def _positive(name: str, value: int | float | None, default: int) -> int:
    if isinstance(value, int) and value > 0:
        return value
    if value is not None:
        logger.info("%s=%s is not a positive integer, using %d", name, value, default)
    return default


def _non_negative(name: str, value: int | float | None) -> int | float | None:
    if value is not None and value < 0:
        logger.info("%s=%s is negative, leaving it unset", name, value)
        return None
    return value


def load_layout(environ: Mapping[str, str]) -> DeployLayout:
    """Build the container layout, honouring EPG_* overrides."""
    overrides = {}
    for field, key in LAYOUT_ENV.items():
        value = environ.get(key, "").strip()
        if value:
            overrides[field] = value
    if "root" in overrides and "sites_dir" not in overrides:
        overrides["sites_dir"] = str(Path(overrides["root"]) / "sites")
    return DeployLayout(**overrides)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Resolve Settings from an environment mapping (default: os.environ)."""
    env = os.environ if environ is None else environ

    proxy = env.get("PROXY")
    return Settings(
        schedule=env.get("CRON_SCHEDULE") or DEFAULT_SCHEDULE,
        port=_positive("PORT", resolve_int(env.get("PORT")), DEFAULT_PORT),
        max_connections=_positive("MAX_CONNECTIONS", resolve_int(env.get("MAX_CONNECTIONS")), DEFAULT_MAX_CONNECTIONS),
        gzip=resolve_bool(env.get("GZIP"), False),
        curl=resolve_bool(env.get("CURL"), False),
        run_at_startup=resolve_bool(env.get("RUN_AT_STARTUP"), True),
        timeout=_non_negative("TIMEOUT", resolve_int(env.get("TIMEOUT"))),
        delay=_non_negative("DELAY", resolve_int(env.get("DELAY"))),
        days=_non_negative("DAYS", resolve_int(env.get("DAYS"))),
        proxy=proxy if proxy else None,
        all_sites=resolve_bool(env.get("ALL_SITES"), False),
        sites=unique(resolve_list(env.get("SITE"))),
        languages=unique(resolve_list(env.get("CLANG"))),
        layout=load_layout(env),
    )
