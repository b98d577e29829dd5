"""Combined channels.xml for multi-site mode, with a sidecar cache record.

The combined document is rebuilt only when the set of fragment files, the
site list, or any fragment's modification time changed since the last build.

Both files are written with write-temp-then-rename. The metadata also
records the SHA-256 of the document it describes, so a document and a
metadata file written by two racing builds never validate each other; the
next run just rebuilds.
"""

import hashlib
import logging
import os
import re
import tempfile
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from xml.sax.saxutils import escape

from lxml import etree
from pydantic import ValidationError

from .errors import CombineError
from .models import CacheMetadata, CachePaths, CombineResult, FragmentScan
from .scanner.fragments import collect_fragments

logger = logging.getLogger(__name__)

METADATA_VERSION = 2
LIST_TAG = "channels"
ITEM_TAG = "channel"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

_DECLARATION = re.compile(rb"^(\xef\xbb\xbf)?\s*(<\?xml[^>]*\?>)?", re.IGNORECASE)


def _parser(recover: bool = False) -> etree.XMLParser:
    # fresh parser per fragment so error_log only holds that fragment's errors
    return etree.XMLParser(recover=recover, resolve_entities=False, no_network=True)


def _tag(el) -> str | None:
    """Lower-cased local name, or None for comments and processing instructions."""
    if not isinstance(el.tag, str):
        return None
    return etree.QName(el).localname.lower()


def _inner_xml(el) -> str:
    parts = [escape(el.text)] if el.text else []
    for child in el:
        parts.append(etree.tostring(child, encoding="unicode", with_tail=True))
    return "".join(parts)


def _parse_fragment(data: bytes, source: str):
    """Parse fragment bytes. Returns (root, root_is_content).

    A well-formed document is used as-is. Anything else is re-parsed inside
    a synthetic <fragment> root (several top-level <channel>s are common)
    with a recovering parser; recovered errors are logged. The XML
    declaration stays in front so lxml still honours its encoding.
    """
    try:
        return etree.fromstring(data, _parser()), True
    except etree.XMLSyntaxError:
        pass

    head = _DECLARATION.match(data)
    wrapped = (
        (head.group(1) or b"")
        + (head.group(2) or b"")
        + b"<fragment>"
        + data[head.end():]
        + b"</fragment>"
    )
    parser = _parser(recover=True)
    try:
        root = etree.fromstring(wrapped, parser)
    except etree.XMLSyntaxError:
        root = None

    errors = [e for e in parser.error_log if e.level >= etree.ErrorLevels.ERROR]
    if errors:
        first = errors[0]
        logger.warning(
            "Malformed XML in %s, %d error(s) recovered; first at line %d: %s",
            source,
            len(errors),
            first.line,
            first.message,
        )
    return root, False


def extract_items(data: bytes | str, source: str = "fragment") -> str | None:
    """Body to merge from one fragment, or None if it has nothing usable.

    The first <channels> element wins and its children are returned as-is.
    Without one, every <channel> not nested in another <channel> is
    returned, one per line.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    root, root_is_content = _parse_fragment(data, source)
    if root is None:
        return None

    def nodes():
        return root.iter() if root_is_content else root.iterdescendants()

    for el in nodes():
        if _tag(el) == LIST_TAG:
            return _inner_xml(el).strip()

    items = [
        el
        for el in nodes()
        if _tag(el) == ITEM_TAG and not any(_tag(a) == ITEM_TAG for a in el.iterancestors())
    ]
    if not items:
        return None
    return "\n".join(etree.tostring(el, encoding="unicode", with_tail=False).strip() for el in items)


def render_document(scan: FragmentScan) -> tuple[str, list[str]]:
    """Merge fragments in path order. Returns (document, skipped paths)."""
    bodies = []
    skipped = []
    for fragment in scan.files:
        try:
            data = Path(fragment.path).read_bytes()
        except OSError as exc:
            logger.warning("Cannot read fragment %s: %s", fragment.path, exc)
            skipped.append(fragment.path)
            continue

        body = extract_items(data, fragment.path)
        if body is None:
            logger.warning("No <%s> or <%s> elements in %s", LIST_TAG, ITEM_TAG, fragment.path)
            skipped.append(fragment.path)
            continue
        if body:
            bodies.append(body)

    inner = "\n".join(bodies)
    if inner:
        return f"{XML_DECLARATION}\n<{LIST_TAG}>\n{inner}\n</{LIST_TAG}>\n", skipped
    return f"{XML_DECLARATION}\n<{LIST_TAG}></{LIST_TAG}>\n", skipped


def atomic_write(path: Path, data: bytes) -> None:
    """Write data next to path, then rename into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def read_metadata(path: Path) -> CacheMetadata | None:
    """Load cache metadata; anything unreadable or outdated means no cache."""
    try:
        meta = CacheMetadata.model_validate_json(path.read_bytes())
    except FileNotFoundError:
        return None
    except (OSError, ValidationError) as exc:
        logger.info("Ignoring unusable cache metadata %s: %s", path, exc)
        return None
    if meta.version != METADATA_VERSION:
        logger.info("Cache metadata %s has version %d, rebuilding", path, meta.version)
        return None
    return meta


def _document_digest(path: Path) -> str | None:
    try:
        return hashlib.sha256(path.read_bytes()).hexdigest()
    except OSError:
        return None


def is_reusable(meta: CacheMetadata, sites: list[str], scan: FragmentScan, document: Path) -> bool:
    """Same sites, same files, nothing newer, and the document is the one recorded."""
    if meta.sites != sites:
        return False
    if meta.files != scan.paths:
        return False
    if meta.max_mtime_ms < scan.max_mtime_ms:
        return False
    return _document_digest(document) == meta.document_sha256


def ensure_combined_document(
    sites: Iterable[str],
    sites_dir: str | Path,
    paths: CachePaths,
) -> CombineResult:
    """Return the combined document path, rebuilding it only when stale.

    Raises CombineError if the document cannot be written. A metadata write
    failure is only logged; the next call then rebuilds unconditionally.
    """
    wanted = sorted(set(sites))
    scan = collect_fragments(wanted, sites_dir)
    document = Path(paths.document)
    metadata = Path(paths.metadata)

    meta = read_metadata(metadata)
    if meta is not None and is_reusable(meta, wanted, scan, document):
        logger.info("Combined document is current (%d fragments): %s", len(scan.files), document)
        return CombineResult(path=str(document), rebuilt=False, sites=wanted, files=len(scan.files))

    content, skipped = render_document(scan)
    data = content.encode("utf-8")
    try:
        atomic_write(document, data)
    except OSError as exc:
        logger.error("Cannot write combined document %s: %s", document, exc)
        raise CombineError(f"Cannot write combined document {document}: {exc}") from exc

    fresh = CacheMetadata(
        version=METADATA_VERSION,
        built_at=datetime.now(timezone.utc).isoformat(),
        sites=wanted,
        files=scan.paths,
        max_mtime_ms=scan.max_mtime_ms,
        document_sha256=hashlib.sha256(data).hexdigest(),
    )
    try:
        atomic_write(metadata, fresh.model_dump_json(indent=2).encode("utf-8"))
    except OSError as exc:
        logger.warning("Cannot write cache metadata %s: %s", metadata, exc)

    logger.info(
        "Combined %d fragment(s) from %d site(s) into %s",
        len(scan.files) - len(skipped),
        len(wanted),
        document,
    )
    return CombineResult(
        path=str(document),
        rebuilt=True,
        sites=wanted,
        files=len(scan.files),
        skipped=skipped,
    )
