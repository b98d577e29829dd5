"""Pydantic schemas for epg-deploy.

Scanners, the combiner and the topology builder all exchange these models.
Descriptors and topologies are frozen: built once, handed off, never mutated.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Mode = Literal["multi", "single", "fallback"]
RestartPolicy = Literal["always", "once"]


class FragmentFile(BaseModel):
    """A ``*.channels.xml`` file found under a site directory."""

    path: str = Field(..., description="Full path of the fragment")
    site: str
    mtime_ms: float = Field(0, description="Last modification time, epoch milliseconds")


class FragmentScan(BaseModel):
    """Result of scanning a set of sites: files sorted by path."""

    files: list[FragmentFile] = []
    max_mtime_ms: float = 0

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]


class CachePaths(BaseModel):
    """Where the combined document and its sidecar metadata live."""

    document: str
    metadata: str

    @classmethod
    def in_directory(cls, directory: str | Path) -> "CachePaths":
        base = Path(directory)
        return cls(
            document=str(base / "channels.xml"),
            metadata=str(base / "channels.meta.json"),
        )


class CacheMetadata(BaseModel):
    """Sidecar record proving a combined document is still current."""

    version: int
    built_at: str
    sites: list[str]
    files: list[str]
    max_mtime_ms: float
    document_sha256: str


class CombineResult(BaseModel):
    """Outcome of one ``ensure_combined_document`` call."""

    path: str
    rebuilt: bool
    sites: list[str] = []
    files: int = 0
    skipped: list[str] = Field(default_factory=list, description="Fragments that contributed nothing")


class ProcessDescriptor(BaseModel):
    """One managed unit handed to the process supervisor."""

    model_config = ConfigDict(frozen=True)

    name: str
    cwd: str
    command: list[str] = Field(..., description="argv the supervisor starts")
    job: list[str] = Field(default_factory=list, description="argv run on each trigger")
    schedule: str | None = None
    restart: RestartPolicy = "always"
    backoff_ms: int | None = None
    stop_exit_codes: list[int] = []


class Topology(BaseModel):
    """Every process descriptor for one configuration snapshot."""

    model_config = ConfigDict(frozen=True)

    mode: Mode
    processes: list[ProcessDescriptor] = []

    def names(self) -> list[str]:
        return [p.name for p in self.processes]
