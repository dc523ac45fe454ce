"""Core data models for obs-checkout.

Immutable Working Copies:
-------------------------
A checkout directory is described by a ``WorkingCopy`` value. Every
operation that changes the checkout (add/delete, untrack, undelete, commit)
returns a new ``WorkingCopy`` and writes the matching files to disk before
returning; the value passed in is never modified. The checkout directory and
its ``.osc`` sidecar are the persisted form of the most recent value.
"""

from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union
import time

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .constants import DEFAULT_API_URL
from .directory import LinkInfo, ServiceInfo
from .hashing import compute_digest


# ============= Identity =============

class PackageIdentity(BaseModel):
    """Coordinates of a package on a build service instance."""

    model_config = ConfigDict(frozen=True)

    api_url: str = DEFAULT_API_URL
    project: str
    name: str

    def __str__(self) -> str:
        return f"{self.project}/{self.name}"


# ============= File State =============

class FileState(str, Enum):
    """State of a file that is (potentially) under version control."""

    UNMODIFIED = "unmodified"       # tracked and unchanged w.r.t. HEAD
    MODIFIED = "modified"           # tracked, content differs from HEAD
    TO_BE_ADDED = "to_be_added"     # will be added on the next commit
    TO_BE_DELETED = "to_be_deleted" # will be deleted on the next commit
    UNTRACKED = "untracked"
    MISSING = "missing"             # tracked but gone from the working directory

    @property
    def is_tracked(self) -> bool:
        return self in TRACKED_STATES


TRACKED_STATES = frozenset({FileState.UNMODIFIED, FileState.MODIFIED, FileState.MISSING})


# ============= Package Files =============

def _now_seconds() -> int:
    # the build service stores modification times with 1s precision
    return int(time.time())


class PackageFile(BaseModel):
    """A file of a package that is still being assembled.

    Fields are filled in as they become known (e.g. the directory listing
    provides size and hash before the content is downloaded). Call
    ``freeze()`` once the content is available.
    """

    name: str
    package_name: str
    project_name: str
    size: Optional[int] = None
    md5_hash: Optional[str] = None
    mtime: Optional[int] = None
    content: Optional[bytes] = Field(default=None, repr=False)

    def freeze(self) -> "FrozenPackageFile":
        """Convert into an immutable record.

        Raises:
            ValueError: If content or modification time are unknown, or the
                recorded size/hash disagree with the content
        """
        if self.content is None:
            raise ValueError(f"Cannot freeze {self.name}: contents have not been retrieved")
        if self.mtime is None:
            raise ValueError(f"Cannot freeze {self.name}: modification time is unknown")

        return FrozenPackageFile(
            name=self.name,
            package_name=self.package_name,
            project_name=self.project_name,
            size=len(self.content) if self.size is None else self.size,
            md5_hash=compute_digest(self.content) if self.md5_hash is None else self.md5_hash,
            mtime=self.mtime,
            content=self.content,
        )


class FrozenPackageFile(BaseModel):
    """Point-in-time record of a package file, content always present."""

    model_config = ConfigDict(frozen=True)

    name: str
    package_name: str
    project_name: str
    size: int
    md5_hash: str
    mtime: int
    content: bytes = Field(repr=False)

    @model_validator(mode="after")
    def _check_content(self) -> "FrozenPackageFile":
        if len(self.content) != self.size:
            raise ValueError(
                f"Size of {self.name} is {len(self.content)}, expected {self.size}"
            )
        actual = compute_digest(self.content)
        if actual != self.md5_hash:
            raise ValueError(
                f"md5 of {self.name} is {actual}, expected {self.md5_hash}"
            )
        return self

    def _record_fields(self) -> dict:
        return {name: getattr(self, name) for name in FrozenPackageFile.model_fields}

    def with_state(self, state: FileState) -> "StatedPackageFile":
        """Tag this record with a working copy state."""
        return StatedPackageFile(**self._record_fields(), state=state)


class StatedPackageFile(FrozenPackageFile):
    """A package file as it participates in a working copy."""

    state: FileState

    def strip_state(self) -> FrozenPackageFile:
        return FrozenPackageFile(**self._record_fields())


def package_file_from_buffer(
    name: str,
    identity: "PackageIdentity",
    content: Union[bytes, str],
    mtime: Optional[int] = None,
) -> FrozenPackageFile:
    """Create a frozen record from a buffer, size and hash are computed."""
    data = content.encode("utf-8") if isinstance(content, str) else content
    return FrozenPackageFile(
        name=name,
        package_name=identity.name,
        project_name=identity.project,
        size=len(data),
        md5_hash=compute_digest(data),
        mtime=_now_seconds() if mtime is None else int(mtime),
        content=data,
    )


def package_file_from_path(path: Path, identity: "PackageIdentity") -> FrozenPackageFile:
    """Create a frozen record from an existing regular file.

    Raises:
        FileNotFoundError: If path is not a regular file
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"{path} is not a file or does not exist")

    stat = path.stat()
    return package_file_from_buffer(path.name, identity, path.read_bytes(), int(stat.st_mtime))


def _sorted_unique(files: Iterable) -> tuple:
    result = tuple(sorted(files, key=lambda f: f.name))
    for previous, current in zip(result, result[1:]):
        if previous.name == current.name:
            raise ValueError(f"Duplicate file name: {current.name}")
    return result


# ============= Packages =============

class Package(BaseModel):
    """A package as fetched from the build service."""

    model_config = ConfigDict(frozen=True)

    identity: PackageIdentity
    revision: Optional[str] = None
    revision_hash: Optional[str] = None
    link_info: Optional[LinkInfo] = None
    service_info: Optional[ServiceInfo] = None
    meta: Optional[str] = None
    # None means the file list has not been retrieved
    files: Optional[Tuple[FrozenPackageFile, ...]] = None

    @field_validator("files")
    @classmethod
    def _sort_files(cls, v):
        return None if v is None else _sorted_unique(v)


class WorkingCopy(BaseModel):
    """A checked out package: the HEAD snapshot plus the reconciled working directory."""

    model_config = ConfigDict(frozen=True)

    identity: PackageIdentity
    path: Path
    revision: Optional[str] = None
    revision_hash: Optional[str] = None
    link_info: Optional[LinkInfo] = None
    service_info: Optional[ServiceInfo] = None
    meta: Optional[str] = None

    files_at_head: Tuple[FrozenPackageFile, ...] = ()
    files_in_workdir: Tuple[StatedPackageFile, ...] = ()

    @field_validator("files_at_head", "files_in_workdir")
    @classmethod
    def _sort_files(cls, v):
        return _sorted_unique(v)

    def evolve(self, **changes) -> "WorkingCopy":
        """Return a validated copy with some fields replaced."""
        fields = {name: getattr(self, name) for name in WorkingCopy.model_fields}
        fields.update(changes)
        return WorkingCopy(**fields)

    def file(self, name: str) -> Optional[StatedPackageFile]:
        for f in self.files_in_workdir:
            if f.name == name:
                return f
        return None

    def head_file(self, name: str) -> Optional[FrozenPackageFile]:
        for f in self.files_at_head:
            if f.name == name:
                return f
        return None

    def head_package(self) -> Package:
        """The HEAD snapshot as a package value."""
        return Package(
            identity=self.identity,
            revision=self.revision,
            revision_hash=self.revision_hash,
            link_info=self.link_info,
            service_info=self.service_info,
            meta=self.meta,
            files=self.files_at_head,
        )

    def names_in_state(self, *states: FileState) -> List[str]:
        return [f.name for f in self.files_in_workdir if f.state in states]

    @property
    def is_link(self) -> bool:
        return self.link_info is not None

    @property
    def has_changes(self) -> bool:
        """Check if a commit would change anything on the server."""
        return bool(self.names_in_state(
            FileState.MODIFIED, FileState.TO_BE_ADDED, FileState.TO_BE_DELETED
        ))
