"""Reconciliation of a checkout directory against its cached HEAD snapshot."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union
import logging
import os

from .config import CheckoutOptions
from .context import CheckoutContext
from .core import (
    FileState,
    FrozenPackageFile,
    StatedPackageFile,
    WorkingCopy,
    package_file_from_path,
)
from .hashing import compute_file_digests_parallel
from .sidecar import (
    read_checked_out_package,
    read_file_list,
    write_file_lists,
    write_package_files,
)
from .utils import atomic_write_bytes

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StatusSummary:
    """High-level status summary for UI display."""

    total_tracked: int
    total_size: int  # Bytes of tracked files present in the working directory

    # Counts by state
    unmodified: int = 0
    modified: int = 0
    to_be_added: int = 0
    to_be_deleted: int = 0
    untracked: int = 0
    missing: int = 0

    # File lists for UI, sorted by name
    changed_files: List[StatedPackageFile] = field(default_factory=list)
    untracked_files: List[str] = field(default_factory=list)
    missing_files: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        """Check if a commit would change anything on the server."""
        return (self.modified > 0 or
                self.to_be_added > 0 or
                self.to_be_deleted > 0)

    @property
    def is_clean(self) -> bool:
        """Check if the working directory matches HEAD exactly."""
        return (not self.has_changes and
                self.untracked == 0 and
                self.missing == 0)


def _list_workdir(root: Path) -> List[str]:
    """Names of the regular files directly inside the checkout directory."""
    with os.scandir(root) as it:
        return sorted(e.name for e in it if e.is_file(follow_symlinks=False))


def read_working_copy(
    path: Union[str, Path, None] = None,
    options: Optional[CheckoutOptions] = None,
) -> WorkingCopy:
    """Classify every file of a checkout against its HEAD snapshot.

    Files absent from HEAD are captured from disk right away; later edits
    are not observed by the returned value.

    Args:
        path: Checkout directory (or a directory below it)
        options: Only max_workers is used, for hashing tracked files

    Returns:
        WorkingCopy with one record per name on disk or at HEAD

    Raises:
        NotACheckoutError: If path is not inside a checkout
        IntegrityError: If the sidecar cache is incomplete or corrupted
    """
    options = options or CheckoutOptions()
    ctx = CheckoutContext(path)
    head = read_checked_out_package(ctx)
    files_at_head: Dict[str, FrozenPackageFile] = {f.name: f for f in head.files}

    to_be_added = set(read_file_list(ctx.to_be_added_path))
    to_be_deleted = read_file_list(ctx.to_be_deleted_path)
    to_be_deleted_set = set(to_be_deleted)

    on_disk = _list_workdir(ctx.root)
    tracked_on_disk = [ctx.absolute(name) for name in on_disk if name in files_at_head]
    digests = compute_file_digests_parallel(tracked_on_disk, max_workers=options.max_workers)

    files: Dict[str, StatedPackageFile] = {}

    for name in on_disk:
        head_file = files_at_head.get(name)
        if head_file is None:
            state = FileState.TO_BE_ADDED if name in to_be_added else FileState.UNTRACKED
            files[name] = package_file_from_path(ctx.absolute(name), head.identity).with_state(state)
        elif name in to_be_deleted_set:
            files[name] = head_file.with_state(FileState.TO_BE_DELETED)
        elif digests.get(ctx.absolute(name)) == head_file.md5_hash:
            files[name] = head_file.with_state(FileState.UNMODIFIED)
        else:
            files[name] = package_file_from_path(
                ctx.absolute(name), head.identity
            ).with_state(FileState.MODIFIED)

    for name, head_file in files_at_head.items():
        if name not in files:
            state = FileState.TO_BE_DELETED if name in to_be_deleted_set else FileState.MISSING
            files[name] = head_file.with_state(state)

    for name in to_be_deleted:
        if name not in files:
            # staged deletion of a name that is neither on disk nor at HEAD
            logger.warning("Ignoring %s in %s: not part of the package", name, ctx.to_be_deleted_path)

    unknown_added = to_be_added - set(files)
    if unknown_added:
        logger.debug("Files listed as to be added but absent: %s", ", ".join(sorted(unknown_added)))

    logger.debug("Reconciled %d files in %s", len(files), ctx.root)
    return WorkingCopy(
        identity=head.identity,
        path=ctx.root,
        revision=head.revision,
        revision_hash=head.revision_hash,
        link_info=head.link_info,
        service_info=head.service_info,
        meta=head.meta,
        files_at_head=tuple(files_at_head.values()),
        files_in_workdir=tuple(files.values()),
    )


def write_workdir_file(path: Path, content: bytes, mtime: int) -> None:
    """Write a working directory file and set its modification time."""
    atomic_write_bytes(path, content)
    os.utime(path, (mtime, mtime))


def materialize_working_copy(wc: WorkingCopy, options: Optional[CheckoutOptions] = None) -> CheckoutContext:
    """Write a working copy value to its directory and sidecar.

    Files in a state with content on disk are (re)written with their recorded
    modification time, to be deleted and missing files are removed from the
    working directory. Other files in the directory are left alone.
    """
    options = options or CheckoutOptions()
    ctx = CheckoutContext.init(wc.path)
    with ctx.lock(options.lock_timeout):
        write_package_files(ctx, wc.head_package())

        for f in wc.files_in_workdir:
            target = ctx.absolute(f.name)
            if f.state in (FileState.TO_BE_DELETED, FileState.MISSING):
                if target.is_file():
                    target.unlink()
            else:
                write_workdir_file(target, f.content, f.mtime)

        write_file_lists(ctx, wc)
    return ctx


def summarize(wc: WorkingCopy) -> StatusSummary:
    """Get comprehensive status summary for UI display."""
    summary = StatusSummary(
        total_tracked=len(wc.files_at_head),
        total_size=sum(f.size for f in wc.files_in_workdir
                       if f.state in (FileState.UNMODIFIED, FileState.MODIFIED)),
    )

    for f in wc.files_in_workdir:
        if f.state == FileState.UNMODIFIED:
            summary.unmodified += 1
        elif f.state == FileState.MODIFIED:
            summary.modified += 1
            summary.changed_files.append(f)
        elif f.state == FileState.TO_BE_ADDED:
            summary.to_be_added += 1
            summary.changed_files.append(f)
        elif f.state == FileState.TO_BE_DELETED:
            summary.to_be_deleted += 1
            summary.changed_files.append(f)
        elif f.state == FileState.UNTRACKED:
            summary.untracked += 1
            summary.untracked_files.append(f.name)
        elif f.state == FileState.MISSING:
            summary.missing += 1
            summary.missing_files.append(f.name)

    return summary
