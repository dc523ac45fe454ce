"""Core operations for obs-checkout.

Every operation takes the checkout lock, validates all of its input before
touching the disk and returns a new ``WorkingCopy``.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Optional
import logging
import os
import shutil

from .config import CheckoutOptions, load_client_config
from .context import CheckoutContext
from .core import (
    FileState,
    FrozenPackageFile,
    Package,
    PackageFile,
    PackageIdentity,
    StatedPackageFile,
    WorkingCopy,
    package_file_from_path,
)
from .directory import Directory, DirectoryEntry, directory_from_files
from .errors import (
    BackupMissingError,
    CheckoutError,
    DigestMismatchError,
    FileExistsInWorkdirError,
    FileMissingError,
    IntegrityError,
    InvalidFileStateError,
    OverlappingFilesError,
    PackageNameMismatchError,
    ProtocolError,
)
from .hashing import compute_digest
from .remote import ObsAdapter, adapter_from_config
from .sidecar import write_file_list, write_file_lists, write_package_files
from .utils import safe_file_name
from .working_state import write_workdir_file

logger = logging.getLogger(__name__)


# ============= Adapter Helpers =============

def _get_adapter(api_url: str) -> ObsAdapter:
    """Build an adapter for api_url from the user's client configuration."""
    config = load_client_config()
    if config.api_url.rstrip("/") != api_url.rstrip("/"):
        config = config.model_copy(update={"api_url": api_url})
    return adapter_from_config(config)


def _unique(names: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(names))


def _check_file_names(operation: str, names: Iterable[str]) -> None:
    for name in names:
        try:
            safe_file_name(name)
        except ValueError:
            raise InvalidFileStateError(
                operation, name, "not a file in the checkout directory"
            ) from None


def _replace_files(wc: WorkingCopy, changed: Dict[str, StatedPackageFile]) -> WorkingCopy:
    files = [changed.get(f.name, f) for f in wc.files_in_workdir]
    known = {f.name for f in wc.files_in_workdir}
    files.extend(f for name, f in changed.items() if name not in known)
    return wc.evolve(files_in_workdir=tuple(files))


# ============= Mutators =============

def add_and_delete_files(
    wc: WorkingCopy,
    files_to_add: Iterable[str] = (),
    files_to_delete: Iterable[str] = (),
    *,
    options: Optional[CheckoutOptions] = None,
) -> WorkingCopy:
    """Stage files for addition and deletion.

    Files to add must be untracked (files that are on disk but unknown to
    ``wc`` are picked up), files to delete must be tracked. Deleted files are
    removed from the working directory, their backup copy is kept.

    Raises:
        OverlappingFilesError: If a file is both added and deleted
        InvalidFileStateError: If a file is in the wrong state or its name
            is not a plain file name
        FileMissingError: If a file to add does not exist
    """
    to_add = _unique(files_to_add)
    to_delete = _unique(files_to_delete)
    if not to_add and not to_delete:
        return wc

    overlap = set(to_add) & set(to_delete)
    if overlap:
        raise OverlappingFilesError(overlap)
    _check_file_names("add", to_add)

    options = options or CheckoutOptions()
    ctx = CheckoutContext(wc.path)

    with ctx.lock(options.lock_timeout):
        changed: Dict[str, StatedPackageFile] = {}

        for name in to_delete:
            f = wc.file(name)
            if f is None or not f.state.is_tracked:
                raise InvalidFileStateError(
                    "delete", name, "not tracked", f.state.value if f else None
                )
            changed[name] = f.model_copy(update={"state": FileState.TO_BE_DELETED})

        for name in to_add:
            f = wc.file(name)
            if f is not None and f.state != FileState.UNTRACKED:
                raise InvalidFileStateError("add", name, "not untracked", f.state.value)
            path = ctx.absolute(name)
            if not path.is_file():
                raise FileMissingError(name)
            changed[name] = package_file_from_path(path, wc.identity).with_state(
                FileState.TO_BE_ADDED
            )

        new_wc = _replace_files(wc, changed)

        for name in to_delete:
            path = ctx.absolute(name)
            if path.is_file():
                path.unlink()
                logger.debug("Removed %s from the working directory", name)
        write_file_lists(ctx, new_wc)

    return new_wc


def untrack_files(
    wc: WorkingCopy,
    names: Iterable[str],
    *,
    options: Optional[CheckoutOptions] = None,
) -> WorkingCopy:
    """Revert files that are to be added back to untracked."""
    names = _unique(names)
    if not names:
        return wc

    changed = {}
    for name in names:
        f = wc.file(name)
        if f is None or f.state != FileState.TO_BE_ADDED:
            raise InvalidFileStateError(
                "untrack", name, "not to be added", f.state.value if f else None
            )
        changed[name] = f.model_copy(update={"state": FileState.UNTRACKED})

    options = options or CheckoutOptions()
    ctx = CheckoutContext(wc.path)
    new_wc = _replace_files(wc, changed)
    with ctx.lock(options.lock_timeout):
        write_file_list(ctx.to_be_added_path, new_wc.names_in_state(FileState.TO_BE_ADDED))
    return new_wc


def undo_file_deletion(
    wc: WorkingCopy,
    names: Iterable[str],
    *,
    options: Optional[CheckoutOptions] = None,
) -> WorkingCopy:
    """Restore deleted or missing files from their backup copy.

    The restored files get the content and modification time they have at
    HEAD and become unmodified.

    Raises:
        InvalidFileStateError: If a file is neither to be deleted nor missing
        BackupMissingError: If the backup copy of a file is absent
        FileExistsInWorkdirError: If a file is already present
    """
    names = _unique(names)
    if not names:
        return wc

    options = options or CheckoutOptions()
    ctx = CheckoutContext(wc.path)

    with ctx.lock(options.lock_timeout):
        restore: List[FrozenPackageFile] = []
        for name in names:
            f = wc.file(name)
            if f is None or f.state not in (FileState.TO_BE_DELETED, FileState.MISSING):
                raise InvalidFileStateError(
                    "undelete", name, "not to be deleted or missing",
                    f.state.value if f else None,
                )
            head = wc.head_file(name)
            backup = ctx.backup_path(name)
            if head is None or not backup.is_file():
                raise BackupMissingError(name, backup)
            if ctx.absolute(name).exists():
                raise FileExistsInWorkdirError(name)
            restore.append(head)

        restored: Dict[str, StatedPackageFile] = {}
        try:
            for head in restore:
                target = ctx.absolute(head.name)
                with ctx.backup_path(head.name).open("rb") as src, target.open("xb") as dst:
                    try:
                        shutil.copyfileobj(src, dst)
                    except BaseException:
                        target.unlink(missing_ok=True)
                        raise
                os.utime(target, (head.mtime, head.mtime))
                restored[head.name] = head.with_state(FileState.UNMODIFIED)
                logger.debug("Restored %s from its backup copy", head.name)
        finally:
            # files restored before a failure are no longer to be deleted
            new_wc = _replace_files(wc, restored)
            write_file_list(
                ctx.to_be_deleted_path, new_wc.names_in_state(FileState.TO_BE_DELETED)
            )

    return new_wc


# ============= Commit =============

def _upload_files(
    adapter: ObsAdapter,
    identity: PackageIdentity,
    files: List[StatedPackageFile],
    max_workers: int,
) -> None:
    """Upload file contents in parallel, re-raising the first failure."""
    if not files:
        return
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(adapter.put_file_contents, identity, f.name, f.content)
            for f in files
        ]
        for future in futures:
            future.result()


def commit_payload(wc: WorkingCopy) -> Directory:
    """File list of the revision that committing ``wc`` creates."""
    return directory_from_files(
        (f for f in wc.files_in_workdir
         if f.state not in (FileState.UNTRACKED, FileState.TO_BE_DELETED)),
        name=wc.identity.name,
        with_transfer_hash=True,
    )


def commit(
    wc: WorkingCopy,
    message: Optional[str] = None,
    *,
    adapter: Optional[ObsAdapter] = None,
    options: Optional[CheckoutOptions] = None,
) -> WorkingCopy:
    """Upload all pending changes and create a new revision.

    Modified and added files are uploaded first, then the complete file list
    is committed. Local files are only changed once the server accepted the
    commit; on any error the checkout stays as it was.

    Args:
        wc: Working copy to commit
        message: Optional commit message
        adapter: API adapter, built from the client configuration if omitted
        options: Worker count and lock timeout

    Returns:
        WorkingCopy at the new revision

    Raises:
        RemoteError: If an upload or the commit fails
        PackageNameMismatchError: If the server replied for another package
    """
    options = options or CheckoutOptions()
    adapter = adapter or _get_adapter(wc.identity.api_url)
    ctx = CheckoutContext(wc.path)

    with ctx.lock(options.lock_timeout):
        uploads = [f for f in wc.files_in_workdir
                   if f.state in (FileState.MODIFIED, FileState.TO_BE_ADDED)]
        _upload_files(adapter, wc.identity, uploads, options.max_workers)

        reply = adapter.commit_filelist(
            wc.identity,
            commit_payload(wc),
            comment=message,
            keep_link=wc.is_link,
        )
        if reply.name != wc.identity.name:
            raise PackageNameMismatchError(wc.identity.name, reply.name)

        files_in_workdir = tuple(
            f.model_copy(update={"state": FileState.UNMODIFIED})
            if f.state in (FileState.MODIFIED, FileState.TO_BE_ADDED) else f
            for f in wc.files_in_workdir
            if f.state != FileState.TO_BE_DELETED
        )
        new_wc = wc.evolve(
            revision=reply.revision,
            revision_hash=reply.content_hash_of_record,
            link_info=reply.link_info if reply.link_info is not None else wc.link_info,
            service_info=reply.service_info,
            files_in_workdir=files_in_workdir,
            files_at_head=tuple(
                f.strip_state() for f in files_in_workdir
                if f.state in (FileState.UNMODIFIED, FileState.MISSING)
            ),
        )

        deleted = wc.names_in_state(FileState.TO_BE_DELETED)
        for name in deleted:
            path = ctx.absolute(name)
            if path.is_file():
                path.unlink()
        write_package_files(ctx, new_wc.head_package(), removed=deleted)
        write_file_lists(ctx, new_wc)

    logger.info("Committed %s, now at revision %s", wc.identity, new_wc.revision)
    return new_wc


# ============= Checkout =============

def _fetch_file(
    adapter: ObsAdapter,
    identity: PackageIdentity,
    entry: DirectoryEntry,
    expand_links: bool,
    revision: Optional[str],
) -> FrozenPackageFile:
    if entry.md5 is None or entry.mtime is None or entry.size is None:
        raise ProtocolError(f"Directory entry {entry.name} of {identity} is incomplete")

    content = adapter.get_file_contents(identity, entry.name, expand_links, revision)
    actual = compute_digest(content)
    if actual != entry.md5:
        raise DigestMismatchError(f"{identity}/{entry.name}", entry.md5, actual)
    if len(content) != entry.size:
        raise IntegrityError(
            f"Size of {identity}/{entry.name} is {len(content)}, expected {entry.size}"
        )

    live = PackageFile(
        name=entry.name,
        package_name=identity.name,
        project_name=identity.project,
        size=entry.size,
        md5_hash=entry.md5,
        mtime=entry.mtime,
    )
    live.content = content
    return live.freeze()


def fetch_package(
    adapter: ObsAdapter,
    identity: PackageIdentity,
    options: Optional[CheckoutOptions] = None,
) -> Package:
    """Fetch the file list and the contents of every file of a package.

    Contents are requested at the source hash of the listing, so they always
    match the listing even if somebody commits in between.
    """
    options = options or CheckoutOptions()
    directory = adapter.get_directory(identity, options.expand_links, options.revision)
    if directory.name is not None and directory.name != identity.name:
        raise PackageNameMismatchError(identity.name, directory.name)

    revision = directory.srcmd5 or options.revision
    with ThreadPoolExecutor(max_workers=options.max_workers) as executor:
        futures = [
            executor.submit(_fetch_file, adapter, identity, e, options.expand_links, revision)
            for e in directory.entries
        ]
        files = tuple(future.result() for future in futures)

    meta = adapter.get_package_meta(identity) if options.fetch_meta else None
    logger.debug("Fetched %d files of %s", len(files), identity)

    return Package(
        identity=identity,
        revision=directory.revision,
        revision_hash=directory.content_hash_of_record,
        link_info=directory.link_info,
        service_info=directory.service_info,
        meta=meta,
        files=files,
    )


def write_checkout(
    package: Package,
    path: Path,
    options: Optional[CheckoutOptions] = None,
) -> WorkingCopy:
    """Write a fetched package into a directory and create its sidecar.

    Raises:
        ValueError: If the file list of package has not been retrieved
        CheckoutError: If path already contains a checkout or a file name
            would point outside of it
    """
    if package.files is None:
        raise ValueError(
            f"Cannot check out {package.identity}: file list has not been retrieved"
        )
    for f in package.files:
        try:
            safe_file_name(f.name)
        except ValueError as e:
            raise CheckoutError(f"Cannot check out {package.identity}: {e}") from e
    path = Path(path)
    if CheckoutContext.is_initialized(path):
        raise CheckoutError(f"{path} already contains a package checkout")

    options = options or CheckoutOptions()
    path.mkdir(parents=True, exist_ok=True)
    ctx = CheckoutContext.init(path)

    with ctx.lock(options.lock_timeout):
        for f in package.files:
            write_workdir_file(ctx.absolute(f.name), f.content, f.mtime)
        write_package_files(ctx, package)

    logger.info("Checked out %s into %s", package.identity, ctx.root)
    return WorkingCopy(
        identity=package.identity,
        path=ctx.root,
        revision=package.revision,
        revision_hash=package.revision_hash,
        link_info=package.link_info,
        service_info=package.service_info,
        meta=package.meta,
        files_at_head=package.files,
        files_in_workdir=tuple(f.with_state(FileState.UNMODIFIED) for f in package.files),
    )


def checkout_package(
    identity: PackageIdentity,
    path: Optional[Path] = None,
    *,
    adapter: Optional[ObsAdapter] = None,
    options: Optional[CheckoutOptions] = None,
) -> WorkingCopy:
    """Check out a package into path (default: ./<package name>).

    The directory must not exist yet or be empty.
    """
    options = options or CheckoutOptions()
    path = Path(path) if path is not None else Path.cwd() / identity.name
    if path.exists() and any(path.iterdir()):
        raise CheckoutError(f"Cannot check out {identity} into {path}: directory is not empty")

    adapter = adapter or _get_adapter(identity.api_url)
    package = fetch_package(adapter, identity, options)
    return write_checkout(package, path, options)
