"""Reading and writing the .osc sidecar directory of a checkout.

Layout (shared with osc):

    .osc/_osclib_version   "1.0"
    .osc/_apiurl           base URL of the build service
    .osc/_project          project name
    .osc/_package          package name
    .osc/_meta             package meta XML (optional)
    .osc/_files            directory listing of HEAD
    .osc/_to_be_added      newline separated file names
    .osc/_to_be_deleted    newline separated file names
    .osc/<name>            pristine copy of each file at HEAD

Writes of one operation are ordered data files first, index files last, so
that an interrupted write leaves the previous _files authoritative.
"""

from pathlib import Path
from typing import Iterable, List
import logging
import os

from .constants import OSCLIB_VERSION
from .context import CheckoutContext
from .core import FileState, Package, PackageFile, PackageIdentity, WorkingCopy
from .directory import (
    Directory,
    DirectoryEntry,
    directory_from_files,
    directory_from_xml,
    directory_to_xml,
)
from .errors import (
    BackupMissingError,
    DigestMismatchError,
    IntegrityError,
    NotACheckoutError,
    UnsupportedCheckoutVersionError,
)
from .hashing import compute_digest, compute_file_digest
from .utils import atomic_write_bytes, atomic_write_text

logger = logging.getLogger(__name__)


def _unlink_if_present(path: Path) -> bool:
    if path.is_file():
        path.unlink()
        return True
    return False


# ============= File Lists =============

def read_file_list(path: Path) -> List[str]:
    """Read a newline separated list of file names, [] if the file is absent."""
    if not path.is_file():
        return []
    return [line for line in path.read_text().splitlines() if line]


def write_file_list(path: Path, names: Iterable[str]) -> None:
    """Write a list of file names, removing the file if the list is empty."""
    names = list(names)
    if names:
        atomic_write_text(path, "".join(f"{name}\n" for name in names))
    elif _unlink_if_present(path):
        logger.debug("Removed empty file list %s", path)


def write_file_lists(ctx: CheckoutContext, wc: WorkingCopy) -> None:
    """Persist the _to_be_added and _to_be_deleted lists of a working copy."""
    write_file_list(ctx.to_be_added_path, wc.names_in_state(FileState.TO_BE_ADDED))
    write_file_list(ctx.to_be_deleted_path, wc.names_in_state(FileState.TO_BE_DELETED))


# ============= Package Files =============

def head_directory(package: Package) -> Directory:
    """Build the _files listing for the files of a package."""
    return directory_from_files(
        package.files or (),
        name=package.identity.name,
        revision=package.revision,
        srcmd5=package.revision_hash,
        link_info=package.link_info,
        service_info=package.service_info,
    )


def _write_backup(ctx: CheckoutContext, name: str, content: bytes, md5_hash: str, mtime: int) -> None:
    backup = ctx.backup_path(name)
    if not (backup.is_file() and compute_file_digest(backup) == md5_hash):
        atomic_write_bytes(backup, content)
    os.utime(backup, (mtime, mtime))


def write_package_files(ctx: CheckoutContext, package: Package, removed: Iterable[str] = ()) -> None:
    """Write the sidecar metadata and backup copies of a package.

    Args:
        ctx: Checkout to write into
        package: Package whose files are the new HEAD
        removed: Names whose backup copies are no longer needed
    """
    if package.files is None:
        raise ValueError(
            f"Cannot write package {package.identity}: file list has not been retrieved"
        )

    identity = package.identity
    ctx.sidecar_dir.mkdir(parents=True, exist_ok=True)
    atomic_write_text(ctx.version_path, OSCLIB_VERSION)
    atomic_write_text(ctx.apiurl_path, identity.api_url)
    atomic_write_text(ctx.project_path, identity.project)
    atomic_write_text(ctx.package_path, identity.name)

    for name in removed:
        if _unlink_if_present(ctx.backup_path(name)):
            logger.debug("Removed backup copy of %s", name)

    for f in package.files:
        _write_backup(ctx, f.name, f.content, f.md5_hash, f.mtime)

    if package.meta is not None:
        atomic_write_text(ctx.meta_path, package.meta)

    atomic_write_text(ctx.files_path, directory_to_xml(head_directory(package)))


def _read_text(path: Path) -> str:
    return path.read_text().strip()


def _load_head_content(ctx: CheckoutContext, entry: DirectoryEntry) -> bytes:
    """Content of a file at HEAD, preferring the backup copy."""
    backup = ctx.backup_path(entry.name)
    if backup.is_file():
        content = backup.read_bytes()
        actual = compute_digest(content)
        if actual != entry.md5:
            raise DigestMismatchError(str(backup), entry.md5, actual)
        return content

    # osc does not always keep pristine copies; an unmodified working file will do
    workfile = ctx.absolute(entry.name)
    if workfile.is_file():
        content = workfile.read_bytes()
        if compute_digest(content) == entry.md5:
            logger.debug("No backup of %s, using the unmodified working copy", entry.name)
            return content

    raise BackupMissingError(entry.name, backup)


def read_checked_out_package(ctx: CheckoutContext) -> Package:
    """Read the HEAD state of a checkout from its sidecar directory.

    Raises:
        NotACheckoutError: If the sidecar is incomplete
        UnsupportedCheckoutVersionError: If written by an incompatible client
        IntegrityError: If _files is incomplete or a backup copy is corrupted
    """
    if not ctx.version_path.is_file():
        raise NotACheckoutError(f"{ctx.root} is not a package checkout: {ctx.version_path} is missing")
    version = _read_text(ctx.version_path)
    if version != OSCLIB_VERSION:
        raise UnsupportedCheckoutVersionError(ctx.root, version)

    for path in (ctx.apiurl_path, ctx.project_path, ctx.package_path, ctx.files_path):
        if not path.is_file():
            raise NotACheckoutError(f"{ctx.root} is not a package checkout: {path} is missing")

    identity = PackageIdentity(
        api_url=_read_text(ctx.apiurl_path),
        project=_read_text(ctx.project_path),
        name=_read_text(ctx.package_path),
    )
    directory = directory_from_xml(ctx.files_path.read_bytes())

    files = []
    for entry in directory.entries:
        if entry.md5 is None or entry.size is None or entry.mtime is None:
            raise IntegrityError(
                f"Entry {entry.name} in {ctx.files_path} lacks its md5, size or mtime"
            )
        content = _load_head_content(ctx, entry)
        if len(content) != entry.size:
            raise IntegrityError(
                f"Size of {entry.name} is {len(content)}, {ctx.files_path} records {entry.size}"
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
        files.append(live.freeze())

    return Package(
        identity=identity,
        revision=directory.revision,
        revision_hash=directory.srcmd5,
        link_info=directory.link_info,
        service_info=directory.service_info,
        meta=ctx.meta_path.read_text() if ctx.meta_path.is_file() else None,
        files=tuple(files),
    )
