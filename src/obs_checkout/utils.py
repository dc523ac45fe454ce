"""Filesystem helpers shared by the sidecar, the reconciler and the config."""

from pathlib import Path
import logging
import os
import tempfile

logger = logging.getLogger(__name__)


def safe_file_name(name: str) -> str:
    """Validate that name is a plain file name inside a checkout directory.

    Package files live one level deep, so a name must not be empty, absolute,
    contain a path separator or be a directory reference.

    Returns:
        The unchanged name

    Raises:
        ValueError: If name could resolve outside the checkout directory
    """
    if not name or not name.strip():
        raise ValueError("Unsafe file name: empty name")
    if "/" in name or "\\" in name or name in (".", "..") or "\0" in name:
        raise ValueError(f"Unsafe file name: {name!r}")
    return name


def _fsync_dir(path: Path) -> None:
    """Fsync a directory so that a rename inside it is durable (best-effort)."""
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY
        dirfd = os.open(str(path), flags)
        try:
            os.fsync(dirfd)
        finally:
            os.close(dirfd)
    except OSError:
        # Expected on Windows or filesystems that don't support directory fsync
        logger.debug("Directory fsync not supported for %s", path)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Atomically write bytes to a file.

    1. Writes to a temp file in the same directory and fsyncs it
    2. Renames the temp file over the target
    3. Fsyncs the parent directory
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="wb",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.tmp-",
    ) as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
        tmp = Path(f.name)

    try:
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    _fsync_dir(path.parent)


def atomic_write_text(path: Path, text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))
