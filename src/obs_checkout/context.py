"""Checkout context for managing paths and checkout discovery."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union
import logging

import portalocker

from .constants import (
    APIURL_FILE,
    DEFAULT_LOCK_TIMEOUT,
    FILES_FILE,
    LOCK_FILE,
    META_FILE,
    PACKAGE_FILE,
    PROJECT_FILE,
    SIDECAR_DIR,
    TO_BE_ADDED_FILE,
    TO_BE_DELETED_FILE,
    VERSION_FILE,
)
from .errors import CheckoutLockedError, NotACheckoutError
from .utils import safe_file_name

logger = logging.getLogger(__name__)


class CheckoutContext:
    """Locates a package checkout and resolves its sidecar paths."""

    def __init__(self, start_path: Optional[Union[str, Path]] = None):
        """Initialize context by finding the checkout root.

        Args:
            start_path: Path to start searching for the checkout root
        """
        self.root = self._find_root(Path(start_path) if start_path else Path.cwd())
        if not self.root:
            raise NotACheckoutError(
                f"Not inside a package checkout (no {SIDECAR_DIR} directory found)"
            )

    @classmethod
    def is_initialized(cls, path: Optional[Path] = None) -> bool:
        """Check if a specific directory is a checkout (without traversing up)."""
        target = Path(path) if path else Path.cwd()
        return (target / SIDECAR_DIR).is_dir()

    @classmethod
    def init(cls, path: Optional[Path] = None) -> "CheckoutContext":
        """Create the sidecar directory and return a context for it."""
        target = Path(path) if path else Path.cwd()
        (target / SIDECAR_DIR).mkdir(parents=True, exist_ok=True)
        return cls(target)

    def _find_root(self, start: Path) -> Optional[Path]:
        """Walk up directory tree to find the checkout root."""
        current = start.resolve()

        while current != current.parent:
            if (current / SIDECAR_DIR).is_dir():
                return current
            current = current.parent

        if (current / SIDECAR_DIR).is_dir():
            return current
        return None

    def absolute(self, name: str) -> Path:
        """Path of a package file in the working directory.

        Raises:
            ValueError: If name is not a plain file name
        """
        return self.root / safe_file_name(name)

    @property
    def sidecar_dir(self) -> Path:
        return self.root / SIDECAR_DIR

    def backup_path(self, name: str) -> Path:
        """Path of the pristine copy of a tracked file."""
        return self.sidecar_dir / safe_file_name(name)

    @property
    def version_path(self) -> Path:
        return self.sidecar_dir / VERSION_FILE

    @property
    def apiurl_path(self) -> Path:
        return self.sidecar_dir / APIURL_FILE

    @property
    def project_path(self) -> Path:
        return self.sidecar_dir / PROJECT_FILE

    @property
    def package_path(self) -> Path:
        return self.sidecar_dir / PACKAGE_FILE

    @property
    def meta_path(self) -> Path:
        return self.sidecar_dir / META_FILE

    @property
    def files_path(self) -> Path:
        return self.sidecar_dir / FILES_FILE

    @property
    def to_be_added_path(self) -> Path:
        return self.sidecar_dir / TO_BE_ADDED_FILE

    @property
    def to_be_deleted_path(self) -> Path:
        return self.sidecar_dir / TO_BE_DELETED_FILE

    @property
    def lock_path(self) -> Path:
        return self.sidecar_dir / LOCK_FILE

    @contextmanager
    def lock(self, timeout: float = DEFAULT_LOCK_TIMEOUT) -> Iterator[None]:
        """Hold the advisory single-writer lock of this checkout.

        The lock is not re-entrant: acquire it once per operation.

        Raises:
            CheckoutLockedError: If the lock could not be acquired in time
        """
        try:
            lock = portalocker.Lock(str(self.lock_path), "a", timeout=timeout)
            lock.acquire()
        except portalocker.LockException as e:
            raise CheckoutLockedError(self.root, timeout) from e

        logger.debug("Acquired checkout lock %s", self.lock_path)
        try:
            yield
        finally:
            lock.release()
            logger.debug("Released checkout lock %s", self.lock_path)
