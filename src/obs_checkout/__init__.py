"""Client-side checkouts of Open Build Service packages."""

from .config import CheckoutOptions, ClientConfig, load_client_config
from .constants import CHECKOUT_VERSION
from .core import (
    FileState,
    FrozenPackageFile,
    Package,
    PackageFile,
    PackageIdentity,
    StatedPackageFile,
    WorkingCopy,
)
from .ops import (
    add_and_delete_files,
    checkout_package,
    commit,
    fetch_package,
    undo_file_deletion,
    untrack_files,
    write_checkout,
)
from .working_state import materialize_working_copy, read_working_copy, summarize

__version__ = CHECKOUT_VERSION

__all__ = [
    "CheckoutOptions",
    "ClientConfig",
    "FileState",
    "FrozenPackageFile",
    "Package",
    "PackageFile",
    "PackageIdentity",
    "StatedPackageFile",
    "WorkingCopy",
    "add_and_delete_files",
    "checkout_package",
    "commit",
    "fetch_package",
    "load_client_config",
    "materialize_working_copy",
    "read_working_copy",
    "summarize",
    "undo_file_deletion",
    "untrack_files",
    "write_checkout",
]
