"""Constants for obs-checkout."""

# Sidecar directory (name fixed for interop with osc)
SIDECAR_DIR = ".osc"

# Bookkeeping files (inside SIDECAR_DIR)
VERSION_FILE = "_osclib_version"
APIURL_FILE = "_apiurl"
PROJECT_FILE = "_project"
PACKAGE_FILE = "_package"
META_FILE = "_meta"
FILES_FILE = "_files"
TO_BE_ADDED_FILE = "_to_be_added"
TO_BE_DELETED_FILE = "_to_be_deleted"
LOCK_FILE = ".obs-checkout.lock"

# Version tag written to VERSION_FILE
OSCLIB_VERSION = "1.0"

DEFAULT_API_URL = "https://api.opensuse.org"

DEFAULT_MAX_WORKERS = 4
DEFAULT_LOCK_TIMEOUT = 30.0

# Version
CHECKOUT_VERSION = "0.1.0"
