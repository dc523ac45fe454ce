"""Hashing utilities for file contents.

The build service identifies file contents by their MD5 digest. Commit
payloads additionally carry a SHA256 digest so that a corrupted local cache
is detected by the server instead of being committed.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple, Union
import hashlib

from .constants import DEFAULT_MAX_WORKERS

SUPPORTED_ALGORITHMS = ("md5", "sha256")

CHUNK_SIZE = 8192


def _new_hash(algorithm: str):
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported hash function: {algorithm!r}")
    return hashlib.new(algorithm)


def compute_digest(data: Union[bytes, str], algorithm: str = "md5") -> str:
    """Compute the hex digest of a buffer.

    Args:
        data: Buffer to hash, strings are encoded as UTF-8
        algorithm: "md5" or "sha256"

    Returns:
        Hex digest string
    """
    h = _new_hash(algorithm)
    h.update(data.encode("utf-8") if isinstance(data, str) else data)
    return h.hexdigest()


def compute_file_digest(path: Path, algorithm: str = "md5") -> str:
    """Compute the hex digest of a file's contents, reading it in chunks.

    Args:
        path: Path to file to hash
        algorithm: "md5" or "sha256"

    Returns:
        Hex digest string
    """
    h = _new_hash(algorithm)
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def transfer_hash(data: bytes) -> str:
    """Integrity hash sent along with each entry of a commit payload."""
    return f"sha256:{compute_digest(data, 'sha256')}"


def compute_file_digests_parallel(
    paths: Iterable[Path],
    algorithm: str = "md5",
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> Dict[Path, str]:
    """Compute digests for multiple files in parallel.

    Args:
        paths: Files to hash
        algorithm: "md5" or "sha256"
        max_workers: Number of parallel workers

    Returns:
        Dict mapping each existing path to its digest
    """
    def compute_one(path: Path) -> Tuple[Path, Optional[str]]:
        if not path.is_file():
            return path, None
        return path, compute_file_digest(path, algorithm)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(compute_one, Path(p)) for p in paths]
        results = {}
        for future in futures:
            path, digest = future.result()
            if digest is not None:
                results[path] = digest
        return results


__all__ = [
    "compute_digest",
    "compute_file_digest",
    "compute_file_digests_parallel",
    "transfer_hash",
]
