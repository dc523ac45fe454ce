"""Shared test fixtures and utilities."""

from pathlib import Path
from typing import Dict, Optional
from unittest.mock import Mock

import pytest

from obs_checkout.core import Package, PackageIdentity, package_file_from_buffer
from obs_checkout.directory import Directory, DirectoryEntry, LinkInfo
from obs_checkout.ops import write_checkout
from obs_checkout.remote import ObsAdapter

# 2020-03-16 12:03:27 UTC, the build service stores mtimes in seconds
HEAD_MTIME = 1584360207


@pytest.fixture
def identity():
    return PackageIdentity(api_url="https://api.example.org", project="home:tester", name="pkg")


@pytest.fixture
def make_package(identity):
    """Factory fixture for packages with in-memory files."""
    def _make(files: Dict[str, bytes], link_info: Optional[LinkInfo] = None, meta=None):
        return Package(
            identity=identity,
            revision="3",
            revision_hash="0123456789abcdef0123456789abcdef",
            link_info=link_info,
            meta=meta,
            files=tuple(
                package_file_from_buffer(name, identity, content, HEAD_MTIME)
                for name, content in files.items()
            ),
        )
    return _make


@pytest.fixture
def make_checkout(tmp_path, make_package):
    """Factory fixture writing a checkout of a package into tmp_path/pkg."""
    def _make(files: Dict[str, bytes], **kwargs):
        return write_checkout(make_package(files, **kwargs), tmp_path / "pkg")
    return _make


@pytest.fixture
def checkout(make_checkout):
    """Checkout with the tracked files foo and bar, both unmodified."""
    return make_checkout({"foo": b"foo\n", "bar": b"bar is not empty!\n"})


@pytest.fixture
def mock_adapter(identity):
    """Adapter that accepts every upload and commit.

    The commit reply lists the committed entries at revision 4.
    """
    adapter = Mock(spec=ObsAdapter)

    def commit_filelist(ident, directory, comment=None, keep_link=False):
        return Directory(
            name=ident.name,
            revision="4",
            srcmd5="fedcba9876543210fedcba9876543210",
            entries=tuple(
                DirectoryEntry(name=e.name, size=e.size, md5=e.md5, mtime=e.mtime)
                for e in directory.entries
            ),
        )

    adapter.commit_filelist.side_effect = commit_filelist
    return adapter


def workdir_names(path: Path):
    """Regular files in a checkout directory, without the sidecar."""
    return sorted(p.name for p in path.iterdir() if p.is_file())
