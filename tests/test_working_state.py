"""Tests for reconciling a checkout directory with its HEAD snapshot."""

import os
import re

import pytest

from obs_checkout.core import FileState, WorkingCopy, package_file_from_buffer
from obs_checkout.directory import LinkInfo
from obs_checkout.errors import (
    BackupMissingError,
    DigestMismatchError,
    IntegrityError,
    NotACheckoutError,
    UnsupportedCheckoutVersionError,
)
from obs_checkout.hashing import compute_digest
from obs_checkout.working_state import materialize_working_copy, read_working_copy, summarize

from conftest import HEAD_MTIME


def states(wc: WorkingCopy):
    return {f.name: f.state for f in wc.files_in_workdir}


class TestReconciler:
    """Test classification of the files in a checkout."""

    def test_fresh_checkout_is_unmodified(self, checkout):
        wc = read_working_copy(checkout.path)
        assert wc == checkout
        assert states(wc) == {"bar": FileState.UNMODIFIED, "foo": FileState.UNMODIFIED}

    def test_edited_file_is_modified(self, checkout):
        (checkout.path / "foo").write_bytes(b"foo was edited\n")

        wc = read_working_copy(checkout.path)

        assert states(wc) == {"bar": FileState.UNMODIFIED, "foo": FileState.MODIFIED}
        foo = wc.file("foo")
        assert foo.content == b"foo was edited\n"
        assert foo.md5_hash == compute_digest(b"foo was edited\n")
        assert foo.size == len(b"foo was edited\n")
        # HEAD is unaffected
        assert wc.head_file("foo").content == b"foo\n"

    def test_unmodified_file_reuses_head_record(self, checkout):
        os.utime(checkout.path / "bar", (HEAD_MTIME + 100, HEAD_MTIME + 100))

        wc = read_working_copy(checkout.path)

        assert wc.file("bar").strip_state() == wc.head_file("bar")

    def test_listed_file_not_at_head_is_to_be_added(self, checkout):
        (checkout.path / "baz").write_text("new file\n")
        (checkout.path / ".osc" / "_to_be_added").write_text("baz\n")

        wc = read_working_copy(checkout.path)

        assert wc.file("baz").state == FileState.TO_BE_ADDED
        assert wc.file("baz").content == b"new file\n"
        assert wc.head_file("baz") is None

    def test_unknown_file_is_untracked(self, checkout):
        (checkout.path / "notes.txt").write_text("scratch")
        assert read_working_copy(checkout.path).file("notes.txt").state == FileState.UNTRACKED

    def test_deleted_file_is_missing(self, checkout):
        (checkout.path / "foo").unlink()

        wc = read_working_copy(checkout.path)

        assert wc.file("foo").state == FileState.MISSING
        assert wc.file("foo").content == b"foo\n"

    def test_staged_deletion_of_removed_file(self, checkout):
        (checkout.path / "foo").unlink()
        (checkout.path / ".osc" / "_to_be_deleted").write_text("foo\n")

        assert read_working_copy(checkout.path).file("foo").state == FileState.TO_BE_DELETED

    def test_staged_deletion_of_present_file(self, checkout):
        """The deletion is staged even though the file still exists."""
        (checkout.path / "foo").write_text("edited anyway\n")
        (checkout.path / ".osc" / "_to_be_deleted").write_text("foo\n")

        wc = read_working_copy(checkout.path)

        assert wc.file("foo").state == FileState.TO_BE_DELETED
        assert wc.file("foo").strip_state() == wc.head_file("foo")

    def test_subdirectories_are_ignored(self, checkout):
        (checkout.path / "subdir").mkdir()
        (checkout.path / "subdir" / "file").write_text("nested")

        assert set(states(read_working_copy(checkout.path))) == {"foo", "bar"}

    def test_found_from_subdirectory(self, checkout):
        (checkout.path / "subdir").mkdir()
        assert read_working_copy(checkout.path / "subdir").path == checkout.path

    def test_link_info_is_read_back(self, make_checkout):
        link = LinkInfo(project="devel:tools", package="pkg", srcmd5="a" * 32, xsrcmd5="b" * 32)
        wc = make_checkout({"_link": b"<link/>"}, link_info=link)

        assert read_working_copy(wc.path).link_info == link


class TestSidecarErrors:
    """Test that a corrupted sidecar is reported."""

    def test_not_a_checkout(self, tmp_path):
        with pytest.raises(NotACheckoutError):
            read_working_copy(tmp_path)

    def test_unsupported_version(self, checkout):
        (checkout.path / ".osc" / "_osclib_version").write_text("2.0\n")
        with pytest.raises(UnsupportedCheckoutVersionError, match="2.0"):
            read_working_copy(checkout.path)

    def test_corrupted_backup(self, checkout):
        (checkout.path / ".osc" / "foo").write_text("tampered\n")
        with pytest.raises(DigestMismatchError):
            read_working_copy(checkout.path)

    def test_entry_without_md5(self, checkout):
        files = checkout.path / ".osc" / "_files"
        xml, count = re.subn(r' md5="[0-9a-f]{32}"', "", files.read_text(), count=1)
        assert count == 1
        files.write_text(xml)

        with pytest.raises(IntegrityError, match="lacks its md5"):
            read_working_copy(checkout.path)

    def test_entry_with_wrong_size(self, checkout):
        files = checkout.path / ".osc" / "_files"
        xml = files.read_text()
        assert 'name="foo" size="4"' in xml
        files.write_text(xml.replace('name="foo" size="4"', 'name="foo" size="5"'))

        with pytest.raises(IntegrityError, match="records 5"):
            read_working_copy(checkout.path)

    def test_missing_backup_falls_back_to_unmodified_file(self, checkout):
        (checkout.path / ".osc" / "foo").unlink()
        assert read_working_copy(checkout.path) == checkout

    def test_missing_backup_and_modified_file(self, checkout):
        (checkout.path / ".osc" / "foo").unlink()
        (checkout.path / "foo").write_text("edited\n")
        with pytest.raises(BackupMissingError):
            read_working_copy(checkout.path)


class TestRoundTrip:
    """Materializing a working copy and reading it back yields the same value."""

    def test_round_trip_every_state(self, tmp_path, identity):
        def record(name, content, mtime, state):
            return package_file_from_buffer(name, identity, content, mtime).with_state(state)

        head = [package_file_from_buffer(n, identity, f"{n} at head\n", HEAD_MTIME)
                for n in ("deleted", "gone", "modified", "same")]
        wc = WorkingCopy(
            identity=identity,
            path=(tmp_path / "pkg").resolve(),
            revision="12",
            revision_hash="c" * 32,
            link_info=LinkInfo(project="openSUSE:Factory", package="pkg", srcmd5="d" * 32),
            meta='<package name="pkg" project="home:tester"/>\n',
            files_at_head=head,
            files_in_workdir=[
                head[0].with_state(FileState.TO_BE_DELETED),
                head[1].with_state(FileState.MISSING),
                record("modified", "edited\n", HEAD_MTIME + 60, FileState.MODIFIED),
                head[3].with_state(FileState.UNMODIFIED),
                record("added", "new\n", HEAD_MTIME + 120, FileState.TO_BE_ADDED),
                record("scratch", "untracked\n", HEAD_MTIME + 180, FileState.UNTRACKED),
            ],
        )

        materialize_working_copy(wc)

        assert read_working_copy(wc.path) == wc

    def test_round_trip_empty_package(self, tmp_path, identity):
        wc = WorkingCopy(identity=identity, path=(tmp_path / "empty").resolve())
        materialize_working_copy(wc)
        assert read_working_copy(wc.path) == wc


class TestSummary:

    def test_summarize(self, checkout):
        (checkout.path / "foo").write_text("edited\n")
        (checkout.path / "bar").unlink()
        (checkout.path / "new").write_text("untracked\n")

        summary = summarize(read_working_copy(checkout.path))

        assert summary.total_tracked == 2
        assert (summary.modified, summary.missing, summary.untracked) == (1, 1, 1)
        assert [f.name for f in summary.changed_files] == ["foo"]
        assert summary.missing_files == ["bar"]
        assert summary.untracked_files == ["new"]
        assert summary.has_changes
        assert not summary.is_clean

    def test_clean_checkout(self, checkout):
        summary = summarize(checkout)
        assert summary.is_clean
        assert summary.unmodified == 2
        assert summary.total_size == len(b"foo\n") + len(b"bar is not empty!\n")
