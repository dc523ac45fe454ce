"""Tests for the single-writer checkout lock."""

import threading

import pytest

from obs_checkout.config import CheckoutOptions
from obs_checkout.context import CheckoutContext
from obs_checkout.errors import CheckoutLockedError, FileMissingError, NotACheckoutError
from obs_checkout.ops import add_and_delete_files, commit

FAST = CheckoutOptions(lock_timeout=0.2)


class TestCheckoutContext:

    def test_finds_root_from_subdirectory(self, checkout):
        sub = checkout.path / "a" / "b"
        sub.mkdir(parents=True)
        assert CheckoutContext(sub).root == checkout.path

    def test_not_a_checkout(self, tmp_path):
        with pytest.raises(NotACheckoutError, match=".osc"):
            CheckoutContext(tmp_path)

    def test_sidecar_paths(self, checkout):
        ctx = CheckoutContext(checkout.path)
        assert ctx.files_path == checkout.path / ".osc" / "_files"
        assert ctx.backup_path("foo") == checkout.path / ".osc" / "foo"
        assert ctx.absolute("foo") == checkout.path / "foo"


class TestLock:
    """Mutating operations refuse to run while another writer holds the lock."""

    def test_mutation_blocked_while_locked(self, checkout):
        with CheckoutContext(checkout.path).lock():
            with pytest.raises(CheckoutLockedError, match="locked"):
                add_and_delete_files(checkout, files_to_delete=["foo"], options=FAST)

        # nothing happened
        assert (checkout.path / "foo").exists()

    def test_commit_blocked_while_locked(self, checkout, mock_adapter):
        (checkout.path / "foo").write_text("edited\n")
        with CheckoutContext(checkout.path).lock():
            with pytest.raises(CheckoutLockedError):
                commit(checkout, adapter=mock_adapter, options=FAST)

        mock_adapter.put_file_contents.assert_not_called()
        mock_adapter.commit_filelist.assert_not_called()

    def test_lock_released_after_operation(self, checkout):
        wc = add_and_delete_files(checkout, files_to_delete=["foo"], options=FAST)
        add_and_delete_files(wc, files_to_delete=["bar"], options=FAST)

    def test_lock_released_after_error(self, checkout):
        with pytest.raises(FileMissingError):
            add_and_delete_files(checkout, files_to_add=["nope"], options=FAST)
        add_and_delete_files(checkout, files_to_delete=["foo"], options=FAST)

    def test_waits_for_lock(self, checkout):
        """A writer waits up to the timeout for the lock to become free."""
        ctx = CheckoutContext(checkout.path)
        acquired = threading.Event()
        release = threading.Event()

        def hold_lock():
            with ctx.lock():
                acquired.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        acquired.wait(5)
        threading.Timer(0.1, release.set).start()

        add_and_delete_files(checkout, files_to_delete=["foo"], options=CheckoutOptions(lock_timeout=5))
        holder.join()

        assert not (checkout.path / "foo").exists()
