"""Run Lock unit tests."""

from __future__ import annotations

import json
import os
from unittest.mock import patch

import pytest

from sakuin.controller.lock import LOCK_NAME, OWNER_FILE, RunLock
from sakuin.errors import LockContentionError


@pytest.fixture
def lock_dir(tmp_path):
    return tmp_path / "locks"


class TestRunLock:
    """RunLock のテスト"""

    def test_acquire_and_release(self, lock_dir):
        lock = RunLock(lock_dir)
        token = lock.acquire()

        assert lock.held
        assert lock.path == lock_dir / LOCK_NAME
        owner = json.loads((lock.path / OWNER_FILE).read_text())
        assert owner["pid"] == os.getpid()
        assert owner["token"] == token

        lock.release()
        assert not lock.held
        assert not lock.path.exists()

    def test_contention(self, lock_dir):
        first = RunLock(lock_dir)
        first.acquire()

        second = RunLock(lock_dir)
        with pytest.raises(LockContentionError) as exc_info:
            second.acquire()

        assert exc_info.value.context.details["owner_pid"] == os.getpid()
        assert not second.held
        assert first.held

    def test_remove_stale(self, lock_dir):
        RunLock(lock_dir).acquire()
        lock = RunLock(lock_dir)
        token = lock.acquire(remove_stale=True)
        assert lock.held
        assert lock.owner_info().token == token

    def test_hand_off_and_adopt(self, lock_dir):
        lock = RunLock(lock_dir)
        lock.acquire()
        token = lock.hand_off()
        assert not lock.held
        assert lock.exists()

        successor = RunLock(lock_dir)
        assert successor.adopt(token) == token
        assert successor.held
        successor.release()
        assert not lock.exists()

    def test_adopt_with_wrong_token(self, lock_dir):
        lock = RunLock(lock_dir)
        lock.acquire()
        lock.hand_off()

        with pytest.raises(LockContentionError):
            RunLock(lock_dir).adopt("not-the-token")

    def test_adopt_missing_lock_acquires(self, lock_dir):
        lock = RunLock(lock_dir)
        lock.adopt("whatever")
        assert lock.held
        assert lock.exists()

    def test_hand_off_requires_lock(self, lock_dir):
        with pytest.raises(RuntimeError):
            RunLock(lock_dir).hand_off()

    def test_release_without_lock_is_noop(self, lock_dir):
        RunLock(lock_dir).release()

    def test_owner_alive(self, lock_dir):
        lock = RunLock(lock_dir)
        lock.acquire()
        assert lock.owner_info().alive

        with patch("sakuin.controller.lock.psutil.pid_exists", return_value=False):
            assert not lock.owner_info().alive

    def test_owner_info_without_lock(self, lock_dir):
        assert RunLock(lock_dir).owner_info() is None

    def test_remove(self, lock_dir):
        lock = RunLock(lock_dir)
        lock.acquire()
        assert RunLock(lock_dir).remove()
        assert not RunLock(lock_dir).remove()
