"""PrefixLock 测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from brewkit.core.lock import PrefixLock


def test_lock_file_created(tmp_path: Path) -> None:
    lock = PrefixLock(tmp_path / "Locks")
    with lock.hold():
        assert lock.path.exists()


def test_second_holder_rejected(tmp_path: Path) -> None:
    lock = PrefixLock(tmp_path)
    with lock.hold():
        with pytest.raises(BlockingIOError):
            with PrefixLock(tmp_path).hold(blocking=False):
                pass


def test_released_after_exit(tmp_path: Path) -> None:
    lock = PrefixLock(tmp_path)
    with lock.hold():
        pass
    with lock.hold(blocking=False):
        pass


def test_released_on_error(tmp_path: Path) -> None:
    lock = PrefixLock(tmp_path)
    with pytest.raises(RuntimeError):
        with lock.hold():
            raise RuntimeError("boom")
    with lock.hold(blocking=False):
        pass
