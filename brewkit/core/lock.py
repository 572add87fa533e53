"""前缀互斥锁

同一前缀上的链接、卸载和构建阶段同一时刻只允许一个进程执行。
基于 fcntl.flock，进程退出时由内核自动释放。
flock 对同一进程的不同文件描述符不可重入，服务层只在最外层加锁一次。
"""

from __future__ import annotations

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

LOCK_FILE = "prefix.lock"


class PrefixLock:
    """排它锁，锁文件位于 <repository>/Library/Locks/prefix.lock"""

    def __init__(self, locks_dir: Path) -> None:
        self.path = locks_dir / LOCK_FILE

    @contextmanager
    def hold(self, *, blocking: bool = True) -> Iterator[None]:
        """持有锁；blocking=False 时拿不到锁立即抛 BlockingIOError"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as fh:
            flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
            fcntl.flock(fh, flags)
            logger.debug("已获取前缀锁: %s (pid=%d)", self.path, os.getpid())
            try:
                yield
            finally:
                fcntl.flock(fh, fcntl.LOCK_UN)
                logger.debug("已释放前缀锁: %s", self.path)
