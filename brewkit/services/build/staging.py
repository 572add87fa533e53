"""构建临时目录

每次构建独占一个唯一命名的临时目录，离开作用域时无论成败都删除。
失败检查钩子在作用域内执行，因此检查期间目录一直存在。
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from brewkit.core.fetch.fetcher import FetchResult

logger = logging.getLogger(__name__)


@contextmanager
def scratch_dir(tmp_root: Path, name: str) -> Iterator[Path]:
    """创建 <tmp_root>/brewkit-<name>-XXXXXX，退出时删除"""
    tmp_root.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=f"brewkit-{name}-", dir=str(tmp_root)))
    logger.debug("创建构建目录: %s", path)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        logger.debug("已删除构建目录: %s", path)


def stage(fetched: FetchResult, scratch: Path) -> Path:
    """把拉取到的产物展开到临时目录，返回源码根目录"""
    srcdir = fetched.strategy.stage(scratch)
    logger.info("已展开 %s -> %s", fetched.path.name, srcdir)
    return srcdir
