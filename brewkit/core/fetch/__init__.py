"""产物拉取

- strategies.py: 下载策略（curl / git）
- fetcher.py: 镜像回退与完整性校验
"""

from brewkit.core.fetch.fetcher import ArtifactFetcher, FetchResult
from brewkit.core.fetch.strategies import (
    CurlDownloadStrategy,
    DownloadStrategy,
    GitDownloadStrategy,
    build_strategy,
)

__all__ = [
    "ArtifactFetcher",
    "FetchResult",
    "DownloadStrategy",
    "CurlDownloadStrategy",
    "GitDownloadStrategy",
    "build_strategy",
]
