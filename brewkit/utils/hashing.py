"""文件摘要计算"""

from __future__ import annotations

import hashlib
from pathlib import Path

_CHUNK = 64 * 1024


def compute_checksum(path: str | Path, algorithm: str) -> str:
    """按指定算法（md5 / sha1 / sha256）计算文件十六进制摘要"""
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()
