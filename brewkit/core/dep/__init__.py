"""依赖模型与解析

- registry.py: 包定义加载
- requirements.py: 外部条件
- resolver.py: 依赖展开与排序
"""

from brewkit.core.dep.registry import PackageRegistry
from brewkit.core.dep.requirements import (
    CommandRequirement,
    LanguageModuleRequirement,
    Requirement,
)
from brewkit.core.dep.resolver import DependencyResolver

__all__ = [
    "PackageRegistry",
    "DependencyResolver",
    "Requirement",
    "LanguageModuleRequirement",
    "CommandRequirement",
]
