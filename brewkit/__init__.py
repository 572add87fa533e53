"""brewkit - 源码 / 预编译包管理器

解析依赖、拉取并校验源码或 bottle、隔离构建，
最后通过符号链接农场把 keg 发布到共享前缀。
"""

__version__ = "0.8.1"
