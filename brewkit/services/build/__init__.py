"""构建服务

- staging.py: 临时目录与产物展开
- patches.py: 补丁下载与应用
- executor.py: 构建上下文与步骤执行
- procedures.py: 自定义构建过程注册表
- orchestrator.py: 单包状态机与失败处理
"""

from brewkit.services.build.executor import BuildContext
from brewkit.services.build.orchestrator import BuildOrchestrator, PhaseTracker
from brewkit.services.build.procedures import BuildProcedureRegistry

__all__ = ["BuildContext", "BuildOrchestrator", "BuildProcedureRegistry", "PhaseTracker"]
