"""Install execution: orchestrator, strategies, version resolution."""

from monoforge.installer.execution.add import DependencyAdder, default_range_style
from monoforge.installer.execution.orchestrator import InstallOrchestrator, SubspaceInstallResult
from monoforge.installer.execution.process import PackageManagerRunner
from monoforge.installer.execution.resolver import DependencyAnalysis, DependencyVersionResolver

__all__ = [
    "DependencyAdder",
    "DependencyAnalysis",
    "DependencyVersionResolver",
    "InstallOrchestrator",
    "PackageManagerRunner",
    "SubspaceInstallResult",
    "default_range_style",
]
