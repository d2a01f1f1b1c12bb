"""launchcore: executes hierarchical launch descriptions of multi-process systems."""

from launchcore.description import LaunchDescription
from launchcore.services.context import LaunchContext
from launchcore.services.executor import LaunchExecutor

__all__ = ["LaunchDescription", "LaunchContext", "LaunchExecutor"]
