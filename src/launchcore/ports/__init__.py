from .contracts import EventBus, ProcessSupervisor, DescriptionSource

__all__ = ["EventBus", "ProcessSupervisor", "DescriptionSource"]
