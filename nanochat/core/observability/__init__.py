from .execution_tracker import ExecutionTracker, StageExecution, get_tracker

__all__ = ["ExecutionTracker", "StageExecution", "get_tracker"]
