# Decision and execution stages
from .models import ExecutionRequest, ExecutionOutcome, ExecutionStatus
from .decision import DecisionEngine
from .executor import FrontrunExecutor

__all__ = ["ExecutionRequest", "ExecutionOutcome", "ExecutionStatus", "DecisionEngine", "FrontrunExecutor"]
