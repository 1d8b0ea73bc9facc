"""Operation statistics and performance measurement."""

from .stats import Operation, OperationRecorder, OperationStat

__all__ = ["Operation", "OperationRecorder", "OperationStat"]
