"""
Executor adapters, one per client strategy.

Driver-specific modules are imported lazily by querybench.executors.factory
so a run only needs the drivers of the strategies it selects.
"""

from querybench.executors.base import ExecutorAdapter, PreparedHandle, RowSet
from querybench.executors.factory import close_adapters, create_adapter, create_adapters

__all__ = [
    "ExecutorAdapter",
    "PreparedHandle",
    "RowSet",
    "close_adapters",
    "create_adapter",
    "create_adapters",
]
