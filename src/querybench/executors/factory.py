"""
Adapter construction for provisioned backends.

Maps each strategy identifier to the adapter class that implements it and
opens one session per strategy against that strategy's own instance. Driver
modules are imported on demand, so a run only needs the drivers of the
strategies it selects.
"""

import importlib
from typing import Dict, Type

import structlog

from querybench.config import ConnectionConfig
from querybench.executors.base import ExecutorAdapter

logger = structlog.get_logger()

ADAPTERS = {
    "raw": ("querybench.executors.raw_executor", "RawExecutor"),
    "raw-prepared": ("querybench.executors.raw_executor", "RawPreparedExecutor"),
    "builder": ("querybench.executors.builder_executor", "BuilderExecutor"),
    "builder-prepared": ("querybench.executors.builder_executor", "BuilderPreparedExecutor"),
    "orm": ("querybench.executors.orm_executor", "OrmExecutor"),
    "raw-async": ("querybench.executors.async_executor", "AsyncRawExecutor"),
}


def adapter_class(strategy: str) -> Type[ExecutorAdapter]:
    """
    Adapter class implementing a strategy.

    Raises:
        ValueError: If the strategy is unknown
    """
    if strategy not in ADAPTERS:
        raise ValueError(f"Unknown strategy: {strategy}")
    module_name, class_name = ADAPTERS[strategy]
    return getattr(importlib.import_module(module_name), class_name)


def create_adapter(strategy: str, instance, connection: ConnectionConfig) -> ExecutorAdapter:
    """
    Open an adapter for a strategy against its provisioned instance.

    Args:
        strategy: Strategy identifier
        instance: BackendInstance provisioned for the strategy
        connection: Credentials; host and port are taken from the instance

    Returns:
        Connected ExecutorAdapter
    """
    cls = adapter_class(strategy)
    config = connection.with_endpoint(instance.host, instance.port)
    adapter = cls.connect(config, instance)
    logger.info("Adapter connected", strategy=strategy, endpoint=instance.endpoint)
    return adapter


def create_adapters(instances: Dict[str, object], connection: ConnectionConfig) -> Dict[str, ExecutorAdapter]:
    """
    Open one adapter per provisioned instance.

    Adapters opened before a failure are closed before the error propagates.
    """
    adapters: Dict[str, ExecutorAdapter] = {}
    try:
        for strategy, instance in instances.items():
            adapters[strategy] = create_adapter(strategy, instance, connection)
    except BaseException:
        close_adapters(adapters)
        raise
    return adapters


def close_adapters(adapters: Dict[str, ExecutorAdapter]) -> None:
    """Close every adapter, logging failures instead of stopping at the first."""
    for strategy, adapter in adapters.items():
        try:
            adapter.close()
        except Exception as e:
            logger.warning("Adapter close failed", strategy=strategy, error=str(e))
