"""
Pytest configuration for querybench tests

Unit tests run without external services: launchers and adapters are test
doubles, and the SQLAlchemy-based strategies run against SQLite files.
Integration tests provision real PostgreSQL containers and are opt-in.
"""

import os
from typing import Any, Dict, List, Optional

import docker
import pytest
import structlog
from sqlalchemy import create_engine

from querybench.config import TimingPolicy
from querybench.executors.base import ExecutorAdapter, PreparedHandle, RowSet

logger = structlog.get_logger()


def is_docker_available() -> bool:
    """Check if Docker is available"""
    try:
        client = docker.from_env()
        client.ping()
        return True
    except Exception:
        return False


def docker_tests_enabled() -> bool:
    return os.environ.get("QUERYBENCH_DOCKER_TESTS") == "1"


class FakeClock:
    """Manually advanced clock for deterministic timing tests"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAdapter(ExecutorAdapter):
    """
    In-memory adapter returning a fixed number of rows per execution.

    Records every call so tests can assert on what the engine issued.
    """

    supports_prepared = True

    def __init__(self, strategy: str = "raw", rows: int = 3, clock: Optional[FakeClock] = None,
                 latency: float = 0.0):
        super().__init__()
        self.strategy = strategy
        self.rows = rows
        self.clock = clock
        self.latency = latency
        self.calls: List[tuple] = []
        self.close_count = 0

    def _result(self) -> RowSet:
        if self.clock is not None:
            self.clock.advance(self.latency)
        return [(i,) for i in range(self.rows)]

    def _prepare(self, name: str, query: Any) -> Any:
        self.calls.append(("prepare", name))
        return name

    def _execute(self, query: Any, params: Any) -> RowSet:
        self.calls.append(("execute", params))
        return self._result()

    def _execute_prepared(self, handle: PreparedHandle, params: Any) -> RowSet:
        self.calls.append(("execute_prepared", params))
        return self._result()

    def _close(self) -> None:
        self.close_count += 1


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo structlog configuration done by the CLI under test"""
    yield
    structlog.reset_defaults()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fast_policy() -> TimingPolicy:
    """Small iteration counts so real-clock tests finish quickly"""
    return TimingPolicy(
        warmup_iterations=1,
        warmup_time=0.5,
        min_iterations=2,
        max_iterations=3,
        min_time=0.0,
        max_time=2.0,
        target_rse=0.5,
    )


@pytest.fixture
def sqlite_engine(tmp_path):
    """File-backed SQLite engine; every checkout gets its own connection"""
    engine = create_engine(f"sqlite:///{tmp_path / 'northwind.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def northwind_inputs(sqlite_engine):
    """Seeded Northwind fixture; returns the derived input sets"""
    from querybench.northwind.seed import seed_database

    return seed_database(sqlite_engine, scale=1, seed=42, sample_size=20)


@pytest.fixture
def fake_adapters() -> Dict[str, FakeAdapter]:
    from querybench.config import DEFAULT_STRATEGIES

    return {strategy: FakeAdapter(strategy=strategy, rows=5) for strategy in DEFAULT_STRATEGIES}


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests (no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests against real backends"
    )
    config.addinivalue_line(
        "markers", "requires_docker: Tests requiring Docker"
    )
