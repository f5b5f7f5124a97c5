"""
Configuration and data models for strategy benchmarks.

Dataclasses follow the validate() convention: each returns a list of
human-readable error messages, empty when the object is usable.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

STRATEGIES = (
    "raw",
    "raw-prepared",
    "builder",
    "builder-prepared",
    "orm",
    "raw-async",
)

# Strategies compared by default; raw-async is opt-in.
DEFAULT_STRATEGIES = STRATEGIES[:5]

DEFAULT_BASE_PORT = 55432


def strategy_port(strategy: str, base_port: int = DEFAULT_BASE_PORT) -> int:
    """
    Fixed port assigned to a strategy's backend.

    Args:
        strategy: Strategy identifier from STRATEGIES
        base_port: Port of the first strategy

    Returns:
        TCP port for the strategy's instance

    Raises:
        ValueError: If the strategy is unknown
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {strategy}")
    return base_port + STRATEGIES.index(strategy)


class BackendState(Enum):
    """Lifecycle of a provisioned backend instance"""
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"
    STOPPED = "stopped"


class CaseStatus(Enum):
    """Outcome of one benchmark case"""
    SUCCESS = "success"
    FAILED = "failed"


class BenchmarkState(Enum):
    """Report lifecycle states"""
    COMPLETED = "completed"
    EXPORTED = "exported"


@dataclass
class ConnectionConfig:
    """Connection parameters shared by every strategy's backend"""
    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    username: str = "postgres"
    password: str = "postgres"
    connection_timeout: float = 10.0

    def validate(self) -> List[str]:
        """
        Validate configuration parameters.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.host:
            errors.append("host cannot be empty")

        if not (1 <= self.port <= 65535):
            errors.append(f"Port must be 1-65535, got {self.port}")

        if not self.database:
            errors.append("database cannot be empty")

        if self.connection_timeout <= 0:
            errors.append(f"connection_timeout must be > 0, got {self.connection_timeout}")

        return errors

    def with_endpoint(self, host: str, port: int) -> "ConnectionConfig":
        """Copy of this config pointing at another host/port."""
        return ConnectionConfig(
            host=host,
            port=port,
            database=self.database,
            username=self.username,
            password=self.password,
            connection_timeout=self.connection_timeout,
        )

    def psycopg_kwargs(self) -> Dict[str, object]:
        """Keyword arguments for psycopg.connect()."""
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.username,
            "password": self.password,
            "connect_timeout": int(max(1, self.connection_timeout)),
        }

    def sqlalchemy_url(self, driver: str = "psycopg") -> str:
        """SQLAlchemy URL for the given PostgreSQL driver."""
        from sqlalchemy.engine import URL

        url = URL.create(
            f"postgresql+{driver}",
            username=self.username,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        )
        return url.render_as_string(hide_password=False)


@dataclass
class TimingPolicy:
    """Warm-up and adaptive stopping parameters for each case"""
    warmup_iterations: int = 5
    warmup_time: float = 2.0
    min_iterations: int = 10
    max_iterations: int = 1000
    min_time: float = 0.5
    max_time: float = 10.0
    target_rse: float = 0.05

    def validate(self) -> List[str]:
        """
        Validate timing parameters.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if self.warmup_iterations < 0:
            errors.append(f"warmup_iterations must be >= 0, got {self.warmup_iterations}")

        if self.warmup_time < 0:
            errors.append(f"warmup_time must be >= 0, got {self.warmup_time}")

        if self.min_iterations <= 0:
            errors.append(f"min_iterations must be > 0, got {self.min_iterations}")

        if self.max_iterations < self.min_iterations:
            errors.append(
                f"max_iterations must be >= min_iterations, got {self.max_iterations}"
            )

        if self.min_time < 0:
            errors.append(f"min_time must be >= 0, got {self.min_time}")

        if self.max_time <= 0:
            errors.append(f"max_time must be > 0, got {self.max_time}")
        elif self.max_time < self.min_time:
            errors.append(f"max_time must be >= min_time, got {self.max_time}")

        if not (0 < self.target_rse < 1):
            errors.append(f"target_rse must be between 0 and 1, got {self.target_rse}")

        return errors


@dataclass
class RunConfiguration:
    """Configuration for a full benchmark run"""
    strategies: List[str] = field(default_factory=lambda: list(DEFAULT_STRATEGIES))
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    timing: TimingPolicy = field(default_factory=TimingPolicy)
    base_port: int = DEFAULT_BASE_PORT
    use_docker: bool = True
    image: str = "postgres:16-alpine"
    startup_timeout: float = 60.0
    skip_failed_backends: bool = False
    random_seed: int = 42
    dataset_scale: int = 1
    output_json: Optional[str] = "results/json"
    output_table: Optional[str] = "results/tables"

    def validate(self) -> List[str]:
        """
        Validate the run configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.strategies:
            errors.append("At least one strategy must be selected")

        unknown = [s for s in self.strategies if s not in STRATEGIES]
        if unknown:
            errors.append(f"Unknown strategies: {unknown}")

        if len(set(self.strategies)) != len(self.strategies):
            errors.append(f"Strategies must be unique, got {self.strategies}")

        if not (1 <= self.base_port <= 65535 - len(STRATEGIES)):
            errors.append(f"base_port out of range, got {self.base_port}")

        if self.startup_timeout <= 0:
            errors.append(f"startup_timeout must be > 0, got {self.startup_timeout}")

        if self.dataset_scale <= 0:
            errors.append(f"dataset_scale must be > 0, got {self.dataset_scale}")

        errors.extend(f"connection: {e}" for e in self.connection.validate())
        errors.extend(f"timing: {e}" for e in self.timing.validate())

        return errors


@dataclass(frozen=True)
class CaseResult:
    """Aggregated timing for one benchmark case"""
    group: str
    case: str
    strategy: str
    status: CaseStatus
    iterations: int = 0
    warmup_iterations: int = 0
    mean_ms: Optional[float] = None
    stddev_ms: Optional[float] = None
    min_ms: Optional[float] = None
    max_ms: Optional[float] = None
    p50_ms: Optional[float] = None
    p90_ms: Optional[float] = None
    p99_ms: Optional[float] = None
    ops_per_sec: Optional[float] = None
    total_time_s: float = 0.0
    row_count: Optional[int] = None
    error: Optional[str] = None
    caveat: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is CaseStatus.SUCCESS

    @property
    def timed_out(self) -> bool:
        return self.caveat is not None

    @classmethod
    def failed(
        cls,
        group: str,
        case: str,
        strategy: str,
        error: BaseException,
        warmup_iterations: int = 0,
    ) -> "CaseResult":
        """Build a FAILED result carrying no statistics."""
        return cls(
            group=group,
            case=case,
            strategy=strategy,
            status=CaseStatus.FAILED,
            warmup_iterations=warmup_iterations,
            error=f"{type(error).__name__}: {error}",
        )

    def to_record(self) -> Dict[str, object]:
        """Flat machine-readable record for JSON export."""
        return {
            "group": self.group,
            "case": self.case,
            "strategy": self.strategy,
            "status": self.status.value,
            "iterations": self.iterations,
            "mean_ms": self.mean_ms,
            "stddev_ms": self.stddev_ms,
            "p50_ms": self.p50_ms,
            "p90_ms": self.p90_ms,
            "p99_ms": self.p99_ms,
            "ops_per_sec": self.ops_per_sec,
            "row_count": self.row_count,
            "error": self.error,
            "caveat": self.caveat,
        }


ResultMap = Dict[str, Dict[str, CaseResult]]


@dataclass
class BenchmarkReport:
    """Complete benchmark results"""
    report_id: str
    start_time: datetime
    end_time: datetime
    results: ResultMap
    config: Optional[RunConfiguration] = None
    teardown_errors: List[str] = field(default_factory=list)
    state: BenchmarkState = BenchmarkState.COMPLETED

    @property
    def total_duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    def case_results(self) -> List[CaseResult]:
        """All case results in group-then-registration order."""
        return [result for cases in self.results.values() for result in cases.values()]

    @property
    def failed_cases(self) -> List[CaseResult]:
        return [result for result in self.case_results() if not result.succeeded]

    def to_json(self) -> Dict:
        """
        Export report as JSON-serialisable dict.

        Returns:
            Dict suitable for json.dumps()
        """
        data = {
            "report_id": self.report_id,
            "timestamp": self.start_time.isoformat(),
            "duration_seconds": self.total_duration_seconds,
            "state": self.state.value,
            "results": [result.to_record() for result in self.case_results()],
            "teardown_errors": list(self.teardown_errors),
        }
        if self.config is not None:
            data["config"] = {
                "strategies": list(self.config.strategies),
                "warmup_iterations": self.config.timing.warmup_iterations,
                "min_iterations": self.config.timing.min_iterations,
                "max_iterations": self.config.timing.max_iterations,
                "max_time": self.config.timing.max_time,
                "dataset_scale": self.config.dataset_scale,
            }
        return data
