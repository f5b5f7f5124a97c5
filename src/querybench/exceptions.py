"""
Error taxonomy for benchmark runs.

Provisioning and registration errors abort a run. Query, equivalence and
timeout conditions are scoped to a single case and recorded in its result.
"""

from typing import Optional


class QueryBenchError(Exception):
    """Base class for all benchmark errors."""


class ConfigurationError(QueryBenchError):
    """Run configuration failed validation."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Invalid configuration:\n" + "\n".join(self.errors))


class ProvisionError(QueryBenchError):
    """A backend instance failed to start or never became ready."""

    def __init__(self, strategy: str, cause: object):
        self.strategy = strategy
        self.cause = cause
        super().__init__(f"Backend for strategy '{strategy}' failed to provision: {cause}")


class TeardownError(QueryBenchError):
    """One or more backend instances could not be stopped."""

    def __init__(self, failures: dict[str, BaseException]):
        self.failures = dict(failures)
        details = "; ".join(f"{name}: {error}" for name, error in self.failures.items())
        super().__init__(f"Failed to stop {len(self.failures)} backend(s): {details}")


class RegistrationError(QueryBenchError):
    """Benchmark groups or cases were registered incorrectly."""


class DuplicateNameError(RegistrationError):
    """A group or case name is already registered in its scope."""

    def __init__(self, kind: str, name: str, scope: Optional[str] = None):
        self.kind = kind
        self.name = name
        self.scope = scope
        where = f" in group '{scope}'" if scope else ""
        super().__init__(f"Duplicate {kind} name '{name}'{where}")


class RegistryFrozenError(RegistrationError):
    """Registration attempted after the run started."""


class QueryError(QueryBenchError):
    """A query failed inside an executor adapter."""

    def __init__(self, strategy: str, cause: object):
        self.strategy = strategy
        self.cause = cause
        super().__init__(f"[{strategy}] {cause}")


class EquivalenceError(QueryBenchError):
    """A case returned a different row count than the rest of its group."""

    def __init__(self, group: str, case: str, expected: int, actual: int):
        self.group = group
        self.case = case
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Case '{case}' in group '{group}' returned {actual} rows, expected {expected}"
        )


class TimeoutExceeded(QueryBenchError):
    """
    The adaptive timing loop hit its wall-clock ceiling.

    Not a failure: the case keeps the samples collected so far and the
    condition is reported as a caveat.
    """

    def __init__(self, case: str, iterations: int, budget_s: float):
        self.case = case
        self.iterations = iterations
        self.budget_s = budget_s
        super().__init__(
            f"time budget of {budget_s:.1f}s exhausted after {iterations} iterations"
        )
