"""
Declarative registry of benchmark groups and cases.

A group is one logical query; each case runs that query through one executor
adapter. The registry never executes anything: the timing engine consumes it
in group-then-insertion order.

Example:
    registry = CaseRegistry()
    group = registry.define_group("select * from customer")
    group.define_case("raw", raw, lambda: raw.execute('select * from "customers"'))

    @group.case("orm", orm)
    def orm_customers():
        return orm.execute(select(Customer))
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from querybench.exceptions import DuplicateNameError, RegistrationError, RegistryFrozenError

Operation = Callable[[], Any]
Setup = Callable[[], Any]


@dataclass
class BenchmarkCase:
    """One strategy's implementation of a group's query"""
    name: str
    adapter: Any
    operation: Operation
    setup: Optional[Setup] = None

    @property
    def strategy(self) -> str:
        return getattr(self.adapter, "strategy", None) or "unknown"


@dataclass
class BenchmarkGroup:
    """Named, ordered collection of logically equivalent cases"""
    name: str
    expected_rows: Optional[int] = None
    cases: Dict[str, BenchmarkCase] = field(default_factory=dict)

    def __iter__(self) -> Iterator[BenchmarkCase]:
        return iter(self.cases.values())

    def __len__(self) -> int:
        return len(self.cases)

    @property
    def strategies(self) -> List[str]:
        return [case.strategy for case in self.cases.values()]


@dataclass
class Scenario:
    """
    Data description of a case's work, turned into setup and operation.

    Attributes:
        query: Strategy-native query (SQL text, Core statement, ORM select,
            or a factory the adapter understands)
        params: Parameters of a single execution (when inputs is None)
        inputs: One execution per parameter set, e.g. once per id
        prepare_as: Prepare the query under this name during setup and
            execute the handle in every iteration
        fan_out: Hand all inputs to the adapter at once (concurrent where
            the strategy supports it) instead of looping
    """
    query: Any
    params: Any = None
    inputs: Optional[Sequence[Any]] = None
    prepare_as: Optional[str] = None
    fan_out: bool = False


def bind_scenario(adapter: Any, scenario: Scenario) -> Tuple[Optional[Setup], Operation]:
    """
    Build the (setup, operation) pair executing a scenario on an adapter.

    The operation returns every row it fetched as one flat list so the
    engine can compare row counts across strategies.
    """
    state: Dict[str, Any] = {}

    setup = None
    if scenario.prepare_as:
        def setup():
            state["handle"] = adapter.prepare(scenario.prepare_as, scenario.query)

    def run_one(params):
        handle = state.get("handle")
        if handle is not None:
            return adapter.execute_prepared(handle, params)
        return adapter.execute(scenario.query, params)

    def operation():
        if scenario.inputs is None:
            return list(run_one(scenario.params))

        if scenario.fan_out:
            row_sets = adapter.execute_all(scenario.query, scenario.inputs, state.get("handle"))
        else:
            row_sets = [run_one(params) for params in scenario.inputs]
        return [row for rows in row_sets for row in rows]

    return setup, operation


class GroupBuilder:
    """Registers cases into one group."""

    def __init__(self, registry: "CaseRegistry", group: BenchmarkGroup):
        self._registry = registry
        self.group = group

    @property
    def name(self) -> str:
        return self.group.name

    def define_case(
        self,
        name: str,
        adapter: Any,
        operation: Operation,
        setup: Optional[Setup] = None,
    ) -> BenchmarkCase:
        """
        Register a case.

        Args:
            name: Case name, unique within the group
            adapter: ExecutorAdapter the case runs on
            operation: No-argument callable doing one full unit of work
            setup: Optional no-argument callable run once before timing

        Raises:
            DuplicateNameError: If the group already has a case of that name
            RegistryFrozenError: If the run already started
        """
        self._registry._check_mutable()
        if not name:
            raise RegistrationError("Case name cannot be empty")
        if name in self.group.cases:
            raise DuplicateNameError("case", name, scope=self.group.name)
        if not callable(operation):
            raise RegistrationError(f"Operation of case '{name}' is not callable")

        case = BenchmarkCase(name=name, adapter=adapter, operation=operation, setup=setup)
        self.group.cases[name] = case
        return case

    def case(self, name: str, adapter: Any, setup: Optional[Setup] = None):
        """Decorator form of define_case()."""
        def decorator(operation: Operation) -> Operation:
            self.define_case(name, adapter, operation, setup=setup)
            return operation
        return decorator

    def define_scenario(self, name: str, adapter: Any, scenario: Scenario) -> BenchmarkCase:
        """Register a case described by a Scenario."""
        setup, operation = bind_scenario(adapter, scenario)
        return self.define_case(name, adapter, operation, setup=setup)


class CaseRegistry:
    """Ordered registry of benchmark groups for one run."""

    def __init__(self):
        self._groups: Dict[str, BenchmarkGroup] = {}
        self._frozen = False

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RegistryFrozenError("Registry is frozen; the run has already started")

    def define_group(self, name: str, expected_rows: Optional[int] = None) -> GroupBuilder:
        """
        Register a new group.

        Args:
            name: Group name, unique within the run
            expected_rows: Row count every case must return (checked once
                before timing); None compares cases against each other

        Raises:
            DuplicateNameError: If the name is already registered
        """
        self._check_mutable()
        if not name:
            raise RegistrationError("Group name cannot be empty")
        if name in self._groups:
            raise DuplicateNameError("group", name)

        group = BenchmarkGroup(name=name, expected_rows=expected_rows)
        self._groups[name] = group
        return GroupBuilder(self, group)

    def group(self, name: str) -> BenchmarkGroup:
        return self._groups[name]

    def groups(self) -> List[BenchmarkGroup]:
        """Groups in registration order."""
        return list(self._groups.values())

    def __iter__(self) -> Iterator[BenchmarkGroup]:
        return iter(self.groups())

    def __len__(self) -> int:
        return len(self._groups)

    def case_count(self) -> int:
        return sum(len(group) for group in self._groups.values())

    def freeze(self) -> None:
        """Reject further registration."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def missing_cases(self, strategies: Iterable[str]) -> List[Tuple[str, str]]:
        """
        Completeness check of the comparison matrix.

        Returns:
            (group, strategy) pairs with no registered case, in group order
        """
        strategies = list(strategies)
        missing = []
        for group in self._groups.values():
            present = set(group.strategies)
            missing.extend((group.name, s) for s in strategies if s not in present)
        return missing
