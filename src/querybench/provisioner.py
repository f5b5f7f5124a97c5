"""
Disposable backend provisioning.

One PostgreSQL instance per client strategy, each bound to a fixed
strategy-indexed port. Instances are started through a launcher (docker
containers by default, or an already running server) and polled until they
accept queries.
"""

import socket
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Protocol

import structlog

from querybench.config import (
    DEFAULT_BASE_PORT,
    BackendState,
    ConnectionConfig,
    strategy_port,
)
from querybench.exceptions import ConfigurationError, ProvisionError, TeardownError

logger = structlog.get_logger()

STRATEGY_LABEL = "querybench.strategy"


@dataclass
class BackendInstance:
    """One disposable database server owned by the provisioner"""
    name: str
    strategy: str
    host: str
    port: int
    state: BackendState = BackendState.STARTING
    handle: Any = None
    error: Optional[str] = None

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def is_ready(self) -> bool:
        return self.state is BackendState.READY


class BackendLauncher(Protocol):
    """Starts and stops one backend server per call."""

    def start(self, name: str, port: int) -> Any:
        ...

    def stop(self, handle: Any) -> None:
        ...


class DockerLauncher:
    """
    Launch throwaway PostgreSQL containers via the docker SDK.

    Containers are created with auto_remove, so stopping one also removes it.
    """

    def __init__(
        self,
        connection: ConnectionConfig,
        image: str = "postgres:16-alpine",
        client: Any = None,
        stop_timeout: int = 5,
    ):
        """
        Initialize docker launcher.

        Args:
            connection: Credentials and database name for the containers
            image: PostgreSQL image to run
            client: docker client (defaults to docker.from_env())
            stop_timeout: Seconds docker waits before killing a container
        """
        if client is None:
            import docker

            client = docker.from_env()

        self.client = client
        self.connection = connection
        self.image = image
        self.stop_timeout = stop_timeout

    def start(self, name: str, port: int) -> Any:
        logger.info("Starting backend container", name=name, image=self.image, port=port)
        return self.client.containers.run(
            self.image,
            name=name,
            detach=True,
            auto_remove=True,
            environment={
                "POSTGRES_USER": self.connection.username,
                "POSTGRES_PASSWORD": self.connection.password,
                "POSTGRES_DB": self.connection.database,
            },
            ports={"5432/tcp": port},
            labels={STRATEGY_LABEL: name},
        )

    def stop(self, handle: Any) -> None:
        from docker.errors import NotFound

        try:
            handle.stop(timeout=self.stop_timeout)
        except NotFound:
            # Already gone (auto_remove after exit)
            logger.debug("Backend container already removed", name=getattr(handle, "name", None))


class StaticLauncher:
    """Use a server that is already running; start and stop are no-ops."""

    def start(self, name: str, port: int) -> Any:
        logger.info("Using existing backend", name=name, port=port)
        return name

    def stop(self, handle: Any) -> None:
        return None


def wait_for_port(host: str, port: int, timeout: float = 30) -> bool:
    """Wait for a port to become available"""
    start_time = time.time()
    while time.time() - start_time < timeout:
        try:
            with socket.create_connection((host, port), timeout=1):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def postgres_probe(connection: ConnectionConfig) -> Callable[[BackendInstance], bool]:
    """
    Readiness probe running SELECT 1 against an instance.

    A bare TCP check is not enough: docker publishes the port before the
    server inside the container listens on it.
    """
    import psycopg

    def probe(instance: BackendInstance) -> bool:
        kwargs = connection.with_endpoint(instance.host, instance.port).psycopg_kwargs()
        kwargs["connect_timeout"] = 1
        try:
            with psycopg.connect(**kwargs) as conn:
                conn.execute("SELECT 1")
            return True
        except psycopg.Error:
            return False

    return probe


class BackendProvisioner:
    """
    Provision one backend instance per strategy and guarantee teardown.

    The instance map returned by provision() is not mutated afterwards except
    for lifecycle state changes made by teardown().
    """

    def __init__(
        self,
        launcher: BackendLauncher,
        probe: Optional[Callable[[BackendInstance], bool]] = None,
        host: str = "localhost",
        base_port: int = DEFAULT_BASE_PORT,
        ports: Optional[Dict[str, int]] = None,
        startup_timeout: float = 60.0,
        poll_interval: float = 0.5,
        name_prefix: str = "querybench",
    ):
        """
        Initialize provisioner.

        Args:
            launcher: Backend launcher (docker, static, or a test double)
            probe: Readiness check, True once the instance accepts queries
            host: Host the instances are reachable on
            base_port: First port of the strategy-indexed port range
            ports: Explicit strategy -> port overrides
            startup_timeout: Seconds to wait for each instance to become ready
            poll_interval: Seconds between readiness probes
            name_prefix: Prefix of instance names
        """
        self.launcher = launcher
        self.probe = probe or (lambda instance: wait_for_port(instance.host, instance.port, timeout=1))
        self.host = host
        self.base_port = base_port
        self.ports = dict(ports or {})
        self.startup_timeout = startup_timeout
        self.poll_interval = poll_interval
        self.name_prefix = name_prefix

    def port_for(self, strategy: str) -> int:
        """Port assigned to a strategy's instance."""
        if strategy in self.ports:
            return self.ports[strategy]
        return strategy_port(strategy, self.base_port)

    def provision(self, strategies: Iterable[str]) -> Dict[str, BackendInstance]:
        """
        Start one instance per strategy and wait until each is ready.

        Args:
            strategies: Strategy identifiers, one instance each

        Returns:
            Dict mapping strategy to its ready BackendInstance

        Raises:
            ConfigurationError: If a strategy is listed twice; nothing is started
            ProvisionError: If any instance fails to start or become ready.
                Every instance started by this call is stopped first.
        """
        strategies = list(strategies)
        duplicates = sorted({s for s in strategies if strategies.count(s) > 1})
        if duplicates:
            raise ConfigurationError([f"Strategies must be unique, got duplicates {duplicates}"])

        instances: Dict[str, BackendInstance] = {}

        for strategy in strategies:
            instance = BackendInstance(
                name=f"{self.name_prefix}-{strategy}",
                strategy=strategy,
                host=self.host,
                port=self.port_for(strategy),
            )
            instances[strategy] = instance

            try:
                instance.handle = self.launcher.start(instance.name, instance.port)
                self._wait_until_ready(instance)
            except Exception as e:
                instance.state = BackendState.FAILED
                instance.error = str(e)
                logger.error("Backend provisioning failed", strategy=strategy, error=str(e))
                self._teardown_quietly(instances)
                raise ProvisionError(strategy, e) from e

            instance.state = BackendState.READY
            logger.info("Backend ready", strategy=strategy, endpoint=instance.endpoint)

        return instances

    def _wait_until_ready(self, instance: BackendInstance) -> None:
        deadline = time.monotonic() + self.startup_timeout
        while True:
            if self.probe(instance):
                return
            if time.monotonic() >= deadline:
                raise TimeoutError(
                    f"{instance.name} not ready on {instance.endpoint} "
                    f"after {self.startup_timeout:.1f}s"
                )
            time.sleep(self.poll_interval)

    def _teardown_quietly(self, instances: Dict[str, BackendInstance]) -> None:
        try:
            self.teardown(instances)
        except TeardownError as e:
            logger.error("Teardown incomplete", error=str(e))

    def teardown(self, instances: Dict[str, BackendInstance]) -> None:
        """
        Stop every instance, best effort.

        Idempotent: instances already released are skipped, so a second call
        makes no further stop attempts.

        Raises:
            TeardownError: Aggregating every stop failure of this call
        """
        failures: Dict[str, BaseException] = {}

        for instance in instances.values():
            if instance.state is BackendState.STOPPED:
                continue

            handle, instance.handle = instance.handle, None
            if handle is None:
                instance.state = BackendState.STOPPED
                continue

            try:
                self.launcher.stop(handle)
                instance.state = BackendState.STOPPED
                logger.info("Backend stopped", strategy=instance.strategy)
            except Exception as e:
                instance.state = BackendState.STOPPED
                instance.error = f"stop failed: {e}"
                failures[instance.name] = e
                logger.warning("Backend stop failed", strategy=instance.strategy, error=str(e))

        if failures:
            raise TeardownError(failures)

    @contextmanager
    def session(self, strategies: Iterable[str]) -> Iterator[Dict[str, BackendInstance]]:
        """Provision instances for the duration of a with-block."""
        instances = self.provision(strategies)
        try:
            yield instances
        except BaseException:
            self._teardown_quietly(instances)
            raise
        self.teardown(instances)
