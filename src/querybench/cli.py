"""
Database access strategy benchmark.

Main CLI entry point: provisions one PostgreSQL instance per strategy, seeds
the Northwind fixture into each, runs the comparison catalog and prints the
report. Results are also exported as JSON and text tables.

Exit status: 0 when the run completed (failed cases included), 1 on a fatal
provisioning or registration error, 2 on invalid configuration.
"""

import argparse
import logging
import os
import sys
from typing import Dict, List, Optional

import structlog
from dotenv import load_dotenv

from querybench.config import (
    DEFAULT_BASE_PORT,
    DEFAULT_STRATEGIES,
    STRATEGIES,
    ConnectionConfig,
    RunConfiguration,
    TimingPolicy,
)
from querybench.exceptions import (
    ConfigurationError,
    ProvisionError,
    QueryBenchError,
    TeardownError,
)
from querybench.executors import close_adapters, create_adapters
from querybench.executors.builder_executor import create_postgres_engine
from querybench.northwind import NorthwindInputs, register_catalog, seed_database
from querybench.output import export_json, export_table, format_report
from querybench.provisioner import (
    BackendInstance,
    BackendProvisioner,
    DockerLauncher,
    StaticLauncher,
    postgres_probe,
)
from querybench.registry import CaseRegistry
from querybench.runner import TimingEngine

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2


def configure_logging(level: str = "INFO") -> None:
    """Route structlog events to stderr with a console renderer."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _strategy_list(value: str) -> List[str]:
    return [s.strip() for s in value.split(",") if s.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="querybench",
        description="Database access strategy benchmark",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Compare the default strategies on throwaway docker containers
  querybench

  # Include the asyncpg strategy and shorten the per-case time ceiling
  querybench --strategies raw,raw-prepared,builder,builder-prepared,orm,raw-async --max-time 5

  # Reuse a server that is already running
  DB_PORT=5432 querybench --strategies raw,orm
        """
    )

    parser.add_argument(
        '--strategies',
        type=_strategy_list,
        default=list(DEFAULT_STRATEGIES),
        help=f"Comma-separated strategies (default: {','.join(DEFAULT_STRATEGIES)}; "
             f"available: {','.join(STRATEGIES)})"
    )
    parser.add_argument(
        '--host',
        default=os.environ.get('DB_HOST', 'localhost'),
        help='Backend host (env: DB_HOST, default: localhost)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=int(os.environ['DB_PORT']) if os.environ.get('DB_PORT') else None,
        help='Use an already running server on this port instead of docker (env: DB_PORT)'
    )
    parser.add_argument(
        '--base-port',
        type=int,
        default=DEFAULT_BASE_PORT,
        help=f'First port of the per-strategy port range (default: {DEFAULT_BASE_PORT})'
    )
    parser.add_argument(
        '--database',
        default=os.environ.get('DB_NAME', 'postgres'),
        help='Database name (env: DB_NAME, default: postgres)'
    )
    parser.add_argument(
        '--user',
        default=os.environ.get('DB_USER', 'postgres'),
        help='Database user (env: DB_USER, default: postgres)'
    )
    parser.add_argument(
        '--password',
        default=os.environ.get('DB_PASSWORD', 'postgres'),
        help='Database password (env: DB_PASSWORD)'
    )
    parser.add_argument(
        '--image',
        default=os.environ.get('QUERYBENCH_IMAGE', 'postgres:16-alpine'),
        help='PostgreSQL image for docker backends (env: QUERYBENCH_IMAGE)'
    )
    parser.add_argument(
        '--startup-timeout',
        type=float,
        default=60.0,
        help='Seconds to wait for each backend (default: 60)'
    )
    parser.add_argument(
        '--skip-failed-backends',
        action='store_true',
        help='Drop strategies whose backend fails to start instead of aborting'
    )
    parser.add_argument(
        '--warmup-iterations',
        type=int,
        default=5,
        help='Warm-up iterations per case (default: 5)'
    )
    parser.add_argument(
        '--min-iterations',
        type=int,
        default=10,
        help='Minimum timed iterations per case (default: 10)'
    )
    parser.add_argument(
        '--max-iterations',
        type=int,
        default=1000,
        help='Maximum timed iterations per case (default: 1000)'
    )
    parser.add_argument(
        '--min-time',
        type=float,
        default=0.5,
        help='Minimum measurement time per case in seconds (default: 0.5)'
    )
    parser.add_argument(
        '--max-time',
        type=float,
        default=10.0,
        help='Measurement time ceiling per case in seconds (default: 10)'
    )
    parser.add_argument(
        '--target-rse',
        type=float,
        default=0.05,
        help='Relative standard error that ends measurement early (default: 0.05)'
    )
    parser.add_argument(
        '--scale',
        type=int,
        default=1,
        help='Dataset scale factor (default: 1)'
    )
    parser.add_argument(
        '--seed',
        type=int,
        default=42,
        help='Random seed for the fixture data (default: 42)'
    )
    parser.add_argument(
        '--output-json',
        default='results/json',
        help='JSON output directory (default: results/json)'
    )
    parser.add_argument(
        '--output-table',
        default='results/tables',
        help='Table output directory (default: results/tables)'
    )
    parser.add_argument(
        '--log-level',
        default=os.environ.get('QUERYBENCH_LOG_LEVEL', 'INFO'),
        help='Log level (default: INFO)'
    )

    return parser


def config_from_args(args: argparse.Namespace) -> RunConfiguration:
    """Translate parsed arguments into a RunConfiguration."""
    connection = ConnectionConfig(
        host=args.host,
        port=args.port if args.port is not None else args.base_port,
        database=args.database,
        username=args.user,
        password=args.password,
    )
    timing = TimingPolicy(
        warmup_iterations=args.warmup_iterations,
        min_iterations=args.min_iterations,
        max_iterations=args.max_iterations,
        min_time=args.min_time,
        max_time=args.max_time,
        target_rse=args.target_rse,
    )
    return RunConfiguration(
        strategies=args.strategies,
        connection=connection,
        timing=timing,
        base_port=args.base_port,
        use_docker=args.port is None,
        image=args.image,
        startup_timeout=args.startup_timeout,
        skip_failed_backends=args.skip_failed_backends,
        random_seed=args.seed,
        dataset_scale=args.scale,
        output_json=args.output_json or None,
        output_table=args.output_table or None,
    )


def create_provisioner(config: RunConfiguration) -> BackendProvisioner:
    """Docker-backed provisioner, or a static one pointing every strategy at one server."""
    connection = config.connection
    if config.use_docker:
        launcher = DockerLauncher(connection, image=config.image)
        ports = None
    else:
        launcher = StaticLauncher()
        ports = {strategy: connection.port for strategy in config.strategies}

    return BackendProvisioner(
        launcher,
        probe=postgres_probe(connection),
        host=connection.host,
        base_port=config.base_port,
        ports=ports,
        startup_timeout=config.startup_timeout,
    )


def provision_backends(
    provisioner: BackendProvisioner,
    config: RunConfiguration,
) -> Dict[str, BackendInstance]:
    """
    Provision every selected strategy.

    Raises:
        ProvisionError: On the first failure, unless skip_failed_backends
            is set, in which case that strategy is dropped
    """
    if not config.skip_failed_backends:
        return provisioner.provision(config.strategies)

    instances: Dict[str, BackendInstance] = {}
    for strategy in config.strategies:
        try:
            instances.update(provisioner.provision([strategy]))
        except ProvisionError as e:
            logger.warning("Skipping strategy", strategy=strategy, error=str(e))
    return instances


def seed_backends(instances: Dict[str, BackendInstance], config: RunConfiguration) -> NorthwindInputs:
    """Load identical fixture data into every distinct endpoint."""
    inputs: Optional[NorthwindInputs] = None
    seeded = set()

    for instance in instances.values():
        if instance.endpoint in seeded:
            continue
        engine = create_postgres_engine(config.connection.with_endpoint(instance.host, instance.port))
        try:
            inputs = seed_database(engine, scale=config.dataset_scale, seed=config.random_seed)
        finally:
            engine.dispose()
        seeded.add(instance.endpoint)

    return inputs


def run_benchmark(config: RunConfiguration, provisioner: BackendProvisioner) -> int:
    """
    Provision, seed, register, time and report.

    Backends and adapters are always released, whatever happens in between.
    """
    engine = TimingEngine(config.timing)
    instances = provision_backends(provisioner, config)
    if not instances:
        logger.error("No backend could be provisioned")
        return EXIT_FATAL

    adapters = {}
    report = None
    try:
        adapters = create_adapters(instances, config.connection)
        inputs = seed_backends(instances, config)

        registry = CaseRegistry()
        register_catalog(registry, adapters, inputs)

        report = engine.run(registry, config)
    finally:
        close_adapters(adapters)
        try:
            provisioner.teardown(instances)
        except TeardownError as e:
            logger.error("Teardown incomplete", error=str(e))
            if report is not None:
                report.teardown_errors.extend(
                    f"{name}: {cause}" for name, cause in e.failures.items()
                )

    print(format_report(report))

    if config.output_table:
        table_path = export_table(report, config.output_table)
        print(f"Table: {table_path}")
    if config.output_json:
        json_path = export_json(report, config.output_json)
        print(f"JSON:  {json_path}")

    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    config = config_from_args(args)
    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Configuration error: {error}", file=sys.stderr)
        return EXIT_CONFIG

    try:
        return run_benchmark(config, create_provisioner(config))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except QueryBenchError as e:
        logger.error("Benchmark aborted", error=str(e))
        return EXIT_FATAL
    except Exception as e:
        # Docker daemon unreachable, seeding failed, ...
        logger.exception("Benchmark failed", error=str(e))
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
