"""
Unit tests for the command line entry point.

Provisioning, seeding and adapters are replaced with doubles; the tests check
argument handling, exit status and resource cleanup.
"""

import pytest

from querybench import cli
from querybench.config import DEFAULT_STRATEGIES
from querybench.exceptions import ProvisionError
from querybench.northwind.seed import NorthwindInputs
from querybench.provisioner import BackendProvisioner

from conftest import FakeAdapter


class RecordingLauncher:
    def __init__(self, fail_start=(), fail_stop=()):
        self.fail_start = set(fail_start)
        self.fail_stop = set(fail_stop)
        self.stopped = []

    def start(self, name, port):
        if name in self.fail_start:
            raise RuntimeError(f"cannot start {name}")
        return name

    def stop(self, handle):
        self.stopped.append(handle)
        if handle in self.fail_stop:
            raise RuntimeError(f"cannot stop {handle}")


def parse(*argv):
    return cli.config_from_args(cli.build_parser().parse_args(list(argv)))


@pytest.fixture
def fake_backends(monkeypatch):
    """Adapters and seeding replaced; catalog reduced to one group"""
    adapters = {}

    def create_adapters(instances, connection):
        for strategy in instances:
            adapters[strategy] = FakeAdapter(strategy=strategy, rows=2)
        return dict(adapters)

    def register_catalog(registry, adapters, inputs):
        group = registry.define_group("select * from customer")
        for strategy, adapter in adapters.items():
            group.define_case(strategy, adapter, lambda a=adapter: a.execute("select 1"))

    monkeypatch.setattr(cli, "create_adapters", create_adapters)
    monkeypatch.setattr(cli, "seed_backends", lambda instances, config: NorthwindInputs())
    monkeypatch.setattr(cli, "register_catalog", register_catalog)
    return adapters


def fast_config(tmp_path, *extra):
    return parse(
        "--min-iterations", "2", "--max-iterations", "3", "--min-time", "0",
        "--max-time", "1", "--warmup-iterations", "1",
        "--output-json", str(tmp_path / "json"), "--output-table", str(tmp_path / "tables"),
        *extra,
    )


def provisioner_for(launcher):
    return BackendProvisioner(launcher, probe=lambda instance: True, startup_timeout=0.05, poll_interval=0.01)


@pytest.mark.unit
class TestArguments:
    """Test translation of arguments into a run configuration"""

    def test_defaults(self, monkeypatch):
        """Docker backends and the five default strategies"""
        monkeypatch.delenv("DB_PORT", raising=False)
        config = parse()

        assert config.strategies == list(DEFAULT_STRATEGIES)
        assert config.use_docker
        assert config.validate() == []

    def test_strategy_list(self):
        config = parse("--strategies", "raw, orm,raw-async")

        assert config.strategies == ["raw", "orm", "raw-async"]

    def test_port_selects_existing_server(self):
        """--port disables docker and points every strategy at one server"""
        config = parse("--port", "5432", "--strategies", "raw,orm")
        provisioner = cli.create_provisioner(config)

        assert not config.use_docker
        assert provisioner.port_for("raw") == provisioner.port_for("orm") == 5432

    def test_environment_defaults(self, monkeypatch):
        """DB_* variables provide connection defaults"""
        monkeypatch.setenv("DB_HOST", "db.internal")
        monkeypatch.setenv("DB_NAME", "northwind")
        monkeypatch.setenv("DB_PORT", "6543")

        config = parse()

        assert config.connection.host == "db.internal"
        assert config.connection.database == "northwind"
        assert config.connection.port == 6543
        assert not config.use_docker

    def test_invalid_configuration_exit_status(self, capsys):
        """Invalid configuration exits with status 2 before provisioning"""
        assert cli.main(["--strategies", "raw,jdbc"]) == cli.EXIT_CONFIG
        assert "jdbc" in capsys.readouterr().err


@pytest.mark.unit
class TestRunBenchmark:
    """Test the end-to-end orchestration with doubles"""

    def test_successful_run(self, fake_backends, tmp_path, capsys):
        """Run completes, prints the report, exports and tears down"""
        launcher = RecordingLauncher()
        config = fast_config(tmp_path, "--strategies", "raw,orm")

        status = cli.run_benchmark(config, provisioner_for(launcher))

        assert status == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "select * from customer" in out
        assert "2 cases, 2 succeeded, 0 failed" in out
        assert len(list((tmp_path / "json").glob("*.json"))) == 1
        tables = list((tmp_path / "tables").glob("*.txt"))
        assert len(tables) == 1
        assert f"Table: {tables[0]}" in out
        assert sorted(launcher.stopped) == ["querybench-orm", "querybench-raw"]
        assert all(adapter.closed for adapter in fake_backends.values())

    def test_provision_failure_aborts(self, fake_backends, tmp_path):
        """Default policy: a backend failure aborts the run"""
        launcher = RecordingLauncher(fail_start={"querybench-orm"})
        config = fast_config(tmp_path, "--strategies", "raw,orm")

        with pytest.raises(ProvisionError):
            cli.run_benchmark(config, provisioner_for(launcher))

        assert launcher.stopped == ["querybench-raw"]
        assert fake_backends == {}

    def test_skip_failed_backends(self, fake_backends, tmp_path, capsys):
        """With --skip-failed-backends the remaining strategies still run"""
        launcher = RecordingLauncher(fail_start={"querybench-orm"})
        config = fast_config(tmp_path, "--strategies", "raw,orm", "--skip-failed-backends")

        status = cli.run_benchmark(config, provisioner_for(launcher))

        assert status == cli.EXIT_OK
        assert list(fake_backends) == ["raw"]
        assert "1 cases, 1 succeeded, 0 failed" in capsys.readouterr().out

    def test_teardown_errors_reported(self, fake_backends, tmp_path, capsys):
        """Stop failures are listed in the report without failing the run"""
        launcher = RecordingLauncher(fail_stop={"querybench-raw"})
        config = fast_config(tmp_path, "--strategies", "raw,orm")

        status = cli.run_benchmark(config, provisioner_for(launcher))

        assert status == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "Teardown errors:" in out
        assert "querybench-raw: cannot stop querybench-raw" in out

    def test_registration_failure_still_cleans_up(self, fake_backends, monkeypatch, tmp_path):
        """Adapters and backends are released when the run aborts"""
        def broken_catalog(registry, adapters, inputs):
            raise RuntimeError("catalog broken")

        monkeypatch.setattr(cli, "register_catalog", broken_catalog)
        launcher = RecordingLauncher()
        config = fast_config(tmp_path, "--strategies", "raw,orm")

        with pytest.raises(RuntimeError):
            cli.run_benchmark(config, provisioner_for(launcher))

        assert sorted(launcher.stopped) == ["querybench-orm", "querybench-raw"]
        assert all(adapter.closed for adapter in fake_backends.values())

    def test_main_maps_fatal_errors(self, monkeypatch):
        """Provisioning errors exit with status 1"""
        def failing_run(config, provisioner):
            raise ProvisionError("raw", "port in use")

        monkeypatch.setattr(cli, "create_provisioner", lambda config: None)
        monkeypatch.setattr(cli, "run_benchmark", failing_run)

        assert cli.main(["--strategies", "raw"]) == cli.EXIT_FATAL
