import pytest

from procwatch import main as cli
from procwatch.supervisor import Supervisor


@pytest.fixture(autouse=True)
def quiet_cli(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(cli.setproctitle, "setproctitle", lambda title: None)


def write_service(tmp_path, command="true", budget=0):
    path = tmp_path / "service.yaml"
    path.write_text(
        f"name: demo\n"
        f"command: {command}\n"
        f"check_interval: 0.01\n"
        f"backoff_time: 0.01\n"
        f"restart_budget: {budget}\n"
        f"relay_output: false\n"
        f"checks:\n"
        f"  - type: running\n",
        encoding="utf-8",
    )
    return str(path)


def test_exec_stops_when_budget_exhausted():
    argv = ["exec", "--restarts", "1", "--interval", "0.01", "--backoff", "0.01", "--check-running", "true"]
    assert cli.main(argv) == cli.EXIT_OK


def test_exec_builds_config_from_options():
    args = cli.build_parser().parse_args([
        "exec", "--name", "web", "--restarts", "2", "--interval", "1", "--backoff", "3",
        "--check-running", "--check-port", "localhost:8080", "--check-file", "/tmp/ready",
        "python3", "-m", "http.server",
    ])
    config = cli.config_from_exec_args(args, cli.MergedSettings())

    assert config.command == "python3"
    assert config.args == ("-m", "http.server")
    assert config.name == "web"
    assert (config.check_interval, config.backoff_time, config.restart_budget) == (1, 3, 2)
    assert [name for name, _ in config.tests] == ["running", "file:/tmp/ready", "port:localhost:8080"]


def test_exec_launch_failure_exit_code():
    argv = ["exec", "--restarts", "3", "--interval", "0.01", "/nonexistent/procwatch-test-binary"]
    assert cli.main(argv) == cli.EXIT_FAILURE


def test_exec_negative_restarts_is_a_configuration_error():
    assert cli.main(["exec", "--restarts", "-1", "true"]) == cli.EXIT_FAILURE


def test_bad_port_option_rejected():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["exec", "--check-port", "nope", "true"])


def test_run_service_file(tmp_path):
    assert cli.main(["run", write_service(tmp_path, budget=1)]) == cli.EXIT_OK


def test_run_invalid_service_file(tmp_path):
    path = tmp_path / "service.yaml"
    path.write_text("args: [1]\n", encoding="utf-8")

    assert cli.main(["run", str(path)]) == cli.EXIT_FAILURE


def test_check_service_file(tmp_path):
    assert cli.main(["check", write_service(tmp_path)]) == cli.EXIT_OK
    assert cli.main(["check", write_service(tmp_path, command="/nonexistent/procwatch-test-binary")]) \
        == cli.EXIT_FAILURE


def test_interrupt_stops_process(monkeypatch, tmp_path):
    stopped = []

    def interrupted_run(self):
        raise KeyboardInterrupt

    monkeypatch.setattr(Supervisor, "run", interrupted_run)
    monkeypatch.setattr(Supervisor, "stop", lambda self: stopped.append(True))

    assert cli.main(["run", write_service(tmp_path)]) == cli.EXIT_INTERRUPTED
    assert stopped == [True]
