import sys
import logging
import argparse
import setproctitle
from typing import List, Optional

from procwatch import settings
from procwatch.log.setup import setup_logging
from procwatch.config import MergedSettings, build_config, load_service_file
from procwatch.supervisor import LaunchError, Supervisor, SupervisorConfig, logging_hooks
from procwatch.supervisor import checks
from procwatch.supervisor.config_utils import check_configuration

log = logging.getLogger("procwatch")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def _parse_host_port(value: str):
    host, sep, port = value.rpartition(":")
    if not sep or not port.isdigit():
        raise argparse.ArgumentTypeError(f"Expected HOST:PORT, got '{value}'.")
    return host or "127.0.0.1", int(port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="procwatch", description="Supervise a single process with health checks.")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    parser.add_argument("--quiet-output", action="store_true", help="Do not print the supervised process output.")
    parser.add_argument("--overrides", help="JSON file with settings overrides.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Supervise the process described by a YAML service file.")
    run_parser.add_argument("service", help="Path to the service file.")

    check_parser = subparsers.add_parser("check", help="Validate a YAML service file without running it.")
    check_parser.add_argument("service", help="Path to the service file.")

    exec_parser = subparsers.add_parser("exec", help="Supervise a command given on the command line.")
    exec_parser.add_argument("--name", help="Label used in logs.")
    exec_parser.add_argument("--interval", type=float, help="Seconds between health check rounds.")
    exec_parser.add_argument("--backoff", type=float, help="Seconds to wait before relaunching.")
    exec_parser.add_argument("--restarts", type=int, help="Maximum number of restarts (default: unlimited).")
    exec_parser.add_argument("--check-running", action="store_true", help="Fail when the process has exited.")
    exec_parser.add_argument("--check-file", action="append", default=[], metavar="PATH",
                             help="Fail when PATH does not exist.")
    exec_parser.add_argument("--check-port", action="append", default=[], type=_parse_host_port,
                             metavar="HOST:PORT", help="Fail when HOST:PORT refuses connections.")
    exec_parser.add_argument("--check-http", action="append", default=[], metavar="URL",
                             help="Fail when URL does not answer with a 2xx status.")
    exec_parser.add_argument("program", help="The executable to supervise.")
    exec_parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments passed to the executable.")
    return parser


def config_from_exec_args(args: argparse.Namespace, config: MergedSettings) -> SupervisorConfig:
    """Builds a SupervisorConfig from the `exec` command line options."""
    supervisor_config = SupervisorConfig.from_settings(args.program, config).with_args(args.args)
    if args.name:
        supervisor_config = supervisor_config.with_name(args.name)
    if args.interval is not None:
        supervisor_config = supervisor_config.with_check_interval(args.interval)
    if args.backoff is not None:
        supervisor_config = supervisor_config.with_backoff_time(args.backoff)
    if args.restarts is not None:
        supervisor_config = supervisor_config.with_restart_budget(args.restarts)

    if args.check_running:
        supervisor_config = supervisor_config.add_test("running", checks.process_running())
    for path in args.check_file:
        supervisor_config = supervisor_config.add_test(f"file:{path}", checks.file_exists(path))
    for host, port in args.check_port:
        supervisor_config = supervisor_config.add_test(f"port:{host}:{port}", checks.port_open(host, port))
    for url in args.check_http:
        supervisor_config = supervisor_config.add_test(f"http:{url}", checks.http_ok(url))
    return supervisor_config


def supervise(supervisor_config: SupervisorConfig) -> int:
    """
    Runs the supervisor in the foreground until it stops.

    :param supervisor_config: The configuration to run.
    :return: The process exit code for the command line tool.
    """
    setproctitle.setproctitle(f"{settings.PROCESS_TITLE_PREFIX} - {supervisor_config.name}")
    supervisor = Supervisor(supervisor_config.with_hooks(logging_hooks(f"procwatch.{supervisor_config.name}")))

    log.info("=" * 20 + f" Supervising {supervisor_config.name} " + "=" * 20)
    try:
        supervisor.run()
    except LaunchError as e:
        log.critical(f"Supervision aborted: {e}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        log.warning("Supervisor interrupted by user. Stopping the process...")
        supervisor.stop()
        return EXIT_INTERRUPTED
    return EXIT_OK


def _load(args: argparse.Namespace, config: MergedSettings) -> SupervisorConfig:
    if args.command == "exec":
        return config_from_exec_args(args, config)
    return build_config(load_service_file(args.service), config)


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the command line tool."""
    args = build_parser().parse_args(argv)

    config = MergedSettings(overrides_path=args.overrides)
    setup_logging(logging.DEBUG if args.verbose else config.LOG_LEVEL, hide_process_output=args.quiet_output)

    try:
        supervisor_config = _load(args, config)
    except ValueError as e:
        log.error(f"Invalid configuration: {e}")
        return EXIT_FAILURE

    if args.command == "check":
        return EXIT_OK if check_configuration(supervisor_config) else EXIT_FAILURE
    return supervise(supervisor_config)


if __name__ == "__main__":
    sys.exit(main())
