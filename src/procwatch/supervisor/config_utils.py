import os
import shutil
import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .supervisor import SupervisorConfig

log = logging.getLogger(__name__)


def resolve_executable(command: str, path: Optional[str] = None) -> Optional[str]:
    """Returns the full path the command would be launched from, or None."""
    if os.path.dirname(command):
        return command if os.path.isfile(command) and os.access(command, os.X_OK) else None
    return shutil.which(command, path=path)


def check_configuration(config: "SupervisorConfig") -> bool:
    """
    Validates a supervisor configuration before it is run.

    :param config: The configuration to validate.
    :return: True if the command can be launched, otherwise False.
    """
    log.info(f"Performing configuration validation for '{config.name}'...")
    all_ok = True

    search_path = (config.env or os.environ).get("PATH")
    executable = resolve_executable(config.command, search_path) if config.command else None
    if executable is None:
        log.error(f"CONFIG CHECK FAILED: command '{config.command}' is not an executable file or not on PATH.")
        all_ok = False
    else:
        log.info(f"Config Check OK: Found '{config.command}' at '{executable}'")

    if config.cwd and not os.path.isdir(config.cwd):
        log.error(f"CONFIG CHECK FAILED: working directory '{config.cwd}' does not exist.")
        all_ok = False

    if not config.tests:
        log.warning("No health checks configured. The process will never be restarted.")
    else:
        log.info(f"Config Check OK: {len(config.tests)} health checks: {', '.join(n for n, _ in config.tests)}")

    budget = "unlimited" if config.restart_budget is None else config.restart_budget
    log.info(
        f"Policy: check every {config.check_interval:g}s, backoff {config.backoff_time:g}s, "
        f"restart budget {budget}."
    )
    return all_ok
