import os
import time
import enum
import logging
from datetime import timedelta
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, Optional, Tuple, Union
from procwatch import settings
from procwatch.supervisor import process_utils
from procwatch.supervisor.hooks import SupervisorHooks
from procwatch.supervisor.process_utils import LaunchError, ManagedProcess

log = logging.getLogger(__name__)

HealthCheck = Callable[[ManagedProcess], bool]
Duration = Union[int, float, timedelta]


class RestartDecision(enum.Enum):
    """Outcome of a failed round of health checks."""
    RESTART = "restart"
    NO_RESTART = "no_restart"


def _to_bool(value) -> bool:
    """Reads a flag that may arrive as a string from YAML, JSON or the environment."""
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 't', 'yes', 'y', 'on')
    return bool(value)


def _to_seconds(value: Duration, what: str) -> float:
    """Normalizes a duration given in seconds or as a timedelta."""
    seconds = value.total_seconds() if isinstance(value, timedelta) else float(value)
    if seconds < 0:
        raise ValueError(f"{what} must not be negative, got {seconds}.")
    return seconds


@dataclass(frozen=True)
class SupervisorConfig:
    """
    Everything the Supervisor needs to know about the process it manages.

    The configuration is an immutable value built incrementally: every
    `with_*`, `add_test` and `on_*` method returns an updated copy and
    leaves the original untouched.
    """
    command: str = ""
    args: Tuple[str, ...] = ()
    check_interval: float = 30.0
    backoff_time: float = 30.0
    restart_budget: Optional[int] = None
    tests: Tuple[Tuple[str, HealthCheck], ...] = ()
    hooks: SupervisorHooks = field(default_factory=SupervisorHooks)
    label: Optional[str] = None
    cwd: Optional[str] = None
    env: Optional[Dict[str, str]] = None
    relay_output: bool = True
    terminate_timeout: float = 10.0

    @classmethod
    def new(cls, command: str) -> "SupervisorConfig":
        """Creates a configuration for `command` with every other value at its default."""
        return cls(command=command)

    @property
    def name(self) -> str:
        """The label used in logs; defaults to the command's basename."""
        return self.label or os.path.basename(self.command) or "process"

    #* --- Process ---
    def with_args(self, args: Iterable) -> "SupervisorConfig":
        return replace(self, args=tuple(str(a) for a in args))

    def with_name(self, name: str) -> "SupervisorConfig":
        return replace(self, label=name)

    def with_cwd(self, cwd: Optional[str]) -> "SupervisorConfig":
        return replace(self, cwd=cwd)

    def with_env(self, env: Optional[Dict[str, str]]) -> "SupervisorConfig":
        return replace(self, env=dict(env) if env is not None else None)

    def with_relay_output(self, relay_output: Union[bool, str]) -> "SupervisorConfig":
        return replace(self, relay_output=_to_bool(relay_output))

    def with_terminate_timeout(self, timeout: Duration) -> "SupervisorConfig":
        return replace(self, terminate_timeout=_to_seconds(timeout, "Terminate timeout"))

    #* --- Policy ---
    def with_check_interval(self, interval: Duration) -> "SupervisorConfig":
        return replace(self, check_interval=_to_seconds(interval, "Check interval"))

    def with_backoff_time(self, backoff: Duration) -> "SupervisorConfig":
        return replace(self, backoff_time=_to_seconds(backoff, "Backoff time"))

    def with_restart_budget(self, budget: Optional[int]) -> "SupervisorConfig":
        """
        Limits the number of restarts. None means restart forever.

        :raises ValueError: If the budget is negative, fractional or a boolean.
        """
        if budget is not None:
            if isinstance(budget, bool) or not isinstance(budget, (int, float, str)):
                raise ValueError(f"Restart budget must be a non-negative integer, got {budget!r}.")
            try:
                as_float = float(budget)
            except ValueError:
                raise ValueError(f"Restart budget must be a non-negative integer, got {budget!r}.") from None
            if not as_float.is_integer():
                raise ValueError(f"Restart budget must be a whole number, got {budget!r}.")
            budget = int(as_float)
            if budget < 0:
                raise ValueError(f"Restart budget must be a non-negative integer, got {budget}.")
        return replace(self, restart_budget=budget)

    def add_test(self, name: str, test: HealthCheck) -> "SupervisorConfig":
        """Appends a named health check. Checks run in the order they were added."""
        if not callable(test):
            raise TypeError(f"Health check '{name}' is not callable.")
        return replace(self, tests=self.tests + ((name, test),))

    #* --- Hooks ---
    def with_hooks(self, hooks: SupervisorHooks) -> "SupervisorConfig":
        return replace(self, hooks=hooks)

    def on_test_round_start(self, handler: Callable[[], None]) -> "SupervisorConfig":
        return replace(self, hooks=self.hooks.with_hook("on_test_round_start", handler))

    def on_test_ok(self, handler: Callable[[str], None]) -> "SupervisorConfig":
        return replace(self, hooks=self.hooks.with_hook("on_test_ok", handler))

    def on_test_error(self, handler: Callable[[str], None]) -> "SupervisorConfig":
        return replace(self, hooks=self.hooks.with_hook("on_test_error", handler))

    def on_all_tests_passing(self, handler: Callable[[], None]) -> "SupervisorConfig":
        return replace(self, hooks=self.hooks.with_hook("on_all_tests_passing", handler))

    def on_restart(self, handler: Callable[[], None]) -> "SupervisorConfig":
        return replace(self, hooks=self.hooks.with_hook("on_restart", handler))

    def on_no_restart(self, handler: Callable[[], None]) -> "SupervisorConfig":
        return replace(self, hooks=self.hooks.with_hook("on_no_restart", handler))

    @classmethod
    def from_settings(cls, command: str, config=settings) -> "SupervisorConfig":
        """
        Creates a configuration whose policy values come from the application settings.

        :param command: The executable to supervise.
        :param config: Any object exposing the upper-case setting names.
        """
        return cls(
            command=command,
            check_interval=_to_seconds(config.CHECK_INTERVAL, "Check interval"),
            backoff_time=_to_seconds(config.BACKOFF_TIME, "Backoff time"),
            relay_output=_to_bool(config.RELAY_OUTPUT),
            terminate_timeout=_to_seconds(config.TERMINATE_TIMEOUT, "Terminate timeout"),
        ).with_restart_budget(config.RESTART_BUDGET)


class Supervisor:
    """
    Keeps a single external process alive according to its health checks.

    The supervisor launches the process, sleeps for the check interval, runs
    the health checks in order and either keeps going, or kills the process
    and relaunches it while the restart budget allows.
    """

    def __init__(self, config: SupervisorConfig,
                 launcher: Callable[[SupervisorConfig], ManagedProcess] = process_utils.launch_process,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        """
        :param config: The configuration describing the process and its policy.
        :param launcher: Starts the process. Must raise LaunchError on failure.
        :param sleep: Suspends the calling thread for a number of seconds.
        """
        self.config = config
        self.restart_budget: Optional[int] = config.restart_budget
        self.launcher = launcher
        self.sleep = sleep
        self.launches = 0
        self.restarts = 0
        self.current: Optional[ManagedProcess] = None

    def should_restart(self) -> bool:
        """
        Consumes one unit of restart budget if any is left.

        :return: True if a restart is granted, False once the budget is exhausted.
        """
        if self.restart_budget is None:
            return True
        if self.restart_budget == 0:
            return False
        self.restart_budget -= 1
        return True

    def _run_tests(self, process: ManagedProcess) -> bool:
        """
        Runs the health checks in order, stopping at the first failure.

        :return: True if every check passed.
        """
        hooks = self.config.hooks
        for name, test in self.config.tests:
            try:
                healthy = bool(test(process))
            except Exception as e:
                log.error(f"Health check '{name}' raised an error: {e}", exc_info=True)
                healthy = False

            if not healthy:
                log.warning(f"Health check '{name}' failed for {self.config.name} (PID: {process.pid}).")
                hooks.fire("on_test_error", name)
                return False

            hooks.fire("on_test_ok", name)
        return True

    def _test_loop(self, process: ManagedProcess) -> RestartDecision:
        """Monitors a live process until a round of checks fails."""
        hooks = self.config.hooks
        while True:
            self.sleep(self.config.check_interval)

            hooks.fire("on_test_round_start")
            if self._run_tests(process):
                log.debug(f"All health checks passed for {self.config.name}.")
                hooks.fire("on_all_tests_passing")
                continue

            self._terminate(process)

            if self.should_restart():
                remaining = "unlimited" if self.restart_budget is None else self.restart_budget
                log.warning(
                    f"Restarting {self.config.name} in {self.config.backoff_time:g}s "
                    f"(restarts left: {remaining})."
                )
                self.sleep(self.config.backoff_time)
                hooks.fire("on_restart")
                return RestartDecision.RESTART

            log.critical(f"Restart budget for {self.config.name} exhausted. Halting supervision.")
            hooks.fire("on_no_restart")
            return RestartDecision.NO_RESTART

    def run(self) -> RestartDecision:
        """
        Supervises the process until the restart budget is exhausted.

        :return: RestartDecision.NO_RESTART once supervision has stopped.
        :raises LaunchError: If the process cannot be started. Not retried.
        """
        while True:
            self.current = self.launcher(self.config)
            self.launches += 1
            try:
                decision = self._test_loop(self.current)
            except BaseException:
                # Hook errors and interrupts must not orphan the child.
                self._terminate(self.current)
                self.current = None
                raise
            self.current = None

            if decision is RestartDecision.NO_RESTART:
                log.info(f"Supervision of {self.config.name} finished after {self.restarts} restarts.")
                return decision
            self.restarts += 1

    def _terminate(self, process: ManagedProcess) -> None:
        """Best-effort kill. The process may already have exited."""
        try:
            process.terminate(self.config.terminate_timeout)
        except Exception as e:
            log.warning(f"Failed to terminate {self.config.name} (PID: {process.pid}): {e}")

    def stop(self) -> None:
        """Terminates the currently supervised process, if there is one."""
        if self.current is not None:
            self._terminate(self.current)
            self.current = None


__all__ = ['Supervisor', 'SupervisorConfig', 'RestartDecision', 'LaunchError', 'HealthCheck']
