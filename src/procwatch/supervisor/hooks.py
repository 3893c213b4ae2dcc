import logging
from dataclasses import dataclass, fields, replace
from typing import Callable, Optional

EventHook = Callable[[], None]
NamedEventHook = Callable[[str], None]

EVENTS = (
    "on_test_round_start",
    "on_test_ok",
    "on_test_error",
    "on_all_tests_passing",
    "on_restart",
    "on_no_restart",
)


@dataclass(frozen=True)
class SupervisorHooks:
    """
    The set of optional event callbacks fired by the Supervisor.

    Zero-argument hooks: on_test_round_start, on_all_tests_passing,
    on_restart, on_no_restart. Hooks taking the test name: on_test_ok,
    on_test_error. Unset slots are no-ops.
    """
    on_test_round_start: Optional[EventHook] = None
    on_test_ok: Optional[NamedEventHook] = None
    on_test_error: Optional[NamedEventHook] = None
    on_all_tests_passing: Optional[EventHook] = None
    on_restart: Optional[EventHook] = None
    on_no_restart: Optional[EventHook] = None

    def fire(self, event: str, *args) -> None:
        """
        Invokes the hook registered for an event, if any.

        :param event: One of the names in EVENTS.
        :param args: Arguments forwarded to the hook (the test name for named events).
        """
        if event not in EVENTS:
            raise ValueError(f"Unknown supervisor event '{event}'.")
        handler = getattr(self, event)
        if handler is not None:
            handler(*args)

    def with_hook(self, event: str, handler: Optional[Callable]) -> "SupervisorHooks":
        """Returns a copy with a single hook slot replaced."""
        if event not in EVENTS:
            raise ValueError(f"Unknown supervisor event '{event}'.")
        return replace(self, **{event: handler})

    def registered(self):
        """Names of the events that have a hook attached."""
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]


def logging_hooks(logger_name: str = "procwatch.events") -> SupervisorHooks:
    """
    Builds hooks that report every supervision event to a logger.

    :param logger_name: The logger that receives the event records.
    :return: A SupervisorHooks instance with every slot populated.
    """
    events_log = logging.getLogger(logger_name)

    return SupervisorHooks(
        on_test_round_start=lambda: events_log.debug("Starting health check round."),
        on_test_ok=lambda name: events_log.debug(f"Health check '{name}' passed."),
        on_test_error=lambda name: events_log.warning(f"Health check '{name}' failed."),
        on_all_tests_passing=lambda: events_log.info("All health checks passing."),
        on_restart=lambda: events_log.warning("Restarting supervised process."),
        on_no_restart=lambda: events_log.critical("Restart budget exhausted. Supervision stopped."),
    )
