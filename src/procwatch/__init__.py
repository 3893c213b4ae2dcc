"""
procwatch - a watchdog for a single external process.

Launches a command, runs health checks against it at a fixed interval and
relaunches it (after a backoff delay) while the restart budget allows.
"""
from .supervisor import (LaunchError, ManagedProcess, RestartDecision, Supervisor,
                         SupervisorConfig, SupervisorHooks, logging_hooks)

__version__ = "0.3.0"

__all__ = [
    "Supervisor", "SupervisorConfig", "SupervisorHooks", "RestartDecision",
    "ManagedProcess", "LaunchError", "logging_hooks",
]
