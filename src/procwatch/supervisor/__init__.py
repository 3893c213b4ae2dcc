"""
The Supervisor package.
Keeps a single external process alive according to its health checks.

This package contains the Supervisor state machine, its immutable
configuration builder, the event hooks it fires, the process handle
passed to health checks, and a set of ready-made checks.
"""
from .hooks import SupervisorHooks, logging_hooks
from .process_utils import LaunchError, ManagedProcess
from .supervisor import RestartDecision, Supervisor, SupervisorConfig

__all__ = [
    'Supervisor', 'SupervisorConfig', 'SupervisorHooks', 'RestartDecision',
    'ManagedProcess', 'LaunchError', 'logging_hooks',
]
