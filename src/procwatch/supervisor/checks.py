"""
Ready-made health checks for the Supervisor.

Each factory returns a callable taking the live ManagedProcess and returning
True while the process is considered healthy. Probe errors count as unhealthy.
"""
import socket
import psutil
import logging
import requests
from pathlib import Path
from typing import Iterable, Optional, Union
from procwatch import settings
from procwatch.supervisor.process_utils import ManagedProcess

log = logging.getLogger(__name__)


def process_running():
    """Healthy while the process has not exited and is not a zombie."""
    def check(process: ManagedProcess) -> bool:
        return process.is_running()
    return check


def exit_code_ok(accepted: Iterable[int] = (0,)):
    """
    Healthy while the process runs, or after it exited with an accepted code.

    :param accepted: Exit codes that do not count as a failure.
    """
    accepted = frozenset(accepted)

    def check(process: ManagedProcess) -> bool:
        code = process.returncode
        return code is None or code in accepted
    return check


def file_exists(path: Union[str, Path]):
    """Healthy while `path` exists (e.g. a heartbeat or PID file)."""
    path = Path(path)

    def check(process: ManagedProcess) -> bool:
        return path.exists()
    return check


def port_open(host: str, port: int, timeout: Optional[float] = None):
    """Healthy while a TCP connection to host:port can be opened."""
    timeout = settings.PORT_CHECK_TIMEOUT if timeout is None else timeout

    def check(process: ManagedProcess) -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError as e:
            log.debug(f"Port check {host}:{port} failed: {e}")
            return False
    return check


def http_ok(url: str, timeout: Optional[float] = None, expected_status: Optional[Iterable[int]] = None):
    """
    Healthy while `url` answers with an expected status.

    :param url: The URL to GET.
    :param timeout: Request timeout in seconds.
    :param expected_status: Accepted status codes; defaults to any 2xx.
    """
    timeout = settings.HTTP_CHECK_TIMEOUT if timeout is None else timeout
    expected = frozenset(expected_status) if expected_status is not None else None

    def check(process: ManagedProcess) -> bool:
        try:
            response = requests.get(url, timeout=timeout)
        except requests.RequestException as e:
            log.debug(f"HTTP check {url} failed: {e}")
            return False
        if expected is None:
            return 200 <= response.status_code < 300
        return response.status_code in expected
    return check


def max_memory(limit_mb: float):
    """Healthy while the resident memory of the process stays under `limit_mb`."""
    limit_bytes = limit_mb * 1024 * 1024

    def check(process: ManagedProcess) -> bool:
        if process.process is None:
            return False
        try:
            rss = process.process.memory_info().rss
        except psutil.Error as e:
            log.debug(f"Memory check for PID {process.pid} failed: {e}")
            return False
        if rss > limit_bytes:
            log.info(f"{process.name} uses {rss / (1024 * 1024):.1f} MB, limit is {limit_mb} MB.")
            return False
        return True
    return check


def max_uptime(seconds: float):
    """Healthy until the process has been running for `seconds`. Forces periodic recycling."""
    def check(process: ManagedProcess) -> bool:
        return process.uptime < seconds
    return check


__all__ = ['process_running', 'exit_code_ok', 'file_exists', 'port_open', 'http_ok', 'max_memory', 'max_uptime']
