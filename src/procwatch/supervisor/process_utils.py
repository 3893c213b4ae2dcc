import sys
import time
import psutil
import logging
import threading
import subprocess
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

if TYPE_CHECKING:
    from .supervisor import SupervisorConfig

log = logging.getLogger(__name__)


class LaunchError(RuntimeError):
    """Raised when the supervised process cannot be started."""


#* --- Process Handle ---
class ManagedProcess:
    """
    A live handle on the supervised child process.

    This is the object handed to every health check. It wraps the
    subprocess.Popen used to start the child together with a psutil.Process
    for richer inspection (status, memory, children).
    """

    def __init__(self, name: str, popen: subprocess.Popen) -> None:
        self.name = name
        self.popen = popen
        self.pid: int = popen.pid
        self.started_at = time.monotonic()
        try:
            self.process: Optional[psutil.Process] = psutil.Process(popen.pid)
        except psutil.NoSuchProcess:
            # Exited before we could attach to it.
            self.process = None

    def __repr__(self) -> str:
        return f"<ManagedProcess name={self.name!r} pid={self.pid} status={self.status()!r}>"

    @property
    def returncode(self) -> Optional[int]:
        """The exit code, or None while the process is running."""
        return self.popen.poll()

    @property
    def uptime(self) -> float:
        """Seconds since the process was launched."""
        return time.monotonic() - self.started_at

    def is_running(self) -> bool:
        """Non-blocking liveness query. Zombies count as not running."""
        if self.popen.poll() is not None:
            return False
        return get_proc_status_string(self.process) == "running"

    def status(self) -> str:
        """Gets a string representation of the process status."""
        if self.popen.poll() is not None:
            return "stopped"
        return get_proc_status_string(self.process)

    def terminate(self, timeout: float = 10) -> None:
        """Best-effort termination of the process and its children."""
        terminate_process(self, timeout)


#* --- Process Status & Monitoring ---
def get_proc_status_string(proc: Optional[psutil.Process]) -> str:
    """Gets a string representation of a process status."""
    if proc is None:
        return "stopped"
    try:
        if not proc.is_running():
            return "stopped"
        if proc.status() == psutil.STATUS_ZOMBIE:
            return "zombie"
        return "running"
    except psutil.NoSuchProcess:
        return "stopped"
    except psutil.Error:
        return "unknown"


#* --- Process Creation ---
def _get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific creation flags for subprocess.Popen."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _read_pipe(pipe, process_name: str, level: int, line_handler: Optional[Callable] = None):
    """Target function for reader threads. Reads and logs lines from a subprocess pipe."""
    proc_logger = logging.getLogger(f"proc.{process_name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            if line_handler:
                line_handler(line)
            else:
                proc_logger.log(level, line)
    except (OSError, ValueError) as e:
        proc_logger.debug(f"Pipe reader for {process_name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, name: str, line_handler: Optional[Callable] = None) -> List[threading.Thread]:
    """Starts background threads to consume and log a process's stdout/stderr."""
    readers = []
    if process.stdout:
        readers.append(threading.Thread(target=_read_pipe, args=(process.stdout, name, logging.INFO, line_handler),
                                        daemon=True, name=f"{name}-stdout"))
    if process.stderr:
        readers.append(threading.Thread(target=_read_pipe, args=(process.stderr, name, logging.ERROR),
                                        daemon=True, name=f"{name}-stderr"))
    for reader in readers:
        reader.start()
    return readers


def launch_process(config: "SupervisorConfig") -> ManagedProcess:
    """
    Launches the configured command and returns a handle on it.

    :param config: The supervisor configuration naming the command and its arguments.
    :return: A ManagedProcess for the freshly started child.
    :raises LaunchError: If the command could not be started.
    """
    args = [config.command, *config.args]
    log.info(f"Starting process: {config.name} ({' '.join(args)})...")

    output = subprocess.PIPE if config.relay_output else subprocess.DEVNULL
    try:
        p = subprocess.Popen(args, stdout=output, stderr=output, stdin=subprocess.DEVNULL,
                             cwd=config.cwd, env=config.env, **_get_popen_creation_flags())
    except (OSError, ValueError) as e:
        log.critical(f"Failed to start process '{config.name}': {e}", exc_info=True)
        raise LaunchError(f"Failed to start process '{config.name}': {e}") from e

    if config.relay_output:
        log_process_output(p, config.name)
    log.info(f"{config.name} started successfully with PID: {p.pid}")
    return ManagedProcess(config.name, p)


#* --- Process Termination ---
def _collect_process_tree(handle: ManagedProcess) -> List[psutil.Process]:
    """Returns the process and all of its descendants that still exist."""
    if handle.process is None:
        return []
    try:
        return [handle.process, *handle.process.children(recursive=True)]
    except psutil.NoSuchProcess:
        log.debug(f"Process {handle.pid} no longer exists, skipping children retrieval.")
        return []


def _terminate_processes(processes: List[psutil.Process]) -> None:
    """Sends SIGTERM to every process in the list."""
    for proc in processes:
        try:
            log.debug(f"Sending SIGTERM to PID {proc.pid}")
            proc.terminate()
        except psutil.NoSuchProcess:
            log.debug(f"Process {proc.pid} no longer exists, skipping termination.")
        except (psutil.Error, OSError) as e:
            log.warning(f"Could not terminate PID {proc.pid}: {e}")


def _forceful_kill(processes: List[psutil.Process]) -> None:
    """Forcefully kills processes that didn't terminate gracefully."""
    if not processes:
        return

    log.warning(f"{len(processes)} processes did not terminate gracefully. Forcing shutdown...")
    for proc in processes:
        try:
            log.warning(f"Killing stubborn process PID {proc.pid}.")
            proc.kill()
        except psutil.NoSuchProcess:
            continue
        except (psutil.Error, OSError) as e:
            log.warning(f"Could not kill PID {proc.pid}: {e}")


def terminate_process(handle: ManagedProcess, timeout: float = 10) -> None:
    """
    Terminates the supervised process tree. Never raises.

    The process may already be gone by the time a health check fails, so every
    failure here is logged and ignored.

    :param handle: The handle of the process to stop.
    :param timeout: Seconds to wait after SIGTERM before force-killing.
    """
    procs = _collect_process_tree(handle)
    _terminate_processes(procs)

    try:
        _, alive = psutil.wait_procs(procs, timeout=timeout)
    except psutil.Error as e:
        log.warning(f"Error while waiting for '{handle.name}' to exit: {e}")
        alive = procs
    _forceful_kill(alive)

    # Reap the child so it does not linger as a zombie.
    try:
        handle.popen.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        log.warning(f"Process '{handle.name}' (PID {handle.pid}) did not exit after kill.")
    except OSError as e:
        log.warning(f"Could not reap process '{handle.name}' (PID {handle.pid}): {e}")
    else:
        log.info(f"Process '{handle.name}' (PID {handle.pid}) stopped with exit code {handle.popen.returncode}.")
