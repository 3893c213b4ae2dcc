from __future__ import annotations

from typing import List, Optional

import pytest

from procwatch.supervisor import SupervisorConfig, SupervisorHooks


class StopSupervision(Exception):
    """Raised from a hook or fake primitive to end an otherwise endless run."""


class EventRecorder:
    """Collects supervisor events in firing order."""

    def __init__(self) -> None:
        self.events: List[tuple] = []

    def hooks(self) -> SupervisorHooks:
        return SupervisorHooks(
            on_test_round_start=lambda: self.events.append(("round_start",)),
            on_test_ok=lambda name: self.events.append(("ok", name)),
            on_test_error=lambda name: self.events.append(("error", name)),
            on_all_tests_passing=lambda: self.events.append(("all_passing",)),
            on_restart=lambda: self.events.append(("restart",)),
            on_no_restart=lambda: self.events.append(("no_restart",)),
        )

    def count(self, event: str) -> int:
        return sum(1 for e in self.events if e[0] == event)


class FakeProcess:
    """Stand-in for ManagedProcess that never touches the OS."""

    def __init__(self, pid: int, terminate_error: Optional[Exception] = None) -> None:
        self.pid = pid
        self.name = "fake"
        self.terminated = False
        self.terminate_error = terminate_error

    def is_running(self) -> bool:
        return not self.terminated

    def terminate(self, timeout: float = 10) -> None:
        self.terminated = True
        if self.terminate_error is not None:
            raise self.terminate_error


class FakeLauncher:
    def __init__(self, terminate_error: Optional[Exception] = None) -> None:
        self.launched: List[FakeProcess] = []
        self.terminate_error = terminate_error

    def __call__(self, config: SupervisorConfig) -> FakeProcess:
        process = FakeProcess(1000 + len(self.launched), self.terminate_error)
        self.launched.append(process)
        return process


class FakeSleep:
    """Records requested sleeps; optionally stops the run after `limit` calls."""

    def __init__(self, limit: Optional[int] = None) -> None:
        self.calls: List[float] = []
        self.limit = limit

    def __call__(self, seconds: float) -> None:
        if self.limit is not None and len(self.calls) >= self.limit:
            raise StopSupervision()
        self.calls.append(seconds)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def fake_launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def fast_config() -> SupervisorConfig:
    """A config for a real, short-lived command with millisecond timings."""
    return (
        SupervisorConfig.new("echo")
        .with_args(["-n"])
        .with_check_interval(0.001)
        .with_backoff_time(0.001)
        .with_terminate_timeout(2)
        .with_relay_output(False)
    )
