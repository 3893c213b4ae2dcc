import logging
from datetime import timedelta
from types import SimpleNamespace

import pytest

from procwatch.supervisor import SupervisorConfig, SupervisorHooks, logging_hooks


def test_defaults():
    config = SupervisorConfig.new("test")

    assert config.command == "test"
    assert config.args == ()
    assert config.check_interval == 30
    assert config.backoff_time == 30
    assert config.restart_budget is None
    assert config.tests == ()
    assert config.hooks.registered() == []


def test_builder_returns_new_config():
    base = SupervisorConfig.new("test")
    updated = base.with_check_interval(15).with_backoff_time(5).with_restart_budget(2)

    assert updated.check_interval == 15
    assert updated.backoff_time == 5
    assert updated.restart_budget == 2
    assert base.check_interval == 30
    assert base.restart_budget is None


def test_durations_accept_timedelta():
    config = SupervisorConfig.new("test").with_check_interval(timedelta(milliseconds=250)) \
        .with_backoff_time(timedelta(minutes=1))

    assert config.check_interval == 0.25
    assert config.backoff_time == 60


@pytest.mark.parametrize("method", ["with_check_interval", "with_backoff_time", "with_terminate_timeout"])
def test_negative_durations_rejected(method):
    with pytest.raises(ValueError):
        getattr(SupervisorConfig.new("test"), method)(-1)


def test_negative_restart_budget_rejected():
    with pytest.raises(ValueError):
        SupervisorConfig.new("test").with_restart_budget(-1)


@pytest.mark.parametrize("budget", [True, 1.7, "abc", "1.5", [2]])
def test_restart_budget_must_be_a_whole_number(budget):
    with pytest.raises(ValueError):
        SupervisorConfig.new("test").with_restart_budget(budget)


@pytest.mark.parametrize("budget, expected", [(2.0, 2), ("3", 3), (0, 0)])
def test_restart_budget_accepts_integral_values(budget, expected):
    assert SupervisorConfig.new("test").with_restart_budget(budget).restart_budget == expected


@pytest.mark.parametrize("value, expected", [("false", False), ("0", False), ("off", False), ("Yes", True), (1, True)])
def test_relay_output_parses_strings(value, expected):
    assert SupervisorConfig.new("test").with_relay_output(value).relay_output is expected


def test_restart_budget_can_be_reset_to_unlimited():
    config = SupervisorConfig.new("test").with_restart_budget(3).with_restart_budget(None)
    assert config.restart_budget is None


def test_args_are_stringified():
    config = SupervisorConfig.new("sleep").with_args([0.5, "x"])
    assert config.args == ("0.5", "x")


def test_add_test_appends_in_order():
    first, second = (lambda p: True), (lambda p: False)
    base = SupervisorConfig.new("test").add_test("first", first)
    config = base.add_test("second", second)

    assert [name for name, _ in config.tests] == ["first", "second"]
    assert config.tests[1][1] is second
    assert len(base.tests) == 1


def test_add_test_requires_callable():
    with pytest.raises(TypeError):
        SupervisorConfig.new("test").add_test("broken", "not callable")


def test_hook_registration():
    def on_restart():
        pass

    config = SupervisorConfig.new("test").on_restart(on_restart).on_test_error(print)

    assert config.hooks.on_restart is on_restart
    assert config.hooks.on_test_error is print
    assert sorted(config.hooks.registered()) == ["on_restart", "on_test_error"]


def test_name_defaults_to_command_basename():
    assert SupervisorConfig.new("/usr/bin/python3").name == "python3"
    assert SupervisorConfig.new("/usr/bin/python3").with_name("api").name == "api"


def test_from_settings():
    settings = SimpleNamespace(CHECK_INTERVAL=5, BACKOFF_TIME=2, RESTART_BUDGET=4,
                               RELAY_OUTPUT=False, TERMINATE_TIMEOUT=3)
    config = SupervisorConfig.from_settings("worker", settings)

    assert (config.check_interval, config.backoff_time, config.restart_budget) == (5, 2, 4)
    assert config.relay_output is False
    assert config.terminate_timeout == 3


#* --- Hooks ---
def test_absent_hooks_are_noops():
    SupervisorHooks().fire("on_restart")
    SupervisorHooks().fire("on_test_ok", "name")


def test_fire_forwards_the_test_name():
    names = []
    SupervisorHooks(on_test_ok=names.append).fire("on_test_ok", "disk")
    assert names == ["disk"]


def test_unknown_event_rejected():
    with pytest.raises(ValueError):
        SupervisorHooks().fire("on_explode")
    with pytest.raises(ValueError):
        SupervisorHooks().with_hook("on_explode", print)


def test_logging_hooks_report_events(caplog):
    hooks = logging_hooks("procwatch.test")

    with caplog.at_level(logging.DEBUG, logger="procwatch.test"):
        hooks.fire("on_test_error", "port")
        hooks.fire("on_no_restart")

    assert "Health check 'port' failed." in caplog.text
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)
