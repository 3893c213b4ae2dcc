import os
import json
import shlex
import yaml
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import procwatch.settings as default_settings
from procwatch.supervisor import checks
from procwatch.supervisor.supervisor import SupervisorConfig

log = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised for malformed settings or service definition files."""


class MergedSettings:
    """
    Merges default settings with JSON overrides.

    This class provides a unified, attribute-based access point for all
    application configuration. It follows a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from the environment / `.env` file (handled by `python-dotenv` in settings.py).
    3. Overrides from the JSON overrides file for settings in `MODIFIABLE_SETTINGS`.

    Settings are read once; a running supervisor never sees later changes.
    """

    def __init__(self, overrides_path: Optional[Path] = None, defaults=default_settings) -> None:
        """
        Initializes the settings object by loading defaults and overrides.

        :param overrides_path: JSON file with overrides; defaults to OVERRIDES_JSON_PATH.
        :param defaults: Module (or object) holding the upper-case default values.
        """
        self._defaults = defaults
        self._load_defaults()
        self.OVERRIDES_JSON_PATH: Path = Path(overrides_path or defaults.OVERRIDES_JSON_PATH)
        self._load_overrides()

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings module as defaults."""
        for key in dir(self._defaults):
            if key.isupper():
                setattr(self, key, getattr(self._defaults, key))

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the overrides file.

        It will only apply overrides for keys that are explicitly listed in
        the `MODIFIABLE_SETTINGS` set in `settings.py`.
        """
        if not self.OVERRIDES_JSON_PATH.exists():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return

        if not isinstance(overrides, dict):
            log.error(f"Overrides file '{self.OVERRIDES_JSON_PATH}' must contain a JSON object. Ignoring.")
            return

        log.info(f"Loading configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if not hasattr(self, key):
                log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue
            setattr(self, key, value)
            log.debug(f"Overridden setting: {key} = {value}")

    def get(self, key: str, default: Any = None) -> Any:
        """Provides dictionary-like access to settings with a default value."""
        return getattr(self, key, default)


#* --- Service definition files ---
def _check_running(spec: Dict[str, Any]) -> Callable:
    return checks.process_running()


def _check_exit_code(spec: Dict[str, Any]) -> Callable:
    return checks.exit_code_ok(spec.get("accepted", [0]))


def _check_file(spec: Dict[str, Any]) -> Callable:
    return checks.file_exists(_require(spec, "path"))


def _check_port(spec: Dict[str, Any]) -> Callable:
    return checks.port_open(spec.get("host", "127.0.0.1"), int(_require(spec, "port")), spec.get("timeout"))


def _check_http(spec: Dict[str, Any]) -> Callable:
    return checks.http_ok(_require(spec, "url"), spec.get("timeout"), spec.get("expected_status"))


def _check_memory(spec: Dict[str, Any]) -> Callable:
    return checks.max_memory(float(_require(spec, "limit_mb")))


def _check_uptime(spec: Dict[str, Any]) -> Callable:
    return checks.max_uptime(float(_require(spec, "seconds")))


CHECK_BUILDERS: Dict[str, Callable[[Dict[str, Any]], Callable]] = {
    "running": _check_running,
    "exit_code": _check_exit_code,
    "file": _check_file,
    "port": _check_port,
    "http": _check_http,
    "memory": _check_memory,
    "uptime": _check_uptime,
}


def _require(spec: Dict[str, Any], key: str) -> Any:
    if key not in spec:
        raise ConfigError(f"Check of type '{spec.get('type')}' requires '{key}'.")
    return spec[key]


def load_service_file(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Reads a YAML service definition.

    :param path: Path to the YAML file.
    :return: The parsed definition as a dictionary.
    :raises ConfigError: If the file is unreadable or not a mapping with a command.
    """
    path = Path(path)
    try:
        service = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (IOError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read service file '{path}': {e}") from e

    if not isinstance(service, dict):
        raise ConfigError(f"Service file '{path}' must contain a mapping.")
    if not service.get("command"):
        raise ConfigError(f"Service file '{path}' does not define a 'command'.")
    return service


def build_checks(check_specs: List[Dict[str, Any]]) -> List[tuple]:
    """
    Turns the `checks:` section of a service definition into (name, predicate) pairs.

    :raises ConfigError: For an unknown check type or missing parameters.
    """
    built = []
    for index, spec in enumerate(check_specs or []):
        if isinstance(spec, str):
            spec = {"type": spec}
        if not isinstance(spec, dict) or "type" not in spec:
            raise ConfigError(f"Check #{index + 1} must be a mapping with a 'type'.")
        builder = CHECK_BUILDERS.get(spec["type"])
        if builder is None:
            raise ConfigError(
                f"Unknown check type '{spec['type']}'. Expected one of: {', '.join(sorted(CHECK_BUILDERS))}."
            )
        try:
            predicate = builder(spec)
        except ConfigError:
            raise
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid parameters for check '{spec['type']}': {e}") from e
        built.append((spec.get("name", spec["type"]), predicate))
    return built


def build_config(service: Dict[str, Any], config: Optional[MergedSettings] = None) -> SupervisorConfig:
    """
    Builds a SupervisorConfig from a service definition.
    Values the definition leaves out are taken from the settings.

    :param service: The parsed service definition.
    :param config: Effective settings; a fresh MergedSettings if omitted.
    :raises ConfigError: If the definition is invalid.
    """
    config = config or MergedSettings()
    if not service.get("command"):
        raise ConfigError("Service definition does not define a 'command'.")

    args = service.get("args")
    if args is None:
        args = []
    elif isinstance(args, str):
        try:
            args = shlex.split(args)
        except ValueError as e:
            raise ConfigError(f"Cannot parse 'args': {e}") from e
    elif not isinstance(args, list):
        raise ConfigError(f"'args' must be a list or a command line string, got {args!r}.")

    env = service.get("env")
    if env is not None:
        if not isinstance(env, dict):
            raise ConfigError("'env' must be a mapping of variable names to values.")
        env = {**os.environ, **{str(k): str(v) for k, v in env.items()}}

    try:
        supervisor_config = (
            SupervisorConfig.from_settings(str(service["command"]), config)
            .with_args(args)
            .with_check_interval(service.get("check_interval", config.CHECK_INTERVAL))
            .with_backoff_time(service.get("backoff_time", config.BACKOFF_TIME))
            .with_restart_budget(service.get("restart_budget", config.RESTART_BUDGET))
            .with_relay_output(service.get("relay_output", config.RELAY_OUTPUT))
            .with_terminate_timeout(service.get("terminate_timeout", config.TERMINATE_TIMEOUT))
            .with_cwd(service.get("cwd"))
            .with_env(env)
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid service definition: {e}") from e

    if service.get("name"):
        supervisor_config = supervisor_config.with_name(str(service["name"]))

    for name, predicate in build_checks(service.get("checks", [])):
        supervisor_config = supervisor_config.add_test(name, predicate)
    return supervisor_config
