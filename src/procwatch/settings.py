"""
This module contains the default configuration settings for procwatch.
It defines supervision timings, restart policy, logging and child-process options.
Values can be overridden through environment variables (or a .env file) and,
for the keys listed in MODIFIABLE_SETTINGS, through a JSON overrides file.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).lower() in ('true', '1', 't', 'yes', 'y')


def _env_optional_int(key: str):
    value = os.getenv(key, "").strip()
    return int(value) if value else None


#* --- Core Paths ---
BASE_DIR = pathlib.Path.cwd()
OVERRIDES_JSON_PATH = pathlib.Path(os.getenv("PROCWATCH_OVERRIDES_PATH", str(BASE_DIR / "procwatch.overrides.json")))

#* --- Supervisor Settings ---
CHECK_INTERVAL = float(os.getenv("PROCWATCH_CHECK_INTERVAL", "30"))     # seconds
BACKOFF_TIME = float(os.getenv("PROCWATCH_BACKOFF_TIME", "30"))         # seconds
RESTART_BUDGET = _env_optional_int("PROCWATCH_RESTART_BUDGET")          # None = unlimited
TERMINATE_TIMEOUT = float(os.getenv("PROCWATCH_TERMINATE_TIMEOUT", "10"))  # seconds before force-killing

#* --- Child Process Settings ---
RELAY_OUTPUT = _env_bool("PROCWATCH_RELAY_OUTPUT", "True")
PROCESS_TITLE_PREFIX = "procwatch"

#* --- Health Check Settings ---
PORT_CHECK_TIMEOUT = 1.0   # seconds
HTTP_CHECK_TIMEOUT = 5.0   # seconds

#* --- Logging ---
LOG_LEVEL = os.getenv("PROCWATCH_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'

#* --- MODIFIABLE SETTINGS (Changeable via the JSON overrides file) ---
MODIFIABLE_SETTINGS = {
    "CHECK_INTERVAL", "BACKOFF_TIME", "RESTART_BUDGET", "TERMINATE_TIMEOUT",
    "RELAY_OUTPUT", "PORT_CHECK_TIMEOUT", "HTTP_CHECK_TIMEOUT", "LOG_LEVEL",
}
