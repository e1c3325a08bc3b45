import logging
import os
from typing import Union

from stackcraft.constants import (
    DEFAULT_REGION,
    FALSE_STRINGS,
    LOG_LEVELS,
    TRACE_LOG_LEVELS,
    TRUE_STRINGS,
)

LOG = logging.getLogger(__name__)

# default encoding used to convert strings to byte arrays (mainly for Python 3 compatibility)
DEFAULT_ENCODING = "utf-8"


def is_env_true(env_var_name: str) -> bool:
    """Whether the given environment variable has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() in TRUE_STRINGS


def is_env_not_false(env_var_name: str) -> bool:
    """Whether the given environment variable is empty or has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() not in FALSE_STRINGS


def eval_log_type(env_var_name: str) -> Union[str, bool]:
    """Get the log type from environment variable"""
    sc_log = os.environ.get(env_var_name, "").lower().strip()
    return sc_log if sc_log in LOG_LEVELS else False


def _int_env(env_var_name: str, default: int) -> int:
    value = os.environ.get(env_var_name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        LOG.warning("Ignoring non-integer value %r of %s, using %s", value, env_var_name, default)
        return default


def _float_env(env_var_name: str, default: float) -> float:
    value = os.environ.get(env_var_name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        LOG.warning("Ignoring non-numeric value %r of %s, using %s", value, env_var_name, default)
        return default


# log level (e.g., "debug" or "trace"), overrides DEBUG
STACKCRAFT_LOG = eval_log_type("STACKCRAFT_LOG")
DEBUG = is_env_true("DEBUG") or STACKCRAFT_LOG in TRACE_LOG_LEVELS

# region used for API calls if none is given explicitly
AWS_REGION = (
    os.environ.get("AWS_REGION", "").strip()
    or os.environ.get("AWS_DEFAULT_REGION", "").strip()
    or DEFAULT_REGION
)

# custom endpoint for all API calls (e.g., http://localhost:4566 for a local emulator)
STACKCRAFT_ENDPOINT_URL = os.environ.get("STACKCRAFT_ENDPOINT_URL", "").strip()

# fixed interval (in seconds) between two stack status queries
STACK_POLL_INTERVAL = _float_env("STACK_POLL_INTERVAL", 5.0)

# maximum number of stack status queries before giving up (120 * 5s = 10 minutes)
STACK_POLL_MAX_ATTEMPTS = _int_env("STACK_POLL_MAX_ATTEMPTS", 120)

# timeout (in seconds) for a single HTTP request
HTTP_TIMEOUT = _float_env("HTTP_TIMEOUT", 30.0)

# whether to verify TLS certificates of the remote endpoint
HTTP_VERIFY_SSL = is_env_not_false("HTTP_VERIFY_SSL")


def is_trace_logging_enabled():
    if STACKCRAFT_LOG:
        log_level = str(STACKCRAFT_LOG).upper()
        return log_level.lower() in TRACE_LOG_LEVELS
    return False
