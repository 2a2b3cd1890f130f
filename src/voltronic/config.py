"""Config-file loading for the voltronic command-line tool.

A config file names the serial port and, optionally, the settings
every device operation is issued with::

    [serial]
    port = "/dev/ttyUSB0"
    baudrate = 2400

    [operation]
    error_on_nak = true
    serial_read_timeout_seconds = 2
    serial_write_timeout_seconds = 2
    serial_termination_character = "\\r"
"""

import os
import tomllib

from voltronic.operation import (
    DEFAULT_READ_TIMEOUT,
    DEFAULT_TERMINATION_CHARACTER,
    DEFAULT_WRITE_TIMEOUT,
)
from voltronic.serial_channel import DEFAULT_BAUDRATE

# Searched in order for a bare config file name.
CONFIG_DIRS = (".", "~/.config/voltronic", "/etc/voltronic")

# Keys of [operation] passed straight through to DeviceOperation.
OPERATION_DEFAULTS = {
    "error_on_nak": True,
    "serial_read_timeout_seconds": DEFAULT_READ_TIMEOUT,
    "serial_write_timeout_seconds": DEFAULT_WRITE_TIMEOUT,
    "serial_termination_character": DEFAULT_TERMINATION_CHARACTER,
}


def find_config(name: str, search=CONFIG_DIRS) -> str:
    """Return the absolute path of config file *name*.

    A name with a directory part is used as given.  A bare file name
    is looked up in each of *search* in turn.

    Raises:
        FileNotFoundError: If no matching file exists.
    """
    if os.path.dirname(name):
        candidates = [name]
    else:
        candidates = [os.path.join(os.path.expanduser(d), name) for d in search]

    for candidate in candidates:
        if os.path.isfile(candidate):
            return os.path.abspath(candidate)

    raise FileNotFoundError(
        "config file %r not found (searched: %s)" % (name, ", ".join(candidates))
    )


def load_config(path: str) -> dict:
    """Read a TOML config file and validate it.

    Returns a flat dict with ``port``, ``baudrate`` and the keys of
    ``OPERATION_DEFAULTS``, defaults filled in.

    Raises:
        ValueError: If any key is missing or has the wrong type.
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    serial_section = raw.get("serial")
    if not isinstance(serial_section, dict):
        raise ValueError("config requires a [serial] section")
    _require_str(serial_section, "port")
    result = {
        "port": serial_section["port"],
        "baudrate": serial_section.get("baudrate", DEFAULT_BAUDRATE),
    }
    _require_positive_int(result, "baudrate")

    op_section = raw.get("operation", {})
    if not isinstance(op_section, dict):
        raise ValueError("[operation] must be a table")
    unknown = sorted(set(op_section) - set(OPERATION_DEFAULTS))
    if unknown:
        raise ValueError("unknown key in [operation]: %s" % unknown[0])

    options = dict(OPERATION_DEFAULTS)
    options.update(op_section)
    _require_bool(options, "error_on_nak")
    _require_positive_int(options, "serial_read_timeout_seconds")
    _require_positive_int(options, "serial_write_timeout_seconds")
    _require_str(options, "serial_termination_character")
    if len(options["serial_termination_character"]) != 1:
        raise ValueError("serial_termination_character must be a single character")

    result.update(options)
    return result


def operation_options(cfg: dict) -> dict:
    """Return the DeviceOperation keyword arguments from a loaded config."""
    return {key: cfg[key] for key in OPERATION_DEFAULTS}


def _require_str(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is a str."""
    if key not in raw:
        raise ValueError("missing required key: %s" % key)
    if not isinstance(raw[key], str):
        raise ValueError("%s must be str, got %s" % (key, type(raw[key]).__name__))


def _require_bool(raw: dict[str, object], key: str) -> None:
    """Validate that *raw[key]* is a bool."""
    if not isinstance(raw[key], bool):
        raise ValueError("%s must be bool, got %s" % (key, type(raw[key]).__name__))


def _require_positive_int(raw: dict[str, object], key: str) -> None:
    """Validate that *raw[key]* is an int greater than zero."""
    value = raw[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("%s must be int, got %s" % (key, type(value).__name__))
    if value <= 0:
        raise ValueError("%s must be positive, got %d" % (key, value))
