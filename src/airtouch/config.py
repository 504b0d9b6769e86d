"""Project-wide configuration constants and config-file loading.

Central place for protocol timings and the TCP port.  Import
individual names where needed.

Example:
    >>> from airtouch.config import load_config, PORT
    >>> cfg = load_config("airtouch.toml")
    >>> cfg["host"]
    '192.168.1.20'
"""

import tomllib

# TCP port the touchpad controller listens on.
PORT = 9004

# Window in which repeated AC or group status requests collapse into one query.
DEBOUNCE_MS = 200

# Minimum spacing between combined AC + group polls.
POLL_THROTTLE_MS = 3000

# Delay between the initial AC and group status queries after connecting.
INITIAL_STAGGER_MS = 2000

# Backoff before reconnecting after a transport error.
RECONNECT_DELAY_MS = 10000

# Give up on a TCP connect attempt after this long.
CONNECT_TIMEOUT_MS = 5000


def load_config(path: str) -> dict:
    """Read a TOML config file and validate its keys.

    Keys: ``host`` (str, required), ``interval`` (int seconds between
    polls, required), ``port`` (int, default ``PORT``),
    ``auto_reconnect`` (bool, default False).

    Raises:
        ValueError: If any required key is missing or has the wrong type.

    Example:
        >>> cfg = load_config("airtouch.toml")
        >>> cfg["port"], cfg["interval"]
        (9004, 60)
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    _require_str(raw, "host")
    _require_int(raw, "interval")
    if raw["interval"] <= 0:
        raise ValueError("interval must be positive, got %d" % raw["interval"])

    port = raw.get("port", PORT)
    if not isinstance(port, int) or isinstance(port, bool):
        raise ValueError("port must be int, got %s" % type(port).__name__)
    if not (1 <= port <= 65535):
        raise ValueError("port must be in range 1-65535, got %d" % port)

    auto_reconnect = raw.get("auto_reconnect", False)
    if not isinstance(auto_reconnect, bool):
        raise ValueError(
            "auto_reconnect must be bool, got %s" % type(auto_reconnect).__name__
        )

    return {
        "host": raw["host"],
        "port": port,
        "interval": raw["interval"],
        "auto_reconnect": auto_reconnect,
    }


def _require_str(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is a str."""
    if key not in raw:
        raise ValueError("missing required key: %s" % key)
    if not isinstance(raw[key], str):
        raise ValueError("%s must be str, got %s" % (key, type(raw[key]).__name__))


def _require_int(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is an int."""
    if key not in raw:
        raise ValueError("missing required key: %s" % key)
    if not isinstance(raw[key], int) or isinstance(raw[key], bool):
        raise ValueError("%s must be int, got %s" % (key, type(raw[key]).__name__))
