"""
Shared configuration loader for the Campus Radio service.

Loads a single JSON config file per device.  Search order:
  1. $CAMPUSRADIO_CONFIG           (explicit override)
  2. /etc/campusradio/config.json  (deployed)
  3. config.json                   (CWD — handy for local dev)

Usage:
    from campusradio.lib.config import cfg

    station      = cfg("station", "name", default="Campuswelle")
    stream_url   = cfg("stream", "url", default=LIVE_STREAM_URL)
    retry        = cfg("titles", "retry_interval", default=5)
    stream       = cfg("stream")  # returns the whole dict
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None
_config_path: str | None = None

ENV_VAR = "CAMPUSRADIO_CONFIG"


def _search_paths() -> list[str]:
    paths = []
    override = os.environ.get(ENV_VAR)
    if override:
        paths.append(override)
    paths += ["/etc/campusradio/config.json", "config.json"]
    return paths


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    stream = config.get("stream") or {}
    for key in ("url", "metadata_url"):
        url = stream.get(key)
        if url and not str(url).startswith(("http://", "https://")):
            logger.warning("Config %s: stream.%s is not an http(s) URL: %s", path, key, url)
    titles = config.get("titles") or {}
    for key in ("refresh_interval", "retry_interval", "fetch_timeout"):
        val = titles.get(key)
        if val is not None and (not isinstance(val, (int, float)) or val <= 0):
            logger.warning("Config %s: titles.%s must be a positive number, got %r", path, key, val)
    telemetry = config.get("telemetry") or {}
    interval = telemetry.get("interval")
    if interval is not None and (not isinstance(interval, (int, float)) or interval <= 0):
        logger.warning("Config %s: telemetry.interval must be positive, got %r", path, interval)


def _read(path: str) -> dict | None:
    """Parse one candidate file. None means "try the next path"."""
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in %s: %s", path, e)
        return None
    except OSError as e:
        logger.warning("Cannot read %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.error("Config %s must be a JSON object, got %s", path, type(data).__name__)
        return None
    return data


def load_config() -> dict:
    """Return the config dict, reading the first usable file on first call."""
    global _config, _config_path
    if _config is None:
        for path in _search_paths():
            data = _read(path)
            if data is not None:
                logger.info("Config loaded from %s", path)
                _validate(data, path)
                _config, _config_path = data, path
                break
        else:
            logger.warning("No config.json found — using defaults")
            _config, _config_path = {}, None
    return _config


def config_path() -> str | None:
    """Path the current config came from, None when running on defaults."""
    load_config()
    return _config_path


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("stream")                         → config["stream"]
    cfg("stream", "url")                  → config["stream"]["url"]
    cfg("titles", "retry_interval", default=5) → value or 5
    """
    value = load_config().get(section)
    if key is not None:
        value = value.get(key) if isinstance(value, dict) else None
    return default if value is None else value


def reload_config() -> dict:
    """Drop the cached config and read it again (tests, hot-reload)."""
    global _config, _config_path
    _config = _config_path = None
    return load_config()
