import os
import logging
from types import MappingProxyType
from collections.abc import Mapping
from dataclasses import dataclass, field, fields

import yaml

from .errors import ConfigError

log = logging.getLogger(__name__)

# Nominal RPM tier -> speed code understood by the fan duty raw command
DEFAULT_FAN_SPEEDS = {
    1920: "0x07",
    1800: "0x06",
    1680: "0x05",
    1560: "0x04",
}

# Environment variable -> (Config field, type)
ENV_VARS = {
    "IPMIHOST": ("host", str),
    "IPMIUSER": ("username", str),
    "IPMIPW": ("password", str),
    "SENSOR": ("sensor", str),
    "MAXTEMP": ("max_temp", int),
    "WARNTEMP": ("warn_temp", int),
    "POLLINTERVAL": ("poll_interval", int),
    "LOGFILE": ("log_file", str),
    "IPMITOOL": ("ipmitool", str),
    "LOGLEVEL": ("log_level", str),
}


# Config field -> accepted types, bool excluded
FIELD_TYPES = {
    "host": str,
    "username": str,
    "password": str,
    "sensor": str,
    "max_temp": int,
    "warn_temp": int,
    "poll_interval": (int, float),
    "high_rpm": int,
    "low_rpm": int,
    "retries": int,
    "retry_delay": (int, float),
    "command_timeout": (int, float),
    "ipmitool": str,
    "log_file": str,
    "log_level": str,
    "log_backup_count": int,
}


def _type_names(kinds):
    if isinstance(kinds, tuple):
        return " or ".join(k.__name__ for k in kinds)
    return kinds.__name__


@dataclass(frozen=True)
class Config:
    """Process-wide settings, resolved once at startup."""

    host: str = "192.168.1.100"
    username: str = "admin"
    password: str = "password"
    sensor: str = "Ambient Temp"
    max_temp: int = 30
    warn_temp: int = 27
    poll_interval: float = 60
    fan_speeds: Mapping = field(default_factory=lambda: dict(DEFAULT_FAN_SPEEDS))
    high_rpm: int = 1920
    low_rpm: int = 1560
    retries: int = 3
    retry_delay: float = 2.0
    command_timeout: float = 30.0
    ipmitool: str = "ipmitool"
    log_file: str = "/var/log/ipmi-temp-monitor.log"
    log_level: str = "INFO"
    log_backup_count: int = 7

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            kinds = FIELD_TYPES.get(f.name)
            if kinds and (isinstance(value, bool) or not isinstance(value, kinds)):
                raise ConfigError(f"{f.name} must be {_type_names(kinds)}, got {value!r}")
        if not isinstance(self.fan_speeds, Mapping):
            raise ConfigError(f"fan_speeds must be a mapping, got {self.fan_speeds!r}")
        for rpm, code in self.fan_speeds.items():
            if isinstance(rpm, bool) or not isinstance(rpm, int) or not isinstance(code, str):
                raise ConfigError(f"fan_speeds entries must map int RPM to str code, got {rpm!r}: {code!r}")
        object.__setattr__(self, 'fan_speeds', MappingProxyType(dict(self.fan_speeds)))

        if self.warn_temp > self.max_temp:
            raise ConfigError(
                f"warn_temp ({self.warn_temp}) must not exceed max_temp ({self.max_temp})"
            )
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.retries < 1:
            raise ConfigError(f"retries must be at least 1, got {self.retries}")
        if self.retry_delay < 0:
            raise ConfigError(f"retry_delay must be >= 0, got {self.retry_delay}")
        for name in ("high_rpm", "low_rpm"):
            rpm = getattr(self, name)
            if rpm not in self.fan_speeds:
                raise ConfigError(f"{name} {rpm} has no entry in fan_speeds")

    @property
    def high_speed(self):
        return self.fan_speeds[self.high_rpm]

    @property
    def low_speed(self):
        return self.fan_speeds[self.low_rpm]


def _speed_code(value):
    # YAML reads an unquoted 0x07 as the integer 7
    if isinstance(value, int):
        return f"0x{value:02x}"
    return str(value)


def load_file(path):
    """
    Read overrides from a YAML config file.

    :param path: Path to the YAML file.
    :return: A dictionary of Config field overrides.
    """
    try:
        with open(path, 'r') as file:
            data = yaml.safe_load(file) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot load config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(Config)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")

    if 'fan_speeds' in data:
        try:
            data['fan_speeds'] = {int(rpm): _speed_code(code) for rpm, code in data['fan_speeds'].items()}
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid fan_speeds in {path}: {e}") from e
    return data


def load_env(environ):
    """
    Read overrides from environment variables.

    Malformed integers are skipped, so the value from the lower layer is kept.

    :param environ: Mapping of environment variables.
    :return: A dictionary of Config field overrides.
    """
    overrides = {}
    for var, (name, kind) in ENV_VARS.items():
        if var not in environ:
            continue
        raw = environ[var]
        if kind is int:
            try:
                overrides[name] = int(raw)
            except ValueError:
                log.debug(f"Ignoring malformed {var}={raw!r}")
        else:
            overrides[name] = raw
    return overrides


def load_config(path=None, environ=None):
    """
    Build the Config from defaults, an optional YAML file and the environment.

    Later layers win: defaults, then the file, then environment variables.
    """
    if environ is None:
        environ = os.environ

    values = load_file(path) if path else {}
    values.update(load_env(environ))
    try:
        return Config(**values)
    except TypeError as e:
        raise ConfigError(str(e)) from e
