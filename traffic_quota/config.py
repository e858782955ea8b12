import logging
import os
from dataclasses import dataclass, field
from datetime import tzinfo
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from traffic_quota.units import ParseError, UnitConvention, parse_quota

logger = logging.getLogger("traffic_quota.config")

DEFAULT_CONFIG_PATH = "config.yml"


class ConfigError(Exception):
    """Raised when the configuration cannot be loaded; the service must not start."""


@dataclass(frozen=True)
class Limit:
    reset_day: int
    byte_quota: int


@dataclass(frozen=True)
class QuotaConfig:
    prometheus_url: str
    unit_convention: UnitConvention
    limits: Mapping[str, Limit] = field(default_factory=lambda: MappingProxyType({}))

    instance_label: str = "instance"
    excluded_instances: Tuple[str, ...] = ()
    request_timeout: float = 10.0
    timezone: Optional[tzinfo] = None


def _parse_limit(instance: str, raw: Any, convention: UnitConvention) -> Limit:
    if not isinstance(raw, dict):
        raise ConfigError(f"limits.{instance}: expected a mapping with 'reset_day' and 'limit'")

    reset_day = raw.get("reset_day")
    if isinstance(reset_day, bool) or not isinstance(reset_day, int) or not 1 <= reset_day <= 31:
        raise ConfigError(f"limits.{instance}.reset_day: expected an integer 1-31, got {reset_day!r}")

    quota = raw.get("limit")
    if quota is None:
        raise ConfigError(f"limits.{instance}.limit: missing")
    try:
        byte_quota = parse_quota(str(quota), convention)
    except ParseError as e:
        raise ConfigError(f"limits.{instance}.limit: {e}") from e
    if byte_quota <= 0:
        raise ConfigError(f"limits.{instance}.limit: quota must be positive, got {quota!r}")

    return Limit(reset_day=reset_day, byte_quota=byte_quota)


def parse_config(raw: Any) -> QuotaConfig:
    """Validate an already-decoded config document and build a :class:`QuotaConfig`."""
    if not isinstance(raw, dict):
        raise ConfigError("config root must be a mapping")

    prometheus_url = os.environ.get("PROMETHEUS_URL") or raw.get("prometheus_url")
    if not prometheus_url or not isinstance(prometheus_url, str):
        raise ConfigError("prometheus_url: missing")

    # No default: the same quota string means different byte counts per convention.
    if raw.get("unit_type") is None:
        raise ConfigError("unit_type: missing (expected 'decimal' or 'binary')")
    try:
        convention = UnitConvention.from_name(raw["unit_type"])
    except ValueError as e:
        raise ConfigError(f"unit_type: {e}") from e

    raw_limits = raw.get("limits") or {}
    if not isinstance(raw_limits, dict):
        raise ConfigError("limits: expected a mapping of instance -> limit")
    limits: Dict[str, Limit] = {
        str(instance): _parse_limit(str(instance), value, convention) for instance, value in raw_limits.items()
    }

    excluded = raw.get("excluded_instances") or []
    if not isinstance(excluded, list):
        raise ConfigError("excluded_instances: expected a list")

    try:
        request_timeout = float(raw.get("request_timeout", 10.0))
    except (TypeError, ValueError):
        raise ConfigError(f"request_timeout: expected a number, got {raw.get('request_timeout')!r}") from None

    tz: Optional[tzinfo] = None
    tz_name = raw.get("timezone")
    if tz_name:
        try:
            tz = ZoneInfo(str(tz_name))
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"timezone: unknown zone {tz_name!r}") from e

    return QuotaConfig(
        prometheus_url=prometheus_url.rstrip("/"),
        unit_convention=convention,
        limits=MappingProxyType(limits),
        instance_label=str(raw.get("instance_label") or "instance"),
        excluded_instances=tuple(str(x) for x in excluded),
        request_timeout=request_timeout,
        timezone=tz,
    )


def load_config(path: Optional[str] = None) -> QuotaConfig:
    path = path or os.environ.get("TRAFFIC_QUOTA_CONFIG", DEFAULT_CONFIG_PATH)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e

    config = parse_config(raw)
    logger.debug(f"Loaded config from {path}: {len(config.limits)} configured instance(s)")
    return config
