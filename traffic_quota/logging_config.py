import logging
import os
from logging.config import dictConfig
from typing import Any, Dict, Mapping, Optional

PACKAGE_LOGGER = "traffic_quota"


class ShortNameFilter(logging.Filter):
    """Shorten logger names in emitted records.

    Exact ``aliases`` win (``uvicorn.error`` -> ``uvicorn``); otherwise a
    leading ``strip_prefix`` is dropped (``traffic_quota.usage`` -> ``usage``).
    """

    def __init__(self, aliases: Optional[Mapping[str, str]] = None, strip_prefix: str = "") -> None:
        super().__init__()
        self.aliases = dict(aliases or {})
        self.strip_prefix = strip_prefix

    def filter(self, record: logging.LogRecord) -> bool:
        alias = self.aliases.get(record.name)
        if alias is not None:
            record.name = alias
        elif self.strip_prefix and record.name.startswith(self.strip_prefix):
            record.name = record.name[len(self.strip_prefix):] or record.name
        return True


def build_logging_config(level: str = "INFO", use_colors: bool = True) -> Dict[str, Any]:
    def formatter(kind: str, fmt: str) -> Dict[str, Any]:
        return {"()": f"uvicorn.logging.{kind}", "fmt": fmt, "use_colors": use_colors}

    def handler(formatter_name: str, stream: str) -> Dict[str, Any]:
        return {
            "class": "logging.StreamHandler",
            "formatter": formatter_name,
            "stream": stream,
            "filters": ["short_names"],
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": formatter("DefaultFormatter", "%(levelprefix)s %(asctime)s [%(name)s] %(message)s"),
            "access": formatter(
                "AccessFormatter",
                "%(levelprefix)s %(asctime)s [%(name)s] %(client_addr)s \"%(request_line)s\" %(status_code)s",
            ),
        },
        "filters": {
            "short_names": {
                "()": "traffic_quota.logging_config.ShortNameFilter",
                "aliases": {"uvicorn.error": "uvicorn", "uvicorn.access": "access"},
                "strip_prefix": f"{PACKAGE_LOGGER}.",
            }
        },
        "handlers": {
            "default": handler("default", "ext://sys.stderr"),
            "access": handler("access", "ext://sys.stdout"),
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
            # one line per backend query at INFO is too chatty
            "httpx": {"handlers": ["default"], "level": "WARNING", "propagate": False},
            PACKAGE_LOGGER: {"handlers": ["default"], "level": level, "propagate": False},
        },
        "root": {"handlers": ["default"], "level": "WARNING"},
    }


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the service and uvicorn loggers.

    ``LOG_LEVEL`` sets the level of the ``traffic_quota`` loggers and
    ``LOG_COLORS=0`` disables ANSI colors (useful under journald).
    """
    level = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    use_colors = os.environ.get("LOG_COLORS", "1").lower() not in ("0", "false", "no")
    dictConfig(build_logging_config(level, use_colors=use_colors))
