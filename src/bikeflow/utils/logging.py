from __future__ import annotations

import logging

from bikeflow.config.models import LoggingSettings


# Loggers of the HTTP stack are chatty at INFO/DEBUG during retries.
_QUIET_LOGGERS = ("urllib3", "requests")


def resolve_level(name: str) -> int:
    level = getattr(logging, name.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {name}")
    return level


def configure_logging(settings: LoggingSettings) -> None:
    """
    Configure the root logger for the map session.

    The `bikeflow` logger tree follows `settings.level`; the HTTP stack stays at WARNING
    unless DEBUG was requested.
    """

    level = resolve_level(settings.level)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.file is not None:
        settings.file.parent.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(settings.file, encoding="utf-8"))

    logging.basicConfig(level=level, format=settings.format, handlers=handlers)
    logging.getLogger("bikeflow").setLevel(level)

    quiet_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
