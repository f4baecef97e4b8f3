"""structlog setup shared by the API process and the arq worker."""

import logging

import structlog

from fitgame.config import Settings

# Chatty third-party loggers kept at WARNING so domain events stay readable.
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "arq.jobs", "uvicorn.access")


def _add_deployment(settings: Settings) -> structlog.types.Processor:
    """Stamp every event with the service name and deployment environment."""

    def processor(_logger: object, _method: str, event_dict: dict) -> dict:  # type: ignore[type-arg]
        event_dict.setdefault("service", "fitgame")
        event_dict.setdefault("environment", settings.environment)
        return event_dict

    return processor


def setup_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_deployment(settings),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=settings.debug))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
