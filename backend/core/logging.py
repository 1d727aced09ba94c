import logging
import logging.config

from core.config import settings


def configure_logging(level: str | None = None) -> None:
    """Route application and uvicorn logs through one stderr handler."""
    level = (level or settings.log_level or "INFO").upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stderr",
                },
            },
            "root": {"handlers": ["stderr"], "level": level},
            "loggers": {
                # Echo is controlled separately by DATABASE_ECHO.
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
