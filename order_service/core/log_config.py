import logging
import logging.config
from contextvars import ContextVar
from typing import Optional

# request correlation id for the request currently being served ("-" outside requests)
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def configure_logging(level: Optional[str] = None) -> None:
    """Install the service log format (with request id) on the root and uvicorn loggers."""
    level = (level or "INFO").upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-5s [%(request_id)s] %(name)s - %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "filters": ["request_id"],
            },
        },
        "root": {"handlers": ["console"], "level": level},
        "loggers": {
            "order_service": {"level": level},
            "uvicorn.error": {"level": level},
        },
    })
