from __future__ import annotations

import logging

from ticketwise.core.security import redact_secrets

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
# httpx logs full request URLs at INFO, which include ticket search conditions.
NOISY_LOGGERS = ("httpx", "httpcore")


class RedactionFilter(logging.Filter):
    """Log filter that masks credentials before output."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(str(record.msg))
        if record.args:
            record.args = tuple(redact_secrets(str(arg)) for arg in record.args)
        return True


def setup_logging(level: str) -> None:
    """Configure application logging with credential redaction."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(isinstance(item, RedactionFilter) for item in root.filters):
        root.addFilter(RedactionFilter())
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
