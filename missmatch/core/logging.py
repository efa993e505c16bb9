import logging


class SecretsFilter(logging.Filter):
    """Redact credentials and signatures attached to log records."""

    BLOCKED_KEYS = {"api_key", "authorization", "signature", "webhook_secret", "cron_secret"}

    def filter(self, record: logging.LogRecord) -> bool:
        for key in self.BLOCKED_KEYS:
            if hasattr(record, key):
                setattr(record, key, "[REDACTED]")
        return True


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # Logger-level filters skip records propagated from child loggers.
    for handler in logging.getLogger().handlers:
        if not any(isinstance(existing, SecretsFilter) for existing in handler.filters):
            handler.addFilter(SecretsFilter())
