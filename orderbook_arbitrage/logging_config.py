"""
Logging configuration with secret redaction.

Usage:
    from orderbook_arbitrage.logging_config import setup_logging
    setup_logging(logging.INFO, secrets=[private_key, rpc_url])

Every handler created by ``utils.get_logger`` and by ``setup_logging``
carries the shared ``REDACTION_FILTER``, so secrets registered at
configuration time never reach the output stream.
"""

import logging
import sys
from typing import Iterable, List, Optional

from .constants import REDACTED


class SecretRedactionFilter(logging.Filter):
    """Replaces configured secrets in rendered log messages."""

    def __init__(self, secrets: Optional[Iterable[str]] = None):
        super().__init__()
        self._secrets: List[str] = []
        self.set_secrets(secrets or [])

    @property
    def secrets(self) -> List[str]:
        return list(self._secrets)

    def set_secrets(self, secrets: Iterable[str]) -> None:
        # longest first so a secret containing another is replaced whole
        self._secrets = sorted({s for s in secrets if s}, key=len, reverse=True)

    def add_secret(self, secret: str) -> None:
        self.set_secrets([*self._secrets, secret])

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = self.redact(record.exc_text)
        return True


REDACTION_FILTER = SecretRedactionFilter()


def setup_logging(
    level=logging.INFO, secrets: Optional[Iterable[str]] = None, stream=None
) -> SecretRedactionFilter:
    """
    Configure the root logger and register secrets to redact.

    Returns the shared redaction filter so callers can add secrets later,
    for example after deriving account keys.
    """
    if secrets is not None:
        REDACTION_FILTER.set_secrets(secrets)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(stream or sys.stdout)
    console.setLevel(level)
    console.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    console.addFilter(REDACTION_FILTER)
    root.addHandler(console)

    # Suppress noisy loggers
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("orderbook_arbitrage").setLevel(level)

    return REDACTION_FILTER
