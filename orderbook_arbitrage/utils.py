"""
Common utilities for the orderbook arbitrage bot.

Fixed-point helpers, JSON serialization of diagnostics, error snapshots
and the shared logger factory.
"""

import json
import logging
import random
from dataclasses import asdict, is_dataclass
from decimal import Decimal, ROUND_DOWN
from enum import Enum
from typing import Any, Dict, List, Optional, TypeVar, Union

from .constants import INSUFFICIENT_FUNDS_MARKERS
from .logging_config import REDACTION_FILTER

T = TypeVar("T")


# Fixed point utilities
def parse_units(value: Union[str, int, Decimal], decimals: int = 18) -> int:
    """Parse a decimal string into an integer amount with ``decimals`` places."""
    scaled = Decimal(str(value)) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def format_units(value: int, decimals: int = 18) -> str:
    """
    Format an integer amount as a decimal string.

    Whole numbers keep one fractional digit, e.g. ``10**18`` -> ``"1.0"``.
    """
    sign = "-" if value < 0 else ""
    whole, fraction = divmod(abs(value), 10**decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    fraction_str = str(fraction).rjust(decimals, "0").rstrip("0") or "0"
    return f"{sign}{whole}.{fraction_str}"


def scale_to_18(value: int, decimals: int) -> int:
    """Rescale an amount with ``decimals`` places to 18-decimal fixed point."""
    if decimals == 18:
        return value
    if decimals < 18:
        return value * 10 ** (18 - decimals)
    return value // 10 ** (decimals - 18)


def scale_from_18(value: int, decimals: int) -> int:
    """Rescale an 18-decimal fixed point amount to ``decimals`` places."""
    if decimals == 18:
        return value
    if decimals < 18:
        return value // 10 ** (18 - decimals)
    return value * 10 ** (decimals - 18)


def div_trunc(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero, as the EVM does."""
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


# JSON utilities
def to_json(data: Any, **kwargs) -> str:
    """Serialize diagnostics to JSON, keeping big ints exact."""
    defaults = {"default": _json_default_handler, "separators": (",", ":")}
    defaults.update(kwargs)
    return json.dumps(_stringify_ints(data), **defaults)


def _stringify_ints(data: Any) -> Any:
    # json would keep ints, but downstream consumers parse them as doubles
    if isinstance(data, bool) or data is None:
        return data
    if isinstance(data, Enum):
        return data.name
    if isinstance(data, int):
        return str(data)
    if is_dataclass(data) and not isinstance(data, type):
        return _stringify_ints(asdict(data))
    if isinstance(data, dict):
        return {str(k): _stringify_ints(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [_stringify_ints(v) for v in data]
    return data


def _json_default_handler(obj: Any) -> Any:
    """Default JSON serialization handler for custom types."""
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    elif hasattr(obj, "__dict__"):
        return obj.__dict__
    else:
        return str(obj)


# Error utilities
def error_snapshot(header: str, error: Any) -> str:
    """Render an error with a header line for diagnostics."""
    message = f"{header}\nReason: {error}" if header else f"Reason: {error}"
    cause = getattr(error, "__cause__", None)
    if cause is not None:
        message += f"\nCaused by: {cause}"
    return message


def is_insufficient_funds_error(error: Any) -> bool:
    """Whether a gas estimation error means the signer cannot pay for gas."""
    code = getattr(error, "code", None)
    if isinstance(code, str) and code.upper() == "INSUFFICIENT_FUNDS":
        return True
    text = f"{error} {getattr(error, 'args', '')}".lower()
    return any(marker in text for marker in INSUFFICIENT_FUNDS_MARKERS)


def shuffle_array(items: List[T], rng: Optional[random.Random] = None) -> List[T]:
    """Return a shuffled copy of ``items``."""
    shuffled = list(items)
    (rng or random).shuffle(shuffled)
    return shuffled


def prefix_keys(prefix: str, attributes: Dict[str, Any]) -> Dict[str, Any]:
    return {f"{prefix}{key}": value for key, value in attributes.items()}


# Logging utilities
def get_logger(
    name: str,
    level: Union[str, int] = logging.INFO,
    extra: Optional[Dict[str, Any]] = None,
) -> logging.Logger:
    """
    Get a structured logger with consistent formatting and extra context.

    Args:
        name: Logger name (typically __name__)
        level: Logging level
        extra: Additional context fields to include in all log messages

    Returns:
        Configured logger with structured output
    """
    logger = logging.getLogger(name)

    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        format_str = (
            "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
        )

        if extra:
            extra_fields = " | ".join([f"{k}=%(extra_{k})s" for k in extra.keys()])
            format_str = format_str.replace(
                " | %(message)s", f" | {extra_fields} | %(message)s"
            )

        handler.setFormatter(logging.Formatter(format_str, datefmt="%H:%M:%S"))
        handler.addFilter(REDACTION_FILTER)
        logger.addHandler(handler)

        if extra:
            logger = logging.LoggerAdapter(
                logger, {"extra_" + k: v for k, v in extra.items()}
            )

    return logger
