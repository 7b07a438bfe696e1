"""
Exception hierarchy for the orderbook arbitrage bot.

These cover infrastructure failures raised by collaborators and adapters
(configuration, quoting, RPC transport, transaction lifecycle). Business
outcomes of the opportunity search are returned as values, not raised.
"""

from typing import Any, Dict, Optional


class OrderbookArbitrageError(Exception):
    """Base exception for all orderbook arbitrage related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(OrderbookArbitrageError):
    """Raised when there are configuration-related issues."""

    pass


class QuoteError(OrderbookArbitrageError):
    """Raised when an order cannot be quoted on an RPC endpoint."""

    def __init__(
        self,
        message: str,
        rpc: Optional[str] = None,
        order_hash: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.rpc = rpc
        self.order_hash = order_hash


class NetworkError(OrderbookArbitrageError):
    """Raised when network or connectivity issues occur."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class TransactionError(OrderbookArbitrageError):
    """Raised when submitting or mining a transaction fails.

    ``receipt`` is set when the node returned a (partial) receipt along with
    the failure, so callers can still account for the gas spent.
    """

    def __init__(
        self,
        message: str,
        tx_hash: Optional[str] = None,
        receipt: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.tx_hash = tx_hash
        self.receipt = receipt


class InsufficientFundsError(TransactionError):
    """Raised when the signer cannot pay for gas."""

    pass
