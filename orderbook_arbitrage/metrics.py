"""
Prometheus metrics for the orderbook arbitrage bot.

Counts reports and halts per pair, tracks gas spend and account balances,
and optionally serves them over HTTP.
"""

import logging
import threading
from typing import Optional

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from .config_schema import BotConfig
from .constants import ErrorSeverity
from .types import Account, BatchResult, ProcessPairResult

logger = logging.getLogger(__name__)

WEI_BUCKETS = [1e12, 1e13, 1e14, 1e15, 1e16, 1e17, 1e18]


class BotMetrics:
    """
    Prometheus metrics collection and exposure

    Provides:
    - Report counts by status
    - Halt counts by reason and severity
    - Gas cost, average gas cost and net profit
    - Locally tracked account balances
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics with custom registry or default"""
        self.registry = registry or REGISTRY
        self._initialize_metrics()

        self._runner = None
        self._site = None

        self._lock = threading.RLock()

    def _initialize_metrics(self):
        self.reports_total = Counter(
            "orderbook_arbitrage_reports_total",
            "Processed pairs by report status",
            ["status"],
            registry=self.registry,
        )

        self.halts_total = Counter(
            "orderbook_arbitrage_halts_total",
            "Pairs halted on an infrastructure failure",
            ["reason", "severity"],
            registry=self.registry,
        )

        self.gas_cost_wei = Histogram(
            "orderbook_arbitrage_gas_cost_wei",
            "Actual gas cost of mined transactions",
            buckets=WEI_BUCKETS,
            registry=self.registry,
        )

        self.net_profit_wei = Histogram(
            "orderbook_arbitrage_net_profit_wei",
            "Net profit of cleared transactions in native token",
            buckets=[-1e17, -1e16, 0, 1e15, 1e16, 1e17, 1e18],
            registry=self.registry,
        )

        self.avg_gas_cost_wei = Gauge(
            "orderbook_arbitrage_avg_gas_cost_wei",
            "Running average gas cost reported by the last batch",
            registry=self.registry,
        )

        self.account_balance_wei = Gauge(
            "orderbook_arbitrage_account_balance_wei",
            "Locally tracked native balance of an account",
            ["account"],
            registry=self.registry,
        )

        self.batch_duration_seconds = Histogram(
            "orderbook_arbitrage_batch_duration_seconds",
            "Duration of a batch run",
            buckets=[1, 5, 10, 30, 60, 120, 300, 600],
            registry=self.registry,
        )

    def record_result(
        self, result: ProcessPairResult, severity: Optional[ErrorSeverity] = None
    ):
        """Record the outcome of a processed pair"""
        with self._lock:
            report = result.report
            if report.status is not None:
                self.reports_total.labels(status=report.status.name).inc()
            if result.halted:
                self.halts_total.labels(
                    reason=result.reason.name,
                    severity=(severity or ErrorSeverity.MEDIUM).value,
                ).inc()
            if result.gas_cost:
                self.gas_cost_wei.observe(result.gas_cost)
            if report.net_profit is not None:
                self.net_profit_wei.observe(report.net_profit)
            if result.account is not None:
                self.update_balance(result.account)

    def update_balance(self, account: Account):
        with self._lock:
            self.account_balance_wei.labels(account=account.address).set(account.balance)

    def record_batch(self, batch: BatchResult, duration_seconds: Optional[float] = None):
        with self._lock:
            if duration_seconds is not None:
                self.batch_duration_seconds.observe(duration_seconds)
            if batch.avg_gas_cost is not None:
                self.avg_gas_cost_wei.set(batch.avg_gas_cost)

    # === SERVER MANAGEMENT ===

    async def start_server(
        self, port: int = 8000, host: str = "0.0.0.0", path: str = "/metrics"
    ):
        """Start Prometheus metrics HTTP server"""
        try:
            app = web.Application()
            app.router.add_get(path, self._metrics_handler)
            app.router.add_get("/health", self._health_handler)

            self._runner = web.AppRunner(app)
            await self._runner.setup()

            self._site = web.TCPSite(self._runner, host, port)
            await self._site.start()

            logger.info(f"Prometheus metrics server started on http://{host}:{port}{path}")
            return True

        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False

    async def start_configured_server(self, config: BotConfig) -> bool:
        """Start the server on ``config.metrics_port``; nothing to do when unset."""
        if config.metrics_port is None:
            return False
        return await self.start_server(port=config.metrics_port)

    async def stop_server(self):
        """Stop the metrics server"""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._site = None
        self._runner = None
        logger.info("Metrics server stopped")

    async def _metrics_handler(self, request):
        metrics_output = generate_latest(self.registry)
        # aiohttp sets the charset itself
        content_type = CONTENT_TYPE_LATEST.split(";")[0]
        return web.Response(text=metrics_output.decode("utf-8"), content_type=content_type)

    async def _health_handler(self, request):
        return web.json_response({"status": "healthy", "service": "orderbook_arbitrage"})
