"""
Unit tests for Prometheus metrics
"""

from unittest.mock import AsyncMock

import aiohttp.test_utils
import pytest
from aiohttp import web
from prometheus_client import CollectorRegistry, generate_latest

from orderbook_arbitrage.constants import ErrorSeverity
from orderbook_arbitrage.metrics import BotMetrics
from orderbook_arbitrage.types import (
    Account,
    BatchResult,
    ProcessPairHaltReason,
    ProcessPairReport,
    ProcessPairReportStatus,
    ProcessPairResult,
)


@pytest.fixture
def test_registry():
    """Create a test-specific registry"""
    return CollectorRegistry()


@pytest.fixture
def metrics(test_registry):
    return BotMetrics(test_registry)


def result(status=None, reason=None, gas_cost=None, net_profit=None, account=None):
    return ProcessPairResult(
        report=ProcessPairReport(
            status=status,
            token_pair="AAA/BBB",
            buy_token="0xaa",
            sell_token="0xbb",
            net_profit=net_profit,
        ),
        reason=reason,
        gas_cost=gas_cost,
        account=account,
    )


class TestBotMetrics:
    def test_initialization(self, metrics):
        assert metrics.registry is not None
        assert hasattr(metrics, "reports_total")
        assert hasattr(metrics, "halts_total")
        assert hasattr(metrics, "avg_gas_cost_wei")

    def test_record_report(self, metrics, test_registry):
        metrics.record_result(result(ProcessPairReportStatus.NO_OPPORTUNITY))
        metrics.record_result(result(ProcessPairReportStatus.NO_OPPORTUNITY))

        assert test_registry.get_sample_value(
            "orderbook_arbitrage_reports_total", {"status": "NO_OPPORTUNITY"}
        ) == 2
        assert test_registry.get_sample_value(
            "orderbook_arbitrage_halts_total",
            {"reason": "FAILED_TO_QUOTE", "severity": "medium"},
        ) is None

    def test_record_halt(self, metrics, test_registry):
        metrics.record_result(result(reason=ProcessPairHaltReason.FAILED_TO_GET_POOLS))
        metrics.record_result(
            result(reason=ProcessPairHaltReason.UNEXPECTED_ERROR), ErrorSeverity.HIGH
        )

        assert test_registry.get_sample_value(
            "orderbook_arbitrage_halts_total",
            {"reason": "FAILED_TO_GET_POOLS", "severity": "medium"},
        ) == 1
        assert test_registry.get_sample_value(
            "orderbook_arbitrage_halts_total",
            {"reason": "UNEXPECTED_ERROR", "severity": "high"},
        ) == 1

    def test_record_clear(self, metrics, test_registry):
        signer = type("FakeSigner", (), {"address": "0x01"})()
        metrics.record_result(
            result(
                ProcessPairReportStatus.FOUND_OPPORTUNITY,
                gas_cost=10**14,
                net_profit=-(10**13),
                account=Account(signer=signer, balance=5 * 10**17),
            )
        )

        assert test_registry.get_sample_value("orderbook_arbitrage_gas_cost_wei_count") == 1
        assert test_registry.get_sample_value("orderbook_arbitrage_gas_cost_wei_sum") == 1e14
        assert test_registry.get_sample_value("orderbook_arbitrage_net_profit_wei_count") == 1
        assert test_registry.get_sample_value(
            "orderbook_arbitrage_account_balance_wei", {"account": "0x01"}
        ) == 5e17

    def test_record_batch(self, metrics, test_registry):
        metrics.record_batch(BatchResult(reports=[], avg_gas_cost=42), 1.5)
        metrics.record_batch(BatchResult(reports=[]))

        assert test_registry.get_sample_value("orderbook_arbitrage_avg_gas_cost_wei") == 42
        assert test_registry.get_sample_value(
            "orderbook_arbitrage_batch_duration_seconds_count"
        ) == 1

    @pytest.mark.asyncio
    async def test_metrics_server(self, metrics):
        success = await metrics.start_server(port=0, host="127.0.0.1")

        if success:
            assert metrics._runner is not None
            assert metrics._site is not None

        await metrics.stop_server()
        assert metrics._runner is None

    @pytest.mark.asyncio
    async def test_configured_server_disabled_without_port(self, metrics, make_config):
        metrics.start_server = AsyncMock()

        assert await metrics.start_configured_server(make_config()) is False
        metrics.start_server.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_configured_server_uses_port(self, metrics, make_config):
        metrics.start_server = AsyncMock(return_value=True)

        assert await metrics.start_configured_server(make_config(metrics_port=9108)) is True
        metrics.start_server.assert_awaited_once_with(port=9108)


@pytest.mark.asyncio
async def test_metrics_server_endpoints():
    """Test metrics server HTTP endpoints"""
    metrics = BotMetrics(CollectorRegistry())
    metrics.record_result(result(ProcessPairReportStatus.ZERO_OUTPUT))

    app = web.Application()
    app.router.add_get("/metrics", metrics._metrics_handler)
    app.router.add_get("/health", metrics._health_handler)

    async with aiohttp.test_utils.TestClient(aiohttp.test_utils.TestServer(app)) as client:
        resp = await client.get("/metrics")
        assert resp.status == 200
        text = await resp.text()
        assert 'orderbook_arbitrage_reports_total{status="ZERO_OUTPUT"} 1.0' in text

        resp = await client.get("/health")
        assert resp.status == 200
        json_data = await resp.json()
        assert json_data["status"] == "healthy"


def test_generate_latest_contains_metric_names(metrics):
    output = generate_latest(metrics.registry).decode("utf-8")

    for name in (
        "orderbook_arbitrage_gas_cost_wei",
        "orderbook_arbitrage_avg_gas_cost_wei",
        "orderbook_arbitrage_net_profit_wei",
        "orderbook_arbitrage_batch_duration_seconds",
    ):
        assert name in output
