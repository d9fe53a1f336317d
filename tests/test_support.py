# tests/test_support.py - Connectivity, monitoring, cache warmup and CLI
import io
import json
import logging

import pytest
from pydantic import ValidationError

from krishi.cli import main
from krishi.core.config import Settings
from krishi.core.connectivity import ConnectivityMonitor
from krishi.core.errors import OfflineMode
from krishi.core.logging_config import LevelColourFormatter, setup_logging
from krishi.core.performance_monitor import PerformanceMonitor
from krishi.core.price_fetcher import MandiPriceFetcher
from krishi.core.retrieval import DataRetrievalOrchestrator
from krishi.core.sources import build_default_sources
from krishi.models.advisory import Location
from krishi.utils.cache_warmup import warmup_cache

PUNE = Location(state="Maharashtra", district="Pune")


async def test_forced_offline_never_pings(monkeypatch):
    monitor = ConnectivityMonitor(force_offline=True)

    async def ping():
        raise AssertionError("ping should not run")

    monkeypatch.setattr(monitor, "_ping", ping)
    assert await monitor.is_online() is False
    assert monitor.status()["forced_offline"] is True


async def test_ping_result_is_reused_within_interval(monkeypatch):
    monitor = ConnectivityMonitor(check_interval=60)
    calls = []

    async def ping():
        calls.append(1)
        return True

    monkeypatch.setattr(monitor, "_ping", ping)
    assert await monitor.is_online()
    assert await monitor.is_online()
    assert len(calls) == 1
    assert monitor.status()["online"] is True


async def test_require_online_raises_offline_mode():
    monitor = ConnectivityMonitor(force_offline=True)
    with pytest.raises(OfflineMode, match="forced offline"):
        await monitor.require_online()


def test_settings_reject_request_timeout_that_cannot_fit_generation():
    with pytest.raises(ValidationError, match="REQUEST_TIMEOUT_SECONDS"):
        Settings(REQUEST_TIMEOUT_SECONDS=20, GENERATION_TIMEOUT_SECONDS=8, RETRIEVAL_TIMEOUT_SECONDS=8)

    defaults = Settings()
    assert defaults.REQUEST_TIMEOUT_SECONDS > 2 * defaults.GENERATION_TIMEOUT_SECONDS + defaults.RETRIEVAL_TIMEOUT_SECONDS


def test_performance_monitor_counts_degradation():
    monitor = PerformanceMonitor()
    monitor.record_request(0.5)
    monitor.record_request(1.5, degradation="offline")
    monitor.record_request(0.1, success=False, degradation="fatal")

    stats = monitor.get_stats()
    assert stats["total_requests"] == 3
    assert stats["error_count"] == 1
    assert stats["degraded"] == {"offline": 1, "fatal": 1}
    assert stats["max_request_time"] == 1.5
    assert stats["current_memory_mb"] > 0


async def test_cache_warmup(settings, memory_cache):
    retriever = DataRetrievalOrchestrator(
        build_default_sources(settings, MandiPriceFetcher()), cache=memory_cache,
        backoff_multiplier=0, backoff_max_seconds=0,
    )
    succeeded, failed = await warmup_cache(memory_cache, retriever, locations=[PUNE], crops=["Onion", "Wheat"])

    assert (succeeded, failed) == (2, 0)
    assert await memory_cache.get_dataset("market", PUNE, "Onion") is not None
    assert await memory_cache.get_dataset("weather", PUNE) is not None


async def test_cache_warmup_counts_unavailable_sources(memory_cache):
    retriever = DataRetrievalOrchestrator({}, cache=memory_cache)
    succeeded, failed = await warmup_cache(memory_cache, retriever, locations=[PUNE], crops=["Onion"])
    assert (succeeded, failed) == (0, 1)


def test_cli_offline_answer(capsys):
    assert main(["How do I improve my soil?", "--offline"]) == 0
    output = capsys.readouterr().out
    assert "Confidence: 40% (low factual basis)" in output
    assert "Note: You are offline" in output


def test_cli_json_output(capsys):
    assert main(["What is the weather forecast for Pune tomorrow?", "--json"]) == 0
    output = capsys.readouterr().out
    body = json.loads(output[output.index("{"):])
    assert body["confidence"] == 0.95
    assert body["factual_basis"] == "high"


def test_logging_is_plain_when_not_writing_to_a_terminal():
    root = logging.getLogger()
    saved_level, saved_handlers = root.level, list(root.handlers)
    stream = io.StringIO()
    try:
        setup_logging("debug", stream=stream)
        logging.getLogger("krishi.tests").warning("🌾 mandi feed slow")
        assert root.level == logging.DEBUG
        assert logging.getLogger("aiohttp").level == logging.WARNING
    finally:
        root.setLevel(saved_level)
        root.handlers[:] = saved_handlers

    output = stream.getvalue()
    assert "WARNING - krishi.tests" in output
    assert "mandi feed slow" in output
    assert "\x1b[" not in output


def test_colour_formatter_leaves_record_untouched():
    record = logging.LogRecord("krishi", logging.ERROR, __file__, 1, "boom", None, None)
    text = LevelColourFormatter("%(levelname)s %(message)s").format(record)
    assert text == "\x1b[31mERROR\x1b[0m boom"
    assert record.levelname == "ERROR"
