"""Tests for the command line front end."""

import sys
from datetime import timedelta
from types import SimpleNamespace

import pytest
from loguru import logger

from conftest import ALL_PRICES, FakeClock, FakeSource
from spot_tracker import cli
from spot_tracker.providers.price_sources.base import Metal
from spot_tracker.providers.spot_service import SpotPriceService
from spot_tracker.storage.schemas import LAST_UPDATE_KEY
from spot_tracker.storage.store import MemoryStore


@pytest.fixture
def settings():
    return SimpleNamespace(
        provider="METALS_DEV",
        custom_base_url="",
        custom_endpoint="",
        poll_interval_seconds=0,
        log_level="WARNING",
        api_key_for=lambda kind: "key" if kind == "METALS_DEV" else None,
    )


@pytest.fixture
def harness(monkeypatch):
    clock = FakeClock()
    store = MemoryStore()
    state = SimpleNamespace(clock=clock, store=store, source=FakeSource(clock, ALL_PRICES))

    def fake_build(settings):
        return SpotPriceService(
            source=state.source,
            store=store,
            clock=clock,
            refresh_interval=timedelta(hours=1),
        )

    monkeypatch.setattr(cli, "build_service", fake_build)
    monkeypatch.setattr(cli, "setup_logger", lambda level: None)
    return state


def run(argv, settings):
    lines = []
    code = cli.main(argv, settings=settings, out=lines.append)
    return code, "\n".join(lines)


class TestCLI:
    def test_help_exits_zero(self):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--help"])
        assert exc_info.value.code == 0

    def test_providers_lists_catalog(self, settings):
        code, output = run(["providers"], settings)
        assert code == 0
        assert "Metals.dev" in output
        assert "MetalPriceAPI.com" in output

    def test_refresh_then_skip(self, harness, settings):
        code, output = run(["refresh"], settings)
        assert code == 0
        assert "Synced 4 metal prices from Fake" in output
        assert "31.50" in output

        code, output = run(["refresh"], settings)
        assert code == 0
        assert "fresh" in output
        assert len(harness.source.calls) == 4

    def test_forced_refresh(self, harness, settings):
        run(["refresh"], settings)
        code, _ = run(["refresh", "--force"], settings)
        assert code == 0
        assert len(harness.source.calls) == 8

    def test_failed_refresh_exit_code(self, harness, settings):
        harness.source = FakeSource(harness.clock, {})
        code, output = run(["refresh"], settings)
        assert code == 1
        assert "Failed to sync prices" in output
        assert "connection refused" in output

    def test_set_show_and_history(self, harness, settings):
        code, output = run(["set", "silver", "28.40"], settings)
        assert code == 0
        assert "Silver spot set to 28.40" in output

        code, output = run(["show"], settings)
        assert "manual" in output
        assert "Last API update: never (stale)" in output

        code, output = run(["history", "--metal", "XAG"], settings)
        assert code == 0
        assert "28.40" in output

    def test_set_rejects_bad_price(self, harness, settings):
        code, output = run(["set", "gold", "-5"], settings)
        assert code == 2
        assert output.startswith("error:")

    def test_unknown_metal(self, harness, settings):
        code, output = run(["reset", "copper"], settings)
        assert code == 2
        assert "Unknown metal" in output

    def test_reset_to_default(self, harness, settings):
        code, output = run(["reset", "platinum"], settings)
        assert code == 0
        assert "1,000.00 (default)" in output

    def test_empty_history(self, harness, settings):
        code, output = run(["history"], settings)
        assert code == 0
        assert "No price history recorded." in output

    def test_connection_test(self, harness, settings):
        code, output = run(["test"], settings)
        assert code == 0
        assert "connection OK" in output
        assert harness.source.calls == [Metal.SILVER]

    def test_watch_polls_requested_ticks(self, harness, settings):
        code, _ = run(["watch", "--interval", "0", "--ticks", "1"], settings)
        assert code == 0
        assert len(harness.source.calls) == 4

    def test_clear_cache(self, harness, settings):
        run(["refresh"], settings)
        code, output = run(["clear-cache"], settings)
        assert code == 0
        run(["refresh"], settings)
        assert len(harness.source.calls) == 8
        assert "Cache cleared" in output
        assert harness.store.get(LAST_UPDATE_KEY) is not None

    def test_history_clear(self, harness, settings):
        run(["set", "gold", "2600"], settings)
        code, output = run(["history", "--clear"], settings)
        assert code == 0
        assert "Price history cleared." in output

        _, output = run(["history"], settings)
        assert "No price history recorded." in output


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_invalid_log_level_is_reported(monkeypatch, settings, restore_logger):
    def build_should_not_run(settings):
        raise AssertionError("service built despite bad log level")

    monkeypatch.setattr(cli, "build_service", build_should_not_run)
    settings.log_level = "VERBOSE"

    code, output = run(["show"], settings)
    assert code == 2
    assert output.startswith("error:")
