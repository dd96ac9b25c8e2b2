"""
Tests for the import manager

Tests cover:
- Coalescing of concurrent imports with the same key
- Recent-import skip and forced re-import
- Retry with backoff, failure state and timeouts
"""
import asyncio

import pytest

from benefits_engine.exceptions import ErrorCode, ImportTimeoutError
from benefits_engine.models.imports import ImportResult
from benefits_engine.services.import_manager import ImportManager

from tests.conftest import make_rule

RULES = [make_rule("a"), make_rule("b")]


class FakeImportService:
    """Counts calls; fails the first `failures` calls; optionally slow"""

    def __init__(self, failures=0, delay=0.0):
        self.calls = 0
        self.failures = failures
        self.delay = delay

    async def import_rules(self, rules, options=None):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.calls <= self.failures:
            raise RuntimeError(f"database unavailable (call {self.calls})")
        return ImportResult(imported=len(rules))


def make_manager(service, **kwargs):
    kwargs.setdefault("backoff_base_ms", 1)
    kwargs.setdefault("backoff_max_ms", 5)
    return ImportManager(service=service, **kwargs)


class TestCoalescing:

    @pytest.mark.asyncio
    async def test_concurrent_imports_share_one_task(self):
        service = FakeImportService(delay=0.05)
        manager = make_manager(service)

        first, second = await asyncio.gather(
            manager.import_rules("snap-2024", RULES),
            manager.import_rules("snap-2024", RULES),
        )

        assert service.calls == 1
        assert first is second
        assert first.imported == 2

    @pytest.mark.asyncio
    async def test_different_keys_run_separately(self):
        service = FakeImportService(delay=0.01)
        manager = make_manager(service)

        await asyncio.gather(
            manager.import_rules("snap-2024", RULES),
            manager.import_rules("wic-2024", RULES),
        )
        assert service.calls == 2

    @pytest.mark.asyncio
    async def test_recent_import_skipped(self):
        service = FakeImportService()
        manager = make_manager(service)

        await manager.import_rules("snap-2024", RULES)
        again = await manager.import_rules("snap-2024", RULES)

        assert service.calls == 1
        assert again.success
        assert again.skipped == 2
        assert manager.was_recently_imported("snap-2024")

    @pytest.mark.asyncio
    async def test_force_reimports(self):
        service = FakeImportService()
        manager = make_manager(service)

        await manager.import_rules("snap-2024", RULES)
        await manager.import_rules("snap-2024", RULES, force=True)

        assert service.calls == 2
        assert manager.get_import_stats("snap-2024").import_count == 2

    @pytest.mark.asyncio
    async def test_recent_window_expiry(self):
        service = FakeImportService()
        manager = make_manager(service, recent_window_ms=0)

        await manager.import_rules("snap-2024", RULES)
        await manager.import_rules("snap-2024", RULES)
        assert service.calls == 2


class TestRetries:

    def test_backoff_delays(self):
        manager = ImportManager(service=FakeImportService(), backoff_base_ms=1000, backoff_max_ms=10000)
        assert [manager.backoff_delay_ms(n) for n in range(1, 6)] == [1000, 2000, 4000, 8000, 10000]

    @pytest.mark.asyncio
    async def test_retry_then_success(self):
        service = FakeImportService(failures=2)
        manager = make_manager(service, max_retries=3)

        result = await manager.import_rules("snap-2024", RULES)

        assert service.calls == 3
        assert result.imported == 2
        state = manager.get_import_stats("snap-2024")
        assert state.last_succeeded and not state.last_failed
        assert not state.is_importing

    @pytest.mark.asyncio
    async def test_all_attempts_fail(self):
        service = FakeImportService(failures=10)
        manager = make_manager(service, max_retries=2)

        with pytest.raises(RuntimeError, match="call 2"):
            await manager.import_rules("snap-2024", RULES)

        assert service.calls == 2
        assert manager.has_failed_import("snap-2024")
        assert not manager.is_importing("snap-2024")
        assert "call 2" in manager.get_import_stats("snap-2024").last_error

    @pytest.mark.asyncio
    async def test_previous_failure_without_retry(self):
        service = FakeImportService(failures=10)
        manager = make_manager(service, max_retries=1)

        with pytest.raises(RuntimeError):
            await manager.import_rules("snap-2024", RULES)

        result = await manager.import_rules("snap-2024", RULES, retry_on_failure=False)
        assert not result.success
        assert result.failed == 2
        assert result.errors[0].code == ErrorCode.PREVIOUS_FAILURE
        assert result.errors[0].message == "Previous import failed"
        assert service.calls == 1

    @pytest.mark.asyncio
    async def test_failed_import_retried_by_default(self):
        service = FakeImportService(failures=1)
        manager = make_manager(service, max_retries=1)

        with pytest.raises(RuntimeError):
            await manager.import_rules("snap-2024", RULES)
        result = await manager.import_rules("snap-2024", RULES)

        assert result.imported == 2
        assert not manager.has_failed_import("snap-2024")

    @pytest.mark.asyncio
    async def test_timeout(self):
        service = FakeImportService(delay=1.0)
        manager = make_manager(service, max_retries=1)

        with pytest.raises(ImportTimeoutError, match="Import timeout after 20ms") as exc_info:
            await manager.import_rules("snap-2024", RULES, timeout_ms=20)

        assert exc_info.value.code == ErrorCode.IMPORT_TIMEOUT
        assert exc_info.value.rule_id == "snap-2024"
        assert manager.has_failed_import("snap-2024")


class TestState:

    @pytest.mark.asyncio
    async def test_wait_for_all_imports(self):
        service = FakeImportService(delay=0.05)
        manager = make_manager(service)

        background = asyncio.create_task(manager.import_rules("snap-2024", RULES))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert manager.has_active_imports()
        assert manager.is_importing("snap-2024")

        await manager.wait_for_all_imports()
        assert not manager.has_active_imports()
        assert (await background).imported == 2

    @pytest.mark.asyncio
    async def test_wait_with_nothing_in_flight(self):
        await make_manager(FakeImportService()).wait_for_all_imports()

    @pytest.mark.asyncio
    async def test_clear_import_state(self):
        manager = make_manager(FakeImportService())
        await manager.import_rules("snap-2024", RULES)
        await manager.import_rules("wic-2024", RULES)

        manager.clear_import_state("snap-2024")
        assert manager.get_import_stats("snap-2024") is None
        assert set(manager.get_all_import_states()) == {"wic-2024"}

        manager.clear_import_state()
        assert manager.get_all_import_states() == {}
